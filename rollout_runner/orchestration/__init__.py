"""Rollout Runner orchestration layer.

  - status: pure stage classifier (done / failed tasks)
  - controller: preview → create → lazy stage-by-stage advancement
  - cancellation: best-effort cancel of active task runs on interruption
"""

from rollout_runner.orchestration.cancellation import CancellationHandler
from rollout_runner.orchestration.controller import RETRYABLE_CONFLICT_MESSAGE, RolloutController
from rollout_runner.orchestration.models import RolloutHandle, RolloutOutcome, StageProgress
from rollout_runner.orchestration.status import classify_stage

__all__ = [
    "CancellationHandler",
    "RETRYABLE_CONFLICT_MESSAGE",
    "RolloutController",
    "RolloutHandle",
    "RolloutOutcome",
    "StageProgress",
    "classify_stage",
]
