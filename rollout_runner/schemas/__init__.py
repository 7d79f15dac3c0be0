"""Rollout Runner schemas — typed views of remote API payloads."""

from rollout_runner.schemas.enums import (
    ACTIVE_TASK_RUN_STATUSES,
    COMPLETED_TASK_STATUSES,
    TaskRunStatus,
    TaskStatus,
)
from rollout_runner.schemas.rollout import Rollout, Stage, Task, TaskRun

__all__ = [
    "ACTIVE_TASK_RUN_STATUSES",
    "COMPLETED_TASK_STATUSES",
    "Rollout",
    "Stage",
    "Task",
    "TaskRun",
    "TaskRunStatus",
    "TaskStatus",
]
