"""CancellationHandler — best-effort cleanup after an interruption.

When the process is interrupted, task runs the controller triggered may
still be PENDING or RUNNING on the platform. This handler cancels them
so the rollout is not left holding an orphaned execution.

Never raises: every failure is logged as a warning, and the whole
cleanup is bounded by a deadline so the process can exit promptly.
"""

import asyncio
from collections import OrderedDict

import structlog

from rollout_runner.config.settings import DEFAULT_CANCEL_TIMEOUT_SECONDS
from rollout_runner.infra.rollout_client import RolloutClient
from rollout_runner.orchestration.models import RolloutHandle
from rollout_runner.schemas.enums import ACTIVE_TASK_RUN_STATUSES
from rollout_runner.schemas.rollout import TaskRun
from rollout_runner.utils.logging import get_logger


class CancellationHandler:
    """Cancels active task runs of the rollout held by a RolloutHandle."""

    def __init__(
        self,
        client: RolloutClient,
        handle: RolloutHandle,
        timeout_seconds: float = DEFAULT_CANCEL_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client
        self._handle = handle
        self._timeout = timeout_seconds
        self._canceled = 0

    async def cancel(self) -> int:
        """Cancel all PENDING/RUNNING task runs under the created rollout.

        Returns:
            Number of task runs a cancel request was accepted for. Zero if
            no rollout was created, nothing was active, or cancellation
            failed. Requests still outstanding at the deadline are abandoned.
        """
        rollout_name = self._handle.name
        if rollout_name is None:
            return 0

        log = get_logger(rollout=rollout_name)
        self._canceled = 0
        try:
            await asyncio.wait_for(
                self._cancel_active(rollout_name, log),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            log.warning(
                "Cancellation timed out, giving up",
                timeout_seconds=self._timeout,
                canceled=self._canceled,
            )
        return self._canceled

    async def _cancel_active(self, rollout_name: str, log: structlog.BoundLogger) -> None:
        try:
            task_runs = await self._client.list_task_runs(rollout_name)
        except Exception as e:
            log.warning("Failed to list task runs for cancellation", error=str(e))
            return

        active = [r for r in task_runs if r.status in ACTIVE_TASK_RUN_STATUSES]
        if not active:
            log.info("No active task runs to cancel")
            return

        for stage_ref, runs in group_by_stage(active).items():
            names = [r.name for r in runs]
            if stage_ref is None:
                log.warning("Cannot determine stage of task runs, skipping", task_runs=names)
                continue
            try:
                await self._client.batch_cancel_task_runs(rollout_name, stage_ref, names)
            except Exception as e:
                log.warning(
                    "Failed to cancel task runs",
                    stage=stage_ref,
                    task_runs=names,
                    error=str(e),
                )
                continue
            log.info("Canceled task runs", stage=stage_ref, task_runs=names)
            self._canceled += len(names)


def group_by_stage(task_runs: list[TaskRun]) -> "OrderedDict[str | None, list[TaskRun]]":
    """Group task runs by owning stage, in order of first appearance."""
    groups: OrderedDict[str | None, list[TaskRun]] = OrderedDict()
    for run in task_runs:
        groups.setdefault(run.stage_ref, []).append(run)
    return groups
