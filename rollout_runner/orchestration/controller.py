"""RolloutController — drives a rollout stage by stage to its target.

Flow:
  1. (optional) server version preflight
  2. preview the rollout (validate-only) to learn the full stage topology
  3. check the target stage exists in the preview
  4. create the real rollout with no stages and publish its name
  5. advance: fetch, instantiate the current stage if missing, classify,
     trigger NOT_STARTED tasks, sleep, repeat

Stages are instantiated one at a time as the cursor reaches them, so an
interrupted run leaves at most one stage more than was progressed.
"""

import asyncio
from typing import Awaitable, Callable

import structlog

from rollout_runner.config.settings import DEFAULT_POLL_INTERVAL_SECONDS
from rollout_runner.exceptions import (
    EmptyResultError,
    RemoteError,
    TargetNotFoundError,
    TargetNotReachedError,
    TaskFailureError,
)
from rollout_runner.infra.rollout_client import RolloutClient
from rollout_runner.orchestration.models import RolloutHandle, RolloutOutcome
from rollout_runner.orchestration.status import classify_stage
from rollout_runner.schemas.enums import TaskStatus
from rollout_runner.schemas.rollout import Rollout, Stage

logger = structlog.get_logger()

# Batch-run rejects tasks that were already triggered by an earlier poll.
RETRYABLE_CONFLICT_MESSAGE = (
    "cannot create pending task runs because there are pending/running/done task runs"
)


class RolloutController:
    """Stateful advancement loop for a single rollout.

    One controller drives one rollout; it is not reusable across runs.
    """

    def __init__(
        self,
        client: RolloutClient,
        project: str,
        plan: str,
        handle: RolloutHandle,
        target_stage: str = "",
        title: str = "",
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        check_version: bool = True,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._project = project
        self._plan = plan
        self._handle = handle
        self._target_stage = target_stage
        self._title = title
        self._poll_interval = poll_interval_seconds
        self._check_version = check_version
        self._sleep = sleep

    @property
    def target_stage(self) -> str:
        return self._target_stage

    async def run(self) -> RolloutOutcome:
        """Preview, create, and advance the rollout to its target stage.

        Returns:
            RolloutOutcome naming the rollout and the stages seen done.

        Raises:
            TargetNotFoundError: Target stage absent from the preview;
                nothing has been created remotely.
            TaskFailureError: A task of the current stage failed.
            TargetNotReachedError: All stages completed without the target.
            RemoteError: Any remote failure other than the known
                batch-run conflict.
        """
        if self._check_version:
            version = await self._client.assert_supported_version()
            logger.debug("Server version supported", version=str(version))

        preview = await self.preview()
        self.validate_target(preview)

        # Create the rollout without any stage to obtain its resource name.
        rollout = await self._client.create_rollout(
            self._project,
            self._plan,
            validate_only=False,
            target="",
            title=self._title or None,
        )
        self._handle.set(rollout.name)
        logger.info(
            "Rollout created",
            rollout=rollout.name,
            url=f"{self._client.base_url}/{rollout.name}",
        )

        return await self.advance(preview, rollout.name)

    async def preview(self) -> Rollout:
        """Request a validate-only rollout carrying the full stage topology."""
        preview = await self._client.create_rollout(
            self._project,
            self._plan,
            validate_only=True,
            title=self._title or None,
        )
        return preview.model_copy(update={"plan": self._plan})

    def validate_target(self, preview: Rollout) -> None:
        """Fail if an explicit target is not one of the previewed stages."""
        if not self._target_stage:
            return
        environments = preview.environments()
        if self._target_stage not in environments:
            raise TargetNotFoundError(self._target_stage, environments)

    async def advance(self, preview: Rollout, rollout_name: str) -> RolloutOutcome:
        """Advance the created rollout until the target stage is done.

        Args:
            preview: Validate-only rollout; fixes stage order and count.
            rollout_name: Resource name of the created rollout.
        """
        stage_count = len(preview.stages)
        completed: list[str] = []
        log = logger.bind(rollout=rollout_name)

        if stage_count == 0:
            log.info("Rollout has no stages, nothing to do")
            return self._outcome(rollout_name, completed)

        log.info(
            "Advancing rollout",
            target_stage=self._target_stage or "<all>",
            stage_count=stage_count,
            stages=preview.environments(),
        )

        i = 0
        while i < stage_count:
            rollout = await self._client.get_rollout(rollout_name)
            if not rollout.has_stage(i):
                rollout = await self._create_stage(preview.stages[i], i)

            stage = rollout.stages[i]
            progress = classify_stage(stage)
            if progress.done:
                log.info("Stage done", stage=stage.name, environment=stage.environment)
                completed.append(stage.environment)
                if self._is_target(stage, i, stage_count):
                    return self._outcome(rollout_name, completed)
                i += 1
                continue

            if progress.failed:
                raise TaskFailureError([t.name for t in progress.failed_tasks])

            await self.run_stage_tasks(stage)
            await self._sleep(self._poll_interval)

        # Only reachable with an explicit target that no stage matched.
        raise TargetNotReachedError(self._target_stage)

    async def run_stage_tasks(self, stage: Stage) -> bool:
        """Trigger every NOT_STARTED task of the stage.

        Returns:
            True if a batch-run request was accepted, False if there was
            nothing to run or the tasks were already triggered.
        """
        task_names = [t.name for t in stage.tasks_with_status(TaskStatus.NOT_STARTED)]
        if not task_names:
            return False

        log = logger.bind(stage=stage.name, environment=stage.environment)
        try:
            await self._client.batch_run_tasks(
                stage.name,
                task_names,
                reason=f"run {stage.environment}",
            )
        except RemoteError as e:
            if RETRYABLE_CONFLICT_MESSAGE in str(e):
                log.info("Encountered retryable error, will retry", error=str(e))
                return False
            raise
        log.info("Tasks triggered", tasks=task_names)
        return True

    async def _create_stage(self, planned: Stage, index: int) -> Rollout:
        """Instantiate the stage at ``index`` and return the updated rollout."""
        logger.info("Creating stage", environment=planned.environment, index=index)
        rollout = await self._client.create_rollout(
            self._project,
            self._plan,
            validate_only=False,
            target=planned.environment,
        )
        if not rollout.has_stage(index):
            raise EmptyResultError(
                message=f"stage {planned.environment} was not created",
                status_code=200,
                operation="create rollout",
            )
        created = rollout.stages[index]
        if created.environment != planned.environment:
            logger.warning(
                "Created stage differs from preview",
                index=index,
                expected=planned.environment,
                actual=created.environment,
            )
        return rollout

    def _is_target(self, stage: Stage, index: int, stage_count: int) -> bool:
        if self._target_stage:
            return stage.environment == self._target_stage
        return index == stage_count - 1

    def _outcome(self, rollout_name: str, completed: list[str]) -> RolloutOutcome:
        return RolloutOutcome(
            rollout_name=rollout_name,
            target_stage=self._target_stage,
            completed_stages=list(completed),
        )
