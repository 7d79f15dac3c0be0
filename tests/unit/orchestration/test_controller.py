"""Tests for RolloutController — preview, lazy stage creation, advancement.

Uses an in-memory FakeRolloutClient that simulates the platform: tasks
move NOT_STARTED → RUNNING when triggered and RUNNING → DONE (or FAILED)
on the next fetch.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from rollout_runner.exceptions import (
    EmptyResultError,
    RemoteError,
    TargetNotFoundError,
    TargetNotReachedError,
    TaskFailureError,
    UnsupportedVersionError,
)
from rollout_runner.orchestration.controller import (
    RETRYABLE_CONFLICT_MESSAGE,
    RolloutController,
)
from rollout_runner.orchestration.models import RolloutHandle
from rollout_runner.schemas.enums import TaskStatus
from rollout_runner.schemas.rollout import Rollout, Stage, Task
from tests.fixtures.rollout_responses import (
    BASE_URL,
    PLAN,
    PROJECT,
    ROLLOUT_NAME,
    stage_name,
)

TEST = "environments/test"
STAGING = "environments/staging"
PROD = "environments/prod"


# ---------------------------------------------------------------------------
# Fake platform
# ---------------------------------------------------------------------------


class FakeRolloutClient:
    """In-memory stand-in for RolloutClient."""

    base_url = BASE_URL

    def __init__(
        self,
        environments: list[str],
        tasks_per_stage: int = 1,
        failing: tuple[str, ...] = (),
        already_done: tuple[str, ...] = (),
        ignore_targets: bool = False,
    ) -> None:
        self.environments = list(environments)
        self.tasks_per_stage = tasks_per_stage
        self.failing = set(failing)
        self.already_done = set(already_done)
        self.ignore_targets = ignore_targets
        self.calls: list[tuple] = []
        self.titles: list[str | None] = []
        self.materialized: list[str] = []
        self.statuses: dict[str, list[TaskStatus]] = {}
        self.batch_run_errors: list[Exception] = []
        self.version_error: Exception | None = None

    async def assert_supported_version(self, minimum: str = "3.5.0") -> None:
        self.calls.append(("version",))
        if self.version_error is not None:
            raise self.version_error

    async def create_rollout(self, project, plan, validate_only=False, target=None, title=None):
        assert project == PROJECT
        assert plan == PLAN
        self.calls.append(("create", validate_only, target))
        self.titles.append(title)
        if validate_only:
            return Rollout(stages=[
                Stage(environment=env, tasks=[Task(status=TaskStatus.NOT_STARTED)])
                for env in self.environments
            ])
        if target and not self.ignore_targets:
            index = self.environments.index(target)
            for env in self.environments[len(self.materialized):index + 1]:
                self.materialized.append(env)
                initial = TaskStatus.DONE if env in self.already_done else TaskStatus.NOT_STARTED
                self.statuses[env] = [initial] * self.tasks_per_stage
        return self._rollout()

    async def get_rollout(self, name):
        assert name == ROLLOUT_NAME
        self.calls.append(("get",))
        for env, statuses in self.statuses.items():
            finished = TaskStatus.FAILED if env in self.failing else TaskStatus.DONE
            self.statuses[env] = [finished if s == TaskStatus.RUNNING else s for s in statuses]
        return self._rollout()

    async def batch_run_tasks(self, stage, task_names, reason):
        self.calls.append(("run", stage, tuple(task_names), reason))
        if self.batch_run_errors:
            raise self.batch_run_errors.pop(0)
        env = next(e for e in self.materialized if stage_name(e) == stage)
        self.statuses[env] = [
            TaskStatus.RUNNING if s == TaskStatus.NOT_STARTED else s
            for s in self.statuses[env]
        ]

    def created_targets(self) -> list[str | None]:
        return [c[2] for c in self.calls if c[0] == "create" and not c[1]]

    def _rollout(self) -> Rollout:
        stages = []
        for env in self.materialized:
            name = stage_name(env)
            stages.append(Stage(
                name=name,
                environment=env,
                tasks=[
                    Task(name=f"{name}/tasks/{i + 1}", status=s)
                    for i, s in enumerate(self.statuses[env])
                ],
            ))
        return Rollout(name=ROLLOUT_NAME, plan=PLAN, stages=stages)


def make_controller(client, target_stage="", **kwargs):
    sleep = AsyncMock()
    handle = RolloutHandle()
    controller = RolloutController(
        client,
        project=PROJECT,
        plan=PLAN,
        handle=handle,
        target_stage=target_stage,
        sleep=sleep,
        **kwargs,
    )
    return controller, handle, sleep


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestPreviewAndCreate:
    @pytest.mark.asyncio
    async def test_target_not_found_creates_nothing(self):
        client = FakeRolloutClient([TEST, PROD])
        controller, handle, _ = make_controller(client, target_stage="environments/qa")

        with pytest.raises(TargetNotFoundError) as exc_info:
            await controller.run()

        assert client.calls == [("version",), ("create", True, None)]
        assert handle.is_set is False
        assert exc_info.value.available == [TEST, PROD]
        assert "environments/qa not found" in str(exc_info.value)
        assert f"available stages:\n{TEST}\n{PROD}" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_rollout_created_without_stages_then_handle_set(self):
        client = FakeRolloutClient([TEST])
        controller, handle, _ = make_controller(client, title="Release 42")

        outcome = await controller.run()

        assert client.calls[:3] == [("version",), ("create", True, None), ("create", False, "")]
        assert client.titles[:2] == ["Release 42", "Release 42"]
        assert handle.name == ROLLOUT_NAME
        assert outcome.rollout_name == ROLLOUT_NAME

    @pytest.mark.asyncio
    async def test_preview_carries_plan(self):
        client = FakeRolloutClient([TEST])
        controller, _, _ = make_controller(client)
        preview = await controller.preview()
        assert preview.plan == PLAN
        assert preview.environments() == [TEST]

    @pytest.mark.asyncio
    async def test_version_check_skipped(self):
        client = FakeRolloutClient([TEST])
        controller, _, _ = make_controller(client, check_version=False)
        await controller.run()
        assert ("version",) not in client.calls

    @pytest.mark.asyncio
    async def test_unsupported_version_stops_before_preview(self):
        client = FakeRolloutClient([TEST])
        client.version_error = UnsupportedVersionError("too old", version="3.0.0", minimum="3.5.0")
        controller, _, _ = make_controller(client)
        with pytest.raises(UnsupportedVersionError):
            await controller.run()
        assert client.calls == [("version",)]

    @pytest.mark.asyncio
    async def test_empty_preview_is_noop(self):
        client = FakeRolloutClient([])
        controller, _, sleep = make_controller(client)

        outcome = await controller.run()

        assert outcome.completed_stages == []
        assert ("get",) not in client.calls
        sleep.assert_not_awaited()


class TestAdvancement:
    @pytest.mark.asyncio
    async def test_stops_at_target_without_touching_later_stage(self):
        client = FakeRolloutClient([TEST, STAGING, PROD])
        controller, _, sleep = make_controller(client, target_stage=STAGING)

        outcome = await controller.run()

        assert outcome.completed_stages == [TEST, STAGING]
        assert outcome.target_stage == STAGING
        assert client.created_targets() == ["", TEST, STAGING]
        assert client.materialized == [TEST, STAGING]
        assert client.calls[-1] == ("get",)
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_stages_created_one_at_a_time(self):
        client = FakeRolloutClient([TEST, PROD])
        controller, _, _ = make_controller(client)

        await controller.run()

        creates = [i for i, c in enumerate(client.calls) if c[0] == "create" and c[2]]
        runs = [i for i, c in enumerate(client.calls) if c[0] == "run"]
        # prod is only created after test tasks were run
        assert creates[0] < runs[0] < creates[1] < runs[1]

    @pytest.mark.asyncio
    async def test_no_target_runs_to_completion_in_preview_order(self):
        envs = [TEST, STAGING, PROD]
        client = FakeRolloutClient(envs, tasks_per_stage=2)
        controller, _, _ = make_controller(client)

        outcome = await controller.run()

        assert outcome.completed_stages == envs
        assert client.materialized == envs
        final = await client.get_rollout(ROLLOUT_NAME)
        assert final.environments() == envs

    @pytest.mark.asyncio
    async def test_done_stages_advance_without_sleep(self):
        client = FakeRolloutClient([TEST, STAGING, PROD], already_done=(TEST, STAGING))
        controller, _, sleep = make_controller(client, target_stage=PROD)

        await controller.run()

        assert sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_poll_interval_used_for_sleep(self):
        client = FakeRolloutClient([TEST])
        controller, _, sleep = make_controller(client, poll_interval_seconds=0.25)
        await controller.run()
        sleep.assert_awaited_with(0.25)

    @pytest.mark.asyncio
    async def test_batch_run_reason_and_tasks(self):
        client = FakeRolloutClient([TEST], tasks_per_stage=2)
        controller, _, _ = make_controller(client)

        await controller.run()

        name = stage_name(TEST)
        run_calls = [c for c in client.calls if c[0] == "run"]
        assert run_calls == [
            ("run", name, (f"{name}/tasks/1", f"{name}/tasks/2"), f"run {TEST}"),
        ]

    @pytest.mark.asyncio
    async def test_task_failure_is_fatal(self):
        client = FakeRolloutClient([TEST, PROD], failing=(TEST,))
        controller, _, _ = make_controller(client, target_stage=PROD)

        with pytest.raises(TaskFailureError) as exc_info:
            await controller.run()

        assert exc_info.value.task_names == [f"{stage_name(TEST)}/tasks/1"]
        assert PROD not in client.materialized

    @pytest.mark.asyncio
    async def test_stage_not_created_by_server(self):
        client = FakeRolloutClient([TEST], ignore_targets=True)
        controller, _, _ = make_controller(client)
        with pytest.raises(EmptyResultError, match="environments/test was not created"):
            await controller.run()

    @pytest.mark.asyncio
    async def test_explicit_target_never_matched(self):
        client = FakeRolloutClient([TEST])
        controller, _, _ = make_controller(client, target_stage="environments/qa")
        preview = await client.create_rollout(PROJECT, PLAN, validate_only=True)

        with pytest.raises(TargetNotReachedError, match="environments/qa"):
            await controller.advance(preview, ROLLOUT_NAME)


class TestRetryableConflict:
    @pytest.mark.asyncio
    async def test_conflict_is_swallowed_and_loop_continues(self):
        client = FakeRolloutClient([TEST])
        client.batch_run_errors.append(
            RemoteError(f"failed to run tasks, 400, {RETRYABLE_CONFLICT_MESSAGE}", status_code=400)
        )
        controller, _, sleep = make_controller(client)

        outcome = await controller.run()

        assert outcome.completed_stages == [TEST]
        assert len([c for c in client.calls if c[0] == "run"]) == 2
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_other_error_is_fatal(self):
        client = FakeRolloutClient([TEST])
        client.batch_run_errors.append(
            RemoteError("failed to run tasks, 500, internal error", status_code=500)
        )
        controller, _, sleep = make_controller(client)

        with pytest.raises(RemoteError, match="internal error"):
            await controller.run()
        sleep.assert_not_awaited()


class TestRunStageTasks:
    @pytest.mark.asyncio
    async def test_nothing_to_run_makes_no_call(self):
        client = MagicMock()
        client.batch_run_tasks = AsyncMock()
        controller, _, _ = make_controller(client)
        stage = Stage(
            name=stage_name(TEST),
            environment=TEST,
            tasks=[
                Task(name="t1", status=TaskStatus.PENDING),
                Task(name="t2", status=TaskStatus.RUNNING),
            ],
        )

        assert await controller.run_stage_tasks(stage) is False
        client.batch_run_tasks.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_only_not_started_tasks_are_run(self):
        client = MagicMock()
        client.batch_run_tasks = AsyncMock()
        controller, _, _ = make_controller(client)
        stage = Stage(
            name=stage_name(TEST),
            environment=TEST,
            tasks=[
                Task(name="t1", status=TaskStatus.DONE),
                Task(name="t2", status=TaskStatus.NOT_STARTED),
            ],
        )

        assert await controller.run_stage_tasks(stage) is True
        client.batch_run_tasks.assert_awaited_once_with(
            stage_name(TEST), ["t2"], reason=f"run {TEST}"
        )
