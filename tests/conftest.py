"""Shared test fixtures for Rollout Runner tests.

Provides payload builders mirroring the JSON the rollout API returns.
"""

from typing import Any, Callable

import pytest
import structlog

from tests.fixtures.rollout_responses import PLAN, stage_name


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo any configure_logging() call so later tests log to live streams."""
    yield
    structlog.reset_defaults()


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------
@pytest.fixture
def task_payload() -> Callable[..., dict[str, Any]]:
    def _build(name: str, status: str = "NOT_STARTED") -> dict[str, Any]:
        return {"name": name, "status": status, "type": "DATABASE_MIGRATE"}
    return _build


@pytest.fixture
def stage_payload(task_payload) -> Callable[..., dict[str, Any]]:
    def _build(
        environment: str,
        statuses: list[str] | None = None,
        named: bool = True,
    ) -> dict[str, Any]:
        name = stage_name(environment) if named else ""
        tasks = [
            task_payload(f"{name}/tasks/{i + 1}", status)
            for i, status in enumerate(statuses if statuses is not None else ["NOT_STARTED"])
        ]
        payload: dict[str, Any] = {"environment": environment, "tasks": tasks}
        if name:
            payload["name"] = name
        return payload
    return _build


@pytest.fixture
def preview_payload(stage_payload) -> Callable[[list[str]], dict[str, Any]]:
    def _build(environments: list[str]) -> dict[str, Any]:
        return {
            "plan": PLAN,
            "stages": [stage_payload(env, named=False) for env in environments],
        }
    return _build
