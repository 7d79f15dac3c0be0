"""Orchestration models — stage classification, run outcome, shared handle.

StageProgress and RolloutOutcome are immutable records. RolloutHandle is
the single piece of state shared between the controller and the
cancellation path.
"""

from pydantic import BaseModel, ConfigDict, Field

from rollout_runner.schemas.rollout import Task


class StageProgress(BaseModel):
    """Completion state of one stage, derived from its task statuses."""

    model_config = ConfigDict(frozen=True)

    done: bool = Field(..., description="Every task is DONE or SKIPPED")
    failed_tasks: list[Task] = Field(
        default_factory=list,
        description="FAILED tasks in stage order",
    )

    @property
    def failed(self) -> bool:
        return bool(self.failed_tasks)


class RolloutOutcome(BaseModel):
    """Result of driving a rollout to its target stage."""

    model_config = ConfigDict(frozen=True)

    rollout_name: str = Field(...)
    target_stage: str = Field(default="", description="Empty means run to completion")
    completed_stages: list[str] = Field(
        default_factory=list,
        description="Environments of stages seen done, in order",
    )


class RolloutHandle:
    """Write-once cell holding the name of the rollout this process created.

    Starts unset. The controller sets it exactly once after creating the
    rollout; the cancellation handler reads it. Reading before it is set
    returns None.
    """

    def __init__(self) -> None:
        self._name: str | None = None

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def is_set(self) -> bool:
        return self._name is not None

    def set(self, name: str) -> None:
        if not name:
            raise ValueError("rollout name must be non-empty")
        if self._name is not None and self._name != name:
            raise RuntimeError(
                f"rollout handle already set to {self._name}, refusing {name}"
            )
        self._name = name

    def __repr__(self) -> str:
        return f"RolloutHandle(name={self._name!r})"
