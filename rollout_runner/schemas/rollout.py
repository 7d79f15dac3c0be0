"""Rollout schemas — typed views of the remote rollout resources.

Produced by: RolloutClient (decoded once at the HTTP boundary)
Consumed by: stage status classifier, RolloutController, CancellationHandler

Resource names are path-like and assigned by the server:
  rollout:  projects/{project}/plans/{plan}/rollouts/{rollout}
  stage:    {rollout}/stages/{stage}
  task:     {stage}/tasks/{task}
  task run: {task}/taskRuns/{taskRun}

Stages of a preview rollout carry no name; only the materialized rollout
assigns one.
"""

import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from rollout_runner.exceptions import SchemaValidationError
from rollout_runner.schemas.enums import TaskRunStatus, TaskStatus

_STAGE_REF_RE = re.compile(r"/(?P<stage>stages/[^/]+)/")


class Task(BaseModel):
    """A unit of work within a stage."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(default="")
    status: TaskStatus = Field(default=TaskStatus.STATUS_UNSPECIFIED)


class Stage(BaseModel):
    """An ordered pipeline step bound to one deployment environment."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(default="", description="Empty until the server instantiates the stage")
    environment: str = Field(..., description="Stable identifier, e.g. environments/prod")
    tasks: list[Task] = Field(default_factory=list)

    @property
    def is_instantiated(self) -> bool:
        return bool(self.name)

    def tasks_with_status(self, status: TaskStatus) -> list[Task]:
        return [t for t in self.tasks if t.status == status]


class Rollout(BaseModel):
    """The mutable execution of a plan across an ordered list of stages.

    A preview rollout (requested with validateOnly) has the full stage
    topology but no durable name.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(default="")
    plan: str = Field(default="")
    title: Optional[str] = Field(default=None)
    stages: list[Stage] = Field(default_factory=list)

    def environments(self) -> list[str]:
        """Stage environments in advancement order."""
        return [s.environment for s in self.stages]

    def has_stage(self, index: int) -> bool:
        """Whether the stage at ``index`` has been materialized."""
        return len(self.stages) > index

    @classmethod
    def from_payload(cls, data: Any) -> "Rollout":
        return _decode(cls, data)


class TaskRun(BaseModel):
    """A remote execution record of a task."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(...)
    status: TaskRunStatus = Field(default=TaskRunStatus.STATUS_UNSPECIFIED)

    @property
    def stage_ref(self) -> str | None:
        """The ``stages/{id}`` segment of the owning stage, if present."""
        m = _STAGE_REF_RE.search(self.name)
        return m.group("stage") if m else None

    @classmethod
    def from_payload(cls, data: Any) -> "TaskRun":
        return _decode(cls, data)


def _decode(model: type[BaseModel], data: Any) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise SchemaValidationError(
            f"invalid {model.__name__} payload: {e.error_count()} error(s): {e}"
        ) from e
