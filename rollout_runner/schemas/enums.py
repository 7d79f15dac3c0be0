"""Shared enumerations for Rollout Runner schemas.

Values match the wire representation used by the remote API.
"""

from enum import Enum


class TaskStatus(str, Enum):
    """Server-reported status of a rollout task."""
    STATUS_UNSPECIFIED = "STATUS_UNSPECIFIED"
    NOT_STARTED = "NOT_STARTED"
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


class TaskRunStatus(str, Enum):
    """Server-reported status of a single task execution attempt."""
    STATUS_UNSPECIFIED = "STATUS_UNSPECIFIED"
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


# Tasks in these states count toward a stage being complete.
COMPLETED_TASK_STATUSES = frozenset({TaskStatus.DONE, TaskStatus.SKIPPED})

# Task runs in these states are still holding the pipeline and can be canceled.
ACTIVE_TASK_RUN_STATUSES = frozenset({TaskRunStatus.PENDING, TaskRunStatus.RUNNING})
