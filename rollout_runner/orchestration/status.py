"""Stage status classifier.

Pure function over a stage's task list. This is the only place task
statuses are interpreted for control decisions.
"""

from rollout_runner.orchestration.models import StageProgress
from rollout_runner.schemas.enums import COMPLETED_TASK_STATUSES, TaskStatus
from rollout_runner.schemas.rollout import Stage


def classify_stage(stage: Stage) -> StageProgress:
    """Classify a stage as done and collect its failed tasks.

    A stage with no tasks is done.
    """
    return StageProgress(
        done=all(t.status in COMPLETED_TASK_STATUSES for t in stage.tasks),
        failed_tasks=[t for t in stage.tasks if t.status == TaskStatus.FAILED],
    )
