# erp_backend/task/lifecycle.py
from __future__ import annotations

from typing import Dict, Tuple

from erp_backend.auth.permissions import Capability, RequestContext
from erp_backend.errors import InvalidParameters
from erp_backend.models.task import TaskStatus

# (from, to) -> capability needed for the move; anything else is rejected.
# Forward moves are monotonic; the three review-side moves are the explicit
# reopen paths.
TRANSITIONS: Dict[Tuple[TaskStatus, TaskStatus], Capability] = {
    (TaskStatus.TODO, TaskStatus.WORK_IN_PROGRESS): Capability.UPDATE_TASK_STATUS,
    (TaskStatus.WORK_IN_PROGRESS, TaskStatus.DONE): Capability.REQUEST_REVIEW,
    (TaskStatus.DONE, TaskStatus.CLOSED): Capability.REVIEW_TASKS,
    (TaskStatus.DONE, TaskStatus.WORK_IN_PROGRESS): Capability.REVIEW_TASKS,
    (TaskStatus.CLOSED, TaskStatus.WORK_IN_PROGRESS): Capability.REVIEW_TASKS,
}


def check_transition(ctx: RequestContext, current: str, target: TaskStatus) -> None:
    try:
        key = (TaskStatus(current), target)
    except ValueError:
        raise InvalidParameters(f"Unknown task status: {current}")

    capability = TRANSITIONS.get(key)
    if capability is None:
        raise InvalidParameters(f"Invalid status transition: {current} -> {target.value}")
    ctx.require(capability, f"Not allowed to move a task from {current} to {target.value}")


def is_reopen(current: str, target: TaskStatus) -> bool:
    return current in (TaskStatus.DONE.value, TaskStatus.CLOSED.value) and target == TaskStatus.WORK_IN_PROGRESS
