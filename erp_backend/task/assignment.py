# erp_backend/task/assignment.py
"""Assignment reconciliation.

Tasks reach a user through two mechanisms: rows in task_assignees and the
older single-owner `tasks.assigned_to` column. Neither is migrated away, so
every "tasks of user X" question queries both sources independently and
unions the results by task id, first record wins.
"""
from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from erp_backend.models.task import Task, TaskAssignee
from erp_backend.report.report_repository import ReportRepository


def merge_first_seen(*sources: Iterable[Task]) -> List[Task]:
    merged: Dict[int, Task] = {}
    for source in sources:
        for task in source:
            if task.id not in merged:
                merged[task.id] = task
    return list(merged.values())


def reconcile_assigned_tasks(
    repo: ReportRepository,
    user_id: int,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    project_id: Optional[int] = None,
) -> List[Task]:
    return merge_first_seen(
        repo.tasks_from_assignees(user_id, date_from, date_to, project_id),
        repo.tasks_from_legacy_owner(user_id, date_from, date_to, project_id),
    )


def is_assigned(db: Session, task: Task, user_id: int) -> bool:
    if task.assigned_to == user_id:
        return True
    return (
        db.query(TaskAssignee.id)
        .filter(TaskAssignee.task_id == task.id, TaskAssignee.user_id == user_id)
        .first()
        is not None
    )


def assignee_ids(db: Session, task: Task) -> List[int]:
    ids = [uid for (uid,) in db.query(TaskAssignee.user_id).filter(TaskAssignee.task_id == task.id).all()]
    if task.assigned_to is not None and task.assigned_to not in ids:
        ids.append(task.assigned_to)
    return ids
