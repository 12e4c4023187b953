# erp_backend/report/report_repository.py
"""Read-side queries used by the report builders.

Every task query here goes through `active_tasks()`, so archived and
soft-deleted tasks never reach a report regardless of the other filters.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from erp_backend.models.project import Project
from erp_backend.models.task import Task, TaskAssignee
from erp_backend.models.user import User


class ReportRepository:
    def __init__(self, db: Session):
        self.db = db

    # -------------------------
    # Tasks
    # -------------------------

    def active_tasks(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        project_id: Optional[int] = None,
    ) -> Query:
        query = self.db.query(Task).filter(Task.deleted_at.is_(None), Task.archived_at.is_(None))
        if date_from is not None:
            query = query.filter(Task.created_at >= date_from)
        if date_to is not None:
            query = query.filter(Task.created_at <= date_to)
        if project_id is not None:
            query = query.filter(Task.project_id == project_id)
        return query.order_by(Task.created_at, Task.id)

    def assigned_task_ids(self, user_id: int) -> List[int]:
        rows = self.db.query(TaskAssignee.task_id).filter(TaskAssignee.user_id == user_id).all()
        return [task_id for (task_id,) in rows]

    def tasks_from_assignees(
        self,
        user_id: int,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        project_id: Optional[int] = None,
    ) -> List[Task]:
        task_ids = self.assigned_task_ids(user_id)
        if not task_ids:
            return []
        return self.active_tasks(date_from, date_to, project_id).filter(Task.id.in_(task_ids)).all()

    def tasks_from_legacy_owner(
        self,
        user_id: int,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        project_id: Optional[int] = None,
    ) -> List[Task]:
        return self.active_tasks(date_from, date_to, project_id).filter(Task.assigned_to == user_id).all()

    def assignees_by_task(self, tasks: Iterable[Task]) -> Dict[int, List[User]]:
        """Users assigned to each task, join table first, then the legacy owner.

        A user reachable through both mechanisms is listed once per task.
        """
        tasks = list(tasks)
        task_ids = [t.id for t in tasks]
        grouped: Dict[int, List[User]] = defaultdict(list)
        if not task_ids:
            return grouped

        rows = (
            self.db.query(TaskAssignee.task_id, User)
            .join(User, User.id == TaskAssignee.user_id)
            .filter(TaskAssignee.task_id.in_(task_ids))
            .order_by(TaskAssignee.id)
            .all()
        )
        for task_id, user in rows:
            grouped[task_id].append(user)

        legacy_ids = {t.assigned_to for t in tasks if t.assigned_to is not None}
        legacy_users = {u.id: u for u in self.users_by_ids(legacy_ids)}
        for task in tasks:
            owner = legacy_users.get(task.assigned_to)
            if owner and all(u.id != owner.id for u in grouped[task.id]):
                grouped[task.id].append(owner)
        return grouped

    # -------------------------
    # Users / projects
    # -------------------------

    def get_user(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def users_by_ids(self, user_ids: Iterable[int]) -> List[User]:
        user_ids = list(user_ids)
        if not user_ids:
            return []
        return self.db.query(User).filter(User.id.in_(user_ids)).all()

    def count_active_users(self) -> int:
        return int(self.db.query(func.count(User.id)).filter(User.deleted_at.is_(None)).scalar() or 0)

    def get_project(self, project_id: int) -> Optional[Project]:
        return self.db.get(Project, project_id)

    def count_projects(self) -> int:
        return int(self.db.query(func.count(Project.id)).scalar() or 0)

    def project_names(self, project_ids: Iterable[int]) -> Dict[int, str]:
        project_ids = list(project_ids)
        if not project_ids:
            return {}
        rows = self.db.query(Project.id, Project.name).filter(Project.id.in_(project_ids)).all()
        return {pid: name for pid, name in rows}
