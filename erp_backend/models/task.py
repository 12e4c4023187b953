# erp_backend/models/task.py

from __future__ import annotations

import enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from erp_backend.database import Base, utcnow


class TaskStatus(str, enum.Enum):
    TODO = "ToDo"
    WORK_IN_PROGRESS = "Work-In-Progress"
    DONE = "Done"  # pending review
    CLOSED = "Closed"


LIFECYCLE_STATUSES = [s.value for s in TaskStatus]


class TaskPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)

    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    task_status = Column(String(50), default=TaskStatus.TODO.value, nullable=False, index=True)
    priority = Column(String(20), default=TaskPriority.MEDIUM.value, nullable=False)

    due_date = Column(DateTime, nullable=True)

    # standalone tasks have no project
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True, index=True)

    # legacy single-owner assignment; task_assignees is the current mechanism
    assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    archived_at = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True)


class TaskAssignee(Base):
    __tablename__ = "task_assignees"
    __table_args__ = (UniqueConstraint("task_id", "user_id", name="uq_task_assignee"),)

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    assigned_at = Column(DateTime, default=utcnow, nullable=False)
