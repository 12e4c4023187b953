# erp_backend/models/notification.py
from __future__ import annotations

import enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from erp_backend.database import Base, utcnow


class NotificationType(str, enum.Enum):
    TASK_ASSIGNED = "task_assigned"
    TASK_DUE_SOON = "task_due_soon"
    TASK_OVERDUE = "task_overdue"
    REVIEW_REQUESTED = "review_requested"
    REVIEW_COMPLETED = "review_completed"
    COMMENT_ADDED = "comment_added"
    NOTE_ADDED = "note_added"
    DOCUMENT_UPLOADED = "document_uploaded"
    TODO_COMPLETED = "todo_completed"
    BULLETIN_POSTED = "bulletin_posted"
    PROJECT_UPDATED = "project_updated"
    PROJECT_CLOSED = "project_closed"
    PROJECT_REOPENED = "project_reopened"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)

    recipient_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(String(50), nullable=False)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)

    # optional link target: task | project | todo | bulletin
    related_entity_type = Column(String(20), nullable=True)
    related_entity_id = Column(Integer, nullable=True)

    is_read = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
