# erp_backend/models/project.py
from __future__ import annotations

import enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from erp_backend.database import Base, utcnow


class ProjectStatus(str, enum.Enum):
    ACTIVE = "Active"
    CLOSED = "Closed"
    COMPLETED = "Completed"
    ARCHIVED = "Archived"


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    status = Column(String(20), default=ProjectStatus.ACTIVE.value, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
