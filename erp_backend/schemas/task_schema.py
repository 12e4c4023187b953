# erp_backend/schemas/task_schema.py

from pydantic import BaseModel, ConfigDict
from typing import List, Optional
from datetime import datetime

from erp_backend.models.task import TaskPriority, TaskStatus


# --------- Base schema ----------
class TaskBase(BaseModel):
    title: str
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    project_id: Optional[int] = None   # standalone tasks are allowed


# --------- CREATE ----------
class TaskCreate(TaskBase):
    due_date: Optional[datetime] = None
    assignee_ids: List[int] = []


# --------- STATUS CHANGE ----------
class TaskStatusUpdate(BaseModel):
    task_status: TaskStatus


# --------- ASSIGN ----------
class TaskAssign(BaseModel):
    user_ids: List[int]


# --------- READ ----------
class TaskRead(TaskBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_status: str
    due_date: Optional[datetime] = None
    assigned_to: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
