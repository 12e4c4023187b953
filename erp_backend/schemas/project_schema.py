# erp_backend/schemas/project_schema.py

from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime

from erp_backend.models.project import ProjectStatus


# --------- Base schema (common fields) ---------
class ProjectBase(BaseModel):
    name: str
    description: Optional[str] = None


# --------- For creating a project (POST) ---------
class ProjectCreate(ProjectBase):
    pass


# --------- For changing status (PATCH) ---------
class ProjectStatusUpdate(BaseModel):
    status: ProjectStatus


# --------- For reading a project (GET responses) ---------
class ProjectRead(ProjectBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    created_at: datetime
    updated_at: Optional[datetime] = None
