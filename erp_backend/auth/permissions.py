# erp_backend/auth/permissions.py
"""Role-based capability sets.

Roles are a closed set and every role maps to a fixed, frozen set of
capabilities. The role of the caller is resolved once per request and the
result travels on a RequestContext that services receive explicitly.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, FrozenSet

from sqlalchemy.orm import Session

from erp_backend.errors import Forbidden, NotFound
from erp_backend.models.user import Role, User


class UserRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    USER = "user"


class Capability(str, enum.Enum):
    VIEW_ALL_PROJECTS = "view_all_projects"
    CREATE_PROJECTS = "create_projects"
    EDIT_PROJECTS = "edit_projects"
    DELETE_PROJECTS = "delete_projects"

    VIEW_ALL_TASKS = "view_all_tasks"
    CREATE_TASKS = "create_tasks"
    ASSIGN_TASKS = "assign_tasks"
    DELETE_TASKS = "delete_tasks"
    UPDATE_TASK_STATUS = "update_task_status"
    REQUEST_REVIEW = "request_review"
    REVIEW_TASKS = "review_tasks"
    ARCHIVE_TASKS = "archive_tasks"

    VIEW_ALL_USERS = "view_all_users"
    VIEW_REPORTS = "view_reports"


ROLE_CAPABILITIES: Dict[UserRole, FrozenSet[Capability]] = {
    UserRole.SUPER_ADMIN: frozenset(Capability),
    UserRole.ADMIN: frozenset(
        {
            Capability.VIEW_ALL_PROJECTS,
            Capability.CREATE_PROJECTS,
            Capability.EDIT_PROJECTS,
            Capability.VIEW_ALL_TASKS,
            Capability.CREATE_TASKS,
            Capability.ASSIGN_TASKS,
            Capability.UPDATE_TASK_STATUS,
            Capability.REQUEST_REVIEW,
            Capability.VIEW_ALL_USERS,
        }
    ),
    UserRole.USER: frozenset(
        {
            Capability.VIEW_ALL_PROJECTS,
            Capability.VIEW_ALL_TASKS,
            Capability.UPDATE_TASK_STATUS,
            Capability.REQUEST_REVIEW,
        }
    ),
}


def capabilities_for(role: UserRole) -> FrozenSet[Capability]:
    return ROLE_CAPABILITIES[role]


def resolve_role(db: Session, user_id: int) -> UserRole:
    """Resolve a user's role with two lookups: user -> role_id -> role name.

    A missing user, a user without a role, or a dangling role id is a
    NotFound; no role is ever assumed.
    """
    user = db.get(User, user_id)
    if not user or user.deleted_at is not None or user.role_id is None:
        raise NotFound("User not found or has no role")

    role = db.get(Role, user.role_id)
    if not role:
        raise NotFound("Role not found")

    try:
        return UserRole(role.name)
    except ValueError:
        raise NotFound(f"Unknown role: {role.name}")


@dataclass(frozen=True)
class RequestContext:
    user: User
    role: UserRole
    capabilities: FrozenSet[Capability] = field(default_factory=frozenset)

    @classmethod
    def for_user(cls, db: Session, user: User) -> "RequestContext":
        role = resolve_role(db, user.id)
        return cls(user=user, role=role, capabilities=capabilities_for(role))

    @property
    def display_name(self) -> str:
        return self.user.full_name or self.user.email

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def require(self, capability: Capability, message: str | None = None) -> None:
        if not self.can(capability):
            raise Forbidden(message or f"Missing permission: {capability.value}")


def ensure_roles(db: Session) -> None:
    """Insert the fixed role rows when they are missing."""
    existing = {name for (name,) in db.query(Role.name).all()}
    for role in UserRole:
        if role.value not in existing:
            db.add(Role(name=role.value))
    db.commit()
