# erp_backend/task/task_router.py
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from erp_backend.auth.auth_router import get_request_context
from erp_backend.auth.permissions import Capability, RequestContext, UserRole
from erp_backend.config import Settings, get_settings
from erp_backend.database import get_db, get_session_factory, utcnow
from erp_backend.errors import Forbidden, NotFound
from erp_backend.models.notification import NotificationType
from erp_backend.models.project import Project
from erp_backend.models.task import Task, TaskAssignee, TaskStatus
from erp_backend.models.user import Role, User
from erp_backend.notification.notification_service import notify_users, schedule_emails
from erp_backend.report.report_repository import ReportRepository
from erp_backend.schemas.task_schema import TaskAssign, TaskCreate, TaskRead, TaskStatusUpdate
from erp_backend.task.assignment import assignee_ids, is_assigned, reconcile_assigned_tasks
from erp_backend.task.lifecycle import check_transition, is_reopen

logger = logging.getLogger("erp_backend.task")

router = APIRouter(
    prefix="/tasks",
    tags=["tasks"],
)


def _get_task(db: Session, task_id: int, ctx: RequestContext) -> Task:
    task = db.get(Task, task_id)
    if not task or task.deleted_at is not None:
        raise NotFound("Task not found")
    if task.archived_at is not None and not ctx.can(Capability.ARCHIVE_TASKS):
        raise NotFound("Task not found")
    return task


def _require_users(db: Session, user_ids) -> None:
    for user_id in dict.fromkeys(user_ids):
        user = db.get(User, user_id)
        if not user or user.deleted_at is not None:
            raise NotFound(f"User {user_id} not found")


def _add_assignees(db: Session, task: Task, user_ids, assigned_by: int) -> list:
    _require_users(db, user_ids)
    existing = set(assignee_ids(db, task))
    added = []
    for user_id in dict.fromkeys(user_ids):
        if user_id in existing:
            continue
        db.add(TaskAssignee(task_id=task.id, user_id=user_id, assigned_by=assigned_by))
        added.append(user_id)
    db.commit()
    return added


def _super_admin_ids(db: Session) -> list:
    rows = (
        db.query(User.id)
        .join(Role, Role.id == User.role_id)
        .filter(Role.name == UserRole.SUPER_ADMIN.value, User.deleted_at.is_(None))
        .all()
    )
    return [uid for (uid,) in rows]


# ==========================
#  CREATE
# ==========================
@router.post("/", response_model=TaskRead, status_code=201)
def create_task(
    data: TaskCreate,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    session_factory=Depends(get_session_factory),
):
    ctx.require(Capability.CREATE_TASKS)
    if data.project_id is not None and not db.get(Project, data.project_id):
        raise NotFound("Project not found")
    if data.assignee_ids:
        ctx.require(Capability.ASSIGN_TASKS)
        # nothing is written unless every assignee exists
        _require_users(db, data.assignee_ids)

    task = Task(
        title=data.title,
        description=data.description,
        priority=data.priority.value,
        due_date=data.due_date,
        project_id=data.project_id,
        created_by=ctx.user.id,
    )
    db.add(task)
    db.commit()
    db.refresh(task)

    added = _add_assignees(db, task, data.assignee_ids, ctx.user.id)
    created = notify_users(
        db,
        added,
        type=NotificationType.TASK_ASSIGNED,
        title="New task assigned",
        message=f'You were assigned to "{task.title}"',
        related_entity_type="task",
        related_entity_id=task.id,
    )
    schedule_emails(background_tasks, session_factory, settings, created)

    db.refresh(task)
    return task


# ==========================
#  LIST / GET
# ==========================
@router.get("/", response_model=list[TaskRead])
def list_tasks(
    project_id: Optional[int] = None,
    task_status: Optional[TaskStatus] = None,
    mine: bool = False,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    repo = ReportRepository(db)
    if mine:
        tasks = reconcile_assigned_tasks(repo, ctx.user.id, project_id=project_id)
    else:
        ctx.require(Capability.VIEW_ALL_TASKS)
        tasks = repo.active_tasks(project_id=project_id).all()

    if task_status is not None:
        tasks = [t for t in tasks if t.task_status == task_status.value]
    return tasks


@router.get("/{task_id}", response_model=TaskRead)
def get_task(
    task_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    return _get_task(db, task_id, ctx)


# ==========================
#  STATUS
# ==========================
@router.patch("/{task_id}/status", response_model=TaskRead)
def update_status(
    task_id: int,
    data: TaskStatusUpdate,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    session_factory=Depends(get_session_factory),
):
    task = _get_task(db, task_id, ctx)
    if task.archived_at is not None:
        raise Forbidden("Archived tasks cannot change status")

    # staff can only move tasks they are assigned to
    if ctx.role == UserRole.USER and not is_assigned(db, task, ctx.user.id):
        raise Forbidden("Only assigned users can update this task")

    previous = task.task_status
    check_transition(ctx, previous, data.task_status)

    task.task_status = data.task_status.value
    db.commit()
    db.refresh(task)

    logger.info(
        "task_status_changed",
        extra={"task_id": task.id, "from_status": previous, "to_status": task.task_status},
    )
    if is_reopen(previous, data.task_status):
        logger.info("task_reopened", extra={"task_id": task.id, "by_user": ctx.user.id})

    created = []
    if data.task_status == TaskStatus.DONE:
        created = notify_users(
            db,
            _super_admin_ids(db),
            type=NotificationType.REVIEW_REQUESTED,
            title="Review requested",
            message=f'{ctx.display_name} requested a review of "{task.title}"',
            related_entity_type="task",
            related_entity_id=task.id,
            exclude=ctx.user.id,
        )
    elif previous == TaskStatus.DONE.value:
        approved = data.task_status == TaskStatus.CLOSED
        created = notify_users(
            db,
            assignee_ids(db, task),
            type=NotificationType.REVIEW_COMPLETED,
            title="Review completed",
            message=(
                f'"{task.title}" was approved and closed'
                if approved
                else f'Changes were requested on "{task.title}"'
            ),
            related_entity_type="task",
            related_entity_id=task.id,
            exclude=ctx.user.id,
        )
    schedule_emails(background_tasks, session_factory, settings, created)

    return task


# ==========================
#  ASSIGN
# ==========================
@router.post("/{task_id}/assign", response_model=TaskRead)
def assign_task(
    task_id: int,
    data: TaskAssign,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    session_factory=Depends(get_session_factory),
):
    ctx.require(Capability.ASSIGN_TASKS)
    task = _get_task(db, task_id, ctx)

    added = _add_assignees(db, task, data.user_ids, ctx.user.id)
    created = notify_users(
        db,
        added,
        type=NotificationType.TASK_ASSIGNED,
        title="New task assigned",
        message=f'You were assigned to "{task.title}"',
        related_entity_type="task",
        related_entity_id=task.id,
        exclude=ctx.user.id,
    )
    schedule_emails(background_tasks, session_factory, settings, created)

    db.refresh(task)
    return task


# ==========================
#  ARCHIVE / DELETE
# ==========================
@router.post("/{task_id}/archive", response_model=TaskRead)
def archive_task(
    task_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    ctx.require(Capability.ARCHIVE_TASKS)
    task = _get_task(db, task_id, ctx)

    task.archived_at = utcnow()
    db.commit()
    db.refresh(task)
    return task


@router.delete("/{task_id}", status_code=204)
def delete_task(
    task_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    ctx.require(Capability.DELETE_TASKS)
    task = _get_task(db, task_id, ctx)

    # soft delete; rows stay recoverable
    task.deleted_at = utcnow()
    db.commit()
    return
