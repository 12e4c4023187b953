# erp_backend/project/project_router.py

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from erp_backend.auth.auth_router import get_request_context
from erp_backend.auth.permissions import Capability, RequestContext
from erp_backend.config import Settings, get_settings
from erp_backend.database import get_db, get_session_factory
from erp_backend.errors import NotFound
from erp_backend.models.notification import NotificationType
from erp_backend.models.project import Project, ProjectStatus
from erp_backend.notification.notification_service import notify_users, schedule_emails
from erp_backend.report.report_repository import ReportRepository
from erp_backend.schemas.project_schema import ProjectCreate, ProjectRead, ProjectStatusUpdate

router = APIRouter(prefix="/projects", tags=["projects"])


def _get_project(db: Session, project_id: int) -> Project:
    project = db.get(Project, project_id)
    if not project:
        raise NotFound("Project not found")
    return project


def project_member_ids(db: Session, project: Project) -> list:
    """Everyone assigned to an active task of the project, either mechanism."""
    repo = ReportRepository(db)
    tasks = repo.active_tasks(project_id=project.id).all()
    members = {}
    for users in repo.assignees_by_task(tasks).values():
        for user in users:
            members[user.id] = True
    return list(members)


# ==========================
#  CREATE PROJECT
# ==========================
@router.post("/", response_model=ProjectRead, status_code=201)
def create_project(
    data: ProjectCreate,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    ctx.require(Capability.CREATE_PROJECTS)
    project = Project(
        name=data.name,
        description=data.description,
        created_by=ctx.user.id,
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


# ==========================
#  GET ALL PROJECTS
# ==========================
@router.get("/", response_model=list[ProjectRead])
def get_all_projects(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    ctx.require(Capability.VIEW_ALL_PROJECTS)
    return db.query(Project).order_by(Project.created_at.desc(), Project.id.desc()).all()


# ==========================
#  GET PROJECT BY ID
# ==========================
@router.get("/{project_id}", response_model=ProjectRead)
def get_project(
    project_id: int,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    ctx.require(Capability.VIEW_ALL_PROJECTS)
    return _get_project(db, project_id)


# ==========================
#  UPDATE STATUS
# ==========================
@router.patch("/{project_id}/status", response_model=ProjectRead)
def update_project_status(
    project_id: int,
    data: ProjectStatusUpdate,
    background_tasks: BackgroundTasks,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    session_factory=Depends(get_session_factory),
):
    ctx.require(Capability.EDIT_PROJECTS)
    project = _get_project(db, project_id)

    previous = project.status
    project.status = data.status.value
    db.commit()
    db.refresh(project)

    notification_type = None
    if data.status == ProjectStatus.CLOSED and previous != ProjectStatus.CLOSED.value:
        notification_type, verb = NotificationType.PROJECT_CLOSED, "closed"
    elif data.status == ProjectStatus.ACTIVE and previous == ProjectStatus.CLOSED.value:
        notification_type, verb = NotificationType.PROJECT_REOPENED, "reopened"

    if notification_type is not None:
        created = notify_users(
            db,
            project_member_ids(db, project),
            type=notification_type,
            title=f"Project {verb}",
            message=f'Project "{project.name}" was {verb}',
            related_entity_type="project",
            related_entity_id=project.id,
            exclude=ctx.user.id,
        )
        schedule_emails(background_tasks, session_factory, settings, created)

    return project
