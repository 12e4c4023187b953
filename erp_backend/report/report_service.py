# erp_backend/report/report_service.py
"""Report data aggregation for the super-admin reports page.

The service only assembles JSON; PDF rendering happens on the client.
Each report pulls rows through ReportRepository, reconciles the two
assignment mechanisms where a user is the subject, and derives its metrics
in a single pass over the task set.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from erp_backend.auth.permissions import RequestContext, UserRole
from erp_backend.database import utcnow
from erp_backend.errors import DataFetchFailure, Forbidden, InvalidParameters
from erp_backend.models.report_audit_log import ReportAuditLog
from erp_backend.models.task import LIFECYCLE_STATUSES, Task, TaskStatus
from erp_backend.report.report_repository import ReportRepository
from erp_backend.schemas.report_schema import ReportData, ReportRequest
from erp_backend.task.assignment import reconcile_assigned_tasks

logger = logging.getLogger("erp_backend.report")

REPORT_TYPES = ("user_performance", "task_lifecycle", "project", "company_wide")

BOTTLENECK_DAYS = 7
TOP_N = 10
# stages whose residency is averaged; Closed is terminal
TIMED_STAGES = [TaskStatus.TODO.value, TaskStatus.WORK_IN_PROGRESS.value, TaskStatus.DONE.value]


# -------------------------
# Pure helpers
# -------------------------

def empty_status_counts() -> Dict[str, int]:
    return {status: 0 for status in LIFECYCLE_STATUSES}


def count_statuses(tasks: Iterable[Task]) -> Dict[str, int]:
    counts = empty_status_counts()
    for task in tasks:
        if task.task_status in counts:
            counts[task.task_status] += 1
    return counts


def completion_rate(completed: int, total: int) -> float:
    if total <= 0:
        return 0
    return round(completed / total * 100, 1)


def days_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 86400


def is_overdue(task: Task, now: datetime) -> bool:
    return task.due_date is not None and task.due_date < now and task.task_status != TaskStatus.CLOSED.value


def top_counts(counts: Dict[Any, int], limit: int = TOP_N) -> List[tuple]:
    # sorted() is stable, so equal counts keep their encounter order
    return sorted(counts.items(), key=lambda item: -item[1])[:limit]


def format_generated_at(moment: datetime) -> str:
    hour = moment.hour % 12 or 12
    return f"{moment:%B} {moment.day}, {moment.year} at {hour}:{moment:%M} {'AM' if moment.hour < 12 else 'PM'}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_task(task: Task, *fields: str) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for name in fields:
        value = getattr(task, name)
        out[name] = _iso(value) if isinstance(value, datetime) else value
    return out


def display_name(user) -> str:
    return user.full_name or user.email or "Unknown"


# -------------------------
# Service
# -------------------------

class ReportService:
    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.repo = ReportRepository(db)
        self.clock = clock
        self._builders = {
            "user_performance": self._user_performance,
            "task_lifecycle": self._task_lifecycle,
            "project": self._project,
            "company_wide": self._company_wide,
        }

    def generate(self, ctx: RequestContext, request: ReportRequest) -> ReportData:
        if ctx.role != UserRole.SUPER_ADMIN:
            raise Forbidden("Unauthorized. Super Admin access required.")
        self.validate(request)

        start = time.monotonic()
        try:
            report = self._builders[request.report_type](request, ctx.display_name)
        except (DataFetchFailure, SQLAlchemyError) as exc:
            self.db.rollback()
            message = exc.message if isinstance(exc, DataFetchFailure) else str(exc)
            self._audit(ctx, request, start, "failed", message)
            logger.error(
                "report_failed",
                extra={"report_type": request.report_type, "error": message},
            )
            raise DataFetchFailure(f"Failed to fetch report data: {message}")

        self._audit(ctx, request, start, "success", None)
        logger.info(
            "report_generated",
            extra={"report_type": request.report_type, "generated_by": ctx.user.id},
        )
        return report

    @staticmethod
    def validate(request: ReportRequest) -> None:
        if not request.report_type:
            raise InvalidParameters("Missing reportType parameter")
        if request.report_type not in REPORT_TYPES:
            raise InvalidParameters(f"Unknown report type: {request.report_type}")
        if request.report_type == "user_performance" and request.user_id is None:
            raise InvalidParameters("userId required for user_performance report")
        if request.report_type == "project" and request.project_id is None:
            raise InvalidParameters("projectId required for project report")

    def _audit(
        self,
        ctx: RequestContext,
        request: ReportRequest,
        start: float,
        status: str,
        error_message: Optional[str],
    ) -> None:
        duration_ms = int((time.monotonic() - start) * 1000)
        try:
            self.db.add(
                ReportAuditLog(
                    generated_by=ctx.user.id,
                    report_type=request.report_type,
                    report_params=request.audit_params(),
                    file_size_bytes=None,
                    generation_duration_ms=duration_ms,
                    status=status,
                    error_message=error_message,
                )
            )
            self.db.commit()
        except Exception:
            # an audit failure never fails the report
            self.db.rollback()
            logger.exception("report_audit_failed", extra={"report_type": request.report_type})

    def _payload(self, title: str, generated_by: str, content: Dict[str, Any]) -> ReportData:
        return ReportData(
            title=title,
            generated_by=generated_by,
            generated_at=format_generated_at(self.clock()),
            content=content,
        )

    @staticmethod
    def _date_range(request: ReportRequest) -> Dict[str, Optional[str]]:
        return {"from": _iso(request.date_from), "to": _iso(request.date_to)}

    # -------------------------
    # Report builders
    # -------------------------

    def _user_performance(self, request: ReportRequest, generated_by: str) -> ReportData:
        user = self.repo.get_user(request.user_id)
        if not user:
            raise DataFetchFailure("User not found")

        tasks = reconcile_assigned_tasks(
            self.repo, request.user_id, request.date_from, request.date_to, request.project_id
        )

        counts = count_statuses(tasks)
        total = len(tasks)
        completed = counts[TaskStatus.CLOSED.value]
        now = self.clock()

        return self._payload(
            f"User Performance Report - {display_name(user)}",
            generated_by,
            {
                "user": {
                    "id": user.id,
                    "full_name": user.full_name,
                    "email": user.email,
                    "created_at": _iso(user.created_at),
                },
                "taskCounts": {
                    "total_assigned": total,
                    "total_completed": completed,
                    "total_pending": counts[TaskStatus.TODO.value],
                    "total_in_progress": counts[TaskStatus.WORK_IN_PROGRESS.value],
                    "total_pending_review": counts[TaskStatus.DONE.value],
                },
                "tasks": [
                    serialize_task(t, "id", "title", "task_status", "due_date", "created_at", "priority")
                    for t in tasks
                ],
                "overdueTasks": sum(1 for t in tasks if is_overdue(t, now)),
                "completionRate": completion_rate(completed, total),
                "dateRange": self._date_range(request),
                "projectFilter": request.project_id,
            },
        )

    def _task_lifecycle(self, request: ReportRequest, generated_by: str) -> ReportData:
        tasks = self.repo.active_tasks(request.date_from, request.date_to, request.project_id).all()
        names = self.repo.project_names({t.project_id for t in tasks if t.project_id})
        logger.debug(
            "task_lifecycle_query",
            extra={"tasks_found": len(tasks), "project_id": request.project_id},
        )

        now = self.clock()
        stage_times: Dict[str, List[float]] = {stage: [] for stage in TIMED_STAGES}
        reopened = 0
        bottlenecks = 0

        for task in tasks:
            if task.updated_at and task.created_at and task.task_status in stage_times:
                stage_times[task.task_status].append(days_between(task.created_at, task.updated_at))

            # archived rows are filtered out above; counted anyway in case
            # the filter moves
            if task.archived_at is not None and task.task_status != TaskStatus.CLOSED.value:
                reopened += 1

            if (
                task.task_status == TaskStatus.DONE.value
                and task.updated_at is not None
                and now - task.updated_at > timedelta(days=BOTTLENECK_DAYS)
            ):
                bottlenecks += 1

        return self._payload(
            "Task Lifecycle Report",
            generated_by,
            {
                "totalTasks": len(tasks),
                "statusCounts": count_statuses(tasks),
                "avgTimes": [
                    {"stage": stage, "avgDays": sum(times) / len(times) if times else 0}
                    for stage, times in stage_times.items()
                ],
                "reopenedCount": reopened,
                "bottlenecks": bottlenecks,
                "tasks": [
                    dict(
                        serialize_task(t, "id", "title", "task_status", "created_at", "updated_at", "project_id"),
                        project_name=names.get(t.project_id),
                    )
                    for t in tasks
                ],
                "dateRange": self._date_range(request),
                "projectFilter": request.project_id,
            },
        )

    def _project(self, request: ReportRequest, generated_by: str) -> ReportData:
        project = self.repo.get_project(request.project_id)
        if not project:
            raise DataFetchFailure("Project not found")

        tasks = self.repo.active_tasks(request.date_from, request.date_to, request.project_id).all()
        assignees = self.repo.assignees_by_task(tasks)

        counts = count_statuses(tasks)
        contributions: Dict[str, int] = {}
        for task in tasks:
            users = assignees.get(task.id) or []
            if not users:
                contributions["Unassigned"] = contributions.get("Unassigned", 0) + 1
            for user in users:
                name = display_name(user)
                contributions[name] = contributions.get(name, 0) + 1

        return self._payload(
            f"Project Report - {project.name}",
            generated_by,
            {
                "project": {
                    "id": project.id,
                    "name": project.name,
                    "description": project.description,
                    "status": project.status,
                    "created_at": _iso(project.created_at),
                    "updated_at": _iso(project.updated_at),
                },
                "totalTasks": len(tasks),
                "statusCounts": counts,
                "completed": counts[TaskStatus.CLOSED.value],
                "pending": len(tasks) - counts[TaskStatus.CLOSED.value],
                "userContributions": contributions,
                "dateRange": self._date_range(request),
            },
        )

    def _company_wide(self, request: ReportRequest, generated_by: str) -> ReportData:
        tasks = self.repo.active_tasks(request.date_from, request.date_to).all()
        assignees = self.repo.assignees_by_task(tasks)
        now = self.clock()

        user_activity: Dict[int, int] = {}
        user_names: Dict[int, str] = {}
        project_counts: Dict[int, int] = {}
        for task in tasks:
            for user in assignees.get(task.id) or []:
                user_names[user.id] = display_name(user)
                user_activity[user.id] = user_activity.get(user.id, 0) + 1
            if task.project_id:
                project_counts[task.project_id] = project_counts.get(task.project_id, 0) + 1

        counts = count_statuses(tasks)
        top_projects = top_counts(project_counts)
        names = self.repo.project_names(pid for pid, _ in top_projects)

        return self._payload(
            "Company-Wide Executive Report",
            generated_by,
            {
                "totalUsers": self.repo.count_active_users(),
                "totalProjects": self.repo.count_projects(),
                "totalTasks": len(tasks),
                "statusCounts": counts,
                "mostActiveUsers": [
                    {"name": user_names[uid], "taskCount": count} for uid, count in top_counts(user_activity)
                ],
                "topProjects": [
                    {"name": names.get(pid, f"Project {pid}"), "taskCount": count}
                    for pid, count in top_projects
                ],
                "overdueCount": sum(1 for t in tasks if is_overdue(t, now)),
                "pendingReviewCount": counts[TaskStatus.DONE.value],
                "dateRange": self._date_range(request),
            },
        )
