# erp_backend/report/report_router.py

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from erp_backend.auth.auth_router import get_request_context
from erp_backend.auth.permissions import Capability, RequestContext
from erp_backend.database import get_db
from erp_backend.errors import MethodNotAllowed
from erp_backend.models.report_audit_log import ReportAuditLog
from erp_backend.report.report_service import ReportService
from erp_backend.schemas.report_schema import ReportAuditRead, ReportRequest

router = APIRouter(prefix="/reports", tags=["reports"])


def get_report_service(db: Session = Depends(get_db)) -> ReportService:
    return ReportService(db)


@router.post("/generate")
def generate_report(
    params: ReportRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: ReportService = Depends(get_report_service),
):
    report = service.generate(ctx, params)
    return report.model_dump(by_alias=True)


@router.api_route("/generate", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
def generate_report_wrong_method():
    raise MethodNotAllowed("Method not allowed")


@router.get("/audit", response_model=list[ReportAuditRead])
def list_report_audit(
    limit: int = 50,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    ctx.require(Capability.VIEW_REPORTS, "Unauthorized. Super Admin access required.")
    return (
        db.query(ReportAuditLog)
        .order_by(ReportAuditLog.created_at.desc(), ReportAuditLog.id.desc())
        .limit(limit)
        .all()
    )
