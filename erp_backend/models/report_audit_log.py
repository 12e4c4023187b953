# erp_backend/models/report_audit_log.py
from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String

from erp_backend.database import Base, utcnow


class ReportAuditLog(Base):
    __tablename__ = "report_audit_log"

    id = Column(Integer, primary_key=True, index=True)

    generated_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    report_type = Column(String(50), nullable=False)
    report_params = Column(JSON, nullable=False, default=dict)

    # reports are rendered client-side, so the file size is usually unknown
    file_size_bytes = Column(Integer, nullable=True)
    generation_duration_ms = Column(Integer, nullable=True)

    status = Column(String(20), nullable=False)  # success | failed
    error_message = Column(String, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
