# erp_backend/notification/notification_router.py
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header
from sqlalchemy import func
from sqlalchemy.orm import Session

from erp_backend.auth.auth_router import get_current_user
from erp_backend.config import Settings, get_settings
from erp_backend.database import get_db
from erp_backend.errors import InvalidPayload, MethodNotAllowed, NotFound
from erp_backend.models.notification import Notification
from erp_backend.models.user import User
from erp_backend.notification.notification_service import NotificationDispatcher
from erp_backend.schemas.notification_schema import NotificationRead

router = APIRouter(prefix="/notifications", tags=["notifications"])


def get_dispatcher(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> NotificationDispatcher:
    return NotificationDispatcher(db, settings)


@router.get("/", response_model=list[NotificationRead])
def list_notifications(
    limit: int = 30,
    unread_only: bool = False,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    q = db.query(Notification).filter(Notification.recipient_user_id == user.id)
    if unread_only:
        q = q.filter(Notification.is_read == False)  # noqa: E712
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


@router.get("/unread_count")
def unread_count(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    count = (
        db.query(func.count(Notification.id))
        .filter(Notification.recipient_user_id == user.id, Notification.is_read == False)  # noqa: E712
        .scalar()
    )
    return {"unread": int(count or 0)}


@router.post("/{notification_id}/read", response_model=NotificationRead)
def mark_read(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    n = db.get(Notification, notification_id)
    if not n or n.recipient_user_id != user.id:
        raise NotFound("Notification not found")

    n.is_read = True
    db.commit()
    db.refresh(n)
    return n


@router.post("/read_all")
def mark_all_read(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    updated = (
        db.query(Notification)
        .filter(Notification.recipient_user_id == user.id, Notification.is_read == False)  # noqa: E712
        .update({"is_read": True})
    )
    db.commit()
    return {"ok": True, "updated": updated}


# ==========================
#  CHANGE-EVENT CONSUMER
# ==========================
@router.post("/webhook/email")
def send_notification_email(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    authorization: Optional[str] = Header(default=None),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    if not isinstance(payload, dict):
        raise InvalidPayload("Invalid JSON body")

    bearer = None
    if authorization and authorization.startswith("Bearer "):
        bearer = authorization[len("Bearer "):]

    return dispatcher.dispatch(payload, bearer).to_response()


@router.api_route("/webhook/email", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
def send_notification_email_wrong_method():
    raise MethodNotAllowed("Method not allowed")
