# erp_backend/notification/notification_service.py
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from erp_backend.config import Settings
from erp_backend.errors import InvalidPayload, Unauthorized
from erp_backend.models.notification import Notification, NotificationType
from erp_backend.models.user import User
from erp_backend.notification import email_templates
from erp_backend.notification.email_client import ResendEmailClient
from erp_backend.schemas.notification_schema import DispatchResult, NotificationRecord

logger = logging.getLogger("erp_backend.notification")

REQUIRED_FIELDS = ("recipient_user_id", "type", "title", "message")


# -------------------------
# Creation (domain events)
# -------------------------

def create_notification(
    db: Session,
    *,
    recipient_user_id: int,
    type: NotificationType | str,
    title: str,
    message: str,
    related_entity_type: Optional[str] = None,
    related_entity_id: Optional[int] = None,
) -> Notification:
    n = Notification(
        recipient_user_id=recipient_user_id,
        type=type.value if isinstance(type, NotificationType) else type,
        title=title,
        message=message,
        related_entity_type=related_entity_type,
        related_entity_id=related_entity_id,
        is_read=False,
    )
    db.add(n)
    db.commit()
    db.refresh(n)
    return n


def notify_users(
    db: Session,
    user_ids: Iterable[int],
    *,
    type: NotificationType,
    title: str,
    message: str,
    related_entity_type: Optional[str] = None,
    related_entity_id: Optional[int] = None,
    exclude: Optional[int] = None,
) -> List[Notification]:
    created = []
    for user_id in dict.fromkeys(user_ids):
        if user_id is None or user_id == exclude:
            continue
        created.append(
            create_notification(
                db,
                recipient_user_id=user_id,
                type=type,
                title=title,
                message=message,
                related_entity_type=related_entity_type,
                related_entity_id=related_entity_id,
            )
        )
    return created


def to_change_event(n: Notification) -> Dict[str, Any]:
    """Shape a stored notification like a database insert webhook payload."""
    return {
        "type": "INSERT",
        "table": "notifications",
        "schema": "public",
        "record": {
            "id": n.id,
            "recipient_user_id": n.recipient_user_id,
            "type": n.type,
            "title": n.title,
            "message": n.message,
            "related_entity_type": n.related_entity_type,
            "related_entity_id": n.related_entity_id,
        },
    }


# -------------------------
# Email dispatch
# -------------------------

class NotificationDispatcher:
    """Turns one notifications insert event into at most one email."""

    def __init__(
        self,
        db: Session,
        settings: Settings,
        email_client_factory: Callable[[Settings], ResendEmailClient] = ResendEmailClient,
    ):
        self.db = db
        self.settings = settings
        self.email_client_factory = email_client_factory

    def authorize(self, payload: Dict[str, Any], bearer: Optional[str]) -> None:
        service_key = self.settings.service_role_key
        has_valid_bearer = bool(bearer and service_key and bearer.strip() == service_key)
        looks_like_webhook = (
            payload.get("type") == "INSERT"
            and payload.get("table") == "notifications"
            and payload.get("schema") == "public"
            and isinstance(payload.get("record"), dict)
        )
        if not has_valid_bearer and not looks_like_webhook:
            raise Unauthorized("Unauthorized")

    @staticmethod
    def validate(payload: Dict[str, Any]) -> NotificationRecord:
        raw = payload.get("record")
        try:
            record = NotificationRecord.model_validate(raw) if isinstance(raw, dict) else None
        except ValidationError as exc:
            details = [
                {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
                for err in exc.errors()
            ]
            logger.error("notification_email_invalid_record", extra={"errors": details})
            raise InvalidPayload("Invalid record fields", {"details": details}) from exc
        if record is None or any(not getattr(record, name) for name in REQUIRED_FIELDS):
            logger.error(
                "notification_email_invalid_record",
                extra={"has_record": record is not None, "keys": sorted(raw) if isinstance(raw, dict) else []},
            )
            raise InvalidPayload(
                "Missing record or required fields: recipient_user_id, type, title, message"
            )
        return record

    def dispatch(self, payload: Dict[str, Any], bearer: Optional[str] = None) -> DispatchResult:
        self.authorize(payload, bearer)
        record = self.validate(payload)
        self.settings.require("service_role_key")

        logger.info(
            "notification_email_processing",
            extra={"notification_type": record.type, "recipient_user_id": record.recipient_user_id},
        )

        try:
            user = self.db.get(User, record.recipient_user_id)
        except SQLAlchemyError as exc:
            logger.warning("notification_recipient_lookup_failed", extra={"error": str(exc)})
            user = None

        if not user or not user.email or user.deleted_at is not None or user.is_active is False:
            return self._skip("recipient not found or inactive", record)

        if user.email_notifications_enabled is False:
            return self._skip("user disabled email notifications", record)

        if not self.settings.resend_api_key:
            logger.error("notification_email_provider_not_configured")
            return self._skip("email provider not configured", record)
        self.settings.require("app_url")

        subject, html = email_templates.render(
            record.type,
            record.title,
            record.message,
            record.related_entity_type,
            record.related_entity_id,
            self.settings.app_url,
        )
        self.email_client_factory(self.settings).send([user.email], subject, html)

        logger.info("notification_email_sent", extra={"notification_type": record.type})
        return DispatchResult(sent=True, to=user.email)

    def _skip(self, reason: str, record: NotificationRecord) -> DispatchResult:
        logger.info(
            "notification_email_skipped",
            extra={"reason": reason, "recipient_user_id": record.recipient_user_id},
        )
        return DispatchResult(skipped=True, reason=reason)


def dispatch_in_background(session_factory, settings: Settings, payload: Dict[str, Any]) -> None:
    """Background-task entry: own session, errors logged not raised."""
    db = session_factory()
    try:
        NotificationDispatcher(db, settings).dispatch(payload, settings.service_role_key)
    except Exception:
        logger.exception("notification_email_background_failed")
    finally:
        db.close()


def schedule_emails(background_tasks, session_factory, settings: Settings, notifications: Iterable[Notification]) -> None:
    for n in notifications:
        background_tasks.add_task(dispatch_in_background, session_factory, settings, to_change_event(n))
