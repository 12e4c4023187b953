# erp_backend/schemas/notification_schema.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    recipient_user_id: int
    type: str
    title: str
    message: str
    related_entity_type: str | None = None
    related_entity_id: int | None = None
    is_read: bool
    created_at: datetime


class NotificationRecord(BaseModel):
    """The `record` of a notifications change event.

    Every field is optional here; the dispatcher decides what is missing so
    it can answer with its own 400 instead of a schema error.
    """

    # ids arrive as integers or as opaque strings (uuids)
    id: Optional[Union[str, int]] = None
    recipient_user_id: Optional[int] = None
    type: Optional[str] = None
    title: Optional[str] = None
    message: Optional[str] = None
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[Union[str, int]] = None


class DispatchResult(BaseModel):
    sent: bool = False
    skipped: bool = False
    to: Optional[str] = None
    reason: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        if self.sent:
            return {"sent": True, "to": self.to}
        return {"skipped": True, "reason": self.reason}
