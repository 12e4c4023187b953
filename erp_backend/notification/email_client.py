# erp_backend/notification/email_client.py
import logging
from typing import List, Optional

import httpx

from erp_backend.config import Settings
from erp_backend.errors import DeliveryFailure

RESEND_API_URL = "https://api.resend.com/emails"


class ResendEmailClient:
    """Thin wrapper over the Resend HTTP API."""

    def __init__(
        self,
        settings: Settings,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        settings.require("resend_api_key", "resend_from_email")
        self.api_key = settings.resend_api_key
        self.from_email = settings.resend_from_email
        self.timeout = timeout
        self.transport = transport
        self.logger = logging.getLogger("erp_backend.notification")

    def send(self, to: List[str], subject: str, html: str) -> None:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.post(
                    RESEND_API_URL,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={"from": self.from_email, "to": to, "subject": subject, "html": html},
                )
        except httpx.HTTPError as exc:
            self.logger.error("email_request_error", extra={"error": str(exc)})
            raise DeliveryFailure("Failed to send email", provider_error=str(exc)) from exc

        if resp.is_success:
            return

        err_text = resp.text
        self.logger.error(
            "email_provider_failed",
            extra={"status_code": resp.status_code, "body": err_text[:300]},
        )
        hint = ""
        if resp.status_code == 403 and "domain is not verified" in err_text:
            hint = (
                "Verify your sending domain at https://resend.com/domains and set "
                "RESEND_FROM_EMAIL to an address on that domain."
            )
        raise DeliveryFailure("Failed to send email", provider_error=err_text, hint=hint)
