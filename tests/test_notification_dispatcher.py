import json

import httpx
import pytest

from erp_backend.errors import ConfigError, DeliveryFailure, InvalidPayload, Unauthorized
from erp_backend.notification import email_templates
from erp_backend.notification.email_client import RESEND_API_URL, ResendEmailClient
from erp_backend.notification.notification_service import NotificationDispatcher


class FakeProvider:
    """Records what would have been posted to the email API."""

    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.body = body if body is not None else {"id": "email_1"}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.body, str):
            return httpx.Response(self.status_code, text=self.body)
        return httpx.Response(self.status_code, json=self.body)

    def client_factory(self, settings):
        return ResendEmailClient(settings, transport=httpx.MockTransport(self))

    @property
    def sent(self):
        return [json.loads(r.content) for r in self.requests]


def webhook(record):
    return {"type": "INSERT", "table": "notifications", "schema": "public", "record": record}


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def recipient(make_user):
    return make_user(full_name="Rita", email="rita@example.com")


@pytest.fixture
def record(recipient):
    return {
        "id": 1,
        "recipient_user_id": recipient.id,
        "type": "review_requested",
        "title": "Review requested",
        "message": 'Sam requested a review of "Launch"',
        "related_entity_type": "task",
        "related_entity_id": 12,
    }


def dispatcher(db, settings, provider):
    return NotificationDispatcher(db, settings, email_client_factory=provider.client_factory)


def test_sends_email_for_webhook_payload(db, settings, provider, record):
    result = dispatcher(db, settings, provider).dispatch(webhook(record))

    assert result.to_response() == {"sent": True, "to": "rita@example.com"}
    request = provider.requests[0]
    assert str(request.url) == RESEND_API_URL
    assert request.headers["Authorization"] == "Bearer re_test_key"
    sent = provider.sent[0]
    assert sent["to"] == ["rita@example.com"]
    assert sent["from"] == "ERP <noreply@example.com>"
    assert sent["subject"] == "Review requested"
    assert "https://app.example.com/tasks/12" in sent["html"]
    assert "View task" in sent["html"]


def test_service_bearer_accepts_any_payload_shape(db, settings, provider, record):
    result = dispatcher(db, settings, provider).dispatch({"record": record}, bearer="service-role-key")
    assert result.sent is True


def test_rejects_unknown_caller(db, settings, provider, record):
    with pytest.raises(Unauthorized):
        dispatcher(db, settings, provider).dispatch({"record": record}, bearer="wrong")
    assert provider.requests == []


@pytest.mark.parametrize("missing", ["recipient_user_id", "type", "title", "message"])
def test_missing_required_field(db, settings, provider, record, missing):
    record.pop(missing)
    with pytest.raises(InvalidPayload, match="Missing record or required fields"):
        dispatcher(db, settings, provider).dispatch(webhook(record))


def test_missing_record(db, settings, provider):
    payload = {"type": "INSERT", "table": "notifications", "schema": "public"}
    with pytest.raises(InvalidPayload):
        dispatcher(db, settings, provider).dispatch(payload, bearer="service-role-key")


def test_skips_unknown_recipient(db, settings, provider, record):
    record["recipient_user_id"] = 4040
    result = dispatcher(db, settings, provider).dispatch(webhook(record))

    assert result.to_response() == {"skipped": True, "reason": "recipient not found or inactive"}
    assert provider.requests == []


def test_skips_inactive_recipient(db, settings, provider, record, recipient):
    recipient.is_active = False
    db.commit()
    result = dispatcher(db, settings, provider).dispatch(webhook(record))
    assert result.reason == "recipient not found or inactive"


def test_skips_when_user_disabled_emails(db, settings, provider, record, recipient):
    recipient.email_notifications_enabled = False
    db.commit()

    result = dispatcher(db, settings, provider).dispatch(webhook(record))

    assert result.to_response() == {"skipped": True, "reason": "user disabled email notifications"}
    assert provider.requests == []


def test_skips_without_provider_key(db, settings, provider, record):
    settings = settings.model_copy(update={"resend_api_key": None})
    result = dispatcher(db, settings, provider).dispatch(webhook(record))
    assert result.to_response() == {"skipped": True, "reason": "email provider not configured"}


def test_missing_app_url_is_config_error(db, settings, provider, record):
    settings = settings.model_copy(update={"app_url": None})
    with pytest.raises(ConfigError, match="APP_URL"):
        dispatcher(db, settings, provider).dispatch(webhook(record))


def test_missing_service_key_is_config_error(db, settings, provider, record):
    settings = settings.model_copy(update={"service_role_key": None})
    with pytest.raises(ConfigError, match="SERVICE_ROLE_KEY"):
        dispatcher(db, settings, provider).dispatch(webhook(record))


def test_provider_rejection_carries_raw_error_and_hint(db, settings, record):
    provider = FakeProvider(403, "The example.com domain is not verified.")

    with pytest.raises(DeliveryFailure) as excinfo:
        dispatcher(db, settings, provider).dispatch(webhook(record))

    body = excinfo.value.to_dict()
    assert body["error"] == "Failed to send email"
    assert body["details"] == "The example.com domain is not verified."
    assert "resend.com/domains" in body["hint"]


def test_provider_unreachable(db, settings, record):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    def factory(s):
        return ResendEmailClient(s, transport=httpx.MockTransport(refuse))

    with pytest.raises(DeliveryFailure, match="Failed to send email"):
        NotificationDispatcher(db, settings, email_client_factory=factory).dispatch(webhook(record))


# -------------------------
# Templates
# -------------------------

def test_html_escapes_user_content():
    _, html = email_templates.render(
        "comment_added", "<b>Hi</b>", "<script>alert(1)</script>", None, None, "https://app.example.com"
    )
    assert "<script>" not in html
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in html
    assert "&lt;b&gt;Hi&lt;/b&gt;" in html


def test_unknown_type_gets_generic_subject():
    assert email_templates.get_subject("something_new") == "Notification"
    assert email_templates.get_link_label(None) == "View in app"


@pytest.mark.parametrize(
    "entity_type, entity_id, expected",
    [
        ("task", 5, "https://app.example.com/tasks/5"),
        ("project", 7, "https://app.example.com/projects/7"),
        ("todo", 1, "https://app.example.com/bulletin-board"),
        ("bulletin", None, "https://app.example.com/bulletin-board"),
        (None, None, "https://app.example.com"),
    ],
)
def test_view_url(entity_type, entity_id, expected):
    assert email_templates.build_view_url(entity_type, entity_id, "https://app.example.com/") == expected


def test_view_url_without_app_url_has_no_button():
    assert email_templates.build_view_url("task", 5, None) == "#"
    html = email_templates.build_email_html("t", "m", "task", 5, None)
    assert "View task" not in html
