# erp_backend/errors.py

from __future__ import annotations

from typing import Any, Dict, Optional


class ConfigError(RuntimeError):
    pass


class ERPError(Exception):
    """Base for errors that map onto an HTTP status and a JSON error body."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        body.update(self.details)
        return body


class InvalidParameters(ERPError):
    status_code = 400
    code = "invalid_parameters"


class InvalidPayload(ERPError):
    status_code = 400
    code = "invalid_payload"


class Unauthorized(ERPError):
    status_code = 401
    code = "unauthorized"


class Forbidden(ERPError):
    status_code = 403
    code = "forbidden"


class NotFound(ERPError):
    status_code = 404
    code = "not_found"


class MethodNotAllowed(ERPError):
    status_code = 405
    code = "method_not_allowed"


class DataFetchFailure(ERPError):
    status_code = 500
    code = "data_fetch_failure"


class DeliveryFailure(ERPError):
    status_code = 500
    code = "delivery_failure"

    def __init__(self, message: str, provider_error: str = "", hint: str = ""):
        super().__init__(message, {"details": provider_error, "hint": hint})
        self.provider_error = provider_error
        self.hint = hint
