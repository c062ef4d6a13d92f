# reviewpilot/errors.py
"""
Error taxonomy shared by the clients, the workflow coordinator and the API layer.

Every error knows the HTTP status it maps to and renders its own response body,
so route handlers only raise and a single exception handler does the rest.
"""

from typing import Any, Dict, List, Optional


class PilotError(Exception):
    status_code = 500
    error_code = "E_INTERNAL"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class ValidationError(PilotError):
    """Missing or malformed input."""
    status_code = 400
    error_code = "E_VALIDATION"


class NotFoundError(PilotError):
    status_code = 404
    error_code = "E_NOT_FOUND"


class AuthError(PilotError):
    """Credential check against a target site failed."""
    status_code = 401
    error_code = "E_AUTH"

    def __init__(self, message: str, hints: Optional[List[str]] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.hints = list(hints or [])

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["hints"] = self.hints
        return body


class UpstreamError(PilotError):
    """A third-party call failed or answered non-2xx."""
    status_code = 500
    error_code = "E_UPSTREAM"

    def __init__(self, message: str, upstream_status: Optional[int] = None,
                 upstream_body: Any = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["upstream_status"] = self.upstream_status
        body["upstream_body"] = self.upstream_body
        return body


class DeploymentError(UpstreamError):
    error_code = "E_DEPLOY"


class ParseError(PilotError):
    """Model output could not be decoded into the expected structure."""
    status_code = 500
    error_code = "E_PARSE"

    def __init__(self, message: str, raw: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.raw = raw

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["raw"] = self.raw
        return body


def require(value: Any, message: str) -> Any:
    """Presence check: raise ValidationError when value is None or blank."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(message)
    return value
