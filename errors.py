"""errors.py

Failure kinds raised by the chat core. Every error carries the HTTP status the
routes answer with and a short machine-readable ``kind`` used in JSON bodies and
Socket.IO acks.
"""

from __future__ import annotations


class ChatError(Exception):
    status = 500
    kind = "error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict:
        return {"success": False, "error": self.kind, "message": self.message}


class ValidationError(ChatError):
    """Empty content or a missing required field."""

    status = 400
    kind = "validation"


class AuthError(ChatError):
    """Missing or invalid credential token."""

    status = 401
    kind = "auth"


class ForbiddenError(ChatError):
    """Not the owner, edit window expired, not the group creator."""

    status = 403
    kind = "forbidden"


class NotFoundError(ChatError):
    status = 404
    kind = "not_found"


class ConflictError(ChatError):
    """Duplicate registration handle."""

    status = 409
    kind = "conflict"


def clean_text(value, field: str = "text") -> str:
    """Stripped string for an optional client-supplied text field."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value.strip()
