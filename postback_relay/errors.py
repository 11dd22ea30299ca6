"""Postback error taxonomy.

Each error carries the HTTP status and the plain-text body TimeWall sees.
TimeWall retries on any non-2xx answer, so nothing here is retried locally.
"""

from __future__ import annotations

from fastapi import status

__all__ = [
    "PostbackError",
    "ValidationError",
    "SignatureMismatch",
    "ServiceUnavailable",
    "ConflictDetected",
    "InternalError",
]


class PostbackError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    body: str = "Internal Server Error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.body)
        self.detail = detail or self.body


class ValidationError(PostbackError):
    """Missing or malformed query parameters."""

    status_code = status.HTTP_400_BAD_REQUEST
    body = "Missing or invalid parameters"


class SignatureMismatch(PostbackError):
    status_code = status.HTTP_403_FORBIDDEN
    body = "Invalid hash"


class ServiceUnavailable(PostbackError):
    """Telegram is still disconnected after one reconnect attempt."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    body = "Telegram service unavailable"


class ConflictDetected(ServiceUnavailable):
    """Another session is polling with the same bot token (HTTP 409)."""


class InternalError(PostbackError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    body = "Internal Server Error"
