"""Custom exception classes for the application."""

from __future__ import annotations

import json
from typing import Any


class AppException(Exception):
    """Base application exception.

    All custom exceptions should inherit from this class.

    Attributes:
        status_code: Status code reported to the caller.
        detail: Human-readable error message.
        extra: Additional context-specific information about the error.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Initialize application exception.

        Args:
            status_code: Status code reported to the caller.
            detail: Human-readable error message.
            extra: Additional context about the error.
        """
        self.status_code = status_code
        self.detail = detail
        self.extra = extra or {}
        super().__init__(detail)


class ApplicationError(AppException):
    """Handler error whose message is a JSON error envelope.

    The payload has the shape ``{"code": <int>, "error": <str>}``. RPC
    listeners turn it into a response carrying that code and
    ``{"message": error}``; a payload that is not valid JSON, or not an
    object, becomes a 500 response instead.

    Example:
        raise ApplicationError(code=404, error="not found")

        # Or with a pre-serialised payload received from elsewhere
        raise ApplicationError(payload='{"code": 409, "error": "duplicate"}')
    """

    def __init__(
        self,
        code: int | None = None,
        error: str | None = None,
        *,
        payload: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Initialize application error.

        Args:
            code: Status code carried in the envelope.
            error: Error message carried in the envelope.
            payload: Raw envelope text; takes precedence over code/error.
            extra: Additional context about the error.
        """
        if payload is None:
            envelope: dict[str, Any] = {}
            if code is not None:
                envelope["code"] = code
            if error is not None:
                envelope["error"] = error
            payload = json.dumps(envelope)
        self.payload = payload
        super().__init__(
            status_code=code or 400,
            detail=error or payload,
            extra=extra,
        )

    @classmethod
    def from_envelope(cls, code: int, error: str) -> ApplicationError:
        """Build the error from its envelope fields."""
        return ApplicationError(code=code, error=error)

    def __str__(self) -> str:
        return self.payload


class ValidationException(ApplicationError):
    """Raised when a request body fails validation."""

    def __init__(self, detail: str, extra: dict[str, Any] | None = None) -> None:
        super().__init__(code=400, error=detail, extra=extra)


class NotFoundException(ApplicationError):
    """Raised when a requested resource does not exist.

    Example:
        raise NotFoundException(detail="User 42 not found", extra={"user_id": 42})
    """

    def __init__(self, detail: str, extra: dict[str, Any] | None = None) -> None:
        super().__init__(code=404, error=detail, extra=extra)


class ConflictException(ApplicationError):
    """Raised when a resource would violate a uniqueness rule."""

    def __init__(self, detail: str, extra: dict[str, Any] | None = None) -> None:
        super().__init__(code=409, error=detail, extra=extra)
