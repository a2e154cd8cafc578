"""Messaging error taxonomy.

Raised (and therefore visible to callers):
    TransportError: connection or channel could not be opened, or a send failed.
    DeclareError: the broker rejected a queue declaration.
    EncodeError: a payload could not be serialised; nothing was sent.

Recovered locally:
    DecodeError: malformed bytes; codec callers turn it into a 500 envelope.

An RPC timeout is not an exception: the client resolves with a 408 envelope.
"""

from __future__ import annotations

from typing import Any


class MessagingError(Exception):
    """Base class for gateway errors.

    Attributes:
        queue: Queue involved in the failed operation, if any.
        original_error: Underlying library exception, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        queue: str | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        self.queue = queue
        self.original_error = original_error
        super().__init__(message)

    def to_log_extra(self) -> dict[str, Any]:
        """Fields suitable for ``logger.*(..., extra=...)``."""
        extra: dict[str, Any] = {"error_type": type(self).__name__}
        if self.queue is not None:
            extra["queue"] = self.queue
        if self.original_error is not None:
            extra["original_error"] = repr(self.original_error)
        return extra


class TransportError(MessagingError):
    """Connecting, opening a channel or sending a message failed."""


class DeclareError(MessagingError):
    """The broker rejected a queue declaration."""


class EncodeError(MessagingError):
    """A payload is not serialisable."""


class DecodeError(MessagingError):
    """Delivered bytes are not valid JSON.

    Attributes:
        raw_text: Body decoded as text, kept for the error envelope.
    """

    def __init__(self, message: str, *, raw_text: str, **kwargs: Any) -> None:
        self.raw_text = raw_text
        super().__init__(message, **kwargs)
