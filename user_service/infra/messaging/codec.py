"""JSON codec for gateway messages.

Wire shapes:
    request   any JSON value
    response  {"code": <int>, "response": <any>}
    error     {"code": <int>, "error": <str>}  (ApplicationError payload)

Inbound decoding never raises: malformed bytes turn into a synthesized body
or a 500 envelope. Outbound encoding raises EncodeError before anything is
sent.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    ValidationError,
    field_validator,
)

from user_service.core.exceptions import ApplicationError
from user_service.infra.messaging.exceptions import DecodeError, EncodeError

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/json"

DEFAULT_MESSAGE = "Ok"
DEFAULT_ERROR = "Erro"
TIMEOUT_MESSAGE = "Timeout"
RESPONSE_PARSE_FAILED = "Failed to parse response"
ERROR_PARSE_FAILED = "Failed to parse application error"
INTERNAL_ERROR = "Internal server error."


class ResponseEnvelope(BaseModel):
    """Result of an RPC call, as seen by the caller and sent by the server."""

    model_config = ConfigDict(frozen=True)

    status_code: int = 200
    body: Any = Field(default_factory=lambda: {"message": DEFAULT_MESSAGE})

    @classmethod
    def timeout(cls) -> ResponseEnvelope:
        return cls(status_code=408, body={"message": TIMEOUT_MESSAGE})

    def to_wire(self) -> dict[str, Any]:
        return {"code": self.status_code, "response": self.body}


class InboundRequest(BaseModel):
    """A delivered message as handed to a listener's handler.

    Attributes:
        body: Parsed JSON, or ``{"raw_message": raw_text}`` if the bytes were
            not valid JSON.
        raw_text: The message bytes decoded as UTF-8.
    """

    model_config = ConfigDict(frozen=True)

    body: Any = None
    raw_text: str = ""


class ErrorEnvelope(BaseModel):
    """Payload carried by ApplicationError."""

    model_config = ConfigDict(extra="ignore")

    code: int | None = None
    error: str | None = None


class _WireResponse(BaseModel):
    # Strict branch of decode_response: an integral numeric code and a
    # present (possibly null) response key.
    model_config = ConfigDict(extra="ignore")

    code: StrictInt | StrictFloat
    response: Any

    @field_validator("code")
    @classmethod
    def _integral_code(cls, v: int | float) -> int:
        if isinstance(v, float):
            if not v.is_integer():
                raise ValueError("code must be an integral number")
            return int(v)
        return v


def encode(value: Any) -> bytes:
    """Serialize ``value`` to UTF-8 JSON.

    Pydantic models are dumped in JSON mode first.

    Raises:
        EncodeError: ``value`` contains something JSON cannot represent.
    """
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    try:
        return json.dumps(value, ensure_ascii=False, allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise EncodeError(f"Payload is not JSON serializable: {exc}", original_error=exc) from exc


def _parse(data: bytes) -> Any:
    text = data.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError as exc:
        raise DecodeError("Message body is not valid JSON", raw_text=text, original_error=exc) from exc


def decode_response(data: bytes) -> ResponseEnvelope:
    """Decode an RPC reply.

    ``{"code": <number>, "response": ...}`` maps onto status and body when
    the code is integral (``404`` or ``404.0``; booleans and strings do not
    count). Any other JSON value becomes the body of a 200 envelope.
    Invalid JSON yields a 500 envelope carrying the raw text.
    """
    try:
        parsed = _parse(data)
    except DecodeError as exc:
        logger.warning("Unparseable RPC reply", extra={"raw": exc.raw_text[:200]})
        return ResponseEnvelope(
            status_code=500,
            body={"message": RESPONSE_PARSE_FAILED, "raw": exc.raw_text},
        )

    try:
        wire = _WireResponse.model_validate(parsed)
    except ValidationError:
        return ResponseEnvelope(status_code=200, body=parsed)
    return ResponseEnvelope(status_code=wire.code, body=wire.response)


def decode_request(data: bytes) -> InboundRequest:
    """Decode a delivered request; invalid JSON is wrapped, never raised."""
    try:
        parsed = _parse(data)
    except DecodeError as exc:
        return InboundRequest(body={"raw_message": exc.raw_text}, raw_text=exc.raw_text)
    return InboundRequest(body=parsed, raw_text=data.decode("utf-8", errors="replace"))


def error_to_response(exc: BaseException) -> ResponseEnvelope:
    """Convert a handler exception into the envelope sent back to the caller.

    ApplicationError payloads become ``{code or 400, {"message": error or "Erro"}}``;
    a payload that is not a JSON object of that shape becomes a 500. Every
    other exception becomes a generic 500.
    """
    if not isinstance(exc, ApplicationError):
        return ResponseEnvelope(status_code=500, body={"message": INTERNAL_ERROR})

    try:
        envelope = ErrorEnvelope.model_validate_json(exc.payload)
    except ValidationError:
        logger.warning("Malformed application error payload", extra={"payload": exc.payload[:200]})
        return ResponseEnvelope(status_code=500, body={"message": ERROR_PARSE_FAILED})

    return ResponseEnvelope(
        status_code=envelope.code or 400,
        body={"message": envelope.error or DEFAULT_ERROR},
    )
