"""Tests for core exceptions."""

import json

from user_service.core import exceptions as exc


def test_app_exception_defaults_extra() -> None:
    error = exc.AppException(status_code=400, detail="bad")
    assert error.extra == {}
    assert str(error) == "bad"


def test_application_error_payload_is_json_envelope() -> None:
    error = exc.ApplicationError(code=422, error="unprocessable")
    assert json.loads(error.payload) == {"code": 422, "error": "unprocessable"}
    assert str(error) == error.payload
    assert error.status_code == 422


def test_application_error_omits_missing_fields() -> None:
    error = exc.ApplicationError(error="no code")
    assert json.loads(error.payload) == {"error": "no code"}
    assert error.status_code == 400


def test_application_error_keeps_raw_payload() -> None:
    error = exc.ApplicationError(payload="not json")
    assert error.payload == "not json"
    assert error.detail == "not json"


def test_from_envelope() -> None:
    error = exc.ApplicationError.from_envelope(409, "duplicate")
    assert isinstance(error, exc.ApplicationError)
    assert json.loads(str(error)) == {"code": 409, "error": "duplicate"}


def test_not_found_exception_fields() -> None:
    error = exc.NotFoundException(detail="missing", extra={"user_id": 7})
    assert error.status_code == 404
    assert error.detail == "missing"
    assert error.extra["user_id"] == 7
    assert json.loads(error.payload) == {"code": 404, "error": "missing"}


def test_conflict_and_validation_codes() -> None:
    assert exc.ConflictException("taken").status_code == 409
    assert exc.ValidationException("bad email").status_code == 400
