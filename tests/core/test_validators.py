import pytest
from pydantic import BaseModel, Field, ValidationError

from core.utils.validators import sanitize_validation_errors, validate_request


class Payload(BaseModel):
    user_id: str = Field(..., pattern=r"^[a-z]+$")
    count: int


def test_validate_request_returns_model() -> None:
    payload = validate_request(Payload, {"user_id": "john", "count": 2})

    assert payload.count == 2


def test_validate_request_raises() -> None:
    with pytest.raises(ValidationError):
        validate_request(Payload, {"user_id": "john"})


def test_sanitize_validation_errors() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_request(Payload, {"user_id": "J0hn!"})

    sanitized = sanitize_validation_errors(exc.value.errors())

    assert {"field": "count", "message": "This field is required"} in sanitized
    assert {
        "field": "user_id",
        "message": "Only letters, digits, underscores and hyphens are allowed",
    } in sanitized
    for entry in sanitized:
        assert set(entry) == {"field", "message"}
