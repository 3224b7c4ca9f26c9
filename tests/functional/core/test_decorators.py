import json
from http import HTTPStatus
from types import SimpleNamespace
from typing import Any, cast

from core.utils.decorators import api_gateway_handler
from core.utils.response import JsonDict, ResponseBuilder


def parse_body(resp: dict[str, Any]) -> dict[str, Any]:
    """Parse JSON body from API Gateway response."""
    body = resp.get("body")
    if not body:
        return {}
    return cast(dict[str, Any], json.loads(body))


def test_api_handler_success() -> None:
    """Successful handler execution returns response unchanged."""

    @api_gateway_handler
    def handler(event: Any, context: Any) -> JsonDict:
        return ResponseBuilder.ok({"msg": "ok"}, request_id=context.aws_request_id)

    resp = handler({}, SimpleNamespace(aws_request_id="req-ok"))

    assert resp["statusCode"] == HTTPStatus.OK
    assert parse_body(resp)["request_id"] == "req-ok"


def test_api_handler_options_preflight() -> None:
    """OPTIONS request returns 204 without calling the handler."""
    calls: list[Any] = []

    @api_gateway_handler
    def handler(event: Any, context: Any) -> JsonDict:
        calls.append(event)
        return ResponseBuilder.ok({})

    resp = handler({"httpMethod": "OPTIONS"}, SimpleNamespace())

    assert resp["statusCode"] == HTTPStatus.NO_CONTENT
    assert calls == []


def test_value_error_keeps_friendly_message() -> None:
    @api_gateway_handler
    def handler(event: Any, context: Any) -> JsonDict:
        raise ValueError("Invalid user id")

    resp = handler({}, SimpleNamespace(aws_request_id="req-1"))

    assert resp["statusCode"] == HTTPStatus.BAD_REQUEST
    assert parse_body(resp)["message"] == "Invalid user id"


def test_value_error_with_technical_message_is_rewritten() -> None:
    @api_gateway_handler
    def handler(event: Any, context: Any) -> JsonDict:
        raise ValueError("list index out of range in parser")

    resp = handler({}, SimpleNamespace(aws_request_id="req-1"))

    assert parse_body(resp)["message"].startswith("The provided data is invalid")


def test_timeout_maps_to_gateway_timeout() -> None:
    @api_gateway_handler
    def handler(event: Any, context: Any) -> JsonDict:
        raise TimeoutError("slow")

    resp = handler({}, SimpleNamespace(aws_request_id="req-1"))

    assert resp["statusCode"] == HTTPStatus.GATEWAY_TIMEOUT


def test_unexpected_error_is_internal() -> None:
    @api_gateway_handler
    def handler(event: Any, context: Any) -> JsonDict:
        raise RuntimeError("database exploded")

    resp = handler({}, SimpleNamespace(aws_request_id="req-1"))
    parsed = parse_body(resp)

    assert resp["statusCode"] == HTTPStatus.INTERNAL_SERVER_ERROR
    assert "database" not in parsed["message"]
    assert parsed["request_id"] == "req-1"
