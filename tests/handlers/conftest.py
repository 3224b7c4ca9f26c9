import base64
import json
from types import SimpleNamespace
from typing import Any

import pytest


@pytest.fixture
def lambda_context(monkeypatch):
    context = SimpleNamespace(
        aws_request_id="test-request-id",
        function_name="test-function",
        memory_limit_in_mb=256,
        invoked_function_arn="arn:aws:lambda:us-east-1:000000000000:function:test",
        log_group_name="/aws/lambda/test-function",
        log_stream_name="2024/01/01/[$LATEST]test",
    )

    monkeypatch.setattr(
        "aws_lambda_powertools.utilities.typing.LambdaContext",
        lambda: context,
        raising=False,
    )

    return context


def make_upload_event(file_data: bytes, **fields: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "file": base64.b64encode(file_data).decode("utf-8"),
        "user_id": "john",
        **fields,
    }
    return {
        "httpMethod": "POST",
        "path": "/avatar",
        "body": json.dumps(payload),
        "headers": {
            "Content-Type": "application/json",
            "x-api-key": "test-api-key",
        },
    }


@pytest.fixture
def upload_avatar_event(sample_png) -> dict[str, Any]:
    return make_upload_event(sample_png, file_name="me.png", content_type="image/png")
