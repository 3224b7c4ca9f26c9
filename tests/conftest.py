"""
Pytest configuration and fixtures for avatar-service tests.
Provides AWS mocking, DynamoDB and S3 fixtures with proper cleanup,
and Pillow-generated sample images.
"""

import io
import os
from collections.abc import Callable
from typing import Any

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws
from PIL import Image

os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AVATAR_S3_BUCKET_NAME", "avatar-test-bucket")
os.environ.setdefault("AVATAR_PROFILE_TABLE_NAME", "avatar-test-profiles")
os.environ.setdefault("POWERTOOLS_SERVICE_NAME", "avatar-service")
os.environ.setdefault("POWERTOOLS_METRICS_NAMESPACE", "AvatarService")
os.environ.setdefault("POWERTOOLS_TRACE_DISABLED", "true")

ImageFactory = Callable[..., bytes]


@pytest.fixture(scope="function")
def aws_mock():
    with mock_aws():
        yield


@pytest.fixture(scope="function")
def dynamodb_resource(aws_mock):
    return boto3.resource("dynamodb", region_name=os.getenv("AWS_REGION"))


@pytest.fixture(scope="function")
def profile_table(dynamodb_resource):
    """
    Create the user profile table for testing.

    The table is keyed by user_id only; avatar fields are plain attributes.
    """
    table_name = os.getenv("AVATAR_PROFILE_TABLE_NAME")

    try:
        table = dynamodb_resource.Table(table_name)
        table.load()
    except ClientError:
        table = dynamodb_resource.create_table(
            TableName=table_name,
            BillingMode="PAY_PER_REQUEST",
            KeySchema=[{"AttributeName": "user_id", "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": "user_id", "AttributeType": "S"}],
        )
        table.wait_until_exists()

    yield table


@pytest.fixture
def profile_put_item(profile_table) -> Callable[[dict[str, Any]], dict[str, Any]]:
    """
    Helper to insert a profile item.

    Usage:
        item = profile_put_item({"user_id": "john", "avatar_url": "..."})
    """

    def _put(item: dict[str, Any]) -> dict[str, Any]:
        profile_table.put_item(Item=item)
        return item

    return _put


@pytest.fixture
def profile_get_item(profile_table) -> Callable[[str], dict[str, Any] | None]:
    def _get(user_id: str) -> dict[str, Any] | None:
        response: dict[str, Any] = profile_table.get_item(Key={"user_id": user_id})
        return response.get("Item")

    return _get


@pytest.fixture(scope="function")
def s3_client(aws_mock):
    """S3 client for bucket operations."""
    return boto3.client("s3", region_name=os.getenv("AWS_REGION"))


@pytest.fixture(scope="function")
def s3_bucket(s3_client):
    """Create the avatar bucket for testing (moto discards it on context exit)."""
    bucket_name = os.getenv("AVATAR_S3_BUCKET_NAME")
    s3_client.create_bucket(Bucket=bucket_name)
    yield s3_client


@pytest.fixture
def s3_put_object(s3_client) -> Callable[[str, bytes, str], dict[str, Any]]:
    def _put(key: str, body: bytes, content_type: str = "application/octet-stream"):
        return s3_client.put_object(
            Bucket=os.getenv("AVATAR_S3_BUCKET_NAME"),
            Key=key,
            Body=body,
            ContentType=content_type,
        )

    return _put


@pytest.fixture
def s3_get_object(s3_client) -> Callable[[str], dict[str, Any]]:
    """
    Helper to fetch an object (body read eagerly).

    Usage:
        obj = s3_get_object("avatars/john/ses_1/full.webp")
        obj["Body"], obj["ContentType"]
    """

    def _get(key: str) -> dict[str, Any]:
        response: dict[str, Any] = s3_client.get_object(
            Bucket=os.getenv("AVATAR_S3_BUCKET_NAME"),
            Key=key,
        )
        response["Body"] = response["Body"].read()
        return response

    return _get


@pytest.fixture
def s3_list_keys(s3_client) -> Callable[[str], list[str]]:
    def _list(prefix: str = "") -> list[str]:
        response = s3_client.list_objects_v2(
            Bucket=os.getenv("AVATAR_S3_BUCKET_NAME"),
            Prefix=prefix,
        )
        return sorted(obj["Key"] for obj in response.get("Contents", []))

    return _list


def render_image(
    image_format: str = "PNG",
    size: tuple[int, int] = (800, 600),
    mode: str = "RGB",
    color: Any = (200, 80, 40),
) -> bytes:
    """Encode a solid-colour image with Pillow."""
    if mode == "RGBA" and isinstance(color, tuple) and len(color) == 3:
        color = (*color, 128)
    image = Image.new(mode, size, color)
    buffer = io.BytesIO()
    image.save(buffer, format=image_format)
    return buffer.getvalue()


@pytest.fixture
def make_image() -> ImageFactory:
    """
    Factory for real encoded images.

    Usage:
        data = make_image("JPEG", size=(1200, 800))
    """
    return render_image


@pytest.fixture
def sample_png(make_image) -> bytes:
    return make_image("PNG", size=(800, 600))


@pytest.fixture
def sample_jpeg(make_image) -> bytes:
    return make_image("JPEG", size=(1200, 900))
