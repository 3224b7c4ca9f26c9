"""Unit tests for DynamoDBProfileStore repository."""

from collections.abc import Callable
from typing import Any

import pytest
from botocore.exceptions import ClientError
from core.infrastructure.aws.dynamodb_profile import (
    AVATAR_UPDATE_EXPRESSION,
    DynamoDBProfileStore,
)
from core.models.avatar import AvatarUrls
from core.models.errors import ProfileStoreError


class DummyAdapter:
    """Minimal DynamoDBAdapter stub."""

    get_item: Callable[..., dict[str, Any]]
    update_item: Callable[..., dict[str, Any]]

    def __init__(self) -> None:
        self.get_item = lambda **_: {}
        self.update_item = lambda **_: {"Attributes": {}}


def make_urls() -> AvatarUrls:
    base = "https://cdn.example.test/avatars/john/ses_1"
    return AvatarUrls(
        thumbnail_url=f"{base}/thumbnail.webp",
        medium_url=f"{base}/medium.webp",
        full_url=f"{base}/full.webp",
        legacy_url=f"{base}/full.webp",
    )


class TestFetchAvatar:
    def test_missing_item_returns_none(self) -> None:
        assert DynamoDBProfileStore(DummyAdapter()).fetch_avatar(user_id="john") is None

    def test_found(self) -> None:
        adapter = DummyAdapter()
        adapter.get_item = lambda **_: {
            "Item": {
                "user_id": "john",
                "display_name": "John",
                "avatar_url": "https://cdn/full.webp",
                "avatar_thumbnail_url": "https://cdn/thumbnail.webp",
            }
        }

        record = DynamoDBProfileStore(adapter).fetch_avatar(user_id="john")

        assert record is not None
        assert record.legacy_url == "https://cdn/full.webp"
        assert record.thumbnail_url == "https://cdn/thumbnail.webp"
        assert record.medium_url is None

    def test_client_error(self) -> None:
        def raise_client_error(**_: Any) -> dict[str, Any]:
            raise ClientError({"Error": {"Code": "ResourceNotFoundException"}}, "GetItem")

        adapter = DummyAdapter()
        adapter.get_item = raise_client_error

        with pytest.raises(ProfileStoreError) as exc:
            DynamoDBProfileStore(adapter).fetch_avatar(user_id="john")

        assert exc.value.error_code == "PROFILE_FETCH_FAILED"

    def test_invalid_item_format(self) -> None:
        adapter = DummyAdapter()
        adapter.get_item = lambda **_: {"Item": ["not", "a", "dict"]}

        with pytest.raises(ProfileStoreError):
            DynamoDBProfileStore(adapter).fetch_avatar(user_id="john")


class TestUpdateAvatarUrls:
    def test_single_update_with_every_field(self) -> None:
        captured: dict[str, Any] = {}

        def update_item(**kwargs: Any) -> dict[str, Any]:
            captured.update(kwargs)
            values = kwargs["expression_attribute_values"]
            return {
                "Attributes": {
                    "user_id": "john",
                    "avatar_url": values[":legacy"],
                    "avatar_thumbnail_url": values[":thumbnail"],
                    "avatar_medium_url": values[":medium"],
                    "avatar_full_url": values[":full"],
                    "avatar_updated_at": values[":updated_at"],
                }
            }

        adapter = DummyAdapter()
        adapter.update_item = update_item
        urls = make_urls()

        record = DynamoDBProfileStore(adapter).update_avatar_urls(user_id="john", urls=urls)

        assert captured["key"] == {"user_id": "john"}
        assert captured["update_expression"] == AVATAR_UPDATE_EXPRESSION
        assert record.full_url == urls.full_url
        assert record.legacy_url == urls.legacy_url
        assert record.updated_at is not None

    def test_client_error_carries_aws_code(self) -> None:
        def raise_client_error(**_: Any) -> dict[str, Any]:
            raise ClientError(
                {"Error": {"Code": "ProvisionedThroughputExceededException"}},
                "UpdateItem",
            )

        adapter = DummyAdapter()
        adapter.update_item = raise_client_error

        with pytest.raises(ProfileStoreError) as exc:
            DynamoDBProfileStore(adapter).update_avatar_urls(user_id="john", urls=make_urls())

        assert exc.value.error_code == "PROFILE_UPDATE_FAILED"
        assert exc.value.details["aws_error_code"] == "ProvisionedThroughputExceededException"

    def test_unexpected_exception(self) -> None:
        adapter = DummyAdapter()
        adapter.update_item = lambda **_: (_ for _ in ()).throw(Exception("boom"))

        with pytest.raises(ProfileStoreError):
            DynamoDBProfileStore(adapter).update_avatar_urls(user_id="john", urls=make_urls())
