"""Thin DynamoDB adapter wrapping boto3 table operations."""

from typing import Any, Protocol, cast

import boto3
from botocore.config import Config

from core.utils.constants import ENV_AVATAR_PROFILE_TABLE_NAME
from core.utils.settings import PipelineSettings


class DynamoDBTable(Protocol):
    """Minimal DynamoDB Table protocol."""

    def get_item(self, *, Key: dict[str, Any], **kwargs: Any) -> dict[str, Any]: ...
    def update_item(self, **kwargs: Any) -> dict[str, Any]: ...


class DynamoDBAdapterProtocol(Protocol):
    """Minimal DynamoDB adapter protocol (repository-facing)."""

    def get_item(self, *, key: dict[str, Any], consistent_read: bool = True) -> dict[str, Any]: ...

    def update_item(
        self,
        *,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_values: dict[str, Any] | None = None,
        condition_expression: str | None = None,
        return_values: str = "ALL_NEW",
    ) -> dict[str, Any]: ...


class DynamoDBAdapter:
    """Low-level DynamoDB operations (mechanical, no error handling).

    This adapter:
    - Wraps boto3 DynamoDB resource
    - Does NOT handle errors (lets them bubble up)
    - Domain implementations catch and translate errors
    """

    def __init__(self, settings: PipelineSettings | None = None) -> None:
        """Initialize DynamoDB table from settings (environment by default)."""
        resolved = settings or PipelineSettings.from_env()
        if not resolved.profile_table_name:
            raise RuntimeError(
                f"{ENV_AVATAR_PROFILE_TABLE_NAME} environment variable is not set"
            )

        dynamodb = boto3.resource(
            "dynamodb",
            endpoint_url=resolved.endpoint_url,
            region_name=resolved.region_name,
            config=Config(
                connect_timeout=resolved.network_timeout_seconds,
                read_timeout=resolved.network_timeout_seconds,
                retries={"max_attempts": 1, "mode": "standard"},
            ),
        )

        self.table: DynamoDBTable = cast(
            DynamoDBTable,
            dynamodb.Table(resolved.profile_table_name),
        )

    def get_item(self, *, key: dict[str, Any], consistent_read: bool = True) -> dict[str, Any]:
        """Retrieve item by key.

        Raises boto3 exceptions - caught by domain implementation.
        """
        return self.table.get_item(Key=key, ConsistentRead=consistent_read)

    def update_item(
        self,
        *,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_values: dict[str, Any] | None = None,
        condition_expression: str | None = None,
        return_values: str = "ALL_NEW",
    ) -> dict[str, Any]:
        """Apply a single-item update (atomic for the whole expression).

        A condition expression makes the update conditional; a failed
        condition raises ConditionalCheckFailedException.

        Raises boto3 exceptions - caught by domain implementation.
        """
        kwargs: dict[str, Any] = {
            "Key": key,
            "UpdateExpression": update_expression,
            "ReturnValues": return_values,
        }
        if expression_attribute_values:
            kwargs["ExpressionAttributeValues"] = expression_attribute_values
        if condition_expression:
            kwargs["ConditionExpression"] = condition_expression

        return self.table.update_item(**kwargs)
