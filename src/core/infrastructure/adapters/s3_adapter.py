"""Thin adapter for interacting with Amazon S3."""

from collections.abc import Mapping
from typing import Any, Protocol

import boto3
from botocore.config import Config

from core.utils.constants import ENV_AVATAR_S3_BUCKET_NAME
from core.utils.settings import PipelineSettings

# Variant paths embed the session id, so objects are immutable once written
AVATAR_CACHE_CONTROL = "public, max-age=31536000, immutable"


class _Boto3S3Client(Protocol):
    """Internal typing for boto3 S3 client (AWS-facing only)."""

    def put_object(
        self,
        *,
        Bucket: str,
        Key: str,
        Body: bytes,
        ContentType: str,
        CacheControl: str,
        Metadata: Mapping[str, str],
    ) -> Any: ...

    def delete_object(
        self,
        *,
        Bucket: str,
        Key: str,
    ) -> Any: ...


class S3AdapterProtocol(Protocol):
    """Minimal S3 adapter protocol (repository-facing)."""

    bucket: str

    def put_object(
        self,
        *,
        key: str,
        body: bytes,
        content_type: str,
        metadata: dict[str, str],
    ) -> None: ...

    def delete_object(self, *, key: str) -> None: ...


class S3Adapter:
    """Low-level S3 operations (mechanical, no error handling).

    This adapter:
    - Wraps boto3 S3 client
    - Does NOT handle errors (lets them bubble up)
    - Domain implementations catch and translate errors
    """

    def __init__(self, settings: PipelineSettings | None = None) -> None:
        """Create S3 client from settings (environment by default)."""
        resolved = settings or PipelineSettings.from_env()
        if not resolved.bucket_name:
            raise RuntimeError(f"{ENV_AVATAR_S3_BUCKET_NAME} environment variable is not set")

        self.bucket = resolved.bucket_name
        # The orchestrator owns retries; botocore only bounds each call
        self._client: _Boto3S3Client = boto3.client(
            "s3",
            endpoint_url=resolved.endpoint_url,
            region_name=resolved.region_name,
            config=Config(
                connect_timeout=resolved.network_timeout_seconds,
                read_timeout=resolved.network_timeout_seconds,
                retries={"max_attempts": 1, "mode": "standard"},
            ),
        )

    def put_object(
        self,
        *,
        key: str,
        body: bytes,
        content_type: str,
        metadata: dict[str, str],
    ) -> None:
        """Store object in S3.
        Raises boto3 exceptions - caught by domain implementation.
        """
        self._client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
            CacheControl=AVATAR_CACHE_CONTROL,
            Metadata=metadata,
        )

    def delete_object(self, *, key: str) -> None:
        """Delete object from S3.
        Raises boto3 exceptions - caught by domain implementation.
        """
        self._client.delete_object(
            Bucket=self.bucket,
            Key=key,
        )
