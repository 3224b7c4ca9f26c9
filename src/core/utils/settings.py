"""Runtime configuration read from environment variables."""

import os
from typing import Literal

from pydantic import BaseModel, Field

from core.utils.constants import (
    DEFAULT_AWS_REGION,
    DEFAULT_GENERATOR_WORKERS,
    DEFAULT_NETWORK_TIMEOUT_SECONDS,
    DEFAULT_UPLOAD_LEASE_SECONDS,
    ENV_AVATAR_CROP_SQUARE,
    ENV_AVATAR_GENERATOR_WORKERS,
    ENV_AVATAR_LOCK_POLICY,
    ENV_AVATAR_MAX_FILE_SIZE,
    ENV_AVATAR_MAX_PIXEL_DIMENSION,
    ENV_AVATAR_NETWORK_TIMEOUT_SECONDS,
    ENV_AVATAR_PROFILE_TABLE_NAME,
    ENV_AVATAR_PUBLIC_BASE_URL,
    ENV_AVATAR_S3_BUCKET_NAME,
    ENV_AVATAR_UPLOAD_LEASE_SECONDS,
    ENV_AWS_ENDPOINT_URL,
    ENV_AWS_REGION,
    LOCK_POLICY_REJECT,
    MAX_FILE_SIZE,
    MAX_PIXEL_DIMENSION,
)

_TRUTHY = {"1", "true", "yes", "on"}


class PipelineSettings(BaseModel):
    """Settings shared by the upload pipeline and its AWS collaborators."""

    bucket_name: str | None = None
    profile_table_name: str | None = None
    endpoint_url: str | None = None
    region_name: str = DEFAULT_AWS_REGION
    public_base_url: str | None = None
    max_file_size: int = Field(MAX_FILE_SIZE, gt=0)
    max_pixel_dimension: int = Field(MAX_PIXEL_DIMENSION, gt=0)
    network_timeout_seconds: float = Field(DEFAULT_NETWORK_TIMEOUT_SECONDS, gt=0)
    lock_policy: Literal["reject", "wait"] = LOCK_POLICY_REJECT
    crop_square: bool = False
    generator_workers: int = Field(DEFAULT_GENERATOR_WORKERS, ge=1)
    upload_lease_seconds: int = Field(DEFAULT_UPLOAD_LEASE_SECONDS, gt=0)

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        """Build settings from the process environment, falling back to defaults."""
        values: dict[str, object] = {
            "bucket_name": os.getenv(ENV_AVATAR_S3_BUCKET_NAME),
            "profile_table_name": os.getenv(ENV_AVATAR_PROFILE_TABLE_NAME),
            "endpoint_url": os.getenv(ENV_AWS_ENDPOINT_URL),
            "public_base_url": os.getenv(ENV_AVATAR_PUBLIC_BASE_URL),
        }

        optional = {
            "region_name": ENV_AWS_REGION,
            "max_file_size": ENV_AVATAR_MAX_FILE_SIZE,
            "max_pixel_dimension": ENV_AVATAR_MAX_PIXEL_DIMENSION,
            "network_timeout_seconds": ENV_AVATAR_NETWORK_TIMEOUT_SECONDS,
            "lock_policy": ENV_AVATAR_LOCK_POLICY,
            "generator_workers": ENV_AVATAR_GENERATOR_WORKERS,
            "upload_lease_seconds": ENV_AVATAR_UPLOAD_LEASE_SECONDS,
        }
        for field, env_name in optional.items():
            raw = os.getenv(env_name)
            if raw:
                values[field] = raw.strip()

        crop_square = os.getenv(ENV_AVATAR_CROP_SQUARE)
        if crop_square is not None:
            values["crop_square"] = crop_square.strip().lower() in _TRUTHY

        return cls.model_validate(values)
