"""Pydantic models for avatar upload request/response."""

import base64
import binascii
from pathlib import Path

from aws_lambda_powertools import Logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.models.avatar import AvatarUrls
from core.utils.constants import ALLOWED_EXTENSIONS, USER_ID_PATTERN

logger = Logger(UTC=True)


class AvatarUploadRequest(BaseModel):
    """Validation model for avatar upload request.

    Size and format limits are enforced by the upload pipeline so that they
    are reported with their own error kinds; this model only checks shape.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    file: str = Field(..., description="Base64 encoded image file")
    user_id: str = Field(
        ...,
        min_length=3,
        max_length=50,
        pattern=USER_ID_PATTERN,
        description="User identifier (alphanumeric, underscore, hyphen)",
    )
    content_type: str | None = Field(
        None, max_length=100, description="Declared MIME type of the file"
    )
    file_name: str | None = Field(
        None, min_length=1, max_length=255, description="Original file name"
    )

    @field_validator("file")
    @classmethod
    def validate_file(cls, value: str) -> str:
        if not value:
            raise ValueError("file must not be empty")

        try:
            base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as e:
            logger.error(f"File validation error: Invalid base64 - {e}")
            raise ValueError("Invalid base64 encoded file") from e

        return value

    @field_validator("file_name")
    @classmethod
    def validate_file_name(cls, value: str | None) -> str | None:
        if value is None:
            return None

        suffix = Path(value).suffix.lower().lstrip(".")
        if suffix and suffix not in ALLOWED_EXTENSIONS:
            raise ValueError(
                f"Invalid image extension '{suffix}'. "
                f"Allowed extensions: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
            )

        return value


class AvatarUploadResponse(BaseModel):
    """Response model for a committed avatar upload."""

    user_id: str = Field(..., description="User ID")
    avatar_url: str = Field(..., description="Legacy single avatar URL (full size)")
    thumbnail_url: str = Field(..., description="100px variant URL")
    medium_url: str = Field(..., description="300px variant URL")
    full_url: str = Field(..., description="600px variant URL")
    message: str = Field(..., description="Success message")

    @classmethod
    def from_urls(cls, user_id: str, urls: AvatarUrls) -> "AvatarUploadResponse":
        return cls(
            user_id=user_id,
            avatar_url=urls.legacy_url,
            thumbnail_url=urls.thumbnail_url,
            medium_url=urls.medium_url,
            full_url=urls.full_url,
            message="Profile updated successfully!",
        )
