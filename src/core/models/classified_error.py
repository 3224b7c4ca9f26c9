"""Closed error taxonomy for the avatar upload pipeline."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorKind(str, Enum):
    """Every failure the pipeline reports belongs to exactly one kind."""

    FILE_TOO_LARGE = "FileTooLarge"
    UNSUPPORTED_FORMAT = "UnsupportedFormat"
    CORRUPT_IMAGE = "CorruptImage"
    ENCODING_FAILURE = "EncodingFailure"
    NETWORK_ERROR = "NetworkError"
    TIMEOUT = "Timeout"
    QUOTA_EXCEEDED = "QuotaExceeded"
    PARTIAL_UPLOAD_FAILURE = "PartialUploadFailure"
    FINALIZE_FAILURE = "FinalizeFailure"
    UNKNOWN = "Unknown"


class RetryPolicy(BaseModel):
    """Retry guidance attached to an error kind."""

    model_config = ConfigDict(frozen=True)

    retryable: bool
    max_retries: int = Field(0, ge=0)
    retry_delay_ms: int = Field(0, ge=0)
    remediation: str


class ClassifiedError(BaseModel):
    """Immutable description of a failure, built by the error classifier."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind = Field(..., description="Taxonomy kind")
    message: str = Field(..., description="Human-readable failure message")
    retryable: bool = Field(..., description="Whether a retry may succeed")
    max_retries: int = Field(0, ge=0, description="Automatic retries allowed")
    retry_delay_ms: int = Field(0, ge=0, description="Backoff seed in milliseconds")
    remediation: str = Field("", description="Suggested user action")
    details: dict[str, Any] = Field(default_factory=dict)

    def to_response(self) -> dict[str, Any]:
        """Serialize for API responses."""
        return {
            "error": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
            "remediation": self.remediation,
        }
