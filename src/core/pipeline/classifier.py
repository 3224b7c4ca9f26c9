"""Maps raw failures onto the closed error taxonomy and its retry policy."""

import asyncio
from typing import Any, Final

from aws_lambda_powertools import Logger
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)
from PIL import Image, UnidentifiedImageError

from core.models.classified_error import ClassifiedError, ErrorKind, RetryPolicy
from core.models.errors import (
    AvatarUploadError,
    CorruptImageError,
    EncodingError,
    FileSizeError,
    MIMETypeError,
    ProfileStoreError,
    StorageError,
    StorageQuotaError,
    StorageRejectedError,
    StorageTimeoutError,
)
from core.utils.constants import (
    MAX_RETRY_DELAY_MS,
    NETWORK_MAX_RETRIES,
    NETWORK_RETRY_DELAY_MS,
    PARTIAL_UPLOAD_MAX_RETRIES,
    PARTIAL_UPLOAD_RETRY_DELAY_MS,
    QUOTA_MAX_RETRIES,
    QUOTA_RETRY_DELAY_MS,
    S3_THROTTLING_ERROR_CODES,
    S3_TIMEOUT_ERROR_CODES,
    S3_TRANSIENT_ERROR_CODES,
    TIMEOUT_MAX_RETRIES,
    TIMEOUT_RETRY_DELAY_MS,
)

logger = Logger(UTC=True)


RETRY_POLICIES: Final[dict[ErrorKind, RetryPolicy]] = {
    ErrorKind.FILE_TOO_LARGE: RetryPolicy(
        retryable=False,
        remediation="Reduce the file size and upload again.",
    ),
    ErrorKind.UNSUPPORTED_FORMAT: RetryPolicy(
        retryable=False,
        remediation="Use a JPEG, PNG, WebP or GIF image.",
    ),
    ErrorKind.CORRUPT_IMAGE: RetryPolicy(
        retryable=False,
        remediation="The image could not be read. Choose a different file.",
    ),
    ErrorKind.ENCODING_FAILURE: RetryPolicy(
        retryable=False,
        remediation="The image could not be processed. Choose a different file.",
    ),
    ErrorKind.NETWORK_ERROR: RetryPolicy(
        retryable=True,
        max_retries=NETWORK_MAX_RETRIES,
        retry_delay_ms=NETWORK_RETRY_DELAY_MS,
        remediation="Check your connection and try again.",
    ),
    ErrorKind.TIMEOUT: RetryPolicy(
        retryable=True,
        max_retries=TIMEOUT_MAX_RETRIES,
        retry_delay_ms=TIMEOUT_RETRY_DELAY_MS,
        remediation="The upload took too long. Try again.",
    ),
    ErrorKind.QUOTA_EXCEEDED: RetryPolicy(
        retryable=True,
        max_retries=QUOTA_MAX_RETRIES,
        retry_delay_ms=QUOTA_RETRY_DELAY_MS,
        remediation="Storage is busy. Wait a moment and try again.",
    ),
    ErrorKind.PARTIAL_UPLOAD_FAILURE: RetryPolicy(
        retryable=True,
        max_retries=PARTIAL_UPLOAD_MAX_RETRIES,
        retry_delay_ms=PARTIAL_UPLOAD_RETRY_DELAY_MS,
        remediation="Some image sizes failed to upload. Try again.",
    ),
    ErrorKind.FINALIZE_FAILURE: RetryPolicy(
        retryable=False,
        remediation="Your previous avatar is unchanged. Contact support if this persists.",
    ),
    ErrorKind.UNKNOWN: RetryPolicy(
        retryable=False,
        remediation="Something went wrong. Try again later.",
    ),
}

# Checked in order; subclasses must precede their bases
_EXCEPTION_KINDS: Final[tuple[tuple[type[BaseException], ErrorKind], ...]] = (
    (FileSizeError, ErrorKind.FILE_TOO_LARGE),
    (MIMETypeError, ErrorKind.UNSUPPORTED_FORMAT),
    (CorruptImageError, ErrorKind.CORRUPT_IMAGE),
    (UnidentifiedImageError, ErrorKind.CORRUPT_IMAGE),
    (Image.DecompressionBombError, ErrorKind.CORRUPT_IMAGE),
    (EncodingError, ErrorKind.ENCODING_FAILURE),
    (StorageTimeoutError, ErrorKind.TIMEOUT),
    (StorageQuotaError, ErrorKind.QUOTA_EXCEEDED),
    (StorageRejectedError, ErrorKind.UNKNOWN),
    (StorageError, ErrorKind.NETWORK_ERROR),
    (ProfileStoreError, ErrorKind.FINALIZE_FAILURE),
    (ConnectTimeoutError, ErrorKind.TIMEOUT),
    (ReadTimeoutError, ErrorKind.TIMEOUT),
    (asyncio.TimeoutError, ErrorKind.TIMEOUT),
    (TimeoutError, ErrorKind.TIMEOUT),
    (EndpointConnectionError, ErrorKind.NETWORK_ERROR),
    (ConnectionClosedError, ErrorKind.NETWORK_ERROR),
    (ConnectionError, ErrorKind.NETWORK_ERROR),
)

_DEFAULT_MESSAGES: Final[dict[ErrorKind, str]] = {
    ErrorKind.FILE_TOO_LARGE: "File too large",
    ErrorKind.UNSUPPORTED_FORMAT: "Unsupported file type",
    ErrorKind.CORRUPT_IMAGE: "Failed to load image",
    ErrorKind.ENCODING_FAILURE: "Failed to process image in any supported format",
    ErrorKind.NETWORK_ERROR: "Unable to reach image storage",
    ErrorKind.TIMEOUT: "Image storage did not respond in time",
    ErrorKind.QUOTA_EXCEEDED: "Image storage is temporarily throttling uploads",
    ErrorKind.PARTIAL_UPLOAD_FAILURE: "Failed to upload every avatar size",
    ErrorKind.FINALIZE_FAILURE: "Failed to update profile",
    ErrorKind.UNKNOWN: "Avatar upload failed",
}


class ErrorClassifier:
    """Turns any exception into exactly one `ClassifiedError`."""

    def __init__(self, *, max_retry_delay_ms: int = MAX_RETRY_DELAY_MS) -> None:
        self.max_retry_delay_ms = max_retry_delay_ms

    @staticmethod
    def build(
        kind: ErrorKind,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
    ) -> ClassifiedError:
        """Create a classified error carrying the kind's retry policy."""
        policy = RETRY_POLICIES[kind]
        return ClassifiedError(
            kind=kind,
            message=message or _DEFAULT_MESSAGES[kind],
            retryable=policy.retryable,
            max_retries=policy.max_retries,
            retry_delay_ms=policy.retry_delay_ms,
            remediation=policy.remediation,
            details=details or {},
        )

    def classify(self, exc: BaseException) -> ClassifiedError:
        """Classify a raw failure.

        Already classified failures pass through unchanged.
        """
        if isinstance(exc, AvatarUploadError):
            return exc.error

        if isinstance(exc, ClientError):
            return self._classify_client_error(exc)

        for exc_type, kind in _EXCEPTION_KINDS:
            if isinstance(exc, exc_type):
                return self.build(kind, self._message_for(exc, kind), details=self._details_for(exc))

        logger.warning(
            "Unclassified failure",
            extra={"error": str(exc), "error_type": type(exc).__name__},
        )
        return self.build(ErrorKind.UNKNOWN, details={"error_type": type(exc).__name__})

    def retry_delay_ms(self, error: ClassifiedError, attempt: int) -> int:
        """Exponential backoff seeded by the error's delay, doubling per attempt."""
        if attempt <= 0 or error.retry_delay_ms <= 0:
            return 0
        delay = error.retry_delay_ms * (2 ** (attempt - 1))
        return min(delay, self.max_retry_delay_ms)

    @staticmethod
    def can_retry(error: ClassifiedError, retries_so_far: int) -> bool:
        return error.retryable and retries_so_far < error.max_retries

    def _classify_client_error(self, exc: ClientError) -> ClassifiedError:
        code = str(exc.response.get("Error", {}).get("Code", ""))
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        details = {"aws_error_code": code, "operation": exc.operation_name}

        if code in S3_THROTTLING_ERROR_CODES or status == 429:
            return self.build(ErrorKind.QUOTA_EXCEEDED, details=details)

        if code in S3_TIMEOUT_ERROR_CODES:
            return self.build(ErrorKind.TIMEOUT, details=details)

        if code in S3_TRANSIENT_ERROR_CODES or (isinstance(status, int) and status >= 500):
            return self.build(ErrorKind.NETWORK_ERROR, details=details)

        return self.build(ErrorKind.UNKNOWN, details=details)

    @staticmethod
    def _message_for(exc: BaseException, kind: ErrorKind) -> str:
        message = getattr(exc, "message", None)
        if isinstance(message, str) and message:
            return message
        return _DEFAULT_MESSAGES[kind]

    @staticmethod
    def _details_for(exc: BaseException) -> dict[str, Any]:
        details: dict[str, Any] = {"error_type": type(exc).__name__}
        extra = getattr(exc, "details", None)
        if isinstance(extra, dict):
            details.update(extra)
        return details
