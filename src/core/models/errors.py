"""Custom exception classes for the avatar service."""

from typing import Any

from core.models.classified_error import ClassifiedError
from core.utils.constants import (
    ERROR_CODE_CORRUPT_IMAGE,
    ERROR_CODE_ENCODING_FAILED,
    ERROR_CODE_FILE_SIZE_EXCEEDED,
    ERROR_CODE_GENERATION_CANCELLED,
    ERROR_CODE_INVALID_TRANSITION,
    ERROR_CODE_PROFILE_STORE,
    ERROR_CODE_SESSION_IN_PROGRESS,
    ERROR_CODE_STORAGE,
    ERROR_CODE_STORAGE_QUOTA,
    ERROR_CODE_STORAGE_REJECTED,
    ERROR_CODE_STORAGE_TIMEOUT,
    ERROR_CODE_UNSUPPORTED_MIME_TYPE,
    ERROR_CODE_UPLOAD_LEASE_FAILED,
    ERROR_CODE_VALIDATION_FAILED,
)


class AvatarServiceError(Exception):
    """
    Base exception for all avatar service errors.

    All custom errors must inherit from this class.
    Callers must explicitly provide a message and error code.
    Optional contextual information can be supplied via `details`.
    """

    message: str
    error_code: str
    details: dict[str, Any]

    def __init__(
        self,
        *,
        message: str,
        error_code: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.details = details or {}

        super().__init__(self.message)


class ValidationError(AvatarServiceError):
    """Raised when request validation fails."""

    def __init__(
        self,
        *,
        message: str,
        error_code: str = ERROR_CODE_VALIDATION_FAILED,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
        )


class FileSizeError(ValidationError):
    """Raised when file size exceeds the allowed limit."""

    def __init__(
        self,
        *,
        message: str,
        error_code: str = ERROR_CODE_FILE_SIZE_EXCEEDED,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
        )


class MIMETypeError(ValidationError):
    """Raised when an unsupported MIME type is provided."""

    def __init__(
        self,
        *,
        message: str,
        error_code: str = ERROR_CODE_UNSUPPORTED_MIME_TYPE,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
        )


class CorruptImageError(ValidationError):
    """Raised when image bytes cannot be decoded into sane dimensions."""

    def __init__(
        self,
        *,
        message: str,
        error_code: str = ERROR_CODE_CORRUPT_IMAGE,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
        )


class EncodingError(AvatarServiceError):
    """Raised when a variant cannot be resampled or re-encoded."""

    def __init__(
        self,
        *,
        message: str,
        error_code: str = ERROR_CODE_ENCODING_FAILED,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
        )


class GenerationCancelledError(AvatarServiceError):
    """Raised when variant generation stops because the session was cancelled."""

    def __init__(
        self,
        *,
        message: str = "Variant generation cancelled",
        error_code: str = ERROR_CODE_GENERATION_CANCELLED,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
        )


class StorageError(AvatarServiceError):
    """Raised when an object storage operation fails (transient by default)."""

    def __init__(
        self,
        *,
        message: str,
        error_code: str = ERROR_CODE_STORAGE,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
        )


class StorageTimeoutError(StorageError):
    """Raised when an object storage call times out."""

    def __init__(
        self,
        *,
        message: str,
        error_code: str = ERROR_CODE_STORAGE_TIMEOUT,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
        )


class StorageQuotaError(StorageError):
    """Raised when object storage throttles or a quota is exhausted."""

    def __init__(
        self,
        *,
        message: str,
        error_code: str = ERROR_CODE_STORAGE_QUOTA,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
        )


class StorageRejectedError(StorageError):
    """Raised when object storage refuses a request for a non-transient reason."""

    def __init__(
        self,
        *,
        message: str,
        error_code: str = ERROR_CODE_STORAGE_REJECTED,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
        )


class ProfileStoreError(AvatarServiceError):
    """Raised when a profile record operation fails."""

    def __init__(
        self,
        *,
        message: str,
        error_code: str = ERROR_CODE_PROFILE_STORE,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
        )


class UploadLeaseError(AvatarServiceError):
    """Raised when the per-user upload lease cannot be read or written."""

    def __init__(
        self,
        *,
        message: str,
        error_code: str = ERROR_CODE_UPLOAD_LEASE_FAILED,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
        )


class InvalidTransitionError(AvatarServiceError):
    """Raised when an upload session is moved along an illegal edge."""

    def __init__(
        self,
        *,
        message: str,
        error_code: str = ERROR_CODE_INVALID_TRANSITION,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
        )


class AvatarUploadError(AvatarServiceError):
    """Raised with a classified error once a failure has been categorised.

    The orchestrator raises it on every terminal failure; storage and profile
    implementations may raise it directly when they already know the kind.
    """

    error: ClassifiedError

    def __init__(
        self,
        error: ClassifiedError,
        *,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.error = error
        super().__init__(
            message=error.message,
            error_code=error_code or error.kind.value,
            details=details or dict(error.details),
        )


class SessionInProgressError(AvatarUploadError):
    """Raised when another upload session already holds the user's lock."""

    def __init__(self, error: ClassifiedError) -> None:
        super().__init__(error, error_code=ERROR_CODE_SESSION_IN_PROGRESS)
