"""Global constants used throughout the application.

This module centralizes all magic numbers, string literals, and configuration
values that are used across multiple modules. Using constants prevents hardcoding
values and makes it easy to change them globally.
"""

from typing import Final

# ============================================================================
# Error Codes
# ============================================================================


# Validation Errors
ERROR_CODE_VALIDATION_FAILED = "VALIDATION_FAILED"
ERROR_CODE_UNSUPPORTED_MIME_TYPE = "UNSUPPORTED_MIME_TYPE"
ERROR_CODE_FILE_SIZE_EXCEEDED = "FILE_SIZE_EXCEEDED"
ERROR_CODE_CORRUPT_IMAGE = "CORRUPT_IMAGE"

# Variant Generation Errors
ERROR_CODE_ENCODING_FAILED = "ENCODING_FAILED"
ERROR_CODE_GENERATION_CANCELLED = "GENERATION_CANCELLED"

# Storage Errors
ERROR_CODE_STORAGE = "STORAGE_ERROR"
ERROR_CODE_STORAGE_TIMEOUT = "STORAGE_TIMEOUT"
ERROR_CODE_STORAGE_QUOTA = "STORAGE_QUOTA_EXCEEDED"
ERROR_CODE_STORAGE_REJECTED = "STORAGE_REJECTED"
ERROR_CODE_VARIANT_UPLOAD_FAILED = "VARIANT_UPLOAD_FAILED"
ERROR_CODE_VARIANT_DELETE_FAILED = "VARIANT_DELETE_FAILED"

# Profile Store / DynamoDB Errors
ERROR_CODE_PROFILE_STORE = "PROFILE_STORE_ERROR"
ERROR_CODE_PROFILE_FETCH_FAILED = "PROFILE_FETCH_FAILED"
ERROR_CODE_PROFILE_UPDATE_FAILED = "PROFILE_UPDATE_FAILED"
ERROR_CODE_UPLOAD_LEASE_FAILED = "UPLOAD_LEASE_FAILED"

# Session / Orchestration Errors
ERROR_CODE_SESSION_IN_PROGRESS = "SESSION_IN_PROGRESS"
ERROR_CODE_INVALID_TRANSITION = "INVALID_STATE_TRANSITION"


# ============================================================================
# File Upload Constraints
# ============================================================================

MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB in bytes
MAX_PIXEL_DIMENSION = 10_000


MIME_TYPE_EXTENSION_MAP: Final[dict[str, tuple[str, ...]]] = {
    "image/jpeg": ("jpg", "jpeg"),
    "image/png": ("png",),
    "image/gif": ("gif",),
    "image/webp": ("webp",),
}

ALLOWED_MIME_TYPES: Final[frozenset[str]] = frozenset(MIME_TYPE_EXTENSION_MAP.keys())

ALLOWED_EXTENSIONS: Final[frozenset[str]] = frozenset(
    ext for extensions in MIME_TYPE_EXTENSION_MAP.values() for ext in extensions
)

# Pillow format name for each allowed MIME type
PIL_FORMAT_MIME_MAP: Final[dict[str, str]] = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}


# ============================================================================
# Variant Tiers
# ============================================================================


THUMBNAIL_MAX_DIMENSION = 100
MEDIUM_MAX_DIMENSION = 300
FULL_MAX_DIMENSION = 600

THUMBNAIL_QUALITY = 80
MEDIUM_QUALITY = 85
FULL_QUALITY = 90

DEFAULT_VARIANT_FORMAT = "WEBP"

AVATAR_KEY_PREFIX = "avatars"


# ============================================================================
# Progress Milestones (percent)
# ============================================================================

PROGRESS_VALIDATING = 5
PROGRESS_GENERATING = 25
PROGRESS_PER_VARIANT = 20
PROGRESS_FINALIZING = 95
PROGRESS_COMMITTED = 100


# ============================================================================
# Retry Policy
# ============================================================================

NETWORK_MAX_RETRIES = 3
NETWORK_RETRY_DELAY_MS = 500
TIMEOUT_MAX_RETRIES = 3
TIMEOUT_RETRY_DELAY_MS = 1000
QUOTA_MAX_RETRIES = 1
QUOTA_RETRY_DELAY_MS = 5000
PARTIAL_UPLOAD_MAX_RETRIES = 2
PARTIAL_UPLOAD_RETRY_DELAY_MS = 1000
MAX_RETRY_DELAY_MS = 30_000

DEFAULT_NETWORK_TIMEOUT_SECONDS = 10.0
DEFAULT_GENERATOR_WORKERS = 2

# Botocore error codes grouped by how they are treated
S3_THROTTLING_ERROR_CODES: Final[frozenset[str]] = frozenset(
    {
        "SlowDown",
        "Throttling",
        "ThrottlingException",
        "TooManyRequestsException",
        "RequestLimitExceeded",
        "QuotaExceeded",
        "ServiceQuotaExceededException",
        "ProvisionedThroughputExceededException",
    }
)

S3_TIMEOUT_ERROR_CODES: Final[frozenset[str]] = frozenset(
    {"RequestTimeout", "RequestTimeoutException"}
)

S3_TRANSIENT_ERROR_CODES: Final[frozenset[str]] = frozenset(
    {"InternalError", "ServiceUnavailable", "503", "500", "502", "504"}
)


# ============================================================================
# Lock Policies
# ============================================================================

LOCK_POLICY_REJECT = "reject"
LOCK_POLICY_WAIT = "wait"

DEFAULT_UPLOAD_LEASE_SECONDS = 300
UPLOAD_LEASE_POLL_SECONDS = 0.5


# ============================================================================
# API Gateway Configuration
# ============================================================================

CORS_ORIGIN = "*"
CORS_METHODS = "POST,OPTIONS"
CORS_HEADERS = "Content-Type,Authorization,X-Api-Key"
EXPOSE_HEADERS = "Content-Type,Content-Length"
DEFAULT_CONTENT_TYPE = "application/json"

USER_ID_PATTERN = r"^[a-zA-Z0-9_-]+$"

# ============================================================================
# Environment Variable Names
# ============================================================================

ENV_AWS_ENDPOINT_URL = "AWS_ENDPOINT_URL"
ENV_AWS_REGION = "AWS_REGION"
ENV_AVATAR_S3_BUCKET_NAME = "AVATAR_S3_BUCKET_NAME"
ENV_AVATAR_PROFILE_TABLE_NAME = "AVATAR_PROFILE_TABLE_NAME"
ENV_AVATAR_PUBLIC_BASE_URL = "AVATAR_PUBLIC_BASE_URL"
ENV_AVATAR_MAX_FILE_SIZE = "AVATAR_MAX_FILE_SIZE"
ENV_AVATAR_MAX_PIXEL_DIMENSION = "AVATAR_MAX_PIXEL_DIMENSION"
ENV_AVATAR_NETWORK_TIMEOUT_SECONDS = "AVATAR_NETWORK_TIMEOUT_SECONDS"
ENV_AVATAR_LOCK_POLICY = "AVATAR_LOCK_POLICY"
ENV_AVATAR_CROP_SQUARE = "AVATAR_CROP_SQUARE"
ENV_AVATAR_GENERATOR_WORKERS = "AVATAR_GENERATOR_WORKERS"
ENV_AVATAR_UPLOAD_LEASE_SECONDS = "AVATAR_UPLOAD_LEASE_SECONDS"
DEFAULT_AWS_REGION = "us-east-1"

# ============================================================================
# Helper Functions
# ============================================================================


def get_max_file_size_mb(max_file_size: int = MAX_FILE_SIZE) -> int:
    """Get maximum file size in megabytes."""
    return max_file_size // (1024 * 1024)


def format_file_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted file size string
    """
    size: float = float(size_bytes)

    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0

    return f"{size:.1f} TB"
