"""S3-backed implementation of AvatarStorageRepository."""

from urllib.parse import quote, unquote

from aws_lambda_powertools import Logger
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from core.infrastructure.adapters.s3_adapter import S3Adapter, S3AdapterProtocol
from core.models.errors import (
    StorageError,
    StorageQuotaError,
    StorageRejectedError,
    StorageTimeoutError,
)
from core.repositories.storage_repository import AvatarStorageRepository
from core.utils.constants import (
    ERROR_CODE_VARIANT_DELETE_FAILED,
    ERROR_CODE_VARIANT_UPLOAD_FAILED,
    S3_THROTTLING_ERROR_CODES,
    S3_TIMEOUT_ERROR_CODES,
    S3_TRANSIENT_ERROR_CODES,
)
from core.utils.settings import PipelineSettings

logger = Logger(UTC=True)


class S3AvatarStorage(AvatarStorageRepository):
    """Avatar variant storage backed by Amazon S3."""

    def __init__(
        self,
        adapter: S3AdapterProtocol | None = None,
        *,
        settings: PipelineSettings | None = None,
    ) -> None:
        """Create storage using the provided S3 adapter."""
        resolved = settings or PipelineSettings.from_env()
        self._s3: S3AdapterProtocol = adapter or S3Adapter(resolved)
        self._base_url = (
            resolved.public_base_url
            or f"https://{self._s3.bucket}.s3.{resolved.region_name}.amazonaws.com"
        ).rstrip("/")

    def put_object(self, *, path: str, body: bytes, content_type: str) -> str:
        """Upload variant bytes to S3 and return the public URL."""
        logger.debug(
            "Uploading avatar variant",
            extra={"key": path, "size": len(body), "content_type": content_type},
        )

        try:
            self._s3.put_object(
                key=path,
                body=body,
                content_type=content_type,
                metadata={"avatar_path": path},
            )
        except ClientError as exc:
            logger.error("S3 upload failed", extra={"key": path})
            raise self._translate_client_error(
                exc,
                message="Unable to upload avatar at this time",
                error_code=ERROR_CODE_VARIANT_UPLOAD_FAILED,
                path=path,
            ) from exc
        except (ConnectTimeoutError, ReadTimeoutError) as exc:
            logger.error("S3 upload timed out", extra={"key": path})
            raise StorageTimeoutError(
                message="Avatar upload timed out",
                details={"key": path},
            ) from exc
        except (EndpointConnectionError, ConnectionClosedError) as exc:
            logger.error("S3 connection failed", extra={"key": path})
            raise StorageError(
                message="Unable to reach avatar storage",
                error_code=ERROR_CODE_VARIANT_UPLOAD_FAILED,
                details={"key": path},
            ) from exc
        except Exception as exc:
            logger.exception("Unexpected error uploading avatar variant")
            raise StorageError(
                message="Unable to upload avatar at this time",
                error_code=ERROR_CODE_VARIANT_UPLOAD_FAILED,
                details={"key": path},
            ) from exc

        logger.info("Avatar variant uploaded", extra={"key": path})
        return self.url_for(path)

    def delete_object(self, *, path: str) -> None:
        """Delete a variant object from S3."""
        logger.debug("Deleting avatar variant", extra={"key": path})

        try:
            self._s3.delete_object(key=path)
        except ClientError as exc:
            logger.error("S3 deletion failed", extra={"key": path})
            raise self._translate_client_error(
                exc,
                message="Unable to delete avatar at this time",
                error_code=ERROR_CODE_VARIANT_DELETE_FAILED,
                path=path,
            ) from exc
        except (ConnectTimeoutError, ReadTimeoutError) as exc:
            logger.error("S3 deletion timed out", extra={"key": path})
            raise StorageTimeoutError(
                message="Avatar deletion timed out",
                details={"key": path},
            ) from exc
        except Exception as exc:
            logger.exception("Unexpected error deleting avatar variant")
            raise StorageError(
                message="Unable to delete avatar at this time",
                error_code=ERROR_CODE_VARIANT_DELETE_FAILED,
                details={"key": path},
            ) from exc

        logger.info("Avatar variant deleted", extra={"key": path})

    def url_for(self, path: str) -> str:
        return f"{self._base_url}/{quote(path)}"

    def resolve_path(self, url: str) -> str | None:
        prefix = f"{self._base_url}/"
        if not url.startswith(prefix):
            return None
        path = unquote(url[len(prefix):].split("?", 1)[0])
        return path or None

    @staticmethod
    def _translate_client_error(
        exc: ClientError,
        *,
        message: str,
        error_code: str,
        path: str,
    ) -> StorageError:
        code = str(exc.response.get("Error", {}).get("Code", ""))
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        details = {"key": path, "aws_error_code": code}

        if code in S3_THROTTLING_ERROR_CODES or status == 429:
            return StorageQuotaError(message="Avatar storage is throttling requests", details=details)

        if code in S3_TIMEOUT_ERROR_CODES:
            return StorageTimeoutError(message="Avatar storage request timed out", details=details)

        if code in S3_TRANSIENT_ERROR_CODES or (isinstance(status, int) and status >= 500):
            return StorageError(message=message, error_code=error_code, details=details)

        return StorageRejectedError(message=message, details=details)
