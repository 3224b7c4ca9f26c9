"""Business logic for avatar upload requests.

Builds the upload pipeline from environment settings and runs one session
per request on a fresh event loop.
"""

import asyncio
import base64

from aws_lambda_powertools import Logger

from core.infrastructure.adapters.dynamodb_adapter import DynamoDBAdapter
from core.infrastructure.adapters.s3_adapter import S3Adapter
from core.infrastructure.aws.dynamodb_profile import DynamoDBProfileStore
from core.infrastructure.aws.dynamodb_upload_lease import DynamoDBUploadLease
from core.infrastructure.aws.s3_avatar_storage import S3AvatarStorage
from core.models.avatar import AvatarUrls
from core.models.errors import ValidationError
from core.models.session import AvatarFile, ProgressEvent
from core.pipeline.locks import LeasedUploadLock
from core.pipeline.orchestrator import UploadOrchestrator
from core.utils.settings import PipelineSettings

logger = Logger(UTC=True)


def build_orchestrator(settings: PipelineSettings) -> UploadOrchestrator:
    """Wire the pipeline against S3 and DynamoDB.

    The user lock is backed by a lease on the profile item, so concurrent
    invocations for one user are serialised across containers.
    """
    profile_table = DynamoDBAdapter(settings)
    return UploadOrchestrator.from_settings(
        settings,
        storage=S3AvatarStorage(S3Adapter(settings), settings=settings),
        profiles=DynamoDBProfileStore(profile_table),
        lock=LeasedUploadLock(
            DynamoDBUploadLease(profile_table),
            policy=settings.lock_policy,
            lease_seconds=settings.upload_lease_seconds,
        ),
    )


class AvatarUploadService:
    """Application service responsible for avatar uploads."""

    def __init__(self, orchestrator: UploadOrchestrator | None = None) -> None:
        self.orchestrator = orchestrator or build_orchestrator(PipelineSettings.from_env())

    @staticmethod
    def decode_file(encoded: str) -> bytes:
        """Decode base64-encoded image data.

        Raises:
            ValidationError: If decoding fails
        """
        try:
            return base64.b64decode(encoded, validate=True)
        except Exception as exc:
            logger.exception("Failed to decode base64 image data")
            raise ValidationError(
                message="Invalid image data",
                details={"encoding": "base64"},
            ) from exc

    def upload_avatar(
        self,
        *,
        user_id: str,
        file_data: bytes,
        content_type: str | None = None,
        file_name: str | None = None,
    ) -> AvatarUrls:
        """Run one upload session to completion.

        Raises:
            AvatarUploadError: On any terminal failure of the session
        """
        avatar_file = AvatarFile(
            content=file_data,
            content_type=content_type,
            file_name=file_name,
        )
        return asyncio.run(self._upload(avatar_file, user_id))

    def close(self) -> None:
        """Release the variant generator threads."""
        self.orchestrator.close()

    async def _upload(self, avatar_file: AvatarFile, user_id: str) -> AvatarUrls:
        try:
            return await self.orchestrator.upload_avatar_atomic(
                avatar_file,
                user_id,
                on_progress=self._log_progress,
            )
        finally:
            # The invocation is frozen once it returns, so cleanup runs now
            await self.orchestrator.wait_for_cleanup()

    @staticmethod
    def _log_progress(event: ProgressEvent) -> None:
        logger.debug(
            "Avatar upload progress",
            extra={
                "stage": event.stage.value,
                "percent": event.percent,
                "progress_message": event.message,
            },
        )
