"""DynamoDB-backed implementation of AvatarProfileRepository."""

from typing import Any

from aws_lambda_powertools import Logger
from botocore.exceptions import ClientError

from core.infrastructure.adapters.dynamodb_adapter import DynamoDBAdapter, DynamoDBAdapterProtocol
from core.models.avatar import AvatarRecord, AvatarUrls
from core.models.errors import ProfileStoreError
from core.repositories.profile_repository import AvatarProfileRepository
from core.utils.constants import (
    ERROR_CODE_PROFILE_FETCH_FAILED,
    ERROR_CODE_PROFILE_UPDATE_FAILED,
)
from core.utils.time import utc_now_iso

Item = dict[str, Any]

logger = Logger(UTC=True)

# Attribute names shared with the rest of the profile item
ATTR_LEGACY_URL = "avatar_url"
ATTR_THUMBNAIL_URL = "avatar_thumbnail_url"
ATTR_MEDIUM_URL = "avatar_medium_url"
ATTR_FULL_URL = "avatar_full_url"
ATTR_UPDATED_AT = "avatar_updated_at"

AVATAR_UPDATE_EXPRESSION = (
    f"SET {ATTR_LEGACY_URL} = :legacy, "
    f"{ATTR_THUMBNAIL_URL} = :thumbnail, "
    f"{ATTR_MEDIUM_URL} = :medium, "
    f"{ATTR_FULL_URL} = :full, "
    f"{ATTR_UPDATED_AT} = :updated_at"
)


class DynamoDBProfileStore(AvatarProfileRepository):
    """Avatar fields stored on the user's DynamoDB profile item.

    All boto3 errors are caught and translated into
    domain-specific errors with stable semantics.
    """

    def __init__(self, adapter: DynamoDBAdapterProtocol | None = None) -> None:
        """Initialize with DynamoDB adapter."""
        self._db: DynamoDBAdapterProtocol = adapter or DynamoDBAdapter()

    def fetch_avatar(self, *, user_id: str) -> AvatarRecord | None:
        """Fetch the avatar record for a user.

        Raises:
            ProfileStoreError: If fetch fails
        """
        logger.debug("Fetching avatar record", extra={"user_id": user_id})

        try:
            response = self._db.get_item(key={"user_id": user_id})
        except ClientError as exc:
            logger.error("DynamoDB get_item failed", extra={"user_id": user_id})
            raise ProfileStoreError(
                message="Unable to retrieve profile",
                error_code=ERROR_CODE_PROFILE_FETCH_FAILED,
                details={"user_id": user_id},
            ) from exc
        except Exception as exc:
            logger.exception("Unexpected error fetching avatar record")
            raise ProfileStoreError(
                message="Unable to retrieve profile",
                error_code=ERROR_CODE_PROFILE_FETCH_FAILED,
                details={"user_id": user_id},
            ) from exc

        item = response.get("Item")
        if item is None:
            return None

        if not isinstance(item, dict):
            raise ProfileStoreError(
                message="Invalid profile format",
                error_code=ERROR_CODE_PROFILE_FETCH_FAILED,
                details={"user_id": user_id},
            )

        return self._to_record(user_id, item)

    def update_avatar_urls(self, *, user_id: str, urls: AvatarUrls) -> AvatarRecord:
        """Set every avatar attribute in one UpdateItem call.

        DynamoDB applies an update expression atomically, so readers see
        either the previous avatar or the new one, never a mix.

        Raises:
            ProfileStoreError: If the update fails
        """
        logger.debug("Updating avatar record", extra={"user_id": user_id})

        try:
            response = self._db.update_item(
                key={"user_id": user_id},
                update_expression=AVATAR_UPDATE_EXPRESSION,
                expression_attribute_values={
                    ":legacy": urls.legacy_url,
                    ":thumbnail": urls.thumbnail_url,
                    ":medium": urls.medium_url,
                    ":full": urls.full_url,
                    ":updated_at": utc_now_iso(),
                },
            )
        except ClientError as exc:
            logger.error("DynamoDB update_item failed", extra={"user_id": user_id})
            raise ProfileStoreError(
                message="Failed to update profile",
                error_code=ERROR_CODE_PROFILE_UPDATE_FAILED,
                details={
                    "user_id": user_id,
                    "aws_error_code": exc.response.get("Error", {}).get("Code"),
                },
            ) from exc
        except Exception as exc:
            logger.exception("Unexpected error updating avatar record")
            raise ProfileStoreError(
                message="Failed to update profile",
                error_code=ERROR_CODE_PROFILE_UPDATE_FAILED,
                details={"user_id": user_id},
            ) from exc

        logger.info("Avatar record updated", extra={"user_id": user_id})
        attributes = response.get("Attributes") or {}
        return self._to_record(user_id, attributes)

    @staticmethod
    def _to_record(user_id: str, item: Item) -> AvatarRecord:
        return AvatarRecord(
            user_id=user_id,
            legacy_url=item.get(ATTR_LEGACY_URL),
            thumbnail_url=item.get(ATTR_THUMBNAIL_URL),
            medium_url=item.get(ATTR_MEDIUM_URL),
            full_url=item.get(ATTR_FULL_URL),
            updated_at=item.get(ATTR_UPDATED_AT),
        )
