"""DynamoDB-backed implementation of UploadLeaseRepository."""

from aws_lambda_powertools import Logger
from botocore.exceptions import ClientError

from core.infrastructure.adapters.dynamodb_adapter import DynamoDBAdapter, DynamoDBAdapterProtocol
from core.models.errors import UploadLeaseError
from core.repositories.lease_repository import UploadLeaseRepository

logger = Logger(UTC=True)

ATTR_LEASE_ID = "avatar_upload_lease"
ATTR_LEASE_EXPIRES_AT = "avatar_upload_lease_expires_at"

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"

ACQUIRE_EXPRESSION = f"SET {ATTR_LEASE_ID} = :lease, {ATTR_LEASE_EXPIRES_AT} = :expires_at"
ACQUIRE_CONDITION = f"attribute_not_exists({ATTR_LEASE_ID}) OR {ATTR_LEASE_EXPIRES_AT} < :now"

RELEASE_EXPRESSION = f"REMOVE {ATTR_LEASE_ID}, {ATTR_LEASE_EXPIRES_AT}"
RELEASE_CONDITION = f"{ATTR_LEASE_ID} = :lease"


class DynamoDBUploadLease(UploadLeaseRepository):
    """Upload lease kept on the user's profile item.

    Both calls are conditional updates, so two invocations racing for the
    same user cannot both win. A user without a profile item gets one
    holding only the lease attributes.
    """

    def __init__(self, adapter: DynamoDBAdapterProtocol | None = None) -> None:
        self._db: DynamoDBAdapterProtocol = adapter or DynamoDBAdapter()

    def acquire(self, *, user_id: str, lease_id: str, expires_at: int, now: int) -> bool:
        try:
            self._db.update_item(
                key={"user_id": user_id},
                update_expression=ACQUIRE_EXPRESSION,
                expression_attribute_values={
                    ":lease": lease_id,
                    ":expires_at": expires_at,
                    ":now": now,
                },
                condition_expression=ACQUIRE_CONDITION,
                return_values="NONE",
            )
        except ClientError as exc:
            if _error_code(exc) == CONDITIONAL_CHECK_FAILED:
                logger.debug("Upload lease held elsewhere", extra={"user_id": user_id})
                return False
            logger.error("DynamoDB lease acquire failed", extra={"user_id": user_id})
            raise UploadLeaseError(
                message="Unable to acquire upload lease",
                details={"user_id": user_id, "aws_error_code": _error_code(exc)},
            ) from exc

        logger.debug("Upload lease acquired", extra={"user_id": user_id, "lease_id": lease_id})
        return True

    def release(self, *, user_id: str, lease_id: str) -> bool:
        try:
            self._db.update_item(
                key={"user_id": user_id},
                update_expression=RELEASE_EXPRESSION,
                expression_attribute_values={":lease": lease_id},
                condition_expression=RELEASE_CONDITION,
                return_values="NONE",
            )
        except ClientError as exc:
            if _error_code(exc) == CONDITIONAL_CHECK_FAILED:
                logger.warning(
                    "Upload lease was taken over before release",
                    extra={"user_id": user_id, "lease_id": lease_id},
                )
                return False
            logger.error("DynamoDB lease release failed", extra={"user_id": user_id})
            raise UploadLeaseError(
                message="Unable to release upload lease",
                details={"user_id": user_id, "aws_error_code": _error_code(exc)},
            ) from exc

        return True


def _error_code(exc: ClientError) -> str | None:
    return exc.response.get("Error", {}).get("Code")
