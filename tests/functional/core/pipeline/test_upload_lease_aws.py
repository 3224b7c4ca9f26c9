"""Per-user upload leases shared through a moto-backed DynamoDB table.

Each lock instance stands in for a separate Lambda container: the instances
share nothing in memory, only the profile table.
"""

import asyncio
import itertools

import pytest

from core.infrastructure.adapters.dynamodb_adapter import DynamoDBAdapter
from core.infrastructure.adapters.s3_adapter import S3Adapter
from core.infrastructure.aws.dynamodb_profile import DynamoDBProfileStore
from core.infrastructure.aws.dynamodb_upload_lease import (
    ATTR_LEASE_EXPIRES_AT,
    ATTR_LEASE_ID,
    DynamoDBUploadLease,
)
from core.infrastructure.aws.s3_avatar_storage import S3AvatarStorage
from core.models.errors import SessionInProgressError
from core.models.session import AvatarFile, ProgressEvent, UploadState
from core.pipeline.locks import LeasedUploadLock
from core.pipeline.orchestrator import UploadOrchestrator
from core.utils.settings import PipelineSettings


def leased_lock(**kwargs) -> LeasedUploadLock:
    return LeasedUploadLock(DynamoDBUploadLease(DynamoDBAdapter(PipelineSettings.from_env())), **kwargs)


@pytest.fixture
def make_orchestrator(aws_mock):
    created: list[UploadOrchestrator] = []

    def _make(prefix: str) -> UploadOrchestrator:
        settings = PipelineSettings.from_env()
        ids = (f"{prefix}_{n}" for n in itertools.count(1))
        adapter = DynamoDBAdapter(settings)
        orchestrator = UploadOrchestrator.from_settings(
            settings,
            storage=S3AvatarStorage(S3Adapter(settings), settings=settings),
            profiles=DynamoDBProfileStore(adapter),
            lock=LeasedUploadLock(DynamoDBUploadLease(adapter)),
            session_id_factory=lambda: next(ids),
        )
        created.append(orchestrator)
        return orchestrator

    yield _make

    for orchestrator in created:
        orchestrator.close()


class TestUploadLeaseAws:
    @pytest.mark.asyncio
    async def test_second_invocation_is_rejected_while_held(self, profile_table, profile_get_item):
        first = leased_lock()
        second = leased_lock()

        async with first.hold("john"):
            item = profile_get_item("john")
            assert item[ATTR_LEASE_ID]
            assert item[ATTR_LEASE_EXPIRES_AT] > 0

            with pytest.raises(SessionInProgressError):
                async with second.hold("john"):
                    pass

            async with second.hold("alice"):
                pass

        assert profile_get_item("john") == {"user_id": "john"}

        async with second.hold("john"):
            pass

    @pytest.mark.asyncio
    async def test_expired_lease_is_taken_over(self, profile_put_item, profile_get_item):
        profile_put_item(
            {
                "user_id": "john",
                "display_name": "John",
                ATTR_LEASE_ID: "crashed",
                ATTR_LEASE_EXPIRES_AT: 999,
            }
        )

        with pytest.raises(SessionInProgressError):
            async with leased_lock(clock=lambda: 900.0).hold("john"):
                pass

        async with leased_lock(clock=lambda: 1000.0).hold("john"):
            assert profile_get_item("john")[ATTR_LEASE_ID] != "crashed"

        assert profile_get_item("john") == {"user_id": "john", "display_name": "John"}

    @pytest.mark.asyncio
    async def test_overlapping_sessions_are_rejected(
        self,
        s3_bucket,
        profile_put_item,
        profile_get_item,
        s3_list_keys,
        sample_png,
        make_orchestrator,
    ):
        profile_put_item({"user_id": "john", "display_name": "John"})
        validating = asyncio.Event()
        resume = asyncio.Event()

        async def pause_while_validating(event: ProgressEvent) -> None:
            if event.stage is UploadState.VALIDATING:
                validating.set()
                await resume.wait()

        first = asyncio.create_task(
            make_orchestrator("first").upload_avatar_atomic(
                AvatarFile(content=sample_png), "john", on_progress=pause_while_validating
            )
        )
        await asyncio.wait_for(validating.wait(), timeout=5)

        with pytest.raises(SessionInProgressError) as exc:
            await make_orchestrator("second").upload_avatar_atomic(AvatarFile(content=sample_png), "john")

        assert exc.value.error_code == "SESSION_IN_PROGRESS"
        assert s3_list_keys("avatars/john/") == []

        resume.set()
        urls = await asyncio.wait_for(first, timeout=30)

        assert s3_list_keys("avatars/john/") == [
            "avatars/john/first_1/full.webp",
            "avatars/john/first_1/medium.webp",
            "avatars/john/first_1/thumbnail.webp",
        ]
        item = profile_get_item("john")
        assert item["avatar_full_url"] == urls.full_url
        assert ATTR_LEASE_ID not in item
