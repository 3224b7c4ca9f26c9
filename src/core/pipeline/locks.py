"""Per-user upload lock: at most one session per user at a time."""

import asyncio
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from aws_lambda_powertools import Logger

from core.models.classified_error import ErrorKind
from core.models.errors import AvatarUploadError, SessionInProgressError, UploadLeaseError
from core.pipeline.classifier import ErrorClassifier
from core.repositories.lease_repository import UploadLeaseRepository
from core.utils.constants import (
    DEFAULT_UPLOAD_LEASE_SECONDS,
    LOCK_POLICY_REJECT,
    LOCK_POLICY_WAIT,
    UPLOAD_LEASE_POLL_SECONDS,
)

logger = Logger(UTC=True)


class UserUploadLock:
    """Keyed mutex over user ids.

    Instances are created by the composition root and injected into the
    orchestrator. Entries are dropped once no session holds or awaits them.
    """

    def __init__(self, *, policy: str = LOCK_POLICY_REJECT) -> None:
        if policy not in (LOCK_POLICY_REJECT, LOCK_POLICY_WAIT):
            raise ValueError(f"Unknown lock policy: {policy}")
        self.policy = policy
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def is_locked(self, user_id: str) -> bool:
        lock = self._locks.get(user_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        """Hold the user's lock for the duration of the block.

        Raises:
            SessionInProgressError: Under the reject policy, if the user already has a session
        """
        if self.policy == LOCK_POLICY_REJECT and self.is_locked(user_id):
            logger.info("Rejected concurrent upload session", extra={"user_id": user_id})
            raise _session_in_progress(user_id)

        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._users[user_id] = self._users.get(user_id, 0) + 1
        try:
            await lock.acquire()
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[user_id] -= 1
            if self._users[user_id] == 0:
                del self._users[user_id]
                del self._locks[user_id]


class LeasedUploadLock(UserUploadLock):
    """User lock that also holds a lease in a shared store.

    The in-process lock orders sessions inside one container; the lease
    orders them across containers. A lease left by a crashed holder is
    taken over once it expires.
    """

    def __init__(
        self,
        leases: UploadLeaseRepository,
        *,
        policy: str = LOCK_POLICY_REJECT,
        lease_seconds: int = DEFAULT_UPLOAD_LEASE_SECONDS,
        poll_interval_seconds: float = UPLOAD_LEASE_POLL_SECONDS,
        classifier: ErrorClassifier | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__(policy=policy)
        self._leases = leases
        self.lease_seconds = lease_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self._classifier = classifier or ErrorClassifier()
        self._clock = clock
        self._sleep = sleep

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        """Hold the user's lock and lease for the duration of the block.

        Raises:
            SessionInProgressError: Under the reject policy, if the user already has a session
            AvatarUploadError: If the lease store fails
        """
        async with super().hold(user_id):
            lease_id = uuid.uuid4().hex
            await self._acquire(user_id, lease_id)
            try:
                yield
            finally:
                await self._release(user_id, lease_id)

    async def _acquire(self, user_id: str, lease_id: str) -> None:
        while True:
            now = int(self._clock())
            try:
                acquired = await asyncio.to_thread(
                    self._leases.acquire,
                    user_id=user_id,
                    lease_id=lease_id,
                    expires_at=now + self.lease_seconds,
                    now=now,
                )
            except UploadLeaseError as exc:
                raise AvatarUploadError(self._classifier.classify(exc.__cause__ or exc)) from exc

            if acquired:
                return
            if self.policy == LOCK_POLICY_REJECT:
                logger.info(
                    "Rejected upload session; lease held by another invocation",
                    extra={"user_id": user_id},
                )
                raise _session_in_progress(user_id)
            await self._sleep(self.poll_interval_seconds)

    async def _release(self, user_id: str, lease_id: str) -> None:
        try:
            await asyncio.to_thread(self._leases.release, user_id=user_id, lease_id=lease_id)
        except UploadLeaseError:
            # Expiry frees the lease
            logger.warning(
                "Failed to release upload lease",
                extra={"user_id": user_id, "lease_id": lease_id},
                exc_info=True,
            )


def _session_in_progress(user_id: str) -> SessionInProgressError:
    error = ErrorClassifier.build(
        ErrorKind.UNKNOWN,
        "An avatar upload is already in progress for this user",
        details={"user_id": user_id},
    )
    return SessionInProgressError(
        error.model_copy(update={"remediation": "Wait for the current upload to finish."})
    )
