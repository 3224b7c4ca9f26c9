"""In-memory collaborators for driving the upload pipeline without AWS."""

import itertools
import threading
import time
from collections.abc import Callable
from pathlib import PurePosixPath
from typing import Any

import pytest

from core.models.avatar import AvatarRecord, AvatarUrls
from core.pipeline.locks import UserUploadLock
from core.pipeline.orchestrator import UploadOrchestrator
from core.repositories.profile_repository import AvatarProfileRepository
from core.repositories.storage_repository import AvatarStorageRepository

BASE_URL = "https://cdn.example.test"


class InMemoryStorage(AvatarStorageRepository):
    """Object storage double with scripted failures and blocking gates.

    Failures and gates are keyed by variant kind (the object's file stem).
    A delay makes the put outlive the orchestrator timeout and write late.
    """

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.put_calls: list[str] = []
        self.delete_calls: list[str] = []
        self.put_failures: dict[str, list[BaseException]] = {}
        self.always_fail: dict[str, Callable[[], BaseException]] = {}
        self.delete_failures: set[str] = set()
        self.gates: dict[str, threading.Event] = {}
        self.delays: dict[str, float] = {}

    def fail_put(self, kind: str, *errors: BaseException) -> None:
        self.put_failures.setdefault(kind, []).extend(errors)

    def put_object(self, *, path: str, body: bytes, content_type: str) -> str:
        self.put_calls.append(path)
        kind = PurePosixPath(path).stem

        gate = self.gates.get(kind)
        if gate is not None:
            gate.wait(5)

        delay = self.delays.get(kind)
        if delay:
            time.sleep(delay)

        if kind in self.always_fail:
            raise self.always_fail[kind]()

        queued = self.put_failures.get(kind)
        if queued:
            raise queued.pop(0)

        self.objects[path] = (body, content_type)
        return f"{BASE_URL}/{path}"

    def delete_object(self, *, path: str) -> None:
        self.delete_calls.append(path)
        if path in self.delete_failures:
            raise ConnectionError(f"cannot delete {path}")
        self.objects.pop(path, None)

    def resolve_path(self, url: str) -> str | None:
        prefix = f"{BASE_URL}/"
        if not url.startswith(prefix):
            return None
        return url[len(prefix):] or None

    def paths(self, prefix: str = "") -> list[str]:
        return sorted(path for path in self.objects if path.startswith(prefix))


class InMemoryProfiles(AvatarProfileRepository):
    """Profile store double recording every call."""

    def __init__(self) -> None:
        self.records: dict[str, AvatarRecord] = {}
        self.fetch_calls = 0
        self.update_calls = 0
        self.update_error: BaseException | None = None
        self.update_gate: threading.Event | None = None

    def seed(self, user_id: str, *, session_id: str = "ses_old", extension: str = "png") -> AvatarRecord:
        urls = {
            kind: f"{BASE_URL}/avatars/{user_id}/{session_id}/{kind}.{extension}"
            for kind in ("thumbnail", "medium", "full")
        }
        record = AvatarRecord(
            user_id=user_id,
            legacy_url=urls["full"],
            thumbnail_url=urls["thumbnail"],
            medium_url=urls["medium"],
            full_url=urls["full"],
            updated_at="2024-01-01T00:00:00+00:00",
        )
        self.records[user_id] = record
        return record

    def fetch_avatar(self, *, user_id: str) -> AvatarRecord | None:
        self.fetch_calls += 1
        return self.records.get(user_id)

    def update_avatar_urls(self, *, user_id: str, urls: AvatarUrls) -> AvatarRecord:
        self.update_calls += 1
        if self.update_gate is not None:
            self.update_gate.wait(5)
        if self.update_error is not None:
            raise self.update_error

        record = AvatarRecord(
            user_id=user_id,
            legacy_url=urls.legacy_url,
            thumbnail_url=urls.thumbnail_url,
            medium_url=urls.medium_url,
            full_url=urls.full_url,
            updated_at="2024-06-01T00:00:00+00:00",
        )
        self.records[user_id] = record
        return record


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def profiles() -> InMemoryProfiles:
    return InMemoryProfiles()


@pytest.fixture
def sleeps() -> list[float]:
    """Backoff delays requested by the orchestrator, in seconds."""
    return []


@pytest.fixture
def make_orchestrator(storage, profiles, sleeps):
    """
    Factory for orchestrators wired to the in-memory doubles.

    Backoff sleeps are recorded instead of waited; session ids are
    `ses_1`, `ses_2`, ...

    Usage:
        orchestrator = make_orchestrator(lock=UserUploadLock(policy="wait"))
    """
    created: list[UploadOrchestrator] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    def _make(**overrides: Any) -> UploadOrchestrator:
        counter = itertools.count(1)
        options: dict[str, Any] = {
            "storage": storage,
            "profiles": profiles,
            "lock": UserUploadLock(),
            "sleep": fake_sleep,
            "session_id_factory": lambda: f"ses_{next(counter)}",
        }
        options.update(overrides)
        orchestrator = UploadOrchestrator(**options)
        created.append(orchestrator)
        return orchestrator

    yield _make

    for orchestrator in created:
        orchestrator.close()
