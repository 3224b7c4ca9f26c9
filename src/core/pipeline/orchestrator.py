"""Avatar upload orchestration.

Drives one upload session through validation, variant generation, tiered
upload and the single finalize write, owning the session state machine,
retries, rollback and cleanup of the previous avatar.

The flow for one session is:
1. Acquire the per-user lock
2. Validate the file (no I/O)
3. Generate the three variants in the generator thread pool
4. Upload the variants concurrently, each retried under its own policy;
   roll back and restart the upload phase on partial failure
5. Link all URLs to the profile in one write
6. Release the lock and schedule deletion of the previous variants
"""

import asyncio
import threading
import time
import uuid
from collections.abc import Awaitable, Callable, Sequence
from concurrent.futures import Executor, ThreadPoolExecutor
from functools import partial
from typing import Any, NoReturn, TypeVar

from aws_lambda_powertools import Logger

from core.models.avatar import AvatarRecord, AvatarUrls
from core.models.classified_error import ClassifiedError, ErrorKind
from core.models.errors import AvatarUploadError
from core.models.session import (
    DEFAULT_VARIANT_SPECS,
    AvatarFile,
    UploadSession,
    UploadState,
    VariantBlob,
    VariantKind,
    VariantSpec,
    VariantStatus,
)
from core.pipeline.classifier import ErrorClassifier
from core.pipeline.locks import UserUploadLock
from core.pipeline.progress import ProgressCallback, ProgressReporter
from core.pipeline.validator import ImageValidator
from core.pipeline.variants import VariantGenerator
from core.repositories.profile_repository import AvatarProfileRepository
from core.repositories.storage_repository import AvatarStorageRepository
from core.utils.constants import (
    DEFAULT_GENERATOR_WORKERS,
    DEFAULT_NETWORK_TIMEOUT_SECONDS,
    PROGRESS_COMMITTED,
    PROGRESS_FINALIZING,
    PROGRESS_GENERATING,
    PROGRESS_PER_VARIANT,
    PROGRESS_VALIDATING,
)
from core.utils.paths import build_variant_path, session_prefix, user_prefix
from core.utils.settings import PipelineSettings
from core.utils.time import elapsed_ms

logger = Logger(UTC=True)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def new_session_id() -> str:
    """Generate a unique upload session identifier."""
    return f"ses_{uuid.uuid4().hex}"


def _consume_result(future: "asyncio.Future[Any]") -> None:
    # Marks a late failure of an abandoned call as retrieved
    if not future.cancelled():
        future.exception()


class UploadOrchestrator:
    """Runs avatar upload sessions.

    The orchestrator is the only component allowed to call
    `update_avatar_urls`. Collaborators are injected so the same pipeline
    runs against S3/DynamoDB in Lambda and against fakes in tests.
    """

    def __init__(
        self,
        *,
        storage: AvatarStorageRepository,
        profiles: AvatarProfileRepository,
        lock: UserUploadLock,
        validator: ImageValidator | None = None,
        generator: VariantGenerator | None = None,
        classifier: ErrorClassifier | None = None,
        variant_specs: Sequence[VariantSpec] = DEFAULT_VARIANT_SPECS,
        network_timeout_seconds: float = DEFAULT_NETWORK_TIMEOUT_SECONDS,
        generator_workers: int = DEFAULT_GENERATOR_WORKERS,
        executor: Executor | None = None,
        sleep: Sleep = asyncio.sleep,
        session_id_factory: Callable[[], str] = new_session_id,
    ) -> None:
        self._storage = storage
        self._profiles = profiles
        self._lock = lock
        self._validator = validator or ImageValidator()
        self._generator = generator or VariantGenerator()
        self._classifier = classifier or ErrorClassifier()
        self._specs = tuple(variant_specs)
        self._timeout = network_timeout_seconds
        self._sleep = sleep
        self._new_session_id = session_id_factory
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=generator_workers,
            thread_name_prefix="avatar-variants",
        )
        self._background: set[asyncio.Task[None]] = set()
        self._abandoned_puts: dict[str, list[asyncio.Future[str]]] = {}

    @classmethod
    def from_settings(
        cls,
        settings: PipelineSettings,
        *,
        storage: AvatarStorageRepository,
        profiles: AvatarProfileRepository,
        lock: UserUploadLock | None = None,
        **kwargs: Any,
    ) -> "UploadOrchestrator":
        """Build an orchestrator whose limits come from settings."""
        return cls(
            storage=storage,
            profiles=profiles,
            lock=lock or UserUploadLock(policy=settings.lock_policy),
            validator=ImageValidator(
                max_file_size=settings.max_file_size,
                max_pixel_dimension=settings.max_pixel_dimension,
            ),
            generator=VariantGenerator(crop_square=settings.crop_square),
            network_timeout_seconds=settings.network_timeout_seconds,
            generator_workers=settings.generator_workers,
            **kwargs,
        )

    def new_session(self, user_id: str) -> UploadSession:
        return UploadSession(session_id=self._new_session_id(), user_id=user_id)

    async def upload_avatar_atomic(
        self,
        file: AvatarFile,
        user_id: str,
        on_progress: ProgressCallback | None = None,
    ) -> AvatarUrls:
        """Upload a new avatar and link all three variants to the profile.

        Returns:
            The committed avatar URLs

        Raises:
            AvatarUploadError: On any terminal failure, carrying the classified error
            SessionInProgressError: If the user already has a session running
            asyncio.CancelledError: If the caller cancelled; uploads are rolled back first
        """
        return await self.run(self.new_session(user_id), file, on_progress)

    async def run(
        self,
        session: UploadSession,
        file: AvatarFile,
        on_progress: ProgressCallback | None = None,
    ) -> AvatarUrls:
        """Drive an already created session to a terminal state."""
        reporter = ProgressReporter(on_progress)
        started = time.monotonic()

        async with self._lock.hold(session.user_id):
            try:
                urls, previous, cancelled = await self._drive(session, file, reporter)
            finally:
                for path in session.issued_paths():
                    self._abandoned_puts.pop(path, None)
                logger.info(
                    "Upload session finished",
                    extra={
                        "user_id": session.user_id,
                        "session_id": session.session_id,
                        "state": session.state.value,
                        "attempts": session.attempt,
                        "error_kind": session.last_error.kind.value if session.last_error else None,
                        "duration_ms": elapsed_ms(started, time.monotonic()),
                    },
                )

        if previous is not None:
            self._schedule_cleanup(session, previous)

        if cancelled:
            raise asyncio.CancelledError()

        return urls

    async def wait_for_cleanup(self) -> None:
        """Wait for scheduled cleanups (best-effort tasks never raise)."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Session stages
    # ------------------------------------------------------------------

    async def _drive(
        self,
        session: UploadSession,
        file: AvatarFile,
        reporter: ProgressReporter,
    ) -> tuple[AvatarUrls, AvatarRecord | None, bool]:
        try:
            session.transition(UploadState.VALIDATING)
            await reporter.emit(UploadState.VALIDATING, PROGRESS_VALIDATING, "Validating image...")
            self._validate(session, file)

            session.transition(UploadState.GENERATING_VARIANTS)
            await reporter.emit(
                UploadState.GENERATING_VARIANTS,
                PROGRESS_GENERATING,
                "Generating optimized sizes...",
            )
            blobs = await self._generate(session, file.content)

            session.transition(UploadState.UPLOADING_VARIANTS)
            urls = await self._upload_variants(session, blobs, reporter)

            previous = await self._fetch_previous(session.user_id)

            # Still uploading_variants until the write starts: a cancel here rolls back
            await reporter.emit(UploadState.FINALIZING, PROGRESS_FINALIZING, "Updating profile...")
            session.transition(UploadState.FINALIZING)
            cancelled = await self._finalize(session, urls)

            session.transition(UploadState.COMMITTED)
            await reporter.emit(
                UploadState.COMMITTED,
                PROGRESS_COMMITTED,
                "Profile updated successfully!",
            )
            logger.info(
                "Avatar committed",
                extra={"user_id": session.user_id, "session_id": session.session_id},
            )
            return urls, previous, cancelled

        except asyncio.CancelledError:
            if session.state is UploadState.UPLOADING_VARIANTS:
                await self._roll_back(session, self._cancelled_error(session))
            elif not session.is_terminal and session.state is not UploadState.IDLE:
                session.fail(self._cancelled_error(session))
            raise
        except AvatarUploadError:
            raise
        except Exception as exc:
            logger.exception(
                "Unexpected error during upload session",
                extra={"user_id": session.user_id, "session_id": session.session_id},
            )
            error = self._classifier.classify(exc)
            if session.state is UploadState.UPLOADING_VARIANTS:
                await self._roll_back(session, error)
            elif not session.is_terminal and session.state is not UploadState.IDLE:
                session.fail(error)
            else:
                session.last_error = error
            raise AvatarUploadError(error) from exc

    def _validate(self, session: UploadSession, file: AvatarFile) -> None:
        try:
            meta = self._validator.validate(file)
        except Exception as exc:
            self._fail(session, self._classifier.classify(exc), exc)
        session.set_source_meta(meta)

    async def _generate(self, session: UploadSession, content: bytes) -> list[VariantBlob]:
        cancel_event = threading.Event()
        loop = asyncio.get_running_loop()

        try:
            blobs = await loop.run_in_executor(
                self._executor,
                partial(self._generator.generate, content, self._specs, cancel_event=cancel_event),
            )
        except asyncio.CancelledError:
            cancel_event.set()
            session.fail(self._cancelled_error(session))
            raise
        except Exception as exc:
            error = self._classifier.classify(exc)
            if error.kind not in (ErrorKind.CORRUPT_IMAGE, ErrorKind.ENCODING_FAILURE):
                error = self._classifier.build(
                    ErrorKind.ENCODING_FAILURE,
                    details={"cause": error.kind.value, **error.details},
                )
            self._fail(session, error, exc)

        expected = [spec.kind for spec in self._specs]
        source_checksums = {blob.source_checksum for blob in blobs}
        if [blob.kind for blob in blobs] != expected or len(source_checksums) != 1:
            self._fail(
                session,
                self._classifier.build(
                    ErrorKind.ENCODING_FAILURE,
                    "Generated variants do not match the requested sizes",
                    details={"session_id": session.session_id},
                ),
            )
        return blobs

    async def _upload_variants(
        self,
        session: UploadSession,
        blobs: list[VariantBlob],
        reporter: ProgressReporter,
    ) -> AvatarUrls:
        """Upload every variant, restarting the phase while the partial-failure budget lasts."""
        session_restarts = 0

        while True:
            failure, cancelled = await self._upload_attempt(session, blobs, reporter)

            if cancelled:
                await self._roll_back(session, self._cancelled_error(session))
                raise asyncio.CancelledError()

            if failure is None:
                return self._collect_urls(session)

            failed_kinds = [
                kind.value
                for kind, variant in session.variants.items()
                if variant.status is VariantStatus.FAILED
            ]
            error = self._classifier.build(
                ErrorKind.PARTIAL_UPLOAD_FAILURE,
                f"Failed to upload {', '.join(failed_kinds) or 'avatar'} size: {failure.message}",
                details={
                    "session_id": session.session_id,
                    "failed_kinds": failed_kinds,
                    "cause": failure.kind.value,
                    "cause_retryable": failure.retryable,
                },
            )

            if not failure.retryable:
                # A permanent cause is reported once, without restarting the phase
                error = error.model_copy(
                    update={
                        "retryable": False,
                        "max_retries": 0,
                        "retry_delay_ms": 0,
                        "remediation": failure.remediation,
                    }
                )

            cancelled = await self._roll_back(session, error, terminal=False)
            if cancelled or not self._classifier.can_retry(error, session_restarts):
                session.fail(error)
                if cancelled:
                    raise asyncio.CancelledError()
                logger.error(
                    "Avatar upload failed after rollback",
                    extra={
                        "user_id": session.user_id,
                        "session_id": session.session_id,
                        "failed_kinds": failed_kinds,
                        "cause": failure.kind.value,
                    },
                )
                raise AvatarUploadError(error)

            session_restarts += 1
            delay_ms = self._classifier.retry_delay_ms(error, session_restarts)
            logger.warning(
                "Restarting upload phase",
                extra={
                    "user_id": session.user_id,
                    "session_id": session.session_id,
                    "restart": session_restarts,
                    "delay_ms": delay_ms,
                },
            )
            try:
                await self._sleep(delay_ms / 1000)
            except asyncio.CancelledError:
                session.fail(self._cancelled_error(session))
                raise

            session.restart(self._new_session_id())
            await reporter.emit(
                UploadState.UPLOADING_VARIANTS,
                reporter.percent,
                f"Retrying upload (attempt {session.attempt})...",
            )

    async def _upload_attempt(
        self,
        session: UploadSession,
        blobs: list[VariantBlob],
        reporter: ProgressReporter,
    ) -> tuple[ClassifiedError | None, bool]:
        """Issue the puts of one attempt in parallel.

        Returns the first fatal variant error (or None) and whether the
        caller cancelled meanwhile.
        """
        abort = asyncio.Event()
        uploads = asyncio.gather(
            *(self._upload_variant(session, blob, reporter, abort) for blob in blobs),
            return_exceptions=True,
        )
        results, cancelled = await self._shielded(uploads, on_cancel=abort.set)

        failure: ClassifiedError | None = None
        for kind, result in zip((blob.kind for blob in blobs), results):
            if isinstance(result, BaseException):
                session.variants[kind].status = VariantStatus.FAILED
                result = self._classifier.classify(result)
            if result is not None and failure is None:
                failure = result

        if failure is None and not all(
            variant.status is VariantStatus.COMMITTED for variant in session.variants.values()
        ):
            failure = self._classifier.build(ErrorKind.UNKNOWN, "Upload was interrupted")

        if failure is not None:
            session.last_error = failure
        return failure, cancelled

    async def _upload_variant(
        self,
        session: UploadSession,
        blob: VariantBlob,
        reporter: ProgressReporter,
        abort: asyncio.Event,
    ) -> ClassifiedError | None:
        """Put one variant, retrying under its classified policy."""
        variant = session.variants[blob.kind]
        variant.remote_path = build_variant_path(
            user_id=session.user_id,
            session_id=session.session_id,
            kind=blob.kind.value,
            extension=blob.extension,
        )
        variant.checksum = blob.checksum

        while True:
            if abort.is_set():
                variant.status = VariantStatus.FAILED
                return None

            variant.status = VariantStatus.UPLOADING
            variant.put_issued = True
            try:
                url = await self._put_variant(variant.remote_path, blob)
            except Exception as exc:
                error = self._classifier.classify(exc)
                retries = variant.retry_counts.get(error.kind, 0)

                if abort.is_set() or not self._classifier.can_retry(error, retries):
                    variant.status = VariantStatus.FAILED
                    abort.set()
                    logger.error(
                        "Variant upload failed",
                        extra={
                            "user_id": session.user_id,
                            "session_id": session.session_id,
                            "kind": blob.kind.value,
                            "error_kind": error.kind.value,
                            "retries": retries,
                        },
                    )
                    return error

                retries = variant.record_retry(error.kind)
                delay_ms = self._classifier.retry_delay_ms(error, retries)
                logger.warning(
                    "Variant upload failed, retrying",
                    extra={
                        "session_id": session.session_id,
                        "kind": blob.kind.value,
                        "error_kind": error.kind.value,
                        "attempt": retries,
                        "delay_ms": delay_ms,
                    },
                )
                await self._sleep(delay_ms / 1000)
                continue

            variant.url = url
            variant.status = VariantStatus.COMMITTED
            committed = sum(
                1 for item in session.variants.values() if item.status is VariantStatus.COMMITTED
            )
            await reporter.emit(
                UploadState.UPLOADING_VARIANTS,
                PROGRESS_GENERATING + PROGRESS_PER_VARIANT * committed,
                f"Uploaded {blob.kind.value} size",
            )
            return None

    async def _roll_back(
        self,
        session: UploadSession,
        error: ClassifiedError,
        *,
        terminal: bool = True,
    ) -> bool:
        """Delete every variant this attempt wrote or may still write.

        Puts abandoned after a timeout are awaited first so they cannot land
        after their delete. Returns whether the caller cancelled while the
        rollback was running. With `terminal`, the session also moves to failed.
        """
        session.transition(UploadState.ROLLING_BACK)
        paths = session.issued_paths()
        pending = [future for path in paths for future in self._abandoned_puts.pop(path, [])]
        logger.info(
            "Rolling back uploaded variants",
            extra={
                "session_id": session.session_id,
                "paths": paths,
                "abandoned_puts": len(pending),
            },
        )

        results, cancelled = await self._shielded(self._delete_after(paths, pending))
        for path, result in zip(paths, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Rollback could not delete variant; left for orphan sweep",
                    extra={
                        "session_id": session.session_id,
                        "path": path,
                        "error": str(result),
                    },
                )

        for variant in session.variants.values():
            if variant.status is VariantStatus.COMMITTED:
                variant.status = VariantStatus.FAILED

        if terminal:
            session.fail(error)
        return cancelled

    async def _fetch_previous(self, user_id: str) -> AvatarRecord | None:
        """Read the current record so its objects can be cleaned up after commit."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._profiles.fetch_avatar, user_id=user_id),
                timeout=self._timeout,
            )
        except Exception as exc:
            logger.warning(
                "Could not read previous avatar; skipping cleanup",
                extra={"user_id": user_id, "error": str(exc)},
            )
            return None

    async def _finalize(self, session: UploadSession, urls: AvatarUrls) -> bool:
        """Write all URLs to the profile once. Never retried.

        The write is not wrapped in a local timeout: abandoning it while it
        may still land would break the all-or-nothing record guarantee.
        Returns whether the caller cancelled while the write was running.
        """
        try:
            _, cancelled = await self._shielded(
                asyncio.to_thread(
                    self._profiles.update_avatar_urls,
                    user_id=session.user_id,
                    urls=urls,
                )
            )
        except Exception as exc:
            cause = self._classifier.classify(exc)
            orphaned = session.committed_paths()
            error = self._classifier.build(
                ErrorKind.FINALIZE_FAILURE,
                "Failed to update profile",
                details={
                    "session_id": session.session_id,
                    "orphaned_paths": orphaned,
                    "cause": cause.kind.value,
                },
            )
            logger.error(
                "Finalize failed; variants orphaned for reconciliation",
                extra={
                    "user_id": session.user_id,
                    "session_id": session.session_id,
                    "orphaned_paths": orphaned,
                    "cause": cause.kind.value,
                },
            )
            self._fail(session, error, exc)

        return cancelled

    def _schedule_cleanup(self, session: UploadSession, previous: AvatarRecord) -> None:
        """Fire-and-forget deletion of the previous avatar's objects."""
        own_prefix = user_prefix(session.user_id)
        current_prefix = session_prefix(session.user_id, session.session_id)

        paths: list[str] = []
        for url in previous.variant_urls():
            path = self._storage.resolve_path(url)
            if path and path.startswith(own_prefix) and not path.startswith(current_prefix):
                paths.append(path)
        paths = list(dict.fromkeys(paths))

        if not paths:
            return

        task = asyncio.create_task(self._cleanup(session.user_id, paths))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _cleanup(self, user_id: str, paths: list[str]) -> None:
        for path in paths:
            try:
                await self._call_storage(self._storage.delete_object, path=path)
            except Exception as exc:
                logger.warning(
                    "Failed to clean up previous avatar variant",
                    extra={"user_id": user_id, "path": path, "error": str(exc)},
                )
        logger.debug("Previous avatar cleanup finished", extra={"user_id": user_id, "paths": paths})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _put_variant(self, path: str, blob: VariantBlob) -> str:
        """Put one variant with the per-call timeout.

        The worker thread of a timed-out put cannot be stopped, so its future
        is kept until a rollback of the path has waited for it.
        """
        future = asyncio.ensure_future(
            asyncio.to_thread(
                self._storage.put_object,
                path=path,
                body=blob.data,
                content_type=blob.content_type,
            )
        )
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=self._timeout)
        except asyncio.TimeoutError:
            future.add_done_callback(_consume_result)
            self._abandoned_puts.setdefault(path, []).append(future)
            raise

    async def _delete_after(
        self,
        paths: list[str],
        pending: list[asyncio.Future[str]],
    ) -> list[Any]:
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return await asyncio.gather(
            *(self._call_storage(self._storage.delete_object, path=path) for path in paths),
            return_exceptions=True,
        )

    async def _call_storage(self, func: Callable[..., T], **kwargs: Any) -> T:
        """Run a blocking storage call off the loop with a per-call timeout."""
        return await asyncio.wait_for(asyncio.to_thread(func, **kwargs), timeout=self._timeout)

    @staticmethod
    async def _shielded(
        awaitable: Awaitable[T],
        *,
        on_cancel: Callable[[], None] | None = None,
    ) -> tuple[T, bool]:
        """Await to completion even if the session is cancelled meanwhile.

        Network writes already issued are allowed to finish; the returned
        flag tells the caller a cancellation arrived.
        """
        future = asyncio.ensure_future(awaitable)
        cancelled = False
        while True:
            try:
                return await asyncio.shield(future), cancelled
            except asyncio.CancelledError:
                if future.cancelled():
                    raise
                cancelled = True
                if on_cancel is not None:
                    on_cancel()

    def _collect_urls(self, session: UploadSession) -> AvatarUrls:
        urls = {kind: variant.url for kind, variant in session.variants.items()}
        full_url = urls[VariantKind.FULL]
        return AvatarUrls(
            thumbnail_url=urls[VariantKind.THUMBNAIL],
            medium_url=urls[VariantKind.MEDIUM],
            full_url=full_url,
            legacy_url=full_url,
        )

    def _cancelled_error(self, session: UploadSession) -> ClassifiedError:
        return self._classifier.build(
            ErrorKind.PARTIAL_UPLOAD_FAILURE,
            "Upload cancelled",
            details={"session_id": session.session_id, "cancelled": True},
        )

    def _fail(
        self,
        session: UploadSession,
        error: ClassifiedError,
        cause: BaseException | None = None,
    ) -> NoReturn:
        session.fail(error)
        logger.warning(
            "Upload session failed",
            extra={
                "user_id": session.user_id,
                "session_id": session.session_id,
                "error_kind": error.kind.value,
                "retryable": error.retryable,
            },
        )
        raise AvatarUploadError(error) from cause
