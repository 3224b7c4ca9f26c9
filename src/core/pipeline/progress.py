"""Ordered, monotonic progress delivery for one upload session."""

import asyncio
import inspect
from collections.abc import Awaitable, Callable

from aws_lambda_powertools import Logger

from core.models.session import ProgressEvent, UploadState

logger = Logger(UTC=True)

ProgressCallback = Callable[[ProgressEvent], Awaitable[None] | None]


class ProgressReporter:
    """Wraps the caller's progress callback.

    Events are delivered one at a time in emission order and `percent` never
    decreases, even when an upload phase is restarted.
    """

    def __init__(self, callback: ProgressCallback | None = None) -> None:
        self._callback = callback
        self._lock = asyncio.Lock()
        self._percent = 0
        self.events: list[ProgressEvent] = []

    @property
    def percent(self) -> int:
        return self._percent

    async def emit(self, stage: UploadState, percent: int, message: str) -> ProgressEvent:
        async with self._lock:
            self._percent = min(100, max(self._percent, percent))
            event = ProgressEvent(stage=stage, percent=self._percent, message=message)
            self.events.append(event)
            await self._deliver(event)
            return event

    async def _deliver(self, event: ProgressEvent) -> None:
        if self._callback is None:
            return
        try:
            result = self._callback(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            # A broken listener must not fail the upload
            logger.exception(
                "Progress callback raised",
                extra={"stage": event.stage.value, "percent": event.percent},
            )
