import asyncio
import logging
import time
from typing import Callable

import httpx

from lecture_notes.config import settings
from lecture_notes.errors import PollingTimeout, ProviderError, TranscriptionFailed
from lecture_notes.models import TranscriptResult
from lecture_notes.services.status import StatusService

logger = logging.getLogger(__name__)


class TranscriptionPoller:
    """Caller-owned polling loop around ``StatusService.check``.

    Polls are strictly sequential: the next one is only scheduled after the
    previous call resolved.  ``cancel()`` stops further polls; a call already
    in flight is allowed to finish and its result is discarded.
    """

    def __init__(
        self,
        status: StatusService,
        *,
        interval: float | None = None,
        max_duration: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.status = status
        self.interval = settings.poll_interval_seconds if interval is None else interval
        self.max_duration = settings.max_polling_seconds if max_duration is None else max_duration
        self._clock = clock
        self._cancelled = asyncio.Event()
        self.polls = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    async def _wait(self) -> None:
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            pass

    async def run(self, job_id: str) -> TranscriptResult | None:
        """Poll until the job completes. Returns None when cancelled.

        Raises TranscriptionFailed when the provider reports an error and
        PollingTimeout when ``max_duration`` elapses first.
        """
        started = self._clock()
        while not self.cancelled:
            if self.max_duration is not None and self._clock() - started > self.max_duration:
                raise PollingTimeout(
                    f"Transcription timed out after {self.max_duration / 60:g} minutes"
                )

            self.polls += 1
            try:
                result = await self.status.check(job_id)
            except (httpx.HTTPError, ProviderError) as exc:
                logger.warning("Status check for %s failed, will retry: %s", job_id, exc)
                result = None

            if self.cancelled:
                logger.info("Polling for %s cancelled; discarding in-flight result", job_id)
                return None
            if result is not None and result.status == "completed":
                return result.transcript
            if result is not None and result.status == "error":
                raise TranscriptionFailed(
                    result.error or "Transcription failed", result.error_type or "unknown_error"
                )

            await self._wait()
        return None
