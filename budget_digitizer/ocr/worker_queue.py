"""Serialized OCR job queue over a single engine session.

The engine session is not reentrant, so jobs are queued FIFO and a
single drain task runs them one at a time. The session is opened lazily
on the first job and torn down after timeouts and fatal errors, so the
next job always starts on a clean session.
"""

import asyncio
import itertools
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

import numpy as np

from budget_digitizer.errors import (
    OcrError,
    OcrFatalError,
    OcrTimeoutError,
    OcrTransientError,
)
from budget_digitizer.utils.logger import get_logger

from .tesseract_engine import OcrEngine, OcrProgress, ProgressCallback, encode_data_url

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0

EngineFactory = Callable[[ProgressCallback], OcrEngine]


class WorkerState(StrEnum):
    """Lifecycle of the engine session."""

    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    BUSY = "busy"
    FAULTED = "faulted"


class InputEncoding(StrEnum):
    """Payload shape handed to the engine on each attempt."""

    RAW = "raw"
    CLONED = "cloned"
    DATA_URL = "data-url"


# attempt number -> encoding; the retry loop never runs past this table
ATTEMPT_ENCODINGS: tuple[InputEncoding, ...] = (
    InputEncoding.RAW,
    InputEncoding.CLONED,
    InputEncoding.DATA_URL,
)


@dataclass
class OcrJob:
    """One queued recognition request."""

    job_id: int
    image: np.ndarray
    future: asyncio.Future
    on_progress: ProgressCallback | None = None
    attempt: int = 0


class OcrWorkerQueue:
    """FIFO OCR queue owning one lazily created engine session.

    Args:
        engine_factory: Builds a fresh engine; receives the progress
            callback the engine must report through.
        language: Language model loaded into every session.
        timeout: Seconds allowed for one recognition attempt.
    """

    def __init__(
        self,
        engine_factory: EngineFactory,
        language: str = "por",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.engine_factory = engine_factory
        self.language = language
        self.timeout = timeout
        self._engine: OcrEngine | None = None
        self._state = WorkerState.UNINITIALIZED
        self._jobs: deque[OcrJob] = deque()
        self._current: OcrJob | None = None
        self._drain_task: asyncio.Task | None = None
        self._inflight: asyncio.Future | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._ids = itertools.count(1)
        self._closed = False

    @property
    def state(self) -> WorkerState:
        """Current session state."""
        return self._state

    @property
    def pending(self) -> int:
        """Number of jobs waiting behind the running one."""
        return len(self._jobs)

    async def open(self) -> None:
        """Open the engine session now instead of on the first job."""
        self._loop = asyncio.get_running_loop()
        await self._ensure_session()

    async def close(self) -> None:
        """Reject waiting jobs and terminate the engine session."""
        self._closed = True
        if self.pending:
            logger.info("Closing OCR queue, rejecting %d waiting jobs", self.pending)
        while self._jobs:
            job = self._jobs.popleft()
            if not job.future.done():
                job.future.set_exception(OcrError("OCR queue closed"))
        if self._drain_task is not None and not self._drain_task.done():
            await asyncio.gather(self._drain_task, return_exceptions=True)
        await self._teardown()
        self._state = WorkerState.UNINITIALIZED

    async def submit(
        self, image: np.ndarray, on_progress: ProgressCallback | None = None
    ) -> str:
        """Queue an image for recognition and wait for its text.

        The image is copied on submission; the caller may reuse its buffer.

        Args:
            image: Pixel array to recognize.
            on_progress: Invoked with engine progress while this job runs.

        Returns:
            Recognized text.

        Raises:
            OcrTimeoutError: If recognition exceeded the timeout.
            OcrFatalError: If recognition failed after all attempts.
        """
        if not isinstance(image, np.ndarray):
            raise OcrError("Invalid OCR input: expected a pixel array")
        if self._closed:
            raise OcrError("OCR queue closed")

        loop = asyncio.get_running_loop()
        if self._loop is not loop:
            # a drain task bound to another event loop never runs here
            self._drain_task = None
            self._inflight = None
            self._loop = loop
        job = OcrJob(
            job_id=next(self._ids),
            image=image.copy(),
            future=self._loop.create_future(),
            on_progress=on_progress,
        )
        self._jobs.append(job)
        logger.debug("Queued OCR job %d (%d waiting)", job.job_id, self.pending)
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.create_task(self._drain())
        return await job.future

    async def _drain(self) -> None:
        while self._jobs:
            job = self._jobs.popleft()
            if job.future.done():
                continue
            self._current = job
            try:
                text = await self._run(job)
            except OcrError as exc:
                if not job.future.done():
                    job.future.set_exception(exc)
            else:
                if not job.future.done():
                    job.future.set_result(text)
            finally:
                self._current = None

    async def _run(self, job: OcrJob) -> str:
        last_error: OcrTransientError | None = None
        for attempt, encoding in enumerate(ATTEMPT_ENCODINGS):
            job.attempt = attempt
            try:
                engine = await self._ensure_session()
                payload = self._encode(job.image, encoding)
                self._state = WorkerState.BUSY
                # shielded so a timed-out call stays awaitable by _teardown
                self._inflight = asyncio.ensure_future(
                    asyncio.to_thread(engine.recognize, payload, self.timeout)
                )
                text = await asyncio.wait_for(
                    asyncio.shield(self._inflight), timeout=self.timeout
                )
            except OcrTransientError as exc:
                self._state = WorkerState.READY
                last_error = exc
                logger.warning(
                    "OCR job %d attempt %d (%s) failed to transfer image: %s",
                    job.job_id,
                    attempt,
                    encoding,
                    exc,
                )
                continue
            except (OcrTimeoutError, TimeoutError) as exc:
                logger.error("OCR job %d timed out after %.0fs", job.job_id, self.timeout)
                await self._teardown()
                raise OcrTimeoutError("Tempo limite excedido no OCR") from exc
            except OcrFatalError:
                await self._teardown()
                raise
            except Exception as exc:
                logger.error("OCR job %d failed: %s", job.job_id, exc)
                await self._teardown()
                raise OcrFatalError(f"OCR failed: {exc}") from exc

            self._state = WorkerState.READY
            logger.debug("OCR job %d done on attempt %d", job.job_id, attempt)
            return text

        await self._teardown()
        raise OcrFatalError(
            f"OCR failed after {len(ATTEMPT_ENCODINGS)} attempts"
        ) from last_error

    @staticmethod
    def _encode(image: np.ndarray, encoding: InputEncoding) -> np.ndarray | str:
        if encoding is InputEncoding.RAW:
            return image
        if encoding is InputEncoding.CLONED:
            return np.array(image, copy=True)
        try:
            return encode_data_url(image)
        except (ValueError, TypeError, OSError) as exc:
            raise OcrTransientError(f"Could not encode image as PNG: {exc}") from exc

    async def _ensure_session(self) -> OcrEngine:
        if self._engine is not None and self._state in (WorkerState.READY, WorkerState.BUSY):
            return self._engine

        self._state = WorkerState.LOADING
        engine = self.engine_factory(self._dispatch_progress)
        try:
            await asyncio.to_thread(engine.load)
            await asyncio.to_thread(engine.load_language, self.language)
            await asyncio.to_thread(engine.initialize, self.language)
        except OcrError:
            self._state = WorkerState.FAULTED
            raise
        except Exception as exc:
            self._state = WorkerState.FAULTED
            raise OcrFatalError(f"Could not start OCR engine: {exc}") from exc

        self._engine = engine
        self._state = WorkerState.READY
        logger.info("OCR session ready (language=%s)", self.language)
        return engine

    async def _teardown(self) -> None:
        """Terminate the session and wait for its last recognition call.

        A call abandoned by the timeout keeps running in its worker thread
        until pytesseract kills the tesseract process, so the next session
        only starts once that thread is done.
        """
        engine, self._engine = self._engine, None
        inflight, self._inflight = self._inflight, None
        self._state = WorkerState.FAULTED
        if engine is not None:
            try:
                await asyncio.to_thread(engine.terminate)
            except Exception as exc:
                logger.warning("Error while terminating OCR session: %s", exc)
        if inflight is not None and not inflight.done():
            logger.warning("Waiting for an abandoned OCR call to exit")
            await asyncio.gather(inflight, return_exceptions=True)

    def _dispatch_progress(self, update: OcrProgress) -> None:
        job = self._current
        if job is None or job.on_progress is None or self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._deliver_progress, job, update)

    def _deliver_progress(self, job: OcrJob, update: OcrProgress) -> None:
        if self._current is not job or job.on_progress is None:
            return
        job.on_progress(update)
