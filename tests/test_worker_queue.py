"""Tests for the serialized OCR worker queue."""

import asyncio
import threading
import time

import numpy as np
import pytest

from budget_digitizer.errors import OcrError, OcrFatalError, OcrTimeoutError, OcrTransientError
from budget_digitizer.ocr.tesseract_engine import DATA_URL_PREFIX, OcrProgress
from budget_digitizer.ocr.worker_queue import (
    ATTEMPT_ENCODINGS,
    InputEncoding,
    OcrWorkerQueue,
    WorkerState,
)


class FakeEngine:
    """Engine double recording every call.

    ``failures`` lists exceptions raised by successive ``recognize``
    calls; once exhausted the engine returns ``text``.
    """

    def __init__(
        self,
        progress_callback,
        failures: list[Exception] | None = None,
        text: str = "texto",
        delay: float = 0.0,
    ) -> None:
        self.progress_callback = progress_callback
        self.failures = list(failures or [])
        self.text = text
        self.delay = delay
        self.payloads: list[object] = []
        self.loaded = False
        self.language: str | None = None
        self.terminated = False
        self.started_at: float | None = None
        self.finished_at: float | None = None

    def load(self) -> None:
        self.loaded = True

    def load_language(self, language: str) -> None:
        self.language = language

    def initialize(self, language: str) -> None:
        pass

    def recognize(self, payload, timeout: float) -> str:
        self.payloads.append(payload)
        self.started_at = time.monotonic()
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.failures:
                raise self.failures.pop(0)
            self.progress_callback(OcrProgress(status="recognizing text", progress=0.5))
            return self.text
        finally:
            self.finished_at = time.monotonic()

    def terminate(self) -> None:
        self.terminated = True


class EngineFactory:
    """Builds fake engines from a list of per-engine settings."""

    def __init__(self, *settings: dict) -> None:
        self.settings = list(settings)
        self.engines: list[FakeEngine] = []

    def __call__(self, progress_callback) -> FakeEngine:
        kwargs = self.settings.pop(0) if self.settings else {}
        engine = FakeEngine(progress_callback, **kwargs)
        self.engines.append(engine)
        return engine


def _image(value: int = 0) -> np.ndarray:
    return np.full((8, 8, 3), value, dtype=np.uint8)


class TestSubmit:
    """Tests for successful recognition."""

    def test_returns_text_and_opens_session_lazily(self) -> None:
        factory = EngineFactory({"text": "Módulo Solar"})
        queue = OcrWorkerQueue(factory, language="por")
        assert queue.state == WorkerState.UNINITIALIZED
        assert factory.engines == []

        text = asyncio.run(queue.submit(_image()))

        assert text == "Módulo Solar"
        assert len(factory.engines) == 1
        assert factory.engines[0].loaded
        assert factory.engines[0].language == "por"
        assert queue.state == WorkerState.READY

    def test_session_reused(self) -> None:
        factory = EngineFactory()
        queue = OcrWorkerQueue(factory)

        async def run() -> None:
            await queue.submit(_image())
            await queue.submit(_image())

        asyncio.run(run())
        assert len(factory.engines) == 1
        assert len(factory.engines[0].payloads) == 2

    def test_buffer_copied_on_submit(self) -> None:
        factory = EngineFactory()
        queue = OcrWorkerQueue(factory)
        image = _image(7)

        asyncio.run(queue.submit(image))
        image[:] = 99

        payload = factory.engines[0].payloads[0]
        assert payload is not image
        assert np.all(payload == 7)

    def test_rejects_non_array(self) -> None:
        queue = OcrWorkerQueue(EngineFactory())
        with pytest.raises(OcrError):
            asyncio.run(queue.submit("not an image"))

    def test_progress_delivered_to_current_job(self) -> None:
        queue = OcrWorkerQueue(EngineFactory())
        events: list[OcrProgress] = []

        asyncio.run(queue.submit(_image(), on_progress=events.append))

        assert OcrProgress(status="recognizing text", progress=0.5) in events

    def test_progress_not_delivered_to_waiting_job(self) -> None:
        pending_seen: list[int] = []

        class EchoEngine(FakeEngine):
            def recognize(self, payload, timeout: float) -> str:
                value = int(payload[0, 0, 0])
                pending_seen.append(queue.pending)
                self.progress_callback(OcrProgress(status="recognizing text", progress=value))
                time.sleep(0.02)
                return str(value)

        queue = OcrWorkerQueue(lambda callback: EchoEngine(callback))
        first: list[OcrProgress] = []
        second: list[OcrProgress] = []

        async def run() -> list[str]:
            return await asyncio.gather(
                queue.submit(_image(10), on_progress=first.append),
                queue.submit(_image(200), on_progress=second.append),
            )

        assert asyncio.run(run()) == ["10", "200"]
        assert pending_seen == [1, 0]
        assert [event.progress for event in first] == [10]
        assert [event.progress for event in second] == [200]


class TestOrdering:
    """Tests for FIFO order and serialization."""

    def test_fifo_without_overlap(self) -> None:
        active = 0
        max_active = 0
        order: list[int] = []
        lock = threading.Lock()

        class TrackingEngine(FakeEngine):
            def recognize(self, payload, timeout: float) -> str:
                nonlocal active, max_active
                with lock:
                    active += 1
                    max_active = max(max_active, active)
                time.sleep(0.01)
                order.append(int(payload[0, 0, 0]))
                with lock:
                    active -= 1
                return str(int(payload[0, 0, 0]))

        queue = OcrWorkerQueue(lambda callback: TrackingEngine(callback))

        async def run() -> list[str]:
            return await asyncio.gather(*(queue.submit(_image(i)) for i in range(4)))

        results = asyncio.run(run())

        assert results == ["0", "1", "2", "3"]
        assert order == [0, 1, 2, 3]
        assert max_active == 1


class TestRecovery:
    """Tests for retries, timeouts and teardown."""

    def test_attempt_table(self) -> None:
        assert ATTEMPT_ENCODINGS == (
            InputEncoding.RAW,
            InputEncoding.CLONED,
            InputEncoding.DATA_URL,
        )

    def test_transient_escalates_through_encodings(self) -> None:
        failures = [OcrTransientError("bad transfer") for _ in range(3)]
        factory = EngineFactory({"failures": failures})
        queue = OcrWorkerQueue(factory)

        with pytest.raises(OcrFatalError) as exc_info:
            asyncio.run(queue.submit(_image(3)))

        payloads = factory.engines[0].payloads
        assert len(payloads) == 3
        assert isinstance(payloads[0], np.ndarray)
        assert isinstance(payloads[1], np.ndarray)
        assert payloads[1] is not payloads[0]
        assert np.array_equal(payloads[0], payloads[1])
        assert isinstance(payloads[2], str)
        assert payloads[2].startswith(DATA_URL_PREFIX)
        assert isinstance(exc_info.value.__cause__, OcrTransientError)
        assert factory.engines[0].terminated
        assert queue.state == WorkerState.FAULTED

    def test_transient_then_success(self) -> None:
        factory = EngineFactory({"failures": [OcrTransientError("once")], "text": "ok"})
        queue = OcrWorkerQueue(factory)

        assert asyncio.run(queue.submit(_image())) == "ok"
        assert len(factory.engines[0].payloads) == 2
        assert not factory.engines[0].terminated

    def test_timeout_tears_down_and_next_job_gets_fresh_session(self) -> None:
        factory = EngineFactory({"delay": 0.5}, {"text": "depois"})
        queue = OcrWorkerQueue(factory, timeout=0.05)

        async def run() -> str:
            with pytest.raises(OcrTimeoutError):
                await queue.submit(_image())
            assert queue.state == WorkerState.FAULTED
            return await queue.submit(_image())

        assert asyncio.run(run()) == "depois"
        assert len(factory.engines) == 2
        assert factory.engines[0].terminated
        assert len(factory.engines[0].payloads) == 1

    def test_abandoned_call_finishes_before_next_session(self) -> None:
        factory = EngineFactory({"delay": 0.3}, {"text": "depois"})
        queue = OcrWorkerQueue(factory, timeout=0.05)

        async def run() -> str:
            with pytest.raises(OcrTimeoutError):
                await queue.submit(_image())
            return await queue.submit(_image())

        assert asyncio.run(run()) == "depois"
        stalled, fresh = factory.engines
        assert stalled.finished_at is not None
        assert fresh.started_at >= stalled.finished_at

    def test_engine_timeout_error(self) -> None:
        factory = EngineFactory({"failures": [OcrTimeoutError("slow")]})
        queue = OcrWorkerQueue(factory)

        with pytest.raises(OcrTimeoutError):
            asyncio.run(queue.submit(_image()))
        assert factory.engines[0].terminated

    def test_other_errors_are_fatal_without_retry(self) -> None:
        factory = EngineFactory({"failures": [RuntimeError("boom")]})
        queue = OcrWorkerQueue(factory)

        with pytest.raises(OcrFatalError):
            asyncio.run(queue.submit(_image()))
        assert len(factory.engines[0].payloads) == 1
        assert factory.engines[0].terminated

    def test_load_failure_faults_session(self) -> None:
        class BrokenEngine(FakeEngine):
            def load(self) -> None:
                raise OSError("tesseract missing")

        queue = OcrWorkerQueue(lambda callback: BrokenEngine(callback))

        with pytest.raises(OcrFatalError):
            asyncio.run(queue.submit(_image()))
        assert queue.state == WorkerState.FAULTED


class TestClose:
    """Tests for queue shutdown."""

    def test_close_terminates_session(self) -> None:
        factory = EngineFactory()
        queue = OcrWorkerQueue(factory)

        async def run() -> None:
            await queue.submit(_image())
            await queue.close()

        asyncio.run(run())
        assert factory.engines[0].terminated
        assert queue.state == WorkerState.UNINITIALIZED

    def test_submit_after_close_rejected(self) -> None:
        queue = OcrWorkerQueue(EngineFactory())

        async def run() -> None:
            await queue.close()
            await queue.submit(_image())

        with pytest.raises(OcrError):
            asyncio.run(run())

    def test_open_starts_session(self) -> None:
        factory = EngineFactory()
        queue = OcrWorkerQueue(factory)

        asyncio.run(queue.open())
        assert queue.state == WorkerState.READY
        assert len(factory.engines) == 1
