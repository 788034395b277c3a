"""Tests for the in-process job runner."""

import asyncio
import time
from unittest.mock import AsyncMock

import pytest

from submission_reviewer.errors import ExternalFetchError, ProviderError, ProviderNotConfigured
from submission_reviewer.queue import (
    BackoffOptions,
    JobOptions,
    JobRunner,
    PeriodicTask,
    QueueEvent,
    QueueEventName,
    RateLimiter,
)


def event() -> QueueEvent:
    return QueueEvent(name=QueueEventName.CONTEXT_GENERATE, data={"submissionId": "s1"})


def recording_sleep(delays: list[float]):
    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    return sleep


class TestJobRunner:
    """Tests for retries, backoff and background execution."""

    @pytest.mark.asyncio
    async def test_success_returns_handler_result(self) -> None:
        handler = AsyncMock(return_value={"ok": True})
        runner = JobRunner(handler)

        assert await runner.run(event()) == {"ok": True}
        handler.assert_awaited_once_with("github.context.generate", {"submissionId": "s1"})

    @pytest.mark.asyncio
    async def test_retries_with_exponential_backoff(self) -> None:
        delays: list[float] = []
        handler = AsyncMock(
            side_effect=[ProviderError("busy", 429, True), ProviderError("busy", 500), "done"]
        )
        runner = JobRunner(handler, sleep=recording_sleep(delays))

        assert await runner.run(event()) == "done"
        assert handler.await_count == 3
        assert delays == [5.0, 10.0]

    @pytest.mark.asyncio
    async def test_raises_after_attempts_exhausted(self) -> None:
        delays: list[float] = []
        handler = AsyncMock(side_effect=ProviderError("down", 503))
        runner = JobRunner(handler, sleep=recording_sleep(delays))

        with pytest.raises(ProviderError):
            await runner.run(event())

        assert handler.await_count == 3
        assert delays == [5.0, 10.0]

    @pytest.mark.asyncio
    async def test_non_retryable_error_fails_immediately(self) -> None:
        delays: list[float] = []
        handler = AsyncMock(side_effect=ProviderNotConfigured("openai", "OPENAI_API_KEY"))
        runner = JobRunner(handler, sleep=recording_sleep(delays))

        with pytest.raises(ProviderNotConfigured):
            await runner.run(event())

        assert handler.await_count == 1
        assert delays == []

    @pytest.mark.asyncio
    async def test_missing_repository_not_retried(self) -> None:
        handler = AsyncMock(side_effect=ExternalFetchError("gone", "not_found"))
        runner = JobRunner(handler, sleep=recording_sleep([]))

        with pytest.raises(ExternalFetchError):
            await runner.run(event())

        assert handler.await_count == 1

    @pytest.mark.asyncio
    async def test_per_event_options_override_defaults(self) -> None:
        delays: list[float] = []
        handler = AsyncMock(side_effect=RuntimeError("flaky"))
        runner = JobRunner(handler, sleep=recording_sleep(delays))

        with pytest.raises(RuntimeError):
            await runner.run(
                event(),
                JobOptions(attempts=2, backoff=BackoffOptions(type="fixed", delay=1000)),
            )

        assert delays == [1.0]

    @pytest.mark.asyncio
    async def test_submit_and_stop(self) -> None:
        handler = AsyncMock(side_effect=[ProviderNotConfigured("x", "X"), "ok"])
        runner = JobRunner(handler)

        failing = runner.submit(event())
        succeeding = runner.submit(event())
        assert runner.pending == 2

        await runner.stop()

        assert runner.pending == 0
        assert isinstance(failing.exception(), ProviderNotConfigured)
        assert succeeding.result() == "ok"


class TestRateLimiter:
    """Tests for the sliding-window rate limiter."""

    def test_rejects_zero_limit(self) -> None:
        with pytest.raises(ValueError):
            RateLimiter(max_jobs=0)

    @pytest.mark.asyncio
    async def test_limits_starts_per_window(self) -> None:
        limiter = RateLimiter(max_jobs=2, window_seconds=0.2)

        start = time.monotonic()
        await asyncio.gather(*(limiter.acquire() for _ in range(3)))
        elapsed = time.monotonic() - start

        assert elapsed >= 0.15

    @pytest.mark.asyncio
    async def test_under_limit_does_not_wait(self) -> None:
        limiter = RateLimiter(max_jobs=10, window_seconds=5.0)

        start = time.monotonic()
        for _ in range(10):
            await limiter.acquire()

        assert time.monotonic() - start < 1.0


class TestPeriodicTask:
    """Tests for the interval scheduler."""

    def test_interval_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            PeriodicTask("sweep", AsyncMock(), 0)

    @pytest.mark.asyncio
    async def test_runs_until_stopped(self) -> None:
        func = AsyncMock()
        task = PeriodicTask("sweep", func, 0.01)

        task.start()
        await asyncio.sleep(0.1)
        await task.stop()
        calls = func.await_count
        await asyncio.sleep(0.05)

        assert calls >= 2
        assert func.await_count == calls
        assert task.running is False

    @pytest.mark.asyncio
    async def test_first_run_waits_one_interval(self) -> None:
        func = AsyncMock()
        task = PeriodicTask("sweep", func, 60)

        task.start()
        await asyncio.sleep(0)
        await task.stop()

        func.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_schedule(self) -> None:
        calls: list[int] = []

        async def flaky() -> None:
            calls.append(len(calls))
            if len(calls) == 1:
                raise RuntimeError("store down")

        task = PeriodicTask("sweep", flaky, 0.01)

        task.start()
        await asyncio.sleep(0.1)
        await task.stop()

        assert len(calls) >= 2
