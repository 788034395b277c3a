"""In-process job execution for relay-delivered events.

Applies the same policy the broker's workers use: bounded concurrency,
a shared per-second rate limit, and retries with backoff for transient
failures.
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

from ..errors import is_retryable
from .types import DEFAULT_JOB_OPTIONS, JobOptions, QueueEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, dict[str, Any]], Awaitable[Any]]


class RateLimiter:
    """
    Sliding-window limiter: at most ``max_jobs`` starts per ``window_seconds``.

    One instance is shared by every job a runner executes.
    """

    def __init__(self, max_jobs: int = 10, window_seconds: float = 1.0) -> None:
        if max_jobs < 1:
            raise ValueError("max_jobs must be at least 1")
        self.max_jobs = max_jobs
        self.window_seconds = window_seconds
        self._starts: deque[float] = deque()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a job may start, then record the start."""
        async with self._lock:
            while True:
                now = time.monotonic()
                while self._starts and now - self._starts[0] >= self.window_seconds:
                    self._starts.popleft()

                if len(self._starts) < self.max_jobs:
                    self._starts.append(now)
                    return

                await asyncio.sleep(self.window_seconds - (now - self._starts[0]))


class JobRunner:
    """
    Runs queue events through a handler with retries.

    ``attempts`` in the job options counts total tries. Retry ``n`` waits
    ``backoff.delay_for(n)`` milliseconds. Errors that cannot succeed on
    retry (see ``is_retryable``) fail the job immediately.
    """

    def __init__(
        self,
        handler: EventHandler,
        options: JobOptions = DEFAULT_JOB_OPTIONS,
        concurrency: int = 10,
        rate_limiter: RateLimiter | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the runner.

        Args:
            handler: Coroutine called with ``(event_name, data)``.
            options: Default job options; per-event options are merged on top.
            concurrency: Maximum number of handler calls in flight.
            rate_limiter: Shared limiter; defaults to 10 jobs per second.
            sleep: Sleep function used between retries.
        """
        self._handler = handler
        self._options = options
        self._semaphore = asyncio.Semaphore(concurrency)
        self._rate_limiter = rate_limiter or RateLimiter()
        self._sleep = sleep
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        """Number of submitted jobs that have not finished."""
        return len(self._tasks)

    async def run(self, event: QueueEvent, options: JobOptions | None = None) -> Any:
        """
        Run one event to completion.

        Returns:
            The handler's result.

        Raises:
            Exception: The last error once retries are exhausted, or the
                first non-retryable error.
        """
        job_options = self._options.merged_with(options)
        attempts = max(job_options.attempts or 1, 1)
        name = event.name.value

        for attempt in range(1, attempts + 1):
            current = replace(event, attempt_number=attempt)
            try:
                async with self._semaphore:
                    await self._rate_limiter.acquire()
                    return await self._handler(name, current.data)
            except Exception as e:
                if not is_retryable(e):
                    logger.error(
                        f"Job {name} failed with non-retryable error: "
                        f"{type(e).__name__}: {e}"
                    )
                    raise
                if attempt >= attempts:
                    logger.error(
                        f"Job {name} failed after {attempts} attempts: "
                        f"{type(e).__name__}: {e}"
                    )
                    raise

                delay_ms = job_options.backoff.delay_for(attempt) if job_options.backoff else 0
                logger.warning(
                    f"Job {name} failed (attempt {attempt}/{attempts}): {e}. "
                    f"Retrying in {delay_ms / 1000:.1f}s"
                )
                await self._sleep(delay_ms / 1000)

        raise RuntimeError("unreachable")

    def submit(self, event: QueueEvent, options: JobOptions | None = None) -> asyncio.Task[Any]:
        """Run an event in the background. Failures are logged by ``run``."""
        task = asyncio.create_task(self.run(event, options))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled():
            # Already logged in run(); retrieve so asyncio does not warn.
            task.exception()

    async def stop(self) -> None:
        """Wait for background jobs to finish."""
        if not self._tasks:
            return
        logger.info(f"Waiting for {len(self._tasks)} running jobs")
        await asyncio.gather(*self._tasks, return_exceptions=True)


class PeriodicTask:
    """
    Calls a coroutine function every ``interval_seconds`` until stopped.

    The first call happens one interval after ``start``. A failing call is
    logged and the schedule continues.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval_seconds: float,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.interval_seconds = interval_seconds
        self._func = func
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Scheduled {self.name} every {self.interval_seconds}s")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info(f"Stopped {self.name}")

    async def _run(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self._func()
            except Exception:
                logger.exception(f"Scheduled {self.name} failed")
