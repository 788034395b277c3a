"""Redis-backed queue adapter built on BullMQ."""

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from bullmq import Job, Queue, Worker
from redis.exceptions import RedisError

from ..errors import QueueBackendUnavailable
from .types import (
    DEFAULT_JOB_OPTIONS,
    QUEUE_NAMES,
    JobOptions,
    QueueEvent,
    QueueStats,
    queue_for_event,
)

logger = logging.getLogger(__name__)

# At most 10 jobs per second across a worker, for GitHub and provider limits.
WORKER_LIMITER = {"max": 10, "duration": 1000}

JobProcessor = Callable[[Job, str], Awaitable[Any]]


class BullMQAdapter:
    """
    Queue adapter with one BullMQ queue per job type.

    Queues are created lazily on first use. Workers are registered
    explicitly per queue and share the adapter's Redis connection string.
    """

    name = "BullMQ"

    def __init__(self, redis_url: str) -> None:
        if not redis_url:
            raise QueueBackendUnavailable("REDIS_URL is required for BullMQ", "BullMQ")
        self._redis_url = redis_url
        self._queues: dict[str, Queue] = {}
        self._workers: dict[str, Worker] = {}
        self._initialized = False
        self._last_error: str | None = None

    @property
    def last_error(self) -> str | None:
        """Message of the most recent failed connection check, if any."""
        return self._last_error

    def initialize(self) -> None:
        """Create the queues. Safe to call more than once."""
        if self._initialized:
            return

        for queue_name in QUEUE_NAMES.values():
            self._queues[queue_name] = Queue(
                queue_name, {"connection": self._redis_url}
            )

        self._initialized = True
        logger.info(f"BullMQ initialized with queues: {list(self._queues)}")

    def get_queue(self, name: str) -> Queue | None:
        return self._queues.get(name)

    async def send(self, event: QueueEvent, options: JobOptions | None = None) -> str:
        self.initialize()

        queue_name = queue_for_event(event.name)
        queue = self._queues.get(queue_name)
        if queue is None:
            raise QueueBackendUnavailable(
                f"Queue not found for event: {event.name.value}", self.name
            )

        job_options = DEFAULT_JOB_OPTIONS.merged_with(options)
        try:
            job = await queue.add(event.name.value, event.data, job_options.to_bullmq())
        except (RedisError, OSError) as e:
            raise QueueBackendUnavailable(
                f"Failed to add {event.name.value} to {queue_name}: {e}", self.name
            ) from e

        logger.info(f"Job added: {event.name.value} -> {job.id}")
        return str(job.id or "")

    async def send_batch(
        self, events: Sequence[QueueEvent], options: JobOptions | None = None
    ) -> list[str]:
        return [await self.send(event, options) for event in events]

    async def is_connected(self) -> bool:
        try:
            self.initialize()
            queue = self._queues[QUEUE_NAMES["review"]]
            await queue.getJobCounts("waiting")
        except Exception as e:
            self._last_error = str(e) or type(e).__name__
            logger.error(f"BullMQ connection check failed: {self._last_error}")
            return False
        self._last_error = None
        return True

    async def get_queue_stats(self) -> QueueStats:
        self.initialize()

        stats = QueueStats()
        for queue in self._queues.values():
            try:
                counts = await queue.getJobCounts(
                    "waiting", "active", "completed", "failed"
                )
            except (RedisError, OSError) as e:
                raise QueueBackendUnavailable(
                    f"Failed to read job counts: {e}", self.name
                ) from e
            stats.waiting += counts.get("waiting", 0)
            stats.active += counts.get("active", 0)
            stats.completed += counts.get("completed", 0)
            stats.failed += counts.get("failed", 0)
        return stats

    def register_worker(
        self,
        queue_name: str,
        processor: JobProcessor,
        concurrency: int = 5,
    ) -> Worker:
        """
        Start a worker on one queue.

        Args:
            queue_name: One of the names in ``QUEUE_NAMES``.
            processor: Coroutine called with ``(job, token)`` for every job.
            concurrency: Jobs processed at once by this worker.

        Returns:
            The running worker.
        """
        self.initialize()

        worker = Worker(
            queue_name,
            processor,
            {
                "connection": self._redis_url,
                "concurrency": concurrency,
                "limiter": WORKER_LIMITER,
            },
        )

        def on_completed(job: Job, result: Any) -> None:
            logger.info(f"Job completed: {job.id}")

        def on_failed(job: Job, error: Exception) -> None:
            job_id = job.id if job else None
            logger.error(f"Job failed: {job_id}: {error}")

        worker.on("completed", on_completed)
        worker.on("failed", on_failed)

        self._workers[queue_name] = worker
        logger.info(f"Worker registered for queue: {queue_name}")
        return worker

    async def close(self) -> None:
        for worker in self._workers.values():
            await worker.close()
        for queue in self._queues.values():
            await queue.close()

        self._workers.clear()
        self._queues.clear()
        self._initialized = False
        logger.info("All BullMQ connections closed")
