"""Entry point for the submission reviewer."""

import logging
import sys

import uvicorn
from dotenv import load_dotenv

from .config import Settings
from .github.fetcher import GitHubFetcher
from .metrics.accuracy import AccuracyValidator
from .pipeline import ReviewPipeline
from .queue.broker import BullMQAdapter
from .queue.manager import QueueDispatcher, create_queue_adapter
from .queue.runner import JobRunner, PeriodicTask
from .queue.types import QUEUE_NAMES
from .server import app, init_app
from .storage import InMemoryReviewStore, InMemorySubmissionStore, InMemoryValidationStore


def main() -> None:
    """Run the submission reviewer server and its workers."""
    # Load .env from current working directory
    load_dotenv(".env", override=False)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger = logging.getLogger(__name__)

    try:
        settings = Settings.from_env()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    # The adapter is chosen once per process and shared from here on.
    adapter = create_queue_adapter(settings)
    dispatcher = QueueDispatcher(adapter)

    review_store = InMemoryReviewStore()
    submission_store = InMemorySubmissionStore()
    validator = AccuracyValidator(InMemoryValidationStore())

    pipeline = ReviewPipeline(
        fetcher=GitHubFetcher(token=settings.github_token or None),
        store=review_store,
        dispatcher=dispatcher,
        settings=settings,
        submissions=submission_store,
    )
    runner = JobRunner(pipeline.handle_event, concurrency=settings.worker_concurrency)
    sweeper = (
        PeriodicTask(
            "pending review sweep",
            pipeline.sweep_pending,
            settings.sweep_interval_seconds,
        )
        if settings.sweep_interval_seconds > 0
        else None
    )

    init_app(settings, dispatcher, runner, review_store, submission_store, validator)

    @app.on_event("startup")
    async def startup_event() -> None:
        """Start broker workers and the pending-review sweep."""
        if isinstance(adapter, BullMQAdapter):
            for queue_name in QUEUE_NAMES.values():
                adapter.register_worker(
                    queue_name, pipeline.process_job, settings.worker_concurrency
                )
        if sweeper is not None:
            sweeper.start()
        health = await dispatcher.health_check()
        logger.info(f"Submission reviewer started ({health['adapter']}: {health['details']})")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """Drain in-process jobs and close queue connections."""
        if sweeper is not None:
            await sweeper.stop()
        await runner.stop()
        await dispatcher.close()
        logger.info("Submission reviewer stopped")

    logger.info(f"Starting submission reviewer on {settings.host}:{settings.port}")

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
