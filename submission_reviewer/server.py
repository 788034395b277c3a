"""FastAPI server for the submission reviewer."""

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, status
from pydantic import BaseModel, ValidationError

from .config import Settings
from .errors import QueueBackendUnavailable
from .metrics.accuracy import AccuracyValidator
from .queue.manager import QueueDispatcher, get_queue_config
from .queue.relay import LOCAL_EVENT_NAMES
from .queue.runner import JobRunner
from .queue.types import BatchReviewEvent, ContextGenerateEvent, QueueEvent, QueueEventName
from .review.providers import get_available_providers
from .storage import ReviewStore, SubmissionStore

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Submission Reviewer",
    description="AI review of bounty code submissions",
    version="0.1.0",
)

# Global dependencies - set at startup
_settings: Settings | None = None
_dispatcher: QueueDispatcher | None = None
_runner: JobRunner | None = None
_review_store: ReviewStore | None = None
_submission_store: SubmissionStore | None = None
_validator: AccuracyValidator | None = None


def init_app(
    settings: Settings,
    dispatcher: QueueDispatcher,
    runner: JobRunner,
    review_store: ReviewStore,
    submission_store: SubmissionStore,
    validator: AccuracyValidator,
) -> None:
    """Initialize the application with dependencies."""
    global _settings, _dispatcher, _runner, _review_store, _submission_store, _validator
    _settings = settings
    _dispatcher = dispatcher
    _runner = runner
    _review_store = review_store
    _submission_store = submission_store
    _validator = validator


def _require(value: Any) -> Any:
    if value is None:
        raise RuntimeError("Application not initialized")
    return value


def get_settings() -> Settings:
    return _require(_settings)


def get_dispatcher() -> QueueDispatcher:
    return _require(_dispatcher)


def get_runner() -> JobRunner:
    return _require(_runner)


def get_review_store() -> ReviewStore:
    return _require(_review_store)


def get_submission_store() -> SubmissionStore:
    return _require(_submission_store)


def get_validator() -> AccuracyValidator:
    return _require(_validator)


class IncomingEvent(BaseModel):
    """Event delivered by the relay, by relay name or local name."""

    name: str
    data: dict[str, Any] = {}


class ValidationRequest(BaseModel):
    submission_id: str
    ai_score: int
    ai_label: str
    human_score: int
    human_label: str


def resolve_event_name(name: str) -> QueueEventName | None:
    if name in LOCAL_EVENT_NAMES:
        return LOCAL_EVENT_NAMES[name]
    try:
        return QueueEventName(name)
    except ValueError:
        return None


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/queue/status")
async def queue_status() -> dict[str, Any]:
    """Get queue backend health and job counts."""
    dispatcher = get_dispatcher()
    health = await dispatcher.health_check()
    try:
        stats = await dispatcher.get_stats()
    except Exception as e:
        logger.error(f"Failed to get queue stats: {e}")
        stats = {"adapter": health["adapter"], "stats": None}
    return {
        **stats,
        "health": health,
        "config": get_queue_config(get_settings()),
        "running_jobs": get_runner().pending,
    }


@app.get("/providers")
async def providers() -> dict[str, Any]:
    """Report which AI providers have credentials."""
    settings = get_settings()
    return {
        "default_model": settings.ai_model,
        "providers": get_available_providers(settings),
    }


@app.post("/events", status_code=status.HTTP_202_ACCEPTED)
async def receive_event(event: IncomingEvent) -> dict[str, Any]:
    """Run a relay-delivered event in the background."""
    name = resolve_event_name(event.name)
    if name is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown event: {event.name}",
        )

    get_runner().submit(QueueEvent(name=name, data=event.data))
    logger.info(f"Accepted event {event.name} -> {name.value}")
    return {"status": "accepted", "event": name.value}


@app.post("/submissions", status_code=status.HTTP_202_ACCEPTED)
async def submit_for_review(payload: dict[str, Any]) -> dict[str, Any]:
    """Register a submission and queue it for review."""
    try:
        submission = ContextGenerateEvent.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        ) from e

    await get_submission_store().add(submission)

    try:
        job_id = await get_dispatcher().send_submission_for_review(submission)
    except QueueBackendUnavailable as e:
        logger.error(f"Failed to queue submission {submission.submission_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        ) from e

    return {
        "status": "queued",
        "submission_id": submission.submission_id,
        "job_id": job_id,
    }


@app.post("/batch-reviews", status_code=status.HTTP_202_ACCEPTED)
async def trigger_batch(payload: dict[str, Any]) -> dict[str, Any]:
    """Queue a batch review of a listing's pending submissions."""
    try:
        batch = BatchReviewEvent.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        ) from e

    try:
        job_id = await get_dispatcher().trigger_batch_review(batch)
    except QueueBackendUnavailable as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        ) from e

    return {"status": "queued", "listing_id": batch.listing_id, "job_id": job_id}


@app.get("/reviews/{submission_id}")
async def get_review(submission_id: str) -> dict[str, Any]:
    """Get the stored review for a submission."""
    stored = await get_review_store().get_review(submission_id)
    if stored is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No review for submission {submission_id}",
        )
    return stored.to_dict()


@app.get("/metrics/accuracy")
async def accuracy_metrics(details: bool = False) -> dict[str, Any]:
    """AI review accuracy against human reviews."""
    validator = get_validator()
    response: dict[str, Any] = {
        "accuracy": (await validator.get_accuracy_summary()).to_dict()
    }
    if details:
        response["details"] = (await validator.calculate_accuracy_metrics()).to_dict()
    return response


@app.post("/metrics/validations", status_code=status.HTTP_201_CREATED)
async def record_validation(request: ValidationRequest) -> dict[str, Any]:
    """Record a human review for comparison with the AI review."""
    record = await get_validator().record_validation(
        submission_id=request.submission_id,
        ai_score=request.ai_score,
        ai_label=request.ai_label,
        human_score=request.human_score,
        human_label=request.human_label,
    )
    return record.to_dict()
