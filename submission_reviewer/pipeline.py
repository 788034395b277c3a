"""Job handlers: turn queue events into persisted, labelled reviews."""

import logging
import time
from typing import Any

import httpx
from bullmq import UnrecoverableError

from .config import Settings
from .errors import is_retryable
from .github.fetcher import GitHubFetcher, language_from_path, parse_github_url
from .models import BountyContext, CodeContext, KeyFile, PullRequestContext, RepositoryContext
from .queue.manager import QueueDispatcher
from .queue.types import (
    BatchReviewEvent,
    ContextGenerateEvent,
    QueueEventName,
    ReviewCompletedEvent,
    ReviewSingleEvent,
)
from .review.aggregator import aggregate_chunk_analyses
from .review.chunker import chunk_code_for_analysis, total_tokens
from .review.generator import generate_review
from .review.labels import map_label
from .review.providers import ReviewModelClient
from .review.schema import GeneratedReview
from .storage import ReviewStore, SubmissionStore

logger = logging.getLogger(__name__)

SWEEP_LIMIT = 50


class ReviewPipeline:
    """
    Runs one submission through fetch, review, label, persist and notify.

    Steps run strictly in sequence and chunk reviews are generated one at
    a time. A retried job restarts from the top; a submission that already
    has a stored review is skipped.
    """

    def __init__(
        self,
        fetcher: GitHubFetcher,
        store: ReviewStore,
        dispatcher: QueueDispatcher,
        settings: Settings,
        submissions: SubmissionStore | None = None,
        model_client: ReviewModelClient | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            fetcher: Source of repository and pull request snapshots.
            store: Review persistence (insert-or-ignore).
            dispatcher: Used to emit completion events and fan out batches.
            settings: Model defaults, credentials and chunk budget.
            submissions: Known submissions, required for batch reviews.
            model_client: Optional fixed model client (bypasses provider lookup).
            http_client: Optional httpx client for OpenAI-compatible providers.
        """
        self._fetcher = fetcher
        self._store = store
        self._dispatcher = dispatcher
        self._settings = settings
        self._submissions = submissions
        self._model_client = model_client
        self._http_client = http_client

    async def _fetch_context(self, github_url: str) -> CodeContext:
        target = parse_github_url(github_url)

        if target.type == "pr":
            pr = await self._fetcher.fetch_pr_data(github_url)
            return PullRequestContext(
                diff=pr.diff,
                pr_title=pr.title,
                pr_description=pr.description,
                commits=pr.commits,
                key_files=[
                    KeyFile(
                        path=f.filename,
                        language=language_from_path(f.filename),
                        content=f.patch or "",
                        importance="high",
                    )
                    for f in pr.changed_files
                ],
            )

        repo = await self._fetcher.fetch_repository_data(github_url)
        return RepositoryContext(file_tree=repo.file_tree, key_files=repo.key_files)

    async def _generate(
        self, bounty: BountyContext, code: CodeContext, model_id: str | None
    ) -> GeneratedReview:
        return await generate_review(
            bounty,
            code,
            model_id,
            settings=self._settings,
            client=self._model_client,
            http_client=self._http_client,
        )

    async def review_code(
        self, bounty: BountyContext, code: CodeContext, model_id: str | None = None
    ) -> GeneratedReview:
        """Review a code context, chunking large repositories."""
        budget = self._settings.max_tokens_per_chunk
        tokens = total_tokens(code.key_files)

        if code.type != "repository" or tokens <= budget:
            return await self._generate(bounty, code, model_id)

        chunks = chunk_code_for_analysis(code.key_files, budget)
        logger.info(f"Splitting {tokens} tokens into {len(chunks)} chunks")

        results: list[GeneratedReview] = []
        for chunk in chunks:
            chunk_context = RepositoryContext(
                file_tree=code.file_tree, key_files=chunk.files
            )
            results.append(await self._generate(bounty, chunk_context, model_id))

        return aggregate_chunk_analyses(results, bounty)

    async def process_submission(self, event: ContextGenerateEvent) -> dict[str, Any]:
        """
        Review one submission end to end.

        Returns:
            A JSON-serializable job result.

        Raises:
            ExternalFetchError: If the code snapshot cannot be fetched.
            ProviderNotConfigured: If the model's provider has no credential.
            ProviderError: If the model call fails.
            SchemaValidationError: If the model output does not match the schema.
        """
        start = time.monotonic()
        submission_id = event.submission_id

        existing = await self._store.get_review(submission_id)
        if existing is not None:
            logger.info(f"Submission {submission_id} already reviewed, skipping")
            return {
                "success": True,
                "skipped": True,
                "submission_id": submission_id,
                "review_id": existing.review_id,
                "score": existing.review.overall_score,
            }

        bounty = BountyContext(
            title=event.bounty_title or "",
            description=event.bounty_description or "",
            requirements=list(event.requirements),
            tech_stack=list(event.tech_stack),
        )

        logger.info(f"Reviewing submission {submission_id}: {event.github_url}")
        code = await self._fetch_context(event.github_url)
        review = await self.review_code(bounty, code, event.model)
        label = map_label(review.overall_score, review.suggested_labels)

        review_id: str | None = None
        try:
            stored = await self._store.save_review(submission_id, review, label)
            review_id = stored.review_id
        except Exception as e:
            logger.error(f"Failed to persist review for {submission_id}: {e}")

        processing_time_ms = int((time.monotonic() - start) * 1000)

        completed = ReviewCompletedEvent(
            submission_id=submission_id,
            external_id=event.external_id,
            listing_id=event.listing_id,
            review_id=review_id,
            score=review.overall_score,
            label=label.value,
            labels=list(review.suggested_labels),
            summary=review.summary,
            confidence=review.confidence,
            processing_time_ms=processing_time_ms,
            model_used=review.model_used,
        )
        try:
            await self._dispatcher.notify_review_completed(completed)
        except Exception as e:
            logger.error(f"Failed to send completion event for {submission_id}: {e}")

        logger.info(
            f"Submission {submission_id} reviewed: score={review.overall_score}, "
            f"label={label.value}, {processing_time_ms}ms"
        )

        return {
            "success": True,
            "submission_id": submission_id,
            "review_id": review_id,
            "score": review.overall_score,
            "label": label.value,
            "labels": list(review.suggested_labels),
            "processing_time_ms": processing_time_ms,
            "model_used": review.model_used,
        }

    async def process_batch(self, event: BatchReviewEvent) -> dict[str, Any]:
        """Queue a review for every pending submission in a listing."""
        known = (
            await self._submissions.list_for_listing(event.listing_id)
            if self._submissions is not None
            else []
        )
        if event.submission_ids:
            wanted = set(event.submission_ids)
            known = [s for s in known if s.submission_id in wanted]

        pending = [
            s for s in known if await self._store.get_review(s.submission_id) is None
        ]

        job_ids = (
            await self._dispatcher.send_submissions_for_review(pending) if pending else []
        )

        logger.info(
            f"Batch review for listing {event.listing_id} "
            f"({event.triggered_by}): triggered {len(pending)}"
        )

        return {
            "triggered": len(pending),
            "submission_ids": [s.submission_id for s in pending],
            "job_ids": job_ids,
        }

    async def sweep_pending(self, limit: int = SWEEP_LIMIT) -> dict[str, Any]:
        """
        Trigger batch reviews for submissions that still have no review.

        At most ``limit`` pending submissions are picked up per sweep. They
        are grouped by listing and one batch event is sent per listing.
        """
        if self._submissions is None:
            return {"processed": 0, "listings": 0}

        pending: list[ContextGenerateEvent] = []
        for s in await self._submissions.list_all():
            if len(pending) >= limit:
                break
            if await self._store.get_review(s.submission_id) is None:
                pending.append(s)

        by_listing: dict[str, list[str]] = {}
        for s in pending:
            by_listing.setdefault(s.listing_id, []).append(s.submission_id)

        for listing_id, submission_ids in by_listing.items():
            await self._dispatcher.trigger_batch_review(
                BatchReviewEvent(
                    listing_id=listing_id,
                    submission_ids=submission_ids,
                    triggered_by="cron",
                )
            )

        if pending:
            logger.info(
                f"Sweep triggered {len(pending)} pending submissions "
                f"across {len(by_listing)} listings"
            )
        return {"processed": len(pending), "listings": len(by_listing)}

    async def handle_event(self, name: str, data: dict[str, Any]) -> dict[str, Any]:
        """Route a queue event to its handler."""
        if name == QueueEventName.CONTEXT_GENERATE:
            return await self.process_submission(ContextGenerateEvent.model_validate(data))
        if name == QueueEventName.REVIEW_SINGLE:
            single = ReviewSingleEvent.model_validate(data)
            return await self.process_submission(single.to_context_event())
        if name == QueueEventName.REVIEW_BATCH:
            return await self.process_batch(BatchReviewEvent.model_validate(data))
        if name == QueueEventName.REVIEW_COMPLETED:
            logger.info(f"Review completed: {data.get('submissionId')}")
            return {"status": "acknowledged"}

        logger.warning(f"Ignoring unknown event: {name}")
        return {"status": "ignored", "event": name}

    async def process_job(self, job: Any, token: str) -> dict[str, Any]:
        """
        BullMQ worker entry point.

        Errors that cannot succeed on retry are raised as UnrecoverableError
        so the broker fails the job at once instead of backing off.
        """
        try:
            return await self.handle_event(job.name, job.data)
        except Exception as e:
            if not is_retryable(e):
                logger.error(f"Job {job.id} failed permanently: {e}")
                raise UnrecoverableError(str(e)) from e
            raise
