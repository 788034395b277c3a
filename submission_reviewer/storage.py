"""Review and validation storage.

Reviews are keyed by the externally supplied submission id and written
insert-or-ignore, so a retried job that reaches persistence twice keeps
the first review.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from .metrics.accuracy import ValidationRecord
from .queue.types import ContextGenerateEvent
from .review.labels import EarnLabel
from .review.schema import GeneratedReview

logger = logging.getLogger(__name__)


@dataclass
class StoredReview:
    """A persisted review."""

    submission_id: str
    review: GeneratedReview
    label: EarnLabel
    review_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "reviewId": self.review_id,
            "submissionId": self.submission_id,
            "label": self.label.value,
            "createdAt": self.created_at.isoformat(),
            "review": self.review.model_dump(by_alias=True, mode="json"),
        }


class ReviewStore(Protocol):
    """Storage for completed reviews."""

    async def save_review(
        self, submission_id: str, review: GeneratedReview, label: EarnLabel
    ) -> StoredReview:
        """Insert a review, or return the existing one for this submission."""
        ...

    async def get_review(self, submission_id: str) -> StoredReview | None:
        """Get the review for a submission, if any."""
        ...


class InMemoryReviewStore:
    """Single-process review store."""

    def __init__(self) -> None:
        self._reviews: dict[str, StoredReview] = {}

    async def save_review(
        self, submission_id: str, review: GeneratedReview, label: EarnLabel
    ) -> StoredReview:
        existing = self._reviews.get(submission_id)
        if existing is not None:
            logger.info(f"Review for {submission_id} already stored, keeping it")
            return existing

        stored = StoredReview(submission_id=submission_id, review=review, label=label)
        self._reviews[submission_id] = stored
        logger.info(f"Stored review {stored.review_id} for {submission_id}")
        return stored

    async def get_review(self, submission_id: str) -> StoredReview | None:
        return self._reviews.get(submission_id)

    def __len__(self) -> int:
        return len(self._reviews)


class InMemoryValidationStore:
    """Append-only, in-memory validation records."""

    def __init__(self) -> None:
        self._records: list[ValidationRecord] = []

    async def append(self, record: ValidationRecord) -> None:
        self._records.append(record)

    async def list(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> list[ValidationRecord]:
        return [
            record
            for record in self._records
            if (start is None or record.created_at >= start)
            and (end is None or record.created_at <= end)
        ]


class SubmissionStore(Protocol):
    """Submissions known to the reviewer, used to fan out batch reviews."""

    async def add(self, submission: ContextGenerateEvent) -> None: ...

    async def list_for_listing(self, listing_id: str) -> list[ContextGenerateEvent]: ...

    async def list_all(self) -> list[ContextGenerateEvent]: ...


class InMemorySubmissionStore:
    """Single-process submission registry keyed by submission id."""

    def __init__(self) -> None:
        self._submissions: dict[str, ContextGenerateEvent] = {}

    async def add(self, submission: ContextGenerateEvent) -> None:
        self._submissions[submission.submission_id] = submission

    async def list_for_listing(self, listing_id: str) -> list[ContextGenerateEvent]:
        return [s for s in self._submissions.values() if s.listing_id == listing_id]

    async def list_all(self) -> list[ContextGenerateEvent]:
        """All submissions in registration order."""
        return list(self._submissions.values())
