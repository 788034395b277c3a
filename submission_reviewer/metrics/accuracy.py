"""Accuracy of AI reviews measured against human reviews."""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Protocol

logger = logging.getLogger(__name__)

# Human label -> AI labels close enough to count as accurate.
ADJACENT_LABELS: dict[str, list[str]] = {
    "Shortlisted": ["High_Quality"],
    "High_Quality": ["Shortlisted", "Mid_Quality"],
    "Mid_Quality": ["High_Quality", "Low_Quality", "Needs_Review"],
    "Low_Quality": ["Mid_Quality", "Spam", "Needs_Review"],
    "Needs_Review": ["Mid_Quality", "Low_Quality"],
    "Spam": ["Low_Quality"],
}

SCORE_TOLERANCE = 15

AccuracyStatus = Literal["good", "acceptable", "needs_improvement"]


def is_score_accurate(
    ai_score: float, human_score: float, tolerance: float = SCORE_TOLERANCE
) -> bool:
    """True when the scores differ by at most ``tolerance`` points."""
    return abs(ai_score - human_score) <= tolerance


def is_label_accurate(ai_label: str, human_label: str) -> bool:
    """True when the labels match or the AI label is adjacent to the human one."""
    if ai_label == human_label:
        return True
    return ai_label in ADJACENT_LABELS.get(human_label, [])


@dataclass(frozen=True)
class ValidationRecord:
    """One AI review compared with the human review of the same submission."""

    submission_id: str
    ai_score: int
    ai_label: str
    human_score: int
    human_label: str
    score_accurate: bool
    label_accurate: bool
    score_delta: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


class ValidationStore(Protocol):
    """Append-only storage for validation records."""

    async def append(self, record: ValidationRecord) -> None: ...

    async def list(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> list[ValidationRecord]: ...


@dataclass
class AccuracyMetrics:
    total_validations: int = 0
    score_accuracy: float = 0.0
    label_accuracy: float = 0.0
    average_score_delta: float = 0.0
    label_confusion_matrix: dict[str, dict[str, int]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AccuracySummary:
    overall_accuracy: float
    score_accuracy: float
    label_accuracy: float
    total_validations: int
    status: AccuracyStatus

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def accuracy_status(overall_accuracy: float) -> AccuracyStatus:
    if overall_accuracy >= 80:
        return "good"
    if overall_accuracy >= 65:
        return "acceptable"
    return "needs_improvement"


class AccuracyValidator:
    """
    Records AI/human review pairs and reports how often they agree.

    Validation is telemetry: store failures are logged and never
    propagate to the caller.
    """

    def __init__(self, store: ValidationStore) -> None:
        self._store = store

    async def record_validation(
        self,
        submission_id: str,
        ai_score: int,
        ai_label: str,
        human_score: int,
        human_label: str,
    ) -> ValidationRecord:
        """
        Compare an AI review with the human review and store the result.

        Args:
            submission_id: The reviewed submission.
            ai_score: Overall score given by the AI review.
            ai_label: Earn label assigned from the AI review.
            human_score: Score given by the human reviewer.
            human_label: Earn label chosen by the human reviewer.

        Returns:
            The validation record, whether or not it was stored.
        """
        record = ValidationRecord(
            submission_id=submission_id,
            ai_score=ai_score,
            ai_label=ai_label,
            human_score=human_score,
            human_label=human_label,
            score_accurate=is_score_accurate(ai_score, human_score),
            label_accurate=is_label_accurate(ai_label, human_label),
            score_delta=ai_score - human_score,
        )

        try:
            await self._store.append(record)
        except Exception as e:
            logger.error(f"Failed to record validation for {submission_id}: {e}")

        return record

    async def calculate_accuracy_metrics(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> AccuracyMetrics:
        """Aggregate accuracy over validations created between ``start`` and ``end``."""
        try:
            records = await self._store.list(start, end)
        except Exception as e:
            logger.error(f"Failed to calculate accuracy metrics: {e}")
            return AccuracyMetrics()

        if not records:
            return AccuracyMetrics()

        total = len(records)
        confusion: dict[str, dict[str, int]] = {}
        for record in records:
            if not record.human_label or not record.ai_label:
                continue
            row = confusion.setdefault(record.human_label, {})
            row[record.ai_label] = row.get(record.ai_label, 0) + 1

        return AccuracyMetrics(
            total_validations=total,
            score_accuracy=sum(r.score_accurate for r in records) / total * 100,
            label_accuracy=sum(r.label_accurate for r in records) / total * 100,
            average_score_delta=sum(abs(r.score_delta) for r in records) / total,
            label_confusion_matrix=confusion,
        )

    async def get_accuracy_summary(self) -> AccuracySummary:
        metrics = await self.calculate_accuracy_metrics()
        overall = (metrics.score_accuracy + metrics.label_accuracy) / 2
        return AccuracySummary(
            overall_accuracy=overall,
            score_accuracy=metrics.score_accuracy,
            label_accuracy=metrics.label_accuracy,
            total_validations=metrics.total_validations,
            status=accuracy_status(overall),
        )
