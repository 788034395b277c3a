"""Review accuracy tracking."""

from .accuracy import (
    ADJACENT_LABELS,
    SCORE_TOLERANCE,
    AccuracyMetrics,
    AccuracySummary,
    AccuracyValidator,
    ValidationRecord,
    ValidationStore,
    is_label_accurate,
    is_score_accurate,
)

__all__ = [
    "ADJACENT_LABELS",
    "SCORE_TOLERANCE",
    "AccuracyMetrics",
    "AccuracySummary",
    "AccuracyValidator",
    "ValidationRecord",
    "ValidationStore",
    "is_label_accurate",
    "is_score_accurate",
]
