"""Map scores and red flags to labels."""

from collections.abc import Iterable
from enum import Enum

from .schema import RedFlag, SuggestedLabel

# Suggested labels that force a human decision regardless of score.
OVERRIDE_LABELS = frozenset({"security-concern", "potential-plagiarism"})

# Red flag type -> suggested label it implies.
FLAG_LABELS: dict[str, SuggestedLabel] = {
    "security-vulnerability": "security-concern",
    "copied-code": "potential-plagiarism",
    "incomplete-implementation": "incomplete",
}


class EarnLabel(str, Enum):
    """Final categorical outcome for a submission."""

    SHORTLISTED = "Shortlisted"
    HIGH_QUALITY = "High_Quality"
    MID_QUALITY = "Mid_Quality"
    LOW_QUALITY = "Low_Quality"
    NEEDS_REVIEW = "Needs_Review"
    SPAM = "Spam"


def _flag_names(flags: Iterable[str | RedFlag]) -> set[str]:
    names: set[str] = set()
    for flag in flags:
        if isinstance(flag, RedFlag):
            implied = FLAG_LABELS.get(flag.type)
            if implied:
                names.add(implied)
        else:
            names.add(flag)
    return names


def map_label(score: float, flags: Iterable[str | RedFlag] = ()) -> EarnLabel:
    """
    Convert a score plus flags to an Earn label.

    Flags may be suggested-label strings or RedFlag objects. Any
    security-concern or potential-plagiarism flag yields Needs_Review.
    Otherwise thresholds are inclusive lower bounds: 85, 70, 50, 30.
    """
    if _flag_names(flags) & OVERRIDE_LABELS:
        return EarnLabel.NEEDS_REVIEW

    if score >= 85:
        return EarnLabel.SHORTLISTED
    if score >= 70:
        return EarnLabel.HIGH_QUALITY
    if score >= 50:
        return EarnLabel.MID_QUALITY
    if score >= 30:
        return EarnLabel.LOW_QUALITY
    return EarnLabel.SPAM


def determine_labels(score: float, red_flags: Iterable[RedFlag]) -> list[SuggestedLabel]:
    """Derive suggested labels from a score and the red flag types present."""
    labels: list[SuggestedLabel] = []

    if score >= 90:
        labels.extend(["excellent", "high-quality"])
    elif score >= 75:
        labels.append("high-quality")
    elif score >= 50:
        labels.append("needs-review")
    else:
        labels.append("needs-revision")

    flag_types = {flag.type for flag in red_flags}
    for flag_type, label in FLAG_LABELS.items():
        if flag_type in flag_types:
            labels.append(label)

    return labels
