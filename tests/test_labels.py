"""Tests for score and red flag label mapping."""

import pytest

from submission_reviewer.review.labels import EarnLabel, determine_labels, map_label
from submission_reviewer.review.schema import RedFlag


def flag(flag_type: str) -> RedFlag:
    return RedFlag(type=flag_type, severity="warning", description="test")


class TestMapLabel:
    """Tests for map_label."""

    @pytest.mark.parametrize(
        ("score", "expected"),
        [
            (100, EarnLabel.SHORTLISTED),
            (85, EarnLabel.SHORTLISTED),
            (84, EarnLabel.HIGH_QUALITY),
            (70, EarnLabel.HIGH_QUALITY),
            (69, EarnLabel.MID_QUALITY),
            (50, EarnLabel.MID_QUALITY),
            (49, EarnLabel.LOW_QUALITY),
            (30, EarnLabel.LOW_QUALITY),
            (29, EarnLabel.SPAM),
            (0, EarnLabel.SPAM),
        ],
    )
    def test_threshold_boundaries(self, score: int, expected: EarnLabel) -> None:
        assert map_label(score, []) == expected

    @pytest.mark.parametrize("override", ["security-concern", "potential-plagiarism"])
    def test_override_for_every_score(self, override: str) -> None:
        for score in range(0, 101):
            assert map_label(score, [override]) == EarnLabel.NEEDS_REVIEW
            assert map_label(score, ["high-quality", override]) == EarnLabel.NEEDS_REVIEW

    def test_red_flag_objects_are_translated(self) -> None:
        assert map_label(95, [flag("security-vulnerability")]) == EarnLabel.NEEDS_REVIEW
        assert map_label(95, [flag("copied-code")]) == EarnLabel.NEEDS_REVIEW
        assert map_label(95, [flag("missing-tests")]) == EarnLabel.SHORTLISTED

    def test_other_labels_do_not_override(self) -> None:
        assert map_label(90, ["incomplete", "needs-review"]) == EarnLabel.SHORTLISTED

    def test_label_values(self) -> None:
        assert EarnLabel.HIGH_QUALITY.value == "High_Quality"
        assert EarnLabel.NEEDS_REVIEW.value == "Needs_Review"


class TestDetermineLabels:
    """Tests for determine_labels."""

    @pytest.mark.parametrize(
        ("score", "expected"),
        [
            (95, ["excellent", "high-quality"]),
            (90, ["excellent", "high-quality"]),
            (89, ["high-quality"]),
            (75, ["high-quality"]),
            (74, ["needs-review"]),
            (50, ["needs-review"]),
            (49, ["needs-revision"]),
        ],
    )
    def test_score_labels(self, score: int, expected: list[str]) -> None:
        assert determine_labels(score, []) == expected

    def test_flag_labels(self) -> None:
        labels = determine_labels(
            60,
            [
                flag("incomplete-implementation"),
                flag("copied-code"),
                flag("security-vulnerability"),
                flag("security-vulnerability"),
                flag("gas-inefficiency"),
            ],
        )
        assert labels == [
            "needs-review",
            "security-concern",
            "potential-plagiarism",
            "incomplete",
        ]
