"""Merge per-chunk reviews into one review."""

import logging
import math
from collections.abc import Iterable, Sequence

from ..errors import AggregationError
from ..models import BountyContext
from .labels import determine_labels
from .schema import (
    SUMMARY_MAX_LENGTH,
    CodeQuality,
    Completeness,
    GeneratedReview,
    RedFlag,
    RequirementMatch,
    Security,
)

logger = logging.getLogger(__name__)

MAX_ISSUES_IN_NOTES = 10


def _round(value: float) -> int:
    return math.floor(value + 0.5)


def _mean(values: Sequence[float]) -> int:
    return _round(sum(values) / len(values))


def _union(groups: Iterable[Iterable[str] | None]) -> list[str]:
    """Concatenate and de-duplicate, keeping first-seen order."""
    seen: dict[str, None] = {}
    for group in groups:
        for item in group or ():
            seen.setdefault(item, None)
    return list(seen)


def weighted_overall_score(results: Sequence[GeneratedReview]) -> int:
    """Confidence-weighted mean of overall scores; plain mean if all confidences are zero."""
    total_confidence = sum(r.confidence for r in results)
    if total_confidence == 0:
        logger.warning("All chunk confidences are zero; using unweighted mean")
        return _mean([r.overall_score for r in results])
    weighted = sum(r.overall_score * r.confidence for r in results)
    return _round(weighted / total_confidence)


def _quality_description(score: int) -> str:
    if score >= 85:
        return "excellent"
    if score >= 70:
        return "good"
    if score >= 50:
        return "acceptable"
    return "needs improvement"


def _build_summary(
    overall_score: int, red_flags: list[RedFlag], strengths: list[str]
) -> str:
    summary = (
        f"This submission is {_quality_description(overall_score)} "
        f"with an overall score of {overall_score}/100. "
    )
    if any(flag.type == "security-vulnerability" for flag in red_flags):
        summary += "Security concerns were identified that should be addressed. "
    if strengths:
        summary += f"Key strengths include: {', '.join(strengths[:2])}."
    return summary.strip()[:SUMMARY_MAX_LENGTH]


def _build_notes(
    bounty: BountyContext,
    chunk_count: int,
    overall_score: int,
    requirement_match: RequirementMatch,
    code_quality: CodeQuality,
    security: Security,
    red_flags: list[RedFlag],
) -> str:
    lines = [f'# Code Review for "{bounty.title}"', ""]

    lines += [
        "## Overall Assessment",
        f"Reviewed in {chunk_count} parts. Overall score {overall_score}/100 "
        f"({_quality_description(overall_score)}).",
        "",
        "## Requirement Matching",
    ]
    if requirement_match.matched_requirements:
        lines.append("### Implemented")
        lines += [f"- [x] {r}" for r in requirement_match.matched_requirements]
        lines.append("")
    if requirement_match.missing_requirements:
        lines.append("### Missing")
        lines += [f"- [ ] {r}" for r in requirement_match.missing_requirements]
        lines.append("")

    lines.append("## Code Quality")
    for issue in code_quality.issues[:MAX_ISSUES_IN_NOTES]:
        location = f" ({issue.file})" if issue.file else ""
        lines.append(f"- **{issue.severity}**: {issue.description}{location}")
    lines.append("")

    lines.append("## Security")
    if security.findings:
        lines += [f"- {finding}" for finding in security.findings]
    else:
        lines.append("No significant security issues identified.")

    if red_flags:
        lines += ["", "## Red Flags"]
        for flag in red_flags:
            location = f" in `{flag.file}`" if flag.file else ""
            lines.append(
                f"- **{flag.severity.upper()}** [{flag.type}]: {flag.description}{location}"
            )

    return "\n".join(lines)


def aggregate_chunk_analyses(
    results: Sequence[GeneratedReview],
    bounty: BountyContext,
) -> GeneratedReview:
    """
    Merge chunk-level reviews into one review.

    Sub-scores are plain means, the overall score is confidence weighted,
    and confidence is the minimum across chunks. Narrative fields and
    suggested labels are rebuilt from the merged data.

    Args:
        results: One review per chunk.
        bounty: The bounty, used for the notes heading.

    Returns:
        The merged review; a single input is returned as-is.

    Raises:
        AggregationError: If ``results`` is empty.
    """
    if not results:
        raise AggregationError("No analyses to aggregate")
    if len(results) == 1:
        return results[0]

    overall_score = weighted_overall_score(results)
    red_flags = [flag for r in results for flag in r.red_flags]

    requirement_match = RequirementMatch(
        score=_mean([r.requirement_match.score for r in results]),
        matched_requirements=_union(
            r.requirement_match.matched_requirements for r in results
        ),
        missing_requirements=_union(
            r.requirement_match.missing_requirements for r in results
        ),
        evidence=[e for r in results for e in r.requirement_match.evidence],
    )
    code_quality = CodeQuality(
        score=_mean([r.code_quality.score for r in results]),
        strengths=_union(r.code_quality.strengths for r in results),
        issues=[issue for r in results for issue in r.code_quality.issues],
    )
    completeness = Completeness(
        score=_mean([r.completeness.score for r in results]),
        implemented_features=_union(
            r.completeness.implemented_features for r in results
        ),
        missing_features=_union(r.completeness.missing_features for r in results),
    )
    security = Security(
        score=_mean([r.security.score for r in results]),
        findings=_union(r.security.findings for r in results),
        solana_specific=_union(r.security.solana_specific for r in results),
    )

    logger.info(
        f"Aggregated {len(results)} chunk reviews: overall={overall_score}, "
        f"red_flags={len(red_flags)}"
    )

    return GeneratedReview(
        overall_score=overall_score,
        confidence=min(r.confidence for r in results),
        requirement_match=requirement_match,
        code_quality=code_quality,
        completeness=completeness,
        security=security,
        red_flags=red_flags,
        summary=_build_summary(overall_score, red_flags, code_quality.strengths),
        detailed_notes=_build_notes(
            bounty,
            len(results),
            overall_score,
            requirement_match,
            code_quality,
            security,
            red_flags,
        ),
        suggested_labels=determine_labels(overall_score, red_flags),
        tokens_used=sum(r.tokens_used for r in results),
        model_used=results[0].model_used,
        estimated_cost=sum(r.estimated_cost for r in results),
    )
