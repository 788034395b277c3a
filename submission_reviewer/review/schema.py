"""Review output schema and validating parser for model responses."""

import json
import math
import re
from copy import deepcopy
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
)
from pydantic.alias_generators import to_camel

from ..errors import SchemaValidationError

RedFlagType = Literal[
    "hardcoded-secret",
    "security-vulnerability",
    "copied-code",
    "missing-tests",
    "incomplete-implementation",
    "gas-inefficiency",
]

Severity = Literal["critical", "warning", "info"]

IssueSeverity = Literal["critical", "major", "minor", "suggestion"]

SuggestedLabel = Literal[
    "high-quality",
    "needs-review",
    "incomplete",
    "security-concern",
    "potential-plagiarism",
    "excellent",
    "needs-revision",
]

SUMMARY_MAX_LENGTH = 500


def _round_score(value: Any) -> Any:
    # Models occasionally emit fractional scores; round half up.
    if isinstance(value, float) and math.isfinite(value):
        return math.floor(value + 0.5)
    return value


Score = Annotated[int, BeforeValidator(_round_score), Field(ge=0, le=100)]


class _SchemaModel(BaseModel):
    """Base model: snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RedFlag(_SchemaModel):
    """A structured warning attached to a review."""

    type: RedFlagType
    severity: Severity
    description: str
    file: str | None = None
    line: int | None = None


class Evidence(_SchemaModel):
    """Where in the code a requirement was found to be implemented."""

    requirement: str
    file: str
    line_range: str | None = None
    explanation: str


class Issue(_SchemaModel):
    """A code quality issue."""

    severity: IssueSeverity
    description: str
    file: str | None = None
    suggestion: str | None = None


class RequirementMatch(_SchemaModel):
    score: Score
    matched_requirements: list[str] = Field(default_factory=list)
    missing_requirements: list[str] = Field(default_factory=list)
    evidence: list[Evidence] = Field(default_factory=list)


class CodeQuality(_SchemaModel):
    score: Score
    strengths: list[str] = Field(default_factory=list)
    issues: list[Issue] = Field(default_factory=list)


class Completeness(_SchemaModel):
    score: Score
    implemented_features: list[str] = Field(default_factory=list)
    missing_features: list[str] = Field(default_factory=list)


class Security(_SchemaModel):
    score: Score
    findings: list[str] = Field(default_factory=list)
    solana_specific: list[str] | None = None


class ReviewResult(_SchemaModel):
    """The structured result of one model invocation."""

    overall_score: Score = Field(description="Overall quality score from 0-100")
    confidence: float = Field(
        ge=0, le=1, description="Confidence in the review accuracy from 0-1"
    )
    requirement_match: RequirementMatch
    code_quality: CodeQuality
    completeness: Completeness
    security: Security
    red_flags: list[RedFlag] = Field(default_factory=list)
    summary: str = Field(
        max_length=SUMMARY_MAX_LENGTH, description="2-3 sentence summary for sponsors"
    )
    detailed_notes: str = Field(description="Full markdown review with details")
    suggested_labels: list[SuggestedLabel] = Field(default_factory=list)


class GeneratedReview(ReviewResult):
    """A review plus accounting for the call(s) that produced it."""

    tokens_used: int = 0
    model_used: str = "unknown"
    estimated_cost: float = 0.0


def review_json_schema() -> dict[str, Any]:
    """Build the JSON schema sent to providers for structured generation.

    References are inlined because not every provider resolves ``$defs``.
    """
    schema = ReviewResult.model_json_schema(by_alias=True)
    defs = schema.pop("$defs", {})
    cleaned = _inline_refs(schema, defs)
    cleaned.pop("$schema", None)
    cleaned.pop("title", None)
    return cleaned


def _inline_refs(node: Any, defs: dict[str, Any]) -> Any:
    if isinstance(node, dict):
        ref = node.get("$ref")
        if isinstance(ref, str) and ref.startswith("#/$defs/"):
            target = deepcopy(defs[ref.split("/")[-1]])
            target.pop("title", None)
            return _inline_refs(target, defs)
        return {k: _inline_refs(v, defs) for k, v in node.items() if k != "title"}
    if isinstance(node, list):
        return [_inline_refs(item, defs) for item in node]
    return node


def _extract_json(text: str) -> str:
    """Pull a JSON object out of text that may wrap it in a code fence."""
    for match in re.findall(r"```(?:json)?\s*\n?([\s\S]*?)\n?```", text):
        stripped = str(match).strip()
        if stripped.startswith("{"):
            return stripped

    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace != -1 and last_brace > first_brace:
        return text[first_brace : last_brace + 1]

    raise SchemaValidationError("Could not find a JSON object in model output")


def parse_review_output(raw: str | dict[str, Any]) -> ReviewResult:
    """Validate provider output against the review schema.

    Args:
        raw: Either the decoded JSON object or the raw response text

    Returns:
        The validated ReviewResult

    Raises:
        SchemaValidationError: If the output is not JSON or does not conform
    """
    if isinstance(raw, str):
        try:
            data = json.loads(_extract_json(raw))
        except json.JSONDecodeError as e:
            raise SchemaValidationError(f"Invalid JSON in model output: {e}") from e
    else:
        data = raw

    if not isinstance(data, dict):
        raise SchemaValidationError("Model output must be a JSON object")

    try:
        return ReviewResult.model_validate(data)
    except ValidationError as e:
        errors = [
            {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
            for err in e.errors()
        ]
        raise SchemaValidationError(
            f"Model output does not match review schema ({len(errors)} errors)",
            errors=errors,
        ) from e
