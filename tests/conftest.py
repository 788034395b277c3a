"""Shared fixtures for submission reviewer tests."""

from collections.abc import Callable
from typing import Any

import pytest

from submission_reviewer.config import Settings
from submission_reviewer.models import BountyContext
from submission_reviewer.review.schema import GeneratedReview


def review_payload(**overrides: Any) -> dict[str, Any]:
    """A schema-valid review as a model would return it (camelCase)."""
    payload: dict[str, Any] = {
        "overallScore": 78,
        "confidence": 0.8,
        "requirementMatch": {
            "score": 80,
            "matchedRequirements": ["Token transfer"],
            "missingRequirements": [],
            "evidence": [
                {
                    "requirement": "Token transfer",
                    "file": "programs/vault/src/lib.rs",
                    "lineRange": "10-42",
                    "explanation": "transfer instruction implemented",
                }
            ],
        },
        "codeQuality": {
            "score": 75,
            "strengths": ["Clear account structs"],
            "issues": [{"severity": "minor", "description": "Unused import"}],
        },
        "completeness": {
            "score": 70,
            "implementedFeatures": ["Deposit"],
            "missingFeatures": ["Withdraw"],
        },
        "security": {"score": 85, "findings": [], "solanaSpecific": []},
        "redFlags": [],
        "summary": "Solid vault program with one missing instruction.",
        "detailedNotes": "## Overall Assessment\nGood.",
        "suggestedLabels": ["high-quality"],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def settings() -> Settings:
    return Settings(
        ai_model="gpt-4o-mini",
        openai_api_key="sk-test",
        max_tokens_per_chunk=12000,
    )


@pytest.fixture
def bounty() -> BountyContext:
    return BountyContext(
        title="Solana Vault",
        description="Build an Anchor vault program",
        requirements=["Token transfer", "Withdraw instruction"],
        tech_stack=["Rust", "Anchor"],
    )


@pytest.fixture
def make_review() -> Callable[..., GeneratedReview]:
    """Factory for GeneratedReview objects with per-test overrides."""

    def _make(
        overall_score: int = 78,
        confidence: float = 0.8,
        security_score: int = 85,
        red_flags: list[dict[str, Any]] | None = None,
        strengths: list[str] | None = None,
        tokens_used: int = 100,
        estimated_cost: float = 0.01,
        model_used: str = "gpt-4o-mini",
    ) -> GeneratedReview:
        payload = review_payload(
            overallScore=overall_score,
            confidence=confidence,
            redFlags=red_flags or [],
        )
        payload["security"]["score"] = security_score
        if strengths is not None:
            payload["codeQuality"]["strengths"] = strengths
        return GeneratedReview.model_validate(
            {
                **payload,
                "tokensUsed": tokens_used,
                "estimatedCost": estimated_cost,
                "modelUsed": model_used,
            }
        )

    return _make


@pytest.fixture
def review_data() -> Callable[..., dict[str, Any]]:
    """Factory for raw camelCase review payloads."""
    return review_payload
