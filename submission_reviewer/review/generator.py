"""Review generation: prompt -> provider -> validated ReviewResult."""

import json
import logging
import time

import httpx

from ..config import Settings
from ..models import BountyContext, CodeContext
from .costs import estimate_cost, estimate_tokens
from .prompts import SYSTEM_PROMPT, build_user_prompt
from .providers import ReviewModelClient, create_model_client
from .schema import GeneratedReview, parse_review_output, review_json_schema

logger = logging.getLogger(__name__)

REVIEW_TEMPERATURE = 0.3


def resolve_model_id(requested: str | None, settings: Settings) -> str:
    """Pick the model for a review: explicit request, then configured default."""
    return requested or settings.ai_model


async def generate_review(
    bounty: BountyContext,
    code: CodeContext,
    model_id: str | None = None,
    *,
    settings: Settings,
    client: ReviewModelClient | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> GeneratedReview:
    """
    Generate a structured review of one code context.

    Args:
        bounty: The bounty the submission is judged against.
        code: The repository or pull request snapshot (or one chunk of it).
        model_id: Optional model override; defaults to ``settings.ai_model``.
        settings: Credentials and defaults.
        client: Optional pre-built model client (skips provider resolution).
        http_client: Optional httpx client for OpenAI-compatible providers.

    Returns:
        The validated review with token, model and cost accounting.

    Raises:
        ProviderNotConfigured: If the selected provider has no credential.
        ProviderError: If the provider call fails.
        SchemaValidationError: If the output does not match the review schema.
    """
    resolved_model = resolve_model_id(model_id, settings)
    model_client = client or create_model_client(
        resolved_model, settings, http_client=http_client
    )

    user_prompt = build_user_prompt(bounty, code)
    start = time.monotonic()

    logger.info(
        f"Generating review for '{bounty.title}' with {resolved_model} "
        f"({len(code.key_files)} key files)"
    )

    raw_output = await model_client.generate(
        system=SYSTEM_PROMPT,
        prompt=user_prompt,
        schema=review_json_schema(),
        temperature=REVIEW_TEMPERATURE,
    )
    review = parse_review_output(raw_output)

    input_tokens = estimate_tokens(SYSTEM_PROMPT + user_prompt)
    output_tokens = estimate_tokens(
        json.dumps(review.model_dump(by_alias=True, exclude_none=True))
    )
    cost = estimate_cost(resolved_model, input_tokens, output_tokens)

    logger.info(
        f"Review generated in {time.monotonic() - start:.1f}s: "
        f"score={review.overall_score}, tokens={input_tokens + output_tokens}, "
        f"cost=${cost:.4f}"
    )

    return GeneratedReview(
        **review.model_dump(),
        tokens_used=input_tokens + output_tokens,
        model_used=resolved_model,
        estimated_cost=cost,
    )
