"""Token estimation and per-model pricing."""

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class ModelPrice:
    """USD per 1M tokens."""

    input: float
    output: float


# Estimated list prices; OpenRouter ids are keyed as sent to OpenRouter.
MODEL_COSTS: dict[str, ModelPrice] = {
    # Gemini
    "gemini-3-pro-preview": ModelPrice(1.25, 10.00),
    "gemini-2.5-pro": ModelPrice(1.25, 10.00),
    "gemini-2.5-flash": ModelPrice(0.075, 0.30),
    "gemini-2.5-flash-lite": ModelPrice(0.02, 0.10),
    "gemini-2.0-flash": ModelPrice(0.075, 0.30),
    # OpenAI
    "gpt-4o": ModelPrice(2.50, 10.00),
    "gpt-4o-mini": ModelPrice(0.15, 0.60),
    "gpt-4-turbo": ModelPrice(10.00, 30.00),
    "o1": ModelPrice(15.00, 60.00),
    "o1-mini": ModelPrice(3.00, 12.00),
    "o3-mini": ModelPrice(1.10, 4.40),
    # OpenRouter
    "anthropic/claude-3.5-sonnet": ModelPrice(3.00, 15.00),
    "anthropic/claude-3-haiku": ModelPrice(0.25, 1.25),
    "anthropic/claude-3-opus": ModelPrice(15.00, 75.00),
    "meta-llama/llama-3.1-70b-instruct": ModelPrice(0.35, 0.40),
    "meta-llama/llama-3.1-8b-instruct": ModelPrice(0.055, 0.055),
    "mistralai/mistral-large": ModelPrice(2.00, 6.00),
    "mistralai/codestral-latest": ModelPrice(0.30, 0.90),
    "google/gemini-pro-1.5": ModelPrice(1.25, 5.00),
    "google/gemini-flash-1.5": ModelPrice(0.075, 0.30),
    "deepseek/deepseek-chat": ModelPrice(0.14, 0.28),
    "deepseek/deepseek-coder": ModelPrice(0.14, 0.28),
    # Claude
    "claude-3.5-sonnet": ModelPrice(3.00, 15.00),
    "claude-3-haiku": ModelPrice(0.25, 1.25),
}

FALLBACK_PRICE = ModelPrice(1.00, 3.00)


def estimate_tokens(text: str) -> int:
    """Rough token count: four characters per token, rounded up."""
    return math.ceil(len(text) / 4)


def estimate_cost(model_id: str, input_tokens: int, output_tokens: int) -> float:
    """Estimate the USD cost of a call, using the fallback rate for unknown models."""
    price = MODEL_COSTS.get(model_id) or MODEL_COSTS.get(
        model_id.removeprefix("openrouter/"), FALLBACK_PRICE
    )
    return (input_tokens * price.input + output_tokens * price.output) / 1_000_000
