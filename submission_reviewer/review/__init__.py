"""Review generation, chunking, aggregation and labelling."""

from .aggregator import aggregate_chunk_analyses
from .chunker import Chunk, chunk_code_for_analysis, total_tokens
from .costs import estimate_cost, estimate_tokens
from .generator import generate_review
from .labels import EarnLabel, determine_labels, map_label
from .providers import Provider, create_model_client, detect_provider, get_available_providers
from .schema import GeneratedReview, RedFlag, ReviewResult, parse_review_output

__all__ = [
    "aggregate_chunk_analyses",
    "Chunk",
    "chunk_code_for_analysis",
    "total_tokens",
    "estimate_cost",
    "estimate_tokens",
    "generate_review",
    "EarnLabel",
    "determine_labels",
    "map_label",
    "Provider",
    "create_model_client",
    "detect_provider",
    "get_available_providers",
    "GeneratedReview",
    "RedFlag",
    "ReviewResult",
    "parse_review_output",
]
