"""Split oversized code contexts into token-bounded chunks."""

from collections.abc import Sequence
from dataclasses import dataclass, field

from ..config import DEFAULT_MAX_TOKENS_PER_CHUNK
from ..models import IMPORTANCE_ORDER, KeyFile
from .costs import estimate_tokens


@dataclass
class Chunk:
    """A token-bounded group of whole files sent to the model in one call."""

    index: int
    files: list[KeyFile] = field(default_factory=list)
    total_tokens: int = 0


def total_tokens(files: Sequence[KeyFile]) -> int:
    """Estimated tokens for a set of files, counted per file."""
    return sum(estimate_tokens(f.content) for f in files)


def chunk_code_for_analysis(
    files: Sequence[KeyFile],
    max_tokens_per_chunk: int = DEFAULT_MAX_TOKENS_PER_CHUNK,
) -> list[Chunk]:
    """
    Pack files into chunks, most important files first.

    Files are never split. A chunk is closed when the next file would push
    it strictly over the budget; a single file larger than the budget gets
    a chunk of its own.

    Args:
        files: The key files to pack.
        max_tokens_per_chunk: Estimated token budget per chunk.

    Returns:
        The chunks in packing order. Empty input gives no chunks.
    """
    ordered = sorted(files, key=lambda f: IMPORTANCE_ORDER[f.importance])

    chunks: list[Chunk] = []
    current: list[KeyFile] = []
    current_tokens = 0

    for file in ordered:
        file_tokens = estimate_tokens(file.content)

        if current and current_tokens + file_tokens > max_tokens_per_chunk:
            chunks.append(
                Chunk(index=len(chunks), files=current, total_tokens=current_tokens)
            )
            current = []
            current_tokens = 0

        current.append(file)
        current_tokens += file_tokens

    if current:
        chunks.append(Chunk(index=len(chunks), files=current, total_tokens=current_tokens))

    return chunks
