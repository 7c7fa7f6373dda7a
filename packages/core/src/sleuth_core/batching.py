"""Group code chunks into batches sized for a single AI review call."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields

from sleuth_core.models import CodeChunk

logger = logging.getLogger(__name__)

# Rough heuristics: ~4 characters per token, ~10 tokens per line when the
# chunk carries no content.
_CHARS_PER_TOKEN = 4
_TOKENS_PER_LINE = 10


@dataclass
class BatchConfig:
    max_tokens: int = 8000
    max_chunks: int = 50
    group_by_file: bool = True
    # Reserved: pulling dependency chunks into the same batch is not implemented.
    include_dependencies: bool = False

    @classmethod
    def from_dict(cls, d: dict) -> BatchConfig:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            logger.warning("Ignoring unknown batching option(s): %s", ", ".join(unknown))
        return cls(**{k: v for k, v in d.items() if k in known})


@dataclass
class BatchStats:
    total_batches: int = 0
    average_batch_size: float = 0.0
    average_tokens_per_batch: float = 0.0
    largest_batch: int = 0
    smallest_batch: int = 0


def estimate_tokens(chunk: CodeChunk) -> int:
    if chunk.content:
        return math.ceil(len(chunk.content) / _CHARS_PER_TOKEN)
    return math.ceil(chunk.line_count * _TOKENS_PER_LINE)


class ChunkBatcher:
    """Packs chunks greedily into batches bounded by token and chunk counts.

    Chunks are ordered by ``priority_score`` (highest first, missing scores
    count as 0) and, when ``group_by_file`` is on, kept together per file so a
    batch sees as much of one file as possible. A chunk that alone exceeds
    ``max_tokens`` is never dropped; it gets a batch of its own.
    """

    def __init__(self, config: BatchConfig | None = None):
        self.config = config or BatchConfig()

    def batch_chunks(self, chunks: list[CodeChunk]) -> list[list[CodeChunk]]:
        batches: list[list[CodeChunk]] = []
        current: list[CodeChunk] = []
        current_tokens = 0

        # sorted() is stable, so equal scores keep their input order.
        ordered = sorted(chunks, key=lambda c: -(c.priority_score or 0))
        groups = self._group_by_file(ordered) if self.config.group_by_file else [ordered]

        for group in groups:
            for chunk in group:
                tokens = estimate_tokens(chunk)
                if len(current) >= self.config.max_chunks or current_tokens + tokens > self.config.max_tokens:
                    if current:
                        batches.append(current)
                    current = [chunk]
                    current_tokens = tokens
                else:
                    current.append(chunk)
                    current_tokens += tokens

        if current:
            batches.append(current)

        logger.debug("Batched %d chunk(s) into %d batch(es)", len(chunks), len(batches))
        return batches

    @staticmethod
    def _group_by_file(chunks: list[CodeChunk]) -> list[list[CodeChunk]]:
        by_file: dict[str, list[CodeChunk]] = {}
        for chunk in chunks:
            by_file.setdefault(chunk.file, []).append(chunk)
        return list(by_file.values())

    def get_batch_stats(self, batches: list[list[CodeChunk]]) -> BatchStats:
        if not batches:
            return BatchStats()

        sizes = [len(b) for b in batches]
        tokens = [sum(estimate_tokens(c) for c in b) for b in batches]
        return BatchStats(
            total_batches=len(batches),
            average_batch_size=sum(sizes) / len(batches),
            average_tokens_per_batch=sum(tokens) / len(batches),
            largest_batch=max(sizes),
            smallest_batch=min(sizes),
        )
