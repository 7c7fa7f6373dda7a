"""Review tracker — remembers which chunks were already reviewed.

Chunks are identified by content hash. On the next run for the same
(branch, base_branch) pair, a chunk whose hash and position are unchanged is
skipped, so repeated reviews only pay for code that actually changed.

The tracker is advisory: every storage failure degrades to "nothing was
reviewed before", never to an exception in the caller.

Chunks are duck-typed (``hash``, ``content``, ``file``, ``start_line``,
``end_line``) so this package does not depend on sleuth_core.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from sleuth_store.base import BaseStateStore
from sleuth_store.models import ReviewedChunk, ReviewState

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY_SIZE = 10000


@dataclass
class TrackerStats:
    total_chunks: int = 0
    reviewed_chunks: int = 0
    new_chunks: int = 0
    changed_chunks: int = 0
    skipped_chunks: int = 0
    skip_rate: float = 0.0


@dataclass
class FilterResult:
    chunks_to_review: list = field(default_factory=list)
    stats: TrackerStats = field(default_factory=TrackerStats)


@dataclass
class BranchStats:
    total_reviewed: int = 0
    last_reviewed_at: int = 0


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


def chunk_key(chunk) -> str:
    return chunk.hash or content_hash(chunk.content or "")


def review_hash(comments) -> str:
    """Hash a review outcome independent of comment order."""
    parts = sorted(f"{c.file}:{c.line}:{c.body}" for c in comments)
    return content_hash("|".join(parts))


def _now_ms() -> int:
    return int(time.time() * 1000)


class ReviewTracker:
    def __init__(
        self,
        store: BaseStateStore,
        max_history_size: int = DEFAULT_MAX_HISTORY_SIZE,
        clock: Callable[[], int] = _now_ms,
    ):
        self.store = store
        self.max_history_size = max_history_size
        self._clock = clock

    def _load(self, branch: str, base_branch: str | None) -> ReviewState:
        state = self.store.load(branch, base_branch)
        if state is None:
            return ReviewState(branch=branch, base_branch=base_branch)
        return state

    def _save(self, state: ReviewState) -> None:
        if len(state.reviewed_chunks) > self.max_history_size:
            evicted = len(state.reviewed_chunks) - self.max_history_size
            state.reviewed_chunks = sorted(state.reviewed_chunks, key=lambda c: c.reviewed_at, reverse=True)[
                : self.max_history_size
            ]
            logger.debug("Evicted %d oldest reviewed chunk(s) from history", evicted)
        self.store.save(state)

    def filter_chunks_for_review(self, chunks: list, branch: str, base_branch: str | None = None) -> FilterResult:
        """Split chunks into those needing review and those already reviewed.

        A chunk is new when its hash is unknown, changed when the hash is
        known but it moved (different file or line range), and skipped
        otherwise.
        """
        reviewed = {c.hash: c for c in self._load(branch, base_branch).reviewed_chunks}

        to_review = []
        new = changed = skipped = 0
        for chunk in chunks:
            record = reviewed.get(chunk_key(chunk))
            if record is None:
                to_review.append(chunk)
                new += 1
            elif (record.file, record.start_line, record.end_line) != (chunk.file, chunk.start_line, chunk.end_line):
                to_review.append(chunk)
                changed += 1
            else:
                skipped += 1

        total = len(chunks)
        stats = TrackerStats(
            total_chunks=total,
            reviewed_chunks=skipped,
            new_chunks=new,
            changed_chunks=changed,
            skipped_chunks=skipped,
            skip_rate=skipped / total if total else 0.0,
        )
        return FilterResult(chunks_to_review=to_review, stats=stats)

    def mark_as_reviewed(
        self, chunks: list, comments: list | None, branch: str, base_branch: str | None = None
    ) -> None:
        """Record chunks as reviewed, merging them into the pair's existing history."""
        state = self._load(branch, base_branch)
        outcome_hash = review_hash(comments) if comments else None
        now = self._clock()

        records = {c.hash: c for c in state.reviewed_chunks}
        for chunk in chunks:
            key = chunk_key(chunk)
            records[key] = ReviewedChunk(
                hash=key,
                file=chunk.file,
                start_line=chunk.start_line,
                end_line=chunk.end_line,
                reviewed_at=now,
                review_hash=outcome_hash,
            )

        state.reviewed_chunks = list(records.values())
        state.last_reviewed_at = now
        self._save(state)

    def get_stats(self, branch: str, base_branch: str | None = None) -> BranchStats:
        state = self._load(branch, base_branch)
        return BranchStats(total_reviewed=len(state.reviewed_chunks), last_reviewed_at=state.last_reviewed_at)

    def get_reviewed_chunks(self, branch: str, base_branch: str | None = None) -> list[ReviewedChunk]:
        """Return the stored records for a pair, most recently reviewed first."""
        state = self._load(branch, base_branch)
        return sorted(state.reviewed_chunks, key=lambda c: c.reviewed_at, reverse=True)

    def clear_state(self, branch: str, base_branch: str | None = None) -> bool:
        """Forget the pair's history. No-op (returns False) when no such state is stored."""
        return self.store.delete(branch, base_branch)

    def clear_all(self) -> None:
        self.store.clear()

    def close(self) -> None:
        self.store.close()
