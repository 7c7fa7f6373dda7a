"""Core review orchestration.

run_review() is the incremental pipeline: filter out chunks the tracker has
already seen, batch what is left, review the batches concurrently, then merge,
deduplicate and rank the findings and remember what was reviewed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sleuth_core.batching import BatchConfig, BatchStats, ChunkBatcher
from sleuth_core.dedup import CommentDeduplicator, DeduplicationStats
from sleuth_core.models import ReviewResult, ReviewStats
from sleuth_core.parallel import ParallelReviewer, count_summary, determine_recommendation, extract_top_issues
from sleuth_core.prioritizer import CommentPrioritizer, PrioritizedComment
from sleuth_core.providers.anthropic import AnthropicReviewer
from sleuth_core.providers.openai import OpenAIReviewer
from sleuth_core.stream import ReviewStream

if TYPE_CHECKING:
    from sleuth_core.models import CodeChunk, ReviewComment
    from sleuth_core.stream import ReviewStreamCallbacks

logger = logging.getLogger(__name__)

_ADAPTIVE_BATCH_THRESHOLD = 10
_ADAPTIVE_MAX_CONCURRENCY = 6

_EVENTS = {
    "BLOCK": "REQUEST_CHANGES",
    "REQUEST_CHANGES": "REQUEST_CHANGES",
    "APPROVE_WITH_NITS": "COMMENT",
    "APPROVE": "APPROVE",
}


@dataclass
class ReviewOutcome:
    """Everything run_review produced — the CLI renders, posts and reports from this.

    Decoupled from sleuth_store: tracker statistics are carried as whatever the
    tracker returned, and are None when no tracker was used.
    """

    result: ReviewResult
    prioritized: list[PrioritizedComment] = field(default_factory=list)
    total_chunks: int = 0
    reviewed_chunks: int = 0
    tracker_stats: object | None = None
    batch_stats: BatchStats = field(default_factory=BatchStats)
    dedup_stats: DeduplicationStats = field(default_factory=DeduplicationStats)
    critical_files: list[str] = field(default_factory=list)
    reviewed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def skipped_chunks(self) -> int:
        return self.total_chunks - self.reviewed_chunks


def get_reviewer(config: dict):
    model = config["model"]
    if model == "anthropic":
        return AnthropicReviewer(api_key=config["anthropic_api_key"], model=config.get("model_name"))
    if model == "openai":
        return OpenAIReviewer(api_key=config["openai_api_key"], model=config.get("model_name"))
    raise ValueError(f"Unknown model provider: {model!r}. Choose 'anthropic' or 'openai'.")


def determine_event(recommendation: str | None) -> str:
    """Choose the GitHub review event for a recommendation."""
    return _EVENTS.get(recommendation or "APPROVE", "COMMENT")


def effective_concurrency(concurrency: int, batch_count: int, adaptive: bool = True) -> int:
    """Widen the window for large reviews, capped so providers are not flooded."""
    if adaptive and batch_count > _ADAPTIVE_BATCH_THRESHOLD:
        return max(concurrency, min(concurrency * 2, _ADAPTIVE_MAX_CONCURRENCY))
    return concurrency


async def run_review(
    chunks: list[CodeChunk],
    provider,
    config: dict,
    *,
    branch: str,
    base_branch: str | None = None,
    tracker=None,
    extra_comments: list[ReviewComment] | tuple = (),
    stream_callbacks: ReviewStreamCallbacks | None = None,
    force_full: bool = False,
) -> ReviewOutcome:
    """Run the incremental review pipeline over a list of chunks.

    ``extra_comments`` are findings from other sources (static rules, linters)
    that should be deduplicated against the AI's comments. ``force_full``
    reviews every chunk while still recording them with the tracker.
    """
    parallel_cfg = config.get("parallel", {})
    batching_cfg = config.get("batching", {})
    threshold = parallel_cfg.get("request_changes_threshold", 5)

    to_review = list(chunks)
    tracker_stats = None
    if tracker is not None and not force_full:
        filtered = tracker.filter_chunks_for_review(to_review, branch, base_branch)
        to_review = filtered.chunks_to_review
        tracker_stats = filtered.stats
        if tracker_stats.skipped_chunks:
            logger.info(
                "Incremental review: skipping %d already-reviewed chunk(s) (%d%% reduction)",
                tracker_stats.skipped_chunks,
                round(tracker_stats.skip_rate * 100),
            )

    critical_files: list[str] = []
    if parallel_cfg.get("scout") and to_review and hasattr(provider, "scout_review"):
        report = await provider.scout_review(to_review)
        critical_files = report.critical_files
        logger.info(
            "Scout pass: complexity %d/10, %d critical file(s)", report.complexity_score, len(critical_files)
        )

    batcher = ChunkBatcher(BatchConfig.from_dict(batching_cfg))
    batches = batcher.batch_chunks(to_review)
    batch_stats = batcher.get_batch_stats(batches)
    logger.info(
        "Batched %d chunk(s) into %d batch(es) (avg %.1f chunks/batch)",
        len(to_review),
        batch_stats.total_batches,
        batch_stats.average_batch_size,
    )

    stream = None
    if stream_callbacks is not None:
        stream = ReviewStream(stream_callbacks)
        stream.start(len(batches))

    concurrency = effective_concurrency(
        parallel_cfg.get("concurrency", 3), len(batches), parallel_cfg.get("adaptive_concurrency", True)
    )
    reviewer = ParallelReviewer(
        concurrency=concurrency,
        timeout=parallel_cfg.get("timeout", 60.0),
        request_changes_threshold=threshold,
    )
    ai_result = await reviewer.review_batches(
        batches, provider, config.get("global_rules", []), stream=stream, critical_files=critical_files
    )

    deduplicator = CommentDeduplicator(config.get("dedup", {}).get("similarity_threshold", 0.6))
    deduped = deduplicator.deduplicate([*extra_comments, *ai_result.comments])
    if deduped.stats.duplicates_removed:
        logger.info(
            "Deduplicated %d comment(s) (%d%% reduction)",
            deduped.stats.duplicates_removed,
            round(deduped.stats.deduplication_rate * 100),
        )

    prioritized = CommentPrioritizer().prioritize_comments(deduped.comments)
    comments = [c.to_comment() for c in prioritized]
    stats = ReviewStats.from_comments(comments)
    result = ReviewResult(
        comments=comments,
        summary=ai_result.summary if batches else count_summary(stats),
        stats=stats,
        recommendation=determine_recommendation(stats, threshold),
        top_issues=extract_top_issues(comments),
    )

    failed = set(ai_result.failed_batches)
    if failed and tracker is not None:
        logger.warning("Not recording %d failed batch(es) as reviewed; they will be retried next run", len(failed))
    reviewed = [chunk for i, batch in enumerate(batches) if i not in failed for chunk in batch]
    if tracker is not None and reviewed:
        tracker.mark_as_reviewed(reviewed, comments, branch, base_branch)

    return ReviewOutcome(
        result=result,
        prioritized=prioritized,
        total_chunks=len(chunks),
        reviewed_chunks=len(to_review),
        tracker_stats=tracker_stats,
        batch_stats=batch_stats,
        dedup_stats=deduped.stats,
        critical_files=critical_files,
    )
