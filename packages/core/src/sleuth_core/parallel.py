"""Bounded-concurrency dispatch of chunk batches to an AI provider.

Batches are started in index order through a sliding window: at most
``concurrency`` reviews are in flight, and a new one starts as soon as any
finishes. Each review races a timeout; on timeout the provider call is
cancelled. A failed or timed-out batch contributes an empty result, so one bad
batch never takes down the whole review.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

from sleuth_core.errors import BatchReviewError
from sleuth_core.models import ReviewComment, ReviewResult, ReviewStats

if TYPE_CHECKING:
    from sleuth_core.models import CodeChunk
    from sleuth_core.stream import ReviewStream

logger = logging.getLogger(__name__)

_DEDUP_BODY_PREFIX = 50
_TOP_ISSUES_LIMIT = 5
_TOP_ISSUE_PREVIEW = 100
_TOP_ISSUE_RANK = {"error": 3, "warning": 2, "suggestion": 1, "info": 0}


class ReviewProvider(Protocol):
    async def review_code(self, chunks: list[CodeChunk], global_rules: list[str]) -> ReviewResult: ...


def determine_recommendation(stats: ReviewStats, request_changes_threshold: int = 5) -> str:
    if stats.errors > 0:
        return "BLOCK"
    if stats.warnings > request_changes_threshold:
        return "REQUEST_CHANGES"
    if stats.warnings > 0 or stats.suggestions > 0:
        return "APPROVE_WITH_NITS"
    return "APPROVE"


def extract_top_issues(comments: list[ReviewComment], limit: int = _TOP_ISSUES_LIMIT) -> list[str]:
    ranked = sorted(comments, key=lambda c: _TOP_ISSUE_RANK.get(c.severity, 0), reverse=True)
    issues = []
    for c in ranked[:limit]:
        preview = c.body[:_TOP_ISSUE_PREVIEW]
        ellipsis = "..." if len(preview) < len(c.body) else ""
        issues.append(f"{c.file}:{c.line} - {preview}{ellipsis}")
    return issues


def count_summary(stats: ReviewStats) -> str:
    if stats.total == 0:
        return "No issues found. Code looks good!"
    parts = []
    if stats.errors:
        parts.append(f"{stats.errors} error(s)")
    if stats.warnings:
        parts.append(f"{stats.warnings} warning(s)")
    if stats.suggestions:
        parts.append(f"{stats.suggestions} suggestion(s)")
    return f"Found {', '.join(parts)}."


class ParallelReviewer:
    def __init__(self, concurrency: int = 3, timeout: float = 60.0, request_changes_threshold: int = 5):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.concurrency = concurrency
        self.timeout = timeout
        self.request_changes_threshold = request_changes_threshold

    async def review_batches(
        self,
        batches: list[list[CodeChunk]],
        provider: ReviewProvider,
        global_rules: list[str],
        stream: ReviewStream | None = None,
        critical_files: list[str] | set[str] | None = None,
    ) -> ReviewResult:
        """Review every batch and merge the results in batch order.

        Never raises for provider failures or timeouts. Indices of degraded batches are
        reported in ``failed_batches`` of the merged result. Stream events for a
        batch (``batch_complete`` then one ``emit_comment`` per comment) fire
        in completion order, which may differ from batch order.
        """
        if not batches:
            result = ReviewResult.empty("No chunks to review.")
            if stream:
                stream.complete(result)
            return result

        total = len(batches)
        critical = set(critical_files or ())
        results: list[ReviewResult | None] = [None] * total
        in_flight: dict[asyncio.Task, int] = {}
        failed: set[int] = set()
        next_index = 0

        def dispatch(index: int) -> None:
            task = asyncio.create_task(self._review_batch(index, batches[index], provider, global_rules, critical))
            in_flight[task] = index

        try:
            while next_index < total and len(in_flight) < self.concurrency:
                dispatch(next_index)
                next_index += 1

            while in_flight:
                done, _ = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    index = in_flight.pop(task)
                    result, error = task.result()
                    results[index] = result
                    if error is not None:
                        failed.add(index)
                    if stream:
                        if error is not None:
                            stream.error(error)
                        stream.batch_complete(index, result.comments, total)
                        for comment in result.comments:
                            stream.emit_comment(comment)
                    if next_index < total:
                        dispatch(next_index)
                        next_index += 1
        finally:
            for task in in_flight:
                task.cancel()

        merged = self.merge_results([r for r in results if r is not None])
        merged.failed_batches = sorted(failed)
        if stream:
            stream.complete(merged)
        return merged

    async def _review_batch(
        self,
        index: int,
        batch: list[CodeChunk],
        provider: ReviewProvider,
        global_rules: list[str],
        critical_files: set[str],
    ) -> tuple[ReviewResult, BatchReviewError | None]:
        deep_dive = getattr(provider, "deep_dive_review", None)
        use_deep_dive = deep_dive is not None and any(c.file in critical_files for c in batch)

        try:
            call = deep_dive(batch, global_rules) if use_deep_dive else provider.review_code(batch, global_rules)
            return await asyncio.wait_for(call, timeout=self.timeout), None
        except asyncio.TimeoutError:
            reason = f"Review timed out after {self.timeout:g}s"
        except Exception as e:
            reason = str(e) or type(e).__name__

        logger.warning("Batch %d degraded to an empty result: %s", index + 1, reason)
        return ReviewResult.empty(f"Review failed: {reason}"), BatchReviewError(index, reason)

    def merge_results(self, results: list[ReviewResult]) -> ReviewResult:
        comments: list[ReviewComment] = []
        stats = ReviewStats()
        for result in results:
            comments.extend(result.comments)
            stats = stats + result.stats

        comments = self.deduplicate_comments(comments)
        summaries = [r.summary for r in results if r.summary]
        return ReviewResult(
            comments=comments,
            summary="\n".join(summaries) if summaries else count_summary(stats),
            stats=stats,
            recommendation=determine_recommendation(stats, self.request_changes_threshold),
            top_issues=extract_top_issues(comments),
        )

    @staticmethod
    def deduplicate_comments(comments: list[ReviewComment]) -> list[ReviewComment]:
        """Drop later comments sharing file, line and body prefix with an earlier one."""
        seen: set[tuple] = set()
        unique = []
        for c in comments:
            key = (c.file, c.line, c.body[:_DEDUP_BODY_PREFIX])
            if key not in seen:
                seen.add(key)
                unique.append(c)
        return unique
