"""Progress and comment relay for a running review.

ReviewStream is a thin observer: every call is forwarded synchronously to the
matching callback, with no buffering. Concurrency lives entirely in the
ParallelReviewer's dispatch loop, which calls into the stream from the event
loop thread only.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from sleuth_core.models import ReviewComment, ReviewResult


@dataclass
class ReviewProgress:
    total_batches: int
    completed_batches: int
    current_batch: int
    percentage: int
    estimated_time_remaining: int | None = None  # milliseconds


@dataclass
class ReviewStreamCallbacks:
    """Optional consumer sinks. Any of them may be left as None."""

    on_comment: Callable[[ReviewComment], None] | None = None
    on_progress: Callable[[ReviewProgress], None] | None = None
    on_batch_complete: Callable[[int, list[ReviewComment]], None] | None = None
    on_complete: Callable[[ReviewResult], None] | None = None
    on_error: Callable[[Exception], None] | None = None


class ReviewStream:
    def __init__(self, callbacks: ReviewStreamCallbacks | None = None, clock: Callable[[], float] = time.monotonic):
        self.callbacks = callbacks or ReviewStreamCallbacks()
        self._clock = clock
        self._start_time = 0.0
        self._total_batches = 0
        self._completed_at: list[float] = []

    def start(self, total_batches: int) -> None:
        self._start_time = self._clock()
        self._total_batches = total_batches
        self._completed_at = []
        self.emit_progress(
            ReviewProgress(total_batches=total_batches, completed_batches=0, current_batch=0, percentage=0)
        )

    def emit_comment(self, comment: ReviewComment) -> None:
        if self.callbacks.on_comment:
            self.callbacks.on_comment(comment)

    def emit_progress(self, progress: ReviewProgress) -> None:
        if self.callbacks.on_progress:
            self.callbacks.on_progress(progress)

    def batch_complete(self, batch_index: int, comments: list[ReviewComment], total_batches: int | None = None) -> None:
        self._completed_at.append(self._clock())
        completed = len(self._completed_at)
        total = total_batches or self._total_batches or completed

        progress = ReviewProgress(
            total_batches=total,
            completed_batches=completed,
            current_batch=batch_index + 1,
            percentage=round(completed / total * 100),
        )
        if completed < total:
            avg_batch_seconds = (self._completed_at[-1] - self._start_time) / completed
            progress.estimated_time_remaining = round(avg_batch_seconds * (total - completed) * 1000)

        self.emit_progress(progress)

        if self.callbacks.on_batch_complete:
            self.callbacks.on_batch_complete(batch_index, comments)

    def complete(self, result: ReviewResult) -> None:
        completed = len(self._completed_at)
        total = self._total_batches or completed
        self.emit_progress(
            ReviewProgress(total_batches=total, completed_batches=completed, current_batch=completed, percentage=100)
        )
        if self.callbacks.on_complete:
            self.callbacks.on_complete(result)

    def error(self, error: Exception) -> None:
        if self.callbacks.on_error:
            self.callbacks.on_error(error)
