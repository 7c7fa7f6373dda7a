from __future__ import annotations


class ProviderError(Exception):
    """An AI provider call failed after retries or returned an unusable response."""


class BatchReviewError(Exception):
    """Reported to the review stream when one batch could not be reviewed.

    Never raised out of ParallelReviewer.review_batches; the batch contributes
    an empty result instead.
    """

    def __init__(self, batch_index: int, reason: str):
        super().__init__(f"Batch {batch_index + 1} failed: {reason}")
        self.batch_index = batch_index
        self.reason = reason
