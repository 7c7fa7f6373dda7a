"""Cross-source comment deduplication.

Rule-based findings and AI findings often describe the same problem on the
same line in different words. Two comments are duplicates when they share file
and line and their bodies overlap enough (Jaccard index over significant
words). Duplicates are merged rather than dropped, so a fix or rule carried by
either side survives.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace

from sleuth_core.models import ReviewComment

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.6

_SEVERITY_PRIORITY = {"error": 4, "warning": 3, "info": 2, "suggestion": 1}
_NON_WORD_RE = re.compile(r"[^\w\s]")


@dataclass
class DeduplicationStats:
    total_comments: int = 0
    duplicates_removed: int = 0
    final_comments: int = 0
    deduplication_rate: float = 0.0


@dataclass
class DeduplicationResult:
    comments: list[ReviewComment] = field(default_factory=list)
    stats: DeduplicationStats = field(default_factory=DeduplicationStats)


def _significant_words(text: str) -> set[str]:
    return {w for w in _NON_WORD_RE.sub(" ", text.lower()).split() if len(w) > 2}


def calculate_similarity(a: str, b: str) -> float:
    """Return the Jaccard index of the significant word sets of two strings."""
    words_a = _significant_words(a)
    words_b = _significant_words(b)
    if not words_a and not words_b:
        return 1.0
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def are_duplicates(a: ReviewComment, b: ReviewComment, threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> bool:
    if a.file != b.file or a.line != b.line:
        return False
    return calculate_similarity(a.body, b.body) >= threshold


def merge_comments(a: ReviewComment, b: ReviewComment) -> ReviewComment:
    """Merge two duplicates, keeping the higher-severity one as the base.

    Ties go to ``a``. The longer body wins; fix, rule and category are taken
    from whichever side has them.
    """
    if _SEVERITY_PRIORITY.get(a.severity, 0) >= _SEVERITY_PRIORITY.get(b.severity, 0):
        base, other = a, b
    else:
        base, other = b, a
    return replace(
        base,
        body=base.body if len(base.body) >= len(other.body) else other.body,
        fix=base.fix or other.fix,
        rule=base.rule or other.rule,
        category=base.category or other.category,
    )


class CommentDeduplicator:
    def __init__(self, similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD):
        self.similarity_threshold = similarity_threshold

    def deduplicate(self, comments: list[ReviewComment]) -> DeduplicationResult:
        if not comments:
            return DeduplicationResult()

        deduplicated: list[ReviewComment] = []
        consumed: set[int] = set()
        removed = 0

        for i, comment in enumerate(comments):
            if i in consumed:
                continue
            merged = comment
            for j in range(i + 1, len(comments)):
                if j in consumed:
                    continue
                if are_duplicates(merged, comments[j], self.similarity_threshold):
                    merged = merge_comments(merged, comments[j])
                    consumed.add(j)
                    removed += 1
            deduplicated.append(merged)

        if removed:
            logger.debug("Merged %d duplicate comment(s)", removed)

        return DeduplicationResult(
            comments=deduplicated,
            stats=DeduplicationStats(
                total_comments=len(comments),
                duplicates_removed=removed,
                final_comments=len(deduplicated),
                deduplication_rate=removed / len(comments),
            ),
        )

    def analyze(self, comments: list[ReviewComment]) -> DeduplicationStats:
        return self.deduplicate(comments).stats
