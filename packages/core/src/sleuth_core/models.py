"""Data model shared by the review pipeline.

Chunks and comments are frozen: the pipeline never mutates a chunk handed to it
by the chunker, and comment merging always builds a new comment.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Literal

Severity = Literal["error", "warning", "info", "suggestion"]
Recommendation = Literal["BLOCK", "REQUEST_CHANGES", "APPROVE_WITH_NITS", "APPROVE"]

SEVERITIES: tuple[str, ...] = ("error", "warning", "info", "suggestion")


@dataclass(frozen=True)
class CodeChunk:
    """A contiguous, line-ranged unit of source code under review.

    ``start_line`` and ``end_line`` are 1-indexed and inclusive. ``hash`` is the
    content-addressing key used by the review tracker; when absent the tracker
    derives one from ``content``.
    """

    id: str
    name: str
    type: str
    file: str
    start_line: int
    end_line: int
    content: str = ""
    hash: str | None = None
    dependencies: tuple[str, ...] = ()
    priority_score: float | None = None

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    def with_priority(self, score: float) -> CodeChunk:
        return replace(self, priority_score=score)

    @classmethod
    def from_dict(cls, d: dict) -> CodeChunk:
        start = d.get("start_line", d.get("startLine", 1))
        return cls(
            id=d.get("id", ""),
            name=d.get("name", ""),
            type=d.get("type", "range"),
            file=d.get("file", ""),
            start_line=start,
            end_line=d.get("end_line", d.get("endLine", start)),
            content=d.get("content") or "",
            hash=d.get("hash"),
            dependencies=tuple(d.get("dependencies") or ()),
            priority_score=d.get("priority_score", d.get("priorityScore")),
        )


@dataclass(frozen=True)
class ReviewComment:
    """A single finding attached to a file and line."""

    file: str
    line: int
    body: str
    severity: Severity = "info"
    rule: str | None = None
    category: str | None = None
    fix: str | None = None

    def to_dict(self) -> dict:
        d = {"file": self.file, "line": self.line, "body": self.body, "severity": self.severity}
        for key in ("rule", "category", "fix"):
            value = getattr(self, key)
            if value:
                d[key] = value
        return d


@dataclass
class ReviewStats:
    errors: int = 0
    warnings: int = 0
    suggestions: int = 0

    def __add__(self, other: ReviewStats) -> ReviewStats:
        return ReviewStats(
            errors=self.errors + other.errors,
            warnings=self.warnings + other.warnings,
            suggestions=self.suggestions + other.suggestions,
        )

    @property
    def total(self) -> int:
        return self.errors + self.warnings + self.suggestions

    @classmethod
    def from_comments(cls, comments: list[ReviewComment]) -> ReviewStats:
        """Count comments by severity; ``info`` findings count as suggestions."""
        stats = cls()
        for c in comments:
            if c.severity == "error":
                stats.errors += 1
            elif c.severity == "warning":
                stats.warnings += 1
            else:
                stats.suggestions += 1
        return stats


@dataclass
class ReviewResult:
    """Outcome of reviewing one batch, or of a whole merged review run."""

    comments: list[ReviewComment] = field(default_factory=list)
    summary: str = ""
    stats: ReviewStats = field(default_factory=ReviewStats)
    recommendation: Recommendation | None = None
    top_issues: list[str] = field(default_factory=list)
    # Indices of batches that failed or timed out; their chunks were not reviewed.
    failed_batches: list[int] = field(default_factory=list)

    @classmethod
    def empty(cls, summary: str, recommendation: Recommendation | None = "APPROVE") -> ReviewResult:
        return cls(summary=summary, recommendation=recommendation)


@dataclass
class ChangedFile:
    """A file touched by the branch under review, as reported by git."""

    path: str
    status: str  # "added" | "modified" | "deleted" | "renamed"
    additions: int | None = None
    deletions: int | None = None
    changed_lines: list[tuple[int, int]] = field(default_factory=list)


@dataclass
class ScoutReport:
    """Cheap first-pass assessment used to pick files for a deep-dive review."""

    complexity_score: int = 0
    critical_files: list[str] = field(default_factory=list)
