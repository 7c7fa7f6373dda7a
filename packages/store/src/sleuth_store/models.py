"""Persisted review-state models.

Decoupled from sleuth_core so the store layer can be used independently.
The on-disk JSON keeps camelCase keys (``startLine``, ``reviewedAt``, ...) so
state files stay readable by other tooling that shares the format.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ReviewedChunk:
    """One chunk that has been reviewed, keyed by its content hash."""

    hash: str
    file: str
    start_line: int
    end_line: int
    reviewed_at: int  # epoch milliseconds
    # Hash of the comments produced when this chunk was reviewed. Recorded
    # for future drift detection; nothing compares it yet.
    review_hash: str | None = None

    def to_dict(self) -> dict:
        d = {
            "hash": self.hash,
            "file": self.file,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "reviewedAt": self.reviewed_at,
        }
        if self.review_hash is not None:
            d["reviewHash"] = self.review_hash
        return d

    @classmethod
    def from_dict(cls, d: dict) -> ReviewedChunk:
        return cls(
            hash=d["hash"],
            file=d.get("file", ""),
            start_line=int(d.get("startLine", 0)),
            end_line=int(d.get("endLine", 0)),
            reviewed_at=int(d.get("reviewedAt", 0)),
            review_hash=d.get("reviewHash"),
        )


@dataclass
class ReviewState:
    """Everything remembered about one (branch, base_branch) pair."""

    branch: str
    base_branch: str | None = None
    reviewed_chunks: list[ReviewedChunk] = field(default_factory=list)
    last_reviewed_at: int = 0

    def matches(self, branch: str, base_branch: str | None) -> bool:
        return self.branch == branch and self.base_branch == base_branch

    def to_dict(self) -> dict:
        d: dict = {"branch": self.branch}
        if self.base_branch is not None:
            d["baseBranch"] = self.base_branch
        d["reviewedChunks"] = [c.to_dict() for c in self.reviewed_chunks]
        d["lastReviewedAt"] = self.last_reviewed_at
        return d

    @classmethod
    def from_dict(cls, d: dict) -> ReviewState:
        """Build a state from its JSON form; raises KeyError/TypeError/ValueError when malformed."""
        return cls(
            branch=d["branch"],
            base_branch=d.get("baseBranch"),
            reviewed_chunks=[ReviewedChunk.from_dict(c) for c in d.get("reviewedChunks", [])],
            last_reviewed_at=int(d.get("lastReviewedAt", 0)),
        )
