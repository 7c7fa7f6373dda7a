"""SQLiteStateStore — keyed review state for several branches at once.

Unlike JsonStateStore, each (branch, base_branch) pair gets its own state, so
reviewing feature-a and then feature-b does not throw away feature-a's
history. Batteries included: sqlite3 ships with Python.

Schema:
  review_states    — one row per (branch, base_branch) with lastReviewedAt.
  reviewed_chunks  — one row per reviewed chunk hash within a state.

A missing base branch is stored as '' because NULL never compares equal in a
primary key.
"""

from __future__ import annotations

import logging
import sqlite3

from sleuth_store.base import BaseStateStore
from sleuth_store.models import ReviewedChunk, ReviewState

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS review_states (
    branch            TEXT NOT NULL,
    base_branch       TEXT NOT NULL DEFAULT '',
    last_reviewed_at  INTEGER DEFAULT 0,
    PRIMARY KEY (branch, base_branch)
);
CREATE TABLE IF NOT EXISTS reviewed_chunks (
    branch       TEXT NOT NULL,
    base_branch  TEXT NOT NULL DEFAULT '',
    hash         TEXT NOT NULL,
    file         TEXT,
    start_line   INTEGER,
    end_line     INTEGER,
    reviewed_at  INTEGER,
    review_hash  TEXT,
    PRIMARY KEY (branch, base_branch, hash)
);
"""


def _key(branch: str, base_branch: str | None) -> tuple[str, str]:
    return branch, base_branch or ""


class SQLiteStateStore(BaseStateStore):
    def __init__(self, db_path: str = ".sleuth-reviews.db"):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None
        try:
            self._conn = sqlite3.connect(db_path)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            logger.warning("Could not open review state database %s: %s", db_path, e)
            self._conn = None

    def load(self, branch: str, base_branch: str | None = None) -> ReviewState | None:
        if self._conn is None:
            return None
        try:
            row = self._conn.execute(
                "SELECT last_reviewed_at FROM review_states WHERE branch=? AND base_branch=?",
                _key(branch, base_branch),
            ).fetchone()
            if row is None:
                return None
            chunk_rows = self._conn.execute(
                "SELECT * FROM reviewed_chunks WHERE branch=? AND base_branch=?",
                _key(branch, base_branch),
            ).fetchall()
        except sqlite3.Error as e:
            logger.warning("Could not read review state for %s: %s", branch, e)
            return None

        return ReviewState(
            branch=branch,
            base_branch=base_branch,
            reviewed_chunks=[self._row_to_chunk(r) for r in chunk_rows],
            last_reviewed_at=row["last_reviewed_at"] or 0,
        )

    def save(self, state: ReviewState) -> None:
        if self._conn is None:
            return
        key = _key(state.branch, state.base_branch)
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT OR REPLACE INTO review_states (branch, base_branch, last_reviewed_at) VALUES (?, ?, ?)",
                    (*key, state.last_reviewed_at),
                )
                self._conn.execute("DELETE FROM reviewed_chunks WHERE branch=? AND base_branch=?", key)
                self._conn.executemany(
                    """
                    INSERT INTO reviewed_chunks
                      (branch, base_branch, hash, file, start_line, end_line, reviewed_at, review_hash)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (*key, c.hash, c.file, c.start_line, c.end_line, c.reviewed_at, c.review_hash)
                        for c in state.reviewed_chunks
                    ],
                )
        except sqlite3.Error as e:
            logger.warning("Could not persist review state for %s: %s", state.branch, e)

    def delete(self, branch: str, base_branch: str | None = None) -> bool:
        if self._conn is None:
            return False
        key = _key(branch, base_branch)
        try:
            with self._conn:
                cursor = self._conn.execute("DELETE FROM review_states WHERE branch=? AND base_branch=?", key)
                self._conn.execute("DELETE FROM reviewed_chunks WHERE branch=? AND base_branch=?", key)
            return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.warning("Could not delete review state for %s: %s", branch, e)
            return False

    def clear(self) -> None:
        if self._conn is None:
            return
        try:
            with self._conn:
                self._conn.execute("DELETE FROM reviewed_chunks")
                self._conn.execute("DELETE FROM review_states")
        except sqlite3.Error as e:
            logger.warning("Could not clear review state: %s", e)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @staticmethod
    def _row_to_chunk(row: sqlite3.Row) -> ReviewedChunk:
        return ReviewedChunk(
            hash=row["hash"],
            file=row["file"] or "",
            start_line=row["start_line"] or 0,
            end_line=row["end_line"] or 0,
            reviewed_at=row["reviewed_at"] or 0,
            review_hash=row["review_hash"],
        )
