"""No-op state store — used when incremental review is disabled.

Every run reviews every chunk. Using a NoOpStateStore rather than None lets
the tracker always call load()/save() without conditional checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sleuth_store.base import BaseStateStore

if TYPE_CHECKING:
    from sleuth_store.models import ReviewState


class NoOpStateStore(BaseStateStore):
    def load(self, branch: str, base_branch: str | None = None) -> ReviewState | None:
        return None

    def save(self, state: ReviewState) -> None:
        pass  # intentional no-op

    def delete(self, branch: str, base_branch: str | None = None) -> bool:
        return False

    def clear(self) -> None:
        pass
