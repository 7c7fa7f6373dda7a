"""Abstract review-state store interface.

The review tracker depends on BaseStateStore — not on a concrete backend —
so the single-slot JSON file, the keyed SQLite database and the stateless
no-op store are swappable without touching tracker code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sleuth_store.models import ReviewState


class BaseStateStore(ABC):
    """Pluggable persistence for review state.

    Implementations never raise on I/O problems: a read that fails returns
    None and a write that fails is logged and dropped. Losing state only costs
    redundant AI calls on the next run.
    """

    @abstractmethod
    def load(self, branch: str, base_branch: str | None = None) -> ReviewState | None:
        """Return the stored state for this pair, or None if there is none."""

    @abstractmethod
    def save(self, state: ReviewState) -> None:
        """Persist a state, replacing any previous state for the same pair."""

    @abstractmethod
    def delete(self, branch: str, base_branch: str | None = None) -> bool:
        """Forget the state for this pair. Returns True if a state was removed."""

    @abstractmethod
    def clear(self) -> None:
        """Forget every stored state."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional — subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """
