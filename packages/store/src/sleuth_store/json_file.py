"""JsonStateStore — single-slot review state in a local JSON file.

The file holds exactly one (branch, base_branch) state. Asking for a
different pair returns None, so switching branches starts from an empty state
and the next save() overwrites the previous branch's history. That
reset-on-switch behaviour is the default policy; use SQLiteStateStore to keep
several branches at once.

No lock is taken around the read-modify-write cycle: two processes sharing a
storage path race and the last write wins.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from sleuth_store.base import BaseStateStore
from sleuth_store.models import ReviewState

logger = logging.getLogger(__name__)

_STATE_FILENAME = "review-state.json"


class JsonStateStore(BaseStateStore):
    def __init__(self, storage_path: str = ".sleuth-reviews"):
        self.storage_path = Path(storage_path).resolve()
        self.state_file = self.storage_path / _STATE_FILENAME
        self._ensure_storage_directory()

    def _ensure_storage_directory(self) -> bool:
        try:
            self.storage_path.mkdir(parents=True, exist_ok=True)
            return True
        except OSError as e:
            # Restricted environments (read-only checkouts, odd CI sandboxes):
            # the tracker still works per call, it just cannot remember anything.
            logger.warning("Could not create review state directory %s: %s", self.storage_path, e)
            return False

    def _read(self) -> ReviewState | None:
        try:
            return ReviewState.from_dict(json.loads(self.state_file.read_text(encoding="utf-8")))
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Ignoring unreadable review state %s (%s): %s", self.state_file, type(e).__name__, e)
            return None

    def load(self, branch: str, base_branch: str | None = None) -> ReviewState | None:
        state = self._read()
        if state is None or not state.matches(branch, base_branch):
            return None
        return state

    def save(self, state: ReviewState) -> None:
        if not self._ensure_storage_directory():
            return
        try:
            self.state_file.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not persist review state to %s: %s", self.state_file, e)

    def delete(self, branch: str, base_branch: str | None = None) -> bool:
        if self.load(branch, base_branch) is None:
            return False
        self.save(ReviewState(branch=branch, base_branch=base_branch))
        return True

    def clear(self) -> None:
        try:
            self.state_file.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not delete review state %s: %s", self.state_file, e)
