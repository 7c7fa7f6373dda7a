"""Tests for sleuth-store review-state backends."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from sleuth_store.json_file import JsonStateStore
from sleuth_store.models import ReviewedChunk, ReviewState
from sleuth_store.noop import NoOpStateStore
from sleuth_store.sqlite import SQLiteStateStore


def _make_state(branch="feature", base_branch="main", hashes=("h1", "h2"), at=1000):
    return ReviewState(
        branch=branch,
        base_branch=base_branch,
        reviewed_chunks=[
            ReviewedChunk(hash=h, file="src/app.py", start_line=i * 10 + 1, end_line=i * 10 + 5, reviewed_at=at)
            for i, h in enumerate(hashes)
        ],
        last_reviewed_at=at,
    )


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TestReviewStateModel:
    def test_json_form_uses_camel_case(self):
        d = _make_state().to_dict()
        assert d["baseBranch"] == "main"
        assert d["lastReviewedAt"] == 1000
        assert d["reviewedChunks"][0] == {
            "hash": "h1",
            "file": "src/app.py",
            "startLine": 1,
            "endLine": 5,
            "reviewedAt": 1000,
        }

    def test_base_branch_omitted_when_none(self):
        assert "baseBranch" not in _make_state(base_branch=None).to_dict()

    def test_from_dict_restores_state(self):
        state = _make_state()
        state.reviewed_chunks[0].review_hash = "abc"
        assert ReviewState.from_dict(state.to_dict()) == state

    def test_from_dict_rejects_missing_branch(self):
        with pytest.raises(KeyError):
            ReviewState.from_dict({"reviewedChunks": []})


# ---------------------------------------------------------------------------
# NoOpStateStore
# ---------------------------------------------------------------------------


class TestNoOpStateStore:
    def test_load_always_none(self):
        store = NoOpStateStore()
        store.save(_make_state())
        assert store.load("feature", "main") is None

    def test_delete_and_clear(self):
        store = NoOpStateStore()
        assert store.delete("feature", "main") is False
        store.clear()
        store.close()


# ---------------------------------------------------------------------------
# JsonStateStore
# ---------------------------------------------------------------------------


class TestJsonStateStore:
    def test_save_and_load(self, tmp_path):
        store = JsonStateStore(str(tmp_path / "reviews"))
        store.save(_make_state())
        loaded = store.load("feature", "main")
        assert loaded == _make_state()

    def test_creates_storage_directory(self, tmp_path):
        JsonStateStore(str(tmp_path / "nested" / "reviews"))
        assert (tmp_path / "nested" / "reviews").is_dir()

    def test_file_is_camel_case_json(self, tmp_path):
        store = JsonStateStore(str(tmp_path))
        store.save(_make_state())
        data = json.loads((tmp_path / "review-state.json").read_text())
        assert data["branch"] == "feature"
        assert "reviewedChunks" in data

    def test_missing_file_loads_none(self, tmp_path):
        assert JsonStateStore(str(tmp_path)).load("feature", "main") is None

    def test_other_pair_loads_none(self, tmp_path):
        store = JsonStateStore(str(tmp_path))
        store.save(_make_state())
        assert store.load("other", "main") is None
        assert store.load("feature", "develop") is None
        assert store.load("feature", None) is None

    def test_switching_branch_replaces_single_slot(self, tmp_path):
        store = JsonStateStore(str(tmp_path))
        store.save(_make_state(branch="feature-a"))
        store.save(_make_state(branch="feature-b"))
        assert store.load("feature-a", "main") is None
        assert store.load("feature-b", "main") is not None

    def test_corrupt_file_treated_as_absent(self, tmp_path, caplog):
        (tmp_path / "review-state.json").write_text("{not json")
        store = JsonStateStore(str(tmp_path))
        with caplog.at_level("WARNING"):
            assert store.load("feature", "main") is None
        assert "unreadable review state" in caplog.text

    def test_incompatible_document_treated_as_absent(self, tmp_path, caplog):
        (tmp_path / "review-state.json").write_text(json.dumps(["not", "a", "state"]))
        with caplog.at_level("WARNING"):
            assert JsonStateStore(str(tmp_path)).load("feature", "main") is None
        assert "unreadable review state" in caplog.text

    def test_unwritable_location_degrades(self, tmp_path, caplog):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        with caplog.at_level("WARNING"):
            store = JsonStateStore(str(blocker / "reviews"))
            store.save(_make_state())
            assert store.load("feature", "main") is None
        assert "Could not create review state directory" in caplog.text

    def test_unreadable_state_file_degrades(self, tmp_path, mocker, caplog):
        store = JsonStateStore(str(tmp_path))
        store.save(_make_state())
        denied = PermissionError("Permission denied")
        mocker.patch.object(Path, "stat", side_effect=denied)
        mocker.patch.object(Path, "read_text", side_effect=denied)
        with caplog.at_level("WARNING"):
            assert store.load("feature", "main") is None
        assert "PermissionError" in caplog.text

    def test_delete_only_matching_pair(self, tmp_path):
        store = JsonStateStore(str(tmp_path))
        store.save(_make_state())
        assert store.delete("other", "main") is False
        assert store.load("feature", "main").reviewed_chunks
        assert store.delete("feature", "main") is True
        assert store.load("feature", "main").reviewed_chunks == []

    def test_clear_removes_file(self, tmp_path):
        store = JsonStateStore(str(tmp_path))
        store.save(_make_state())
        store.clear()
        assert not (tmp_path / "review-state.json").exists()
        store.clear()  # second clear is a no-op


# ---------------------------------------------------------------------------
# SQLiteStateStore
# ---------------------------------------------------------------------------


class TestSQLiteStateStore:
    def test_save_and_load(self, tmp_path):
        store = SQLiteStateStore(db_path=str(tmp_path / "state.db"))
        store.save(_make_state())
        loaded = store.load("feature", "main")
        assert {c.hash for c in loaded.reviewed_chunks} == {"h1", "h2"}
        assert loaded.last_reviewed_at == 1000
        store.close()

    def test_keeps_several_branches(self, tmp_path):
        store = SQLiteStateStore(db_path=str(tmp_path / "state.db"))
        store.save(_make_state(branch="feature-a", hashes=("a1",)))
        store.save(_make_state(branch="feature-b", hashes=("b1",)))
        assert [c.hash for c in store.load("feature-a", "main").reviewed_chunks] == ["a1"]
        assert [c.hash for c in store.load("feature-b", "main").reviewed_chunks] == ["b1"]
        store.close()

    def test_none_base_branch_is_its_own_key(self, tmp_path):
        store = SQLiteStateStore(db_path=str(tmp_path / "state.db"))
        store.save(_make_state(base_branch=None))
        assert store.load("feature", None) is not None
        assert store.load("feature", "main") is None
        store.close()

    def test_save_replaces_previous_chunks(self, tmp_path):
        store = SQLiteStateStore(db_path=str(tmp_path / "state.db"))
        store.save(_make_state(hashes=("h1", "h2")))
        store.save(_make_state(hashes=("h3",)))
        assert [c.hash for c in store.load("feature", "main").reviewed_chunks] == ["h3"]
        store.close()

    def test_persists_across_connections(self, tmp_path):
        db = str(tmp_path / "state.db")
        store = SQLiteStateStore(db_path=db)
        store.save(_make_state())
        store.close()
        assert SQLiteStateStore(db_path=db).load("feature", "main") is not None

    def test_delete_and_clear(self, tmp_path):
        store = SQLiteStateStore(db_path=str(tmp_path / "state.db"))
        store.save(_make_state(branch="a"))
        store.save(_make_state(branch="b"))
        assert store.delete("a", "main") is True
        assert store.delete("a", "main") is False
        assert store.load("b", "main") is not None
        store.clear()
        assert store.load("b", "main") is None
        store.close()

    def test_unopenable_database_degrades(self, tmp_path, caplog):
        with caplog.at_level("WARNING"):
            store = SQLiteStateStore(db_path=str(tmp_path / "missing-dir" / "state.db"))
            store.save(_make_state())
            assert store.load("feature", "main") is None
            assert store.delete("feature", "main") is False
        assert "Could not open review state database" in caplog.text

    def test_close_is_idempotent(self, tmp_path):
        store = SQLiteStateStore(db_path=str(tmp_path / "state.db"))
        store.close()
        store.close()
