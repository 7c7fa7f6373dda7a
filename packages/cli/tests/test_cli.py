"""Tests for the CLI entry point."""

import subprocess
from unittest.mock import AsyncMock, MagicMock, patch

import click
import pytest
from click.testing import CliRunner

from sleuth_cli.cli import _build_tracker, main
from sleuth_cli.git import GitError
from sleuth_core.models import ReviewComment, ReviewResult, ReviewStats
from sleuth_core.pipeline import ReviewOutcome
from sleuth_store.json_file import JsonStateStore
from sleuth_store.models import ReviewedChunk
from sleuth_store.noop import NoOpStateStore
from sleuth_store.sqlite import SQLiteStateStore
from sleuth_store.tracker import BranchStats, ReviewTracker

DIFF = """\
diff --git a/src/app.py b/src/app.py
index 1111111..2222222 100644
--- a/src/app.py
+++ b/src/app.py
@@ -1,2 +1,3 @@ def main():
     run()
+    cleanup()
+    exit(0)
"""


def _make_config(model="anthropic", anthropic_key="ant", openai_key=None):
    return {
        "model": model,
        "model_name": None,
        "anthropic_api_key": anthropic_key,
        "openai_api_key": openai_key,
        "github_token": None,
        "base_branch": "main",
        "global_rules": [],
        "exclude": [],
        "batch_limit": 60,
        "batching": {"max_tokens": 8000, "max_chunks": 50, "group_by_file": True, "include_dependencies": False},
        "parallel": {"concurrency": 3, "timeout": 5.0, "adaptive_concurrency": True, "request_changes_threshold": 5},
        "incremental": {"enabled": True, "store": "json", "storage_path": ".sleuth-reviews", "max_history_size": 100},
        "dedup": {"similarity_threshold": 0.6},
    }


class _Provider:
    def __init__(self, severity="warning"):
        self.severity = severity

    async def review_code(self, chunks, global_rules):
        comments = [ReviewComment(file=chunks[0].file, line=2, body="Call exit last", severity=self.severity)]
        return ReviewResult(comments=comments, summary="Reviewed", stats=ReviewStats.from_comments(comments))


def _patch_common(mocker, config=None, tracker=None):
    """Patch load_config and _build_tracker for most tests."""
    cfg = config or _make_config()
    mocker.patch("sleuth_core.config.load_config", return_value=cfg)
    tracker = tracker if tracker is not None else MagicMock(spec=ReviewTracker)
    mocker.patch("sleuth_cli.cli._build_tracker", return_value=tracker)
    return cfg, tracker


def _patch_git(mocker, diff=DIFF, branch="feature"):
    mocker.patch("sleuth_cli.commands.review.current_branch", return_value=branch)
    return mocker.patch("sleuth_cli.commands.review.diff_against", return_value=diff)


# ---------------------------------------------------------------------------
# review
# ---------------------------------------------------------------------------


class TestReviewValidation:
    def test_missing_anthropic_key(self, mocker):
        _patch_common(mocker, config=_make_config(model="anthropic", anthropic_key=None))

        result = CliRunner().invoke(main, ["review"])
        assert result.exit_code != 0
        assert "ANTHROPIC_API_KEY" in result.output

    def test_missing_openai_key(self, mocker):
        _patch_common(mocker, config=_make_config(model="openai", anthropic_key=None))

        result = CliRunner().invoke(main, ["review"])
        assert result.exit_code != 0
        assert "OPENAI_API_KEY" in result.output

    def test_repo_without_pr_rejected(self, mocker):
        _patch_common(mocker)

        result = CliRunner().invoke(main, ["review", "--repo", "owner/repo"])
        assert result.exit_code == 2
        assert "--repo and --pr" in result.output

    def test_missing_github_token_when_posting(self, mocker):
        _patch_common(mocker)
        mocker.patch("sleuth_cli.auth.resolve_github_token", return_value=None)

        result = CliRunner().invoke(main, ["review", "--repo", "owner/repo", "--pr", "1"])
        assert result.exit_code != 0
        assert "GITHUB_TOKEN" in result.output

    def test_git_failure_reported(self, mocker):
        _patch_common(mocker)
        mocker.patch("sleuth_cli.commands.review.current_branch", side_effect=GitError("not a git repository"))

        result = CliRunner().invoke(main, ["review"])
        assert result.exit_code == 1
        assert "not a git repository" in result.output


class TestReviewRun:
    def test_reviews_diff_and_prints_findings(self, mocker):
        _patch_common(mocker, tracker=ReviewTracker(NoOpStateStore()))
        diff = _patch_git(mocker)
        mocker.patch("sleuth_cli.commands.review.get_reviewer", return_value=_Provider())

        result = CliRunner().invoke(main, ["review"])

        assert result.exit_code == 0, result.output
        diff.assert_called_once_with("main")
        assert "Call exit last" in result.output
        assert "APPROVE_WITH_NITS" in result.output

    def test_block_exits_with_status_1(self, mocker):
        _patch_common(mocker, tracker=ReviewTracker(NoOpStateStore()))
        _patch_git(mocker)
        mocker.patch("sleuth_cli.commands.review.get_reviewer", return_value=_Provider(severity="error"))

        result = CliRunner().invoke(main, ["review"])
        assert result.exit_code == 1
        assert "BLOCK" in result.output

    def test_no_reviewable_changes(self, mocker):
        _patch_common(mocker)
        _patch_git(mocker, diff="")
        get_reviewer = mocker.patch("sleuth_cli.commands.review.get_reviewer")

        result = CliRunner().invoke(main, ["review"])
        assert result.exit_code == 0
        assert "No reviewable changes" in result.output
        get_reviewer.assert_not_called()

    def test_options_passed_to_pipeline(self, mocker):
        _, tracker = _patch_common(mocker)
        _patch_git(mocker)
        mocker.patch("sleuth_cli.commands.review.get_reviewer", return_value=_Provider())
        run = mocker.patch(
            "sleuth_cli.commands.review.run_review",
            new=AsyncMock(return_value=ReviewOutcome(result=ReviewResult.empty("ok"))),
        )

        CliRunner().invoke(main, ["review", "--branch", "topic", "--full-review"])

        kwargs = run.await_args.kwargs
        assert kwargs["branch"] == "topic"
        assert kwargs["base_branch"] == "main"
        assert kwargs["force_full"] is True
        assert kwargs["tracker"] is tracker

    def test_model_and_base_overrides_forwarded_to_config(self, mocker):
        _patch_common(mocker)
        load = mocker.patch("sleuth_core.config.load_config", return_value=_make_config())
        _patch_git(mocker, diff="")

        CliRunner().invoke(main, ["review", "--model", "openai", "--base", "develop"])

        overrides = load.call_args_list[-1].kwargs["cli_overrides"]
        assert overrides == {"model": "openai", "base_branch": "develop"}

    def test_posts_to_pull_request(self, mocker):
        _patch_common(mocker, tracker=ReviewTracker(NoOpStateStore()))
        _patch_git(mocker)
        mocker.patch("sleuth_cli.auth.resolve_github_token", return_value="tok")
        mocker.patch("sleuth_cli.commands.review.get_reviewer", return_value=_Provider())
        get_repo = mocker.patch("sleuth_cli.commands.review.get_repo")
        get_pull = mocker.patch("sleuth_cli.commands.review.get_pull")
        post = mocker.patch("sleuth_cli.commands.review.post_review", return_value=1)

        result = CliRunner().invoke(main, ["review", "--repo", "owner/repo", "--pr", "7", "--yes"])

        assert result.exit_code == 0, result.output
        get_repo.assert_called_once_with("owner/repo", token="tok")
        get_pull.assert_called_once_with(get_repo.return_value, 7)
        assert post.call_args.kwargs["batch_limit"] == 60
        assert "Posted review" in result.output

    def test_declined_confirmation_does_not_post(self, mocker):
        _patch_common(mocker, tracker=ReviewTracker(NoOpStateStore()))
        _patch_git(mocker)
        mocker.patch("sleuth_cli.auth.resolve_github_token", return_value="tok")
        mocker.patch("sleuth_cli.commands.review.get_reviewer", return_value=_Provider())
        post = mocker.patch("sleuth_cli.commands.review.post_review")
        mocker.patch("sleuth_cli.commands.review.get_repo")

        CliRunner().invoke(main, ["review", "--repo", "owner/repo", "--pr", "7"], input="n\n")
        post.assert_not_called()


# ---------------------------------------------------------------------------
# stats / history / clear
# ---------------------------------------------------------------------------


class TestStatsCommand:
    def test_shows_totals(self, mocker):
        _, tracker = _patch_common(mocker)
        tracker.get_stats.return_value = BranchStats(total_reviewed=3, last_reviewed_at=0)

        result = CliRunner().invoke(main, ["stats", "--branch", "feature"])
        assert result.exit_code == 0
        assert "Reviewed chunks: 3" in result.output
        assert "never" in result.output
        tracker.get_stats.assert_called_once_with("feature", "main")

    def test_defaults_to_current_branch(self, mocker):
        _, tracker = _patch_common(mocker)
        tracker.get_stats.return_value = BranchStats()
        mocker.patch("sleuth_cli.commands.stats.current_branch", return_value="topic")

        CliRunner().invoke(main, ["stats", "--base", "develop"])
        tracker.get_stats.assert_called_once_with("topic", "develop")

    def test_branch_detection_failure_is_usage_error(self, mocker):
        _patch_common(mocker)
        mocker.patch("sleuth_cli.commands.stats.current_branch", side_effect=GitError("no git"))

        result = CliRunner().invoke(main, ["stats"])
        assert result.exit_code == 2
        assert "--branch" in result.output


class TestHistoryCommand:
    def _records(self, n):
        return [
            ReviewedChunk(hash=f"h{i}", file=f"src/f{i}.py", start_line=1, end_line=5, reviewed_at=1_700_000_000_000)
            for i in range(n)
        ]

    def test_shows_table(self, mocker):
        _, tracker = _patch_common(mocker)
        tracker.get_reviewed_chunks.return_value = self._records(2)

        result = CliRunner().invoke(main, ["history", "--branch", "feature"])
        assert result.exit_code == 0
        assert "src/f0.py" in result.output
        assert "2023-11-14" in result.output

    def test_empty_message(self, mocker):
        _, tracker = _patch_common(mocker)
        tracker.get_reviewed_chunks.return_value = []

        result = CliRunner().invoke(main, ["history", "--branch", "feature"])
        assert "No reviewed chunks" in result.output

    def test_limit_applied(self, mocker):
        _, tracker = _patch_common(mocker)
        tracker.get_reviewed_chunks.return_value = self._records(5)

        result = CliRunner().invoke(main, ["history", "--branch", "feature", "--limit", "2"])
        assert "src/f1.py" in result.output
        assert "src/f2.py" not in result.output
        assert "3 more" in result.output


class TestClearCommand:
    def test_clear_branch(self, mocker):
        _, tracker = _patch_common(mocker)
        tracker.clear_state.return_value = True

        result = CliRunner().invoke(main, ["clear", "--branch", "feature"])
        assert "Cleared review state for feature" in result.output
        tracker.clear_state.assert_called_once_with("feature", "main")

    def test_clear_missing_branch(self, mocker):
        _, tracker = _patch_common(mocker)
        tracker.clear_state.return_value = False

        result = CliRunner().invoke(main, ["clear", "--branch", "feature"])
        assert "No review state stored" in result.output

    def test_clear_all(self, mocker):
        _, tracker = _patch_common(mocker)

        result = CliRunner().invoke(main, ["clear", "--all"])
        assert result.exit_code == 0
        tracker.clear_all.assert_called_once()
        tracker.clear_state.assert_not_called()

    def test_tracker_closed_on_exit(self, mocker):
        _, tracker = _patch_common(mocker)
        CliRunner().invoke(main, ["clear", "--all"])
        tracker.close.assert_called_once()


# ---------------------------------------------------------------------------
# _build_tracker
# ---------------------------------------------------------------------------


def _incremental(**kwargs):
    section = {"enabled": True, "store": "json", "storage_path": ".sleuth-reviews", "max_history_size": 50}
    section.update(kwargs)
    return {"incremental": section}


class TestBuildTracker:
    def test_json_store_by_default(self, tmp_path):
        tracker = _build_tracker(_incremental(storage_path=str(tmp_path / "reviews")))
        assert isinstance(tracker.store, JsonStateStore)
        assert tracker.max_history_size == 50

    def test_sqlite_store(self, tmp_path):
        tracker = _build_tracker(_incremental(store="sqlite", storage_path=str(tmp_path / "reviews")))
        assert isinstance(tracker.store, SQLiteStateStore)
        assert tracker.store.db_path == str(tmp_path / "reviews.db")
        tracker.close()

    def test_none_store(self):
        assert isinstance(_build_tracker(_incremental(store="none")).store, NoOpStateStore)

    def test_disabled_uses_noop(self):
        assert isinstance(_build_tracker(_incremental(enabled=False)).store, NoOpStateStore)

    def test_unknown_store_rejected(self):
        with pytest.raises(click.UsageError):
            _build_tracker(_incremental(store="redis"))


# ---------------------------------------------------------------------------
# GitHub token resolution
# ---------------------------------------------------------------------------


class TestResolveGithubToken:
    def test_returns_env_var_when_set(self, monkeypatch):
        from sleuth_cli.auth import resolve_github_token

        monkeypatch.setenv("GITHUB_TOKEN", "env-token")
        assert resolve_github_token() == "env-token"

    def test_falls_back_to_gh_cli(self, monkeypatch):
        from sleuth_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="gh-token\n")
            assert resolve_github_token() == "gh-token"

    def test_returns_none_when_gh_not_installed(self, monkeypatch):
        from sleuth_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run", side_effect=FileNotFoundError):
            assert resolve_github_token() is None

    def test_returns_none_when_gh_times_out(self, monkeypatch):
        from sleuth_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="gh", timeout=5)):
            assert resolve_github_token() is None

    def test_returns_none_when_gh_returns_error(self, monkeypatch):
        from sleuth_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=1, stdout="")
            assert resolve_github_token() is None
