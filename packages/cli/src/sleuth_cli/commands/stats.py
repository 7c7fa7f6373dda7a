"""stats command — incremental review totals for a branch."""

from __future__ import annotations

from datetime import datetime, timezone

import click
from rich.console import Console

from sleuth_cli.git import GitError, current_branch

console = Console()


def _resolve_branch(ctx, branch: str | None, base_branch: str | None) -> tuple[str, str | None]:
    """Fill in the current git branch and configured base branch when not given."""
    if branch is None:
        try:
            branch = current_branch()
        except GitError as e:
            raise click.UsageError(f"Could not determine the current branch ({e}). Pass --branch.") from e
    if base_branch is None:
        base_branch = ctx.obj["config"].get("base_branch")
    return branch, base_branch


def format_timestamp(ms: int) -> str:
    if not ms:
        return "never"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


@click.command("stats")
@click.option("--branch", default=None, help="Branch name. Defaults to the current git branch.")
@click.option("--base", "base_branch", default=None, help="Base branch. Defaults to the configured base_branch.")
@click.pass_context
def stats_cmd(ctx, branch: str | None, base_branch: str | None):
    """Show how many chunks are remembered as reviewed for a branch."""
    branch, base_branch = _resolve_branch(ctx, branch, base_branch)
    stats = ctx.obj["tracker"].get_stats(branch, base_branch)

    console.print(f"\n[bold]Review state for [cyan]{branch}[/cyan][/bold] (base: {base_branch or '-'})")
    console.print(f"  Reviewed chunks: {stats.total_reviewed}")
    console.print(f"  Last reviewed:   {format_timestamp(stats.last_reviewed_at)}")
