"""review command — incrementally review the current branch's changes."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.table import Table

from sleuth_cli.git import GitError, current_branch, diff_against
from sleuth_core.chunking import chunk_diff
from sleuth_core.gh.pull_request import get_pull, get_repo, post_review
from sleuth_core.pipeline import get_reviewer, run_review
from sleuth_core.stream import ReviewStreamCallbacks

console = Console()

_SEVERITY_STYLE = {"error": "red", "warning": "yellow", "suggestion": "blue", "info": "dim"}
_RECOMMENDATION_STYLE = {
    "BLOCK": "bold red",
    "REQUEST_CHANGES": "red",
    "APPROVE_WITH_NITS": "yellow",
    "APPROVE": "green",
}


def _progress_callbacks() -> ReviewStreamCallbacks:
    def on_progress(progress):
        eta = ""
        if progress.estimated_time_remaining is not None:
            eta = f", ~{progress.estimated_time_remaining / 1000:.0f}s left"
        console.print(
            f"[dim]Batch {progress.completed_batches}/{progress.total_batches} "
            f"({progress.percentage}%{eta})[/dim]"
        )

    def on_error(error):
        console.print(f"[yellow]{error}[/yellow]")

    return ReviewStreamCallbacks(on_progress=on_progress, on_error=on_error)


def _print_outcome(outcome) -> None:
    result = outcome.result
    stats = outcome.tracker_stats
    if stats is not None and stats.skipped_chunks:
        console.print(
            f"Skipped [bold]{stats.skipped_chunks}[/bold] unchanged chunk(s) "
            f"({stats.skip_rate * 100:.0f}% of {stats.total_chunks})."
        )

    if outcome.prioritized:
        table = Table(title="Findings", show_header=True, header_style="bold cyan")
        table.add_column("Priority", justify="right", width=8)
        table.add_column("Severity", width=10)
        table.add_column("Location", max_width=40)
        table.add_column("Comment")
        for c in outcome.prioritized:
            style = _SEVERITY_STYLE.get(c.severity, "white")
            table.add_row(str(c.priority), f"[{style}]{c.severity}[/{style}]", f"{c.file}:{c.line}", c.body)
        console.print(table)

    style = _RECOMMENDATION_STYLE.get(result.recommendation or "APPROVE", "white")
    console.print(f"\n[{style}]{result.recommendation}[/{style}]  {result.summary}")
    console.print(
        f"{result.stats.errors} error(s), {result.stats.warnings} warning(s), "
        f"{result.stats.suggestions} suggestion(s)"
    )


@click.command("review")
@click.option("--branch", default=None, help="Branch name to track state under. Defaults to the current git branch.")
@click.option("--base", "base_branch", default=None, help="Base branch to diff against. Overrides config file.")
@click.option(
    "--model",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="AI model provider. Overrides config file.",
)
@click.option(
    "--full-review",
    "full_review",
    is_flag=True,
    help="Review every chunk even if it was reviewed before.",
)
@click.option("--repo", default=None, help="GitHub repository (owner/name) to post the review to.")
@click.option("--pr", "pr_number", type=int, default=None, help="Pull request number to post the review to.")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompts.")
@click.pass_context
def review_cmd(
    ctx,
    branch: str | None,
    base_branch: str | None,
    model: str | None,
    full_review: bool,
    repo: str | None,
    pr_number: int | None,
    yes: bool,
):
    """Review the changes on this branch against its base.

    Only chunks that changed since the last review of this branch are sent to
    the model. Exits with status 1 when the recommendation is BLOCK.

    \b
    Environment variables:
      ANTHROPIC_API_KEY    Required when using --model anthropic
      OPENAI_API_KEY       Required when using --model openai
      GITHUB_TOKEN         Needed with --repo/--pr (or use gh CLI)
    """
    from sleuth_cli.auth import resolve_github_token
    from sleuth_core.config import load_config

    config = load_config(
        ctx.obj.get("config_path", ".sleuth.yml"),
        cli_overrides={"model": model, "base_branch": base_branch},
    )

    if config["model"] == "anthropic" and not config.get("anthropic_api_key"):
        raise click.UsageError("ANTHROPIC_API_KEY environment variable is not set.")
    if config["model"] == "openai" and not config.get("openai_api_key"):
        raise click.UsageError("OPENAI_API_KEY environment variable is not set.")

    if (repo is None) != (pr_number is None):
        raise click.UsageError("--repo and --pr must be given together.")
    token = None
    if repo is not None:
        token = resolve_github_token()
        if not token:
            raise click.UsageError("No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.")

    base = config["base_branch"]
    try:
        branch = branch or current_branch()
        diff_text = diff_against(base)
    except GitError as e:
        raise click.ClickException(str(e)) from e

    changed_files, chunks = chunk_diff(diff_text, config.get("exclude", []))
    if not chunks:
        console.print("[yellow]No reviewable changes found.[/yellow]")
        return

    console.print(
        f"Reviewing [bold]{len(chunks)}[/bold] chunk(s) across {len(changed_files)} file(s) "
        f"on [cyan]{branch}[/cyan] against [cyan]{base}[/cyan]"
    )

    provider = get_reviewer(config)
    outcome = asyncio.run(
        run_review(
            chunks,
            provider,
            config,
            branch=branch,
            base_branch=base,
            tracker=ctx.obj.get("tracker"),
            stream_callbacks=_progress_callbacks(),
            force_full=full_review,
        )
    )
    _print_outcome(outcome)

    if repo is not None:
        if yes or click.confirm(f"\nPost {len(outcome.result.comments)} comment(s) to {repo}#{pr_number}?"):
            pr = get_pull(get_repo(repo, token=token), pr_number)
            posted = post_review(pr, outcome.result, batch_limit=config.get("batch_limit", 60))
            console.print(f"[green]Posted review with {posted} inline comment(s).[/green]")

    if outcome.result.recommendation == "BLOCK":
        ctx.exit(1)
