"""history command — list the reviewed chunks remembered for a branch."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from sleuth_cli.commands.stats import _resolve_branch, format_timestamp

console = Console()


@click.command("history")
@click.option("--branch", default=None, help="Branch name. Defaults to the current git branch.")
@click.option("--base", "base_branch", default=None, help="Base branch. Defaults to the configured base_branch.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of records to show.")
@click.pass_context
def history_cmd(ctx, branch: str | None, base_branch: str | None, limit: int):
    """Show the most recently reviewed chunks for a branch."""
    branch, base_branch = _resolve_branch(ctx, branch, base_branch)
    records = ctx.obj["tracker"].get_reviewed_chunks(branch, base_branch)
    if not records:
        console.print("[yellow]No reviewed chunks recorded for this branch.[/yellow]")
        return

    table = Table(title=f"Review History — {branch}", show_header=True, header_style="bold cyan")
    table.add_column("File", max_width=50)
    table.add_column("Lines", width=12)
    table.add_column("Hash", width=16)
    table.add_column("Reviewed At", width=24)

    for r in records[:limit]:
        table.add_row(r.file, f"{r.start_line}-{r.end_line}", r.hash, format_timestamp(r.reviewed_at))

    console.print(table)
    if len(records) > limit:
        console.print(f"[dim]... and {len(records) - limit} more[/dim]")
