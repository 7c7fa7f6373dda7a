"""clear command — forget review state so the next run reviews everything."""

from __future__ import annotations

import click
from rich.console import Console

from sleuth_cli.commands.stats import _resolve_branch

console = Console()


@click.command("clear")
@click.option("--branch", default=None, help="Branch name. Defaults to the current git branch.")
@click.option("--base", "base_branch", default=None, help="Base branch. Defaults to the configured base_branch.")
@click.option("--all", "clear_all", is_flag=True, help="Clear the state of every branch.")
@click.pass_context
def clear_cmd(ctx, branch: str | None, base_branch: str | None, clear_all: bool):
    tracker = ctx.obj["tracker"]
    if clear_all:
        tracker.clear_all()
        console.print("[green]Cleared all review state.[/green]")
        return

    branch, base_branch = _resolve_branch(ctx, branch, base_branch)
    if tracker.clear_state(branch, base_branch):
        console.print(f"[green]Cleared review state for {branch}.[/green]")
    else:
        console.print(f"[yellow]No review state stored for {branch}.[/yellow]")
