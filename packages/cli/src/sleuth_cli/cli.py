"""CLI entry point for sleuth.

Commands:
  review   — review the current branch's diff, optionally posting to a GitHub PR
  stats    — show incremental review totals for a branch
  history  — list the chunks the tracker remembers for a branch
  clear    — forget review state for a branch (or everything)
"""

from __future__ import annotations

import importlib.metadata
import logging

import click

from sleuth_cli.commands.clear import clear_cmd
from sleuth_cli.commands.history import history_cmd
from sleuth_cli.commands.review import review_cmd
from sleuth_cli.commands.stats import stats_cmd


def _build_tracker(config: dict):
    """Instantiate the review tracker from the `incremental` config section.

    Store selection:
      store: json   → JsonStateStore   (single branch, storage_path directory)
      store: sqlite → SQLiteStateStore (many branches, storage_path + ".db")
      store: none or enabled: false → NoOpStateStore (every run is a full review)

    This factory lives in cli.py so neither sleuth_core nor sleuth_store know
    about the CLI config format.
    """
    from sleuth_store.noop import NoOpStateStore
    from sleuth_store.tracker import ReviewTracker

    incremental = config.get("incremental", {})
    store_type = incremental.get("store", "json")
    storage_path = incremental.get("storage_path", ".sleuth-reviews")

    if not incremental.get("enabled", True) or store_type == "none":
        store = NoOpStateStore()
    elif store_type == "sqlite":
        from sleuth_store.sqlite import SQLiteStateStore

        store = SQLiteStateStore(db_path=f"{storage_path}.db")
    elif store_type == "json":
        from sleuth_store.json_file import JsonStateStore

        store = JsonStateStore(storage_path=storage_path)
    else:
        raise click.UsageError(f"Unknown incremental store {store_type!r}. Choose 'json', 'sqlite' or 'none'.")

    return ReviewTracker(store, max_history_size=incremental.get("max_history_size", 10000))


@click.group()
@click.version_option(
    version=importlib.metadata.version("sleuth"),
    prog_name="sleuth",
)
@click.option(
    "--config",
    "config_path",
    default=".sleuth.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="SLEUTH_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Incremental, parallel AI code review for your branch."""
    from sleuth_core.config import load_config

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    ctx.ensure_object(dict)

    config = load_config(config_path)
    tracker = _build_tracker(config)
    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path
    ctx.obj["tracker"] = tracker
    ctx.call_on_close(tracker.close)


main.add_command(review_cmd)
main.add_command(stats_cmd)
main.add_command(history_cmd)
main.add_command(clear_cmd)
