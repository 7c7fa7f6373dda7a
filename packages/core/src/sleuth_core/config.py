import copy
import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "model": "anthropic",
    "model_name": None,  # None = provider default (see providers/*.py MODEL)
    "base_branch": "main",
    "global_rules": [],  # extra rules appended to every review prompt
    "exclude": [],  # fnmatch patterns or directory names to skip (e.g. "migrations/", "*.min.js")
    "batch_limit": 60,  # max inline comments per posted GitHub review
    "batching": {
        "max_tokens": 8000,
        "max_chunks": 50,
        "group_by_file": True,
        "include_dependencies": False,
    },
    "parallel": {
        "concurrency": 3,
        "timeout": 60.0,  # seconds per batch
        "adaptive_concurrency": True,
        "request_changes_threshold": 5,
        "scout": False,
    },
    "incremental": {
        "enabled": True,
        "store": "json",  # json | sqlite | none
        "storage_path": ".sleuth-reviews",
        "max_history_size": 10000,
    },
    "dedup": {
        "similarity_threshold": 0.6,
    },
}

# Sections merged key by key, so a file that sets only parallel.timeout keeps
# the default concurrency.
_SECTIONS = ("batching", "parallel", "incremental", "dedup")


def load_config(config_path: str = ".sleuth.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .sleuth.yml in the current directory
      3. CLI argument overrides
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        for key, value in file_config.items():
            if key in _SECTIONS and isinstance(value, dict):
                config[key].update(value)
            else:
                config[key] = value

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config
