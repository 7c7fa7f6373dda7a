"""Thin git wrapper used by `sleuth review` to find the branch and its diff."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

DEFAULT_TIMEOUT = 30


class GitError(Exception):
    pass


@dataclass
class GitResult:
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out


def run_git(args: list[str], cwd: Path | str = ".", timeout: int = DEFAULT_TIMEOUT) -> GitResult:
    cmd = ["git", "-C", str(cwd), *args]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        return GitResult(returncode=-1, stdout="", stderr=f"Command timed out after {timeout}s", timed_out=True)
    except FileNotFoundError:
        return GitResult(returncode=-1, stdout="", stderr="git executable not found")
    return GitResult(returncode=result.returncode, stdout=result.stdout, stderr=result.stderr)


def current_branch(cwd: Path | str = ".") -> str:
    result = run_git(["rev-parse", "--abbrev-ref", "HEAD"], cwd)
    if not result.success:
        raise GitError(result.stderr.strip() or "could not determine the current branch")
    return result.stdout.strip()


def diff_against(base_branch: str, cwd: Path | str = ".") -> str:
    """Return the unified diff of HEAD against its merge base with base_branch."""
    result = run_git(["diff", "--no-color", "--unified=3", f"{base_branch}...HEAD"], cwd)
    if not result.success:
        raise GitError(result.stderr.strip() or f"git diff against {base_branch} failed")
    return result.stdout
