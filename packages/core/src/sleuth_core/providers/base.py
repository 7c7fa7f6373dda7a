"""Base reviewer implementing the Template Method pattern.

All providers share the same review algorithm:
    review_code() → _build_system_prompt() + _build_user_prompt()
                  → _call_with_retry() → _call_api()   ← only this differs per provider
                  → _parse()

Subclasses implement two things only:
  - __init__: validate and store the async SDK client
  - _call_api: make one raw API call and return the text response

Everything else — prompt construction, JSON parsing, retry logic — lives here
so it is defined once and inherited consistently by every provider.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from sleuth_core.errors import ProviderError
from sleuth_core.models import ReviewComment, ReviewResult, ReviewStats, ScoutReport

if TYPE_CHECKING:
    from sleuth_core.models import CodeChunk

logger = logging.getLogger(__name__)

# Shared defaults — subclasses may override as class attributes if needed.
_MAX_RETRIES = 3
_MAX_TOKENS = 4096

CATEGORIES = ("bugs", "security", "performance", "code_quality", "architecture")

_LANGUAGES = {
    "ts": "typescript",
    "tsx": "tsx",
    "js": "javascript",
    "jsx": "jsx",
    "vue": "vue",
    "svelte": "svelte",
    "py": "python",
    "go": "go",
    "rs": "rust",
    "java": "java",
    "kt": "kotlin",
    "rb": "ruby",
    "css": "css",
    "scss": "scss",
    "html": "html",
    "json": "json",
}

_SEVERITY_MAP = {"critical": "error", "high": "error", "medium": "warning", "low": "suggestion"}


def language_for(file_path: str) -> str:
    ext = PurePosixPath(file_path).suffix.lstrip(".").lower()
    return _LANGUAGES.get(ext, ext or "text")


def map_severity(severity) -> str:
    """Map the model's Critical/High/Medium/Low/Nitpick scale onto comment severities."""
    return _SEVERITY_MAP.get(str(severity or "").lower(), "info")


class BaseReviewer(ABC):
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    async def review_code(self, chunks: list[CodeChunk], global_rules: list[str]) -> ReviewResult:
        """Review one batch of chunks and return its structured result.

        Raises ProviderError when the API keeps failing or the response cannot
        be parsed; ParallelReviewer turns that into an empty batch result.
        """
        system = self._build_system_prompt()
        user = self._build_user_prompt(chunks, global_rules)
        return self._parse(await self._call_with_retry(system, user))

    async def deep_dive_review(self, chunks: list[CodeChunk], global_rules: list[str]) -> ReviewResult:
        """Like review_code, with instructions for an exhaustive pass over critical files."""
        system = self._build_system_prompt(deep_dive=True)
        user = self._build_user_prompt(chunks, global_rules)
        return self._parse(await self._call_with_retry(system, user))

    async def scout_review(self, chunks: list[CodeChunk]) -> ScoutReport:
        """Ask for a complexity score and the files that deserve a deep dive.

        Scouting only steers effort, so any failure yields an empty report.
        """
        if not chunks:
            return ScoutReport()
        try:
            raw = await self._call_with_retry(self._build_scout_prompt(), self._build_user_prompt(chunks, []))
            data = json.loads(self._strip_fences(raw))
            known = {c.file for c in chunks}
            return ScoutReport(
                complexity_score=max(0, min(10, int(data.get("complexity_score", 0)))),
                critical_files=[f for f in data.get("critical_files", []) if f in known],
            )
        except (ProviderError, ValueError, TypeError, AttributeError) as e:
            logger.warning("%s: scout pass failed, continuing without it: %s", self.__class__.__name__, e)
            return ScoutReport()

    # ------------------------------------------------------------------ #
    # Abstract — implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response.

        This is the only method subclasses must implement. It should raise
        on failure — _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    async def _call_with_retry(self, system_prompt: str, user_prompt: str) -> str:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff.

        The backoff uses asyncio.sleep so a cancelled batch stops retrying
        immediately instead of holding its concurrency slot.
        """
        for attempt in range(self.MAX_RETRIES):
            try:
                return await self._call_api(system_prompt, user_prompt)
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    raise ProviderError(f"{self.__class__.__name__} API call failed: {e}") from e
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)
        raise ProviderError(f"{self.__class__.__name__}: MAX_RETRIES must be at least 1")

    def _build_system_prompt(self, deep_dive: bool = False) -> str:
        """Build the system prompt: reviewer persona plus the JSON output contract."""
        depth = ""
        if deep_dive:
            depth = """
These files were flagged as critical. Perform an exhaustive analysis: trace data flow
across the chunks, check every error path and edge case, and report subtle issues
you would normally skip.
"""
        return f"""You are an expert senior software engineer and code reviewer.
Analyze the provided code chunks and return a fully structured review.
{depth}
Respond with ONLY a valid JSON object of this shape:

{{
  "bugs": [
    {{"severity": "Critical | High | Medium | Low | Nitpick", "file": "path/to/file",
      "line": 0, "description": "string", "fix": "string"}}
  ],
  "security": [... same structure ...],
  "performance": [... same structure ...],
  "code_quality": [... same structure ...],
  "architecture": [... same structure ...],
  "summary": {{
    "recommendation": "BLOCK | REQUEST_CHANGES | APPROVE_WITH_NITS | APPROVE",
    "top_issues": ["string"]
  }}
}}

Rules:
- If a category has no issues, return an empty array.
- Only use file names and line numbers that appear in the chunks.
- Every issue must include severity, file, line, description and fix.
- Do not output anything outside the JSON object."""

    def _build_scout_prompt(self) -> str:
        return """You are triaging a code change before a detailed review.
Rate the overall complexity and risk of the chunks from 0 (trivial) to 10 (very risky),
and list the files that deserve an exhaustive review.

Respond with ONLY a valid JSON object:
{"complexity_score": <integer 0-10>, "critical_files": ["path/to/file", ...]}"""

    def _build_user_prompt(self, chunks: list[CodeChunk], global_rules: list[str]) -> str:
        lines = ["# Code Review Request", ""]

        if global_rules:
            lines.append("## Additional Rules to Check")
            lines.append("")
            lines.extend(f"{i}. {rule}" for i, rule in enumerate(global_rules, 1))
            lines.append("")

        lines.append("## Code Chunks to Review")
        lines.append("")
        for i, chunk in enumerate(chunks, 1):
            lines.append(f"### Chunk {i}: {chunk.name} ({chunk.type})")
            lines.append(f"**File:** {chunk.file}")
            lines.append(f"**Lines:** {chunk.start_line}-{chunk.end_line}")
            if chunk.dependencies:
                lines.append(f"**Dependencies:** {', '.join(chunk.dependencies)}")
            lines.append("")
            lines.append(f"```{language_for(chunk.file)}")
            lines.append(chunk.content)
            lines.append("```")
            lines.append("")

        lines.append("**IMPORTANT**: Only report issues on the lines shown above.")
        return "\n".join(lines)

    @staticmethod
    def _strip_fences(raw: str) -> str:
        # Strip only the outer ```json ... ``` fence — NOT backticks inside values.
        cleaned = re.sub(r"^```(?:json)?\s*", "", (raw or "").strip())
        return re.sub(r"\s*```$", "", cleaned.strip())

    def _parse(self, raw: str) -> ReviewResult:
        """Turn the model's JSON response into a ReviewResult."""
        try:
            data = json.loads(self._strip_fences(raw))
        except json.JSONDecodeError:
            logger.warning("%s: failed to parse response as JSON: %s", self.__class__.__name__, (raw or "")[:200])
            raise ProviderError(f"{self.__class__.__name__} returned a response that is not valid JSON")
        if not isinstance(data, dict):
            raise ProviderError(f"{self.__class__.__name__} returned JSON that is not an object")

        comments = []
        for category in CATEGORIES:
            for issue in data.get(category) or []:
                comment = self._to_comment(category, issue)
                if comment is None:
                    logger.debug("Skipping malformed %s issue: %r", category, issue)
                    continue
                comments.append(comment)

        summary = data.get("summary") or {}
        recommendation = summary.get("recommendation") if isinstance(summary, dict) else None
        top_issues = list(summary.get("top_issues") or []) if isinstance(summary, dict) else []
        summary_text = f"**Recommendation:** {recommendation}" if recommendation else "Review completed"

        return ReviewResult(
            comments=comments,
            summary=summary_text,
            stats=ReviewStats.from_comments(comments),
            recommendation=recommendation,
            top_issues=top_issues,
        )

    @staticmethod
    def _to_comment(category: str, issue) -> ReviewComment | None:
        if not isinstance(issue, dict):
            return None
        file_path, line, description = issue.get("file"), issue.get("line"), issue.get("description")
        if not isinstance(file_path, str) or not isinstance(line, int) or not isinstance(description, str):
            return None
        return ReviewComment(
            file=file_path,
            line=line,
            body=description,
            severity=map_severity(issue.get("severity")),
            rule=category.replace("_", " "),
            category=category,
            fix=issue.get("fix") or None,
        )
