from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from github import Github

from sleuth_core.pipeline import determine_event

if TYPE_CHECKING:
    from sleuth_core.models import ReviewComment, ReviewResult

logger = logging.getLogger(__name__)

_RECOMMENDATION_LABELS = {
    "BLOCK": "Blocking issues found",
    "REQUEST_CHANGES": "Changes requested",
    "APPROVE_WITH_NITS": "Approved with minor suggestions",
    "APPROVE": "Approved",
}


def get_repo(repo_name: str, token: str):
    return Github(token).get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def format_comment_body(comment: ReviewComment) -> str:
    lines = [f"**[{comment.severity.upper()}]**"]
    if comment.category:
        lines[0] += f" _{comment.category.replace('_', ' ')}_"
    lines.append("")
    lines.append(comment.body)
    if comment.fix:
        lines.append("")
        lines.append("**Suggested fix:**")
        lines.append(f"```\n{comment.fix}\n```")
    return "\n".join(lines)


def build_review_body(result: ReviewResult) -> str:
    """Build the top-level review body posted as the GitHub review description."""
    label = _RECOMMENDATION_LABELS.get(result.recommendation or "APPROVE", result.recommendation or "")
    stats = result.stats
    lines = ["## Review summary\n", f"> **{result.recommendation or 'APPROVE'}** — {label}\n"]
    lines.append(
        f"**{stats.errors}** error(s) · **{stats.warnings}** warning(s) · "
        f"**{stats.suggestions}** suggestion(s) · **{len(result.comments)}** comment(s)\n"
    )
    if result.top_issues:
        lines.append("**Top issues:**")
        lines.extend(f"- {issue}" for issue in result.top_issues)
        lines.append("")
    if result.summary:
        lines.append(result.summary)
    return "\n".join(lines)


def post_review(pr, result: ReviewResult, batch_limit: int = 60) -> int:
    """Post the result as GitHub review(s) and return the number of inline comments posted.

    GitHub rejects very large reviews, so comments go out in batches of
    ``batch_limit``; only the last review carries the summary and the event.
    """
    event = determine_event(result.recommendation)
    body = build_review_body(result)
    api_comments = [
        {"path": c.file, "line": c.line, "side": "RIGHT", "body": format_comment_body(c)} for c in result.comments
    ]

    if not api_comments:
        pr.create_review(body=body, event=event)
        return 0

    batches = [api_comments[i : i + batch_limit] for i in range(0, len(api_comments), batch_limit)]
    posted = 0
    for idx, batch in enumerate(batches):
        is_last = idx == len(batches) - 1
        batch_body = body if is_last else f"Review in progress ({posted + len(batch)}/{len(api_comments)} comments)..."
        pr.create_review(body=batch_body, event=event if is_last else "COMMENT", comments=batch)
        posted += len(batch)
        logger.debug("Posted review batch %d/%d (%d comments)", idx + 1, len(batches), len(batch))
    return posted
