"""Rank review comments so the most important findings are shown first."""

from __future__ import annotations

from dataclasses import dataclass, field

from sleuth_core.models import ReviewComment

_SEVERITY_WEIGHTS = {
    "error": (50, "Error severity"),
    "warning": (30, "Warning severity"),
    "info": (15, "Info severity"),
    "suggestion": (10, "Suggestion severity"),
}
_UNKNOWN_SEVERITY = (10, "Unknown severity")

_CATEGORY_WEIGHTS = {
    "security": (25, "Security issue"),
    "bugs": (20, "Bug detection"),
    "performance": (15, "Performance issue"),
    "architecture": (10, "Architecture concern"),
    "code_quality": (5, "Code quality"),
}

_FIX_BONUS = 10
# Static rules already flagged these; the AI adds less on top.
_RULE_BASED_PENALTY = 5


@dataclass(frozen=True)
class PrioritizedComment(ReviewComment):
    priority: int = 0  # 0-100, higher is more important
    priority_reason: str = ""

    def to_comment(self) -> ReviewComment:
        return ReviewComment(
            file=self.file,
            line=self.line,
            body=self.body,
            severity=self.severity,
            rule=self.rule,
            category=self.category,
            fix=self.fix,
        )


@dataclass
class PriorityGroups:
    critical: list[PrioritizedComment] = field(default_factory=list)
    high: list[PrioritizedComment] = field(default_factory=list)
    medium: list[PrioritizedComment] = field(default_factory=list)
    low: list[PrioritizedComment] = field(default_factory=list)


class CommentPrioritizer:
    def prioritize_comments(self, comments: list[ReviewComment]) -> list[PrioritizedComment]:
        scored = [self._score(c) for c in comments]
        return sorted(scored, key=lambda c: c.priority, reverse=True)

    def _score(self, comment: ReviewComment) -> PrioritizedComment:
        score, reason = _SEVERITY_WEIGHTS.get(comment.severity, _UNKNOWN_SEVERITY)
        reasons = [reason]

        if comment.category in _CATEGORY_WEIGHTS:
            bonus, reason = _CATEGORY_WEIGHTS[comment.category]
            score += bonus
            reasons.append(reason)

        if comment.fix:
            score += _FIX_BONUS
            reasons.append("Has fix suggestion")

        if comment.rule and comment.rule.startswith("rule:"):
            score -= _RULE_BASED_PENALTY
            reasons.append("Rule-based detection")

        return PrioritizedComment(
            file=comment.file,
            line=comment.line,
            body=comment.body,
            severity=comment.severity,
            rule=comment.rule,
            category=comment.category,
            fix=comment.fix,
            priority=round(max(0, min(100, score))),
            priority_reason=", ".join(reasons),
        )

    def group_by_priority(self, comments: list[PrioritizedComment]) -> PriorityGroups:
        groups = PriorityGroups()
        for c in comments:
            if c.priority >= 70:
                groups.critical.append(c)
            elif c.priority >= 50:
                groups.high.append(c)
            elif c.priority >= 30:
                groups.medium.append(c)
            else:
                groups.low.append(c)
        return groups

    def get_top_comments(self, comments: list[PrioritizedComment], limit: int = 10) -> list[PrioritizedComment]:
        return comments[:limit]
