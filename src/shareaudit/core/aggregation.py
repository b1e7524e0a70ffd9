"""
Roll many risk assessments into summary statistics.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple

from shareaudit.adapters.base import DriveItem

from .types import RiskAssessment, RiskySummary

TOP_ISSUE_LIMIT = 5


@dataclass
class IssueCount:
    type: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "count": self.count}


@dataclass
class ScanSummary:
    """Aggregate of one scan's assessments."""
    total_files: int = 0
    risky_summary: RiskySummary = field(default_factory=RiskySummary)
    average_score: int = 0
    top_issues: List[IssueCount] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_files": self.total_files,
            "risky_summary": self.risky_summary.to_dict(),
            "average_score": self.average_score,
            "top_issues": [issue.to_dict() for issue in self.top_issues],
        }


def summarize_assessments(
    results: Iterable[Tuple[DriveItem, RiskAssessment]],
) -> ScanSummary:
    """
    Summarize (item, assessment) pairs in one pass.

    Per-level counts always sum to the number of pairs. The mean score is
    rounded half up and is 0 for an empty input. Top issues are the five
    most frequent issue types, ties kept in first-seen order.
    """
    summary = RiskySummary()
    issue_counts: Counter = Counter()
    total = 0
    total_score = 0

    for _item, assessment in results:
        total += 1
        total_score += assessment.score
        summary.add(assessment.level)
        for issue in assessment.issues:
            issue_counts[issue.type.value] += 1

    # most_common keeps insertion order among equal counts
    top = [IssueCount(t, c) for t, c in issue_counts.most_common(TOP_ISSUE_LIMIT)]

    return ScanSummary(
        total_files=total,
        risky_summary=summary,
        average_score=_round_half_up(total_score, total),
        top_issues=top,
    )


def _round_half_up(numerator: int, denominator: int) -> int:
    if denominator == 0:
        return 0
    return (2 * numerator + denominator) // (2 * denominator)
