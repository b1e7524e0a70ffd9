"""Tests for assessment aggregation."""

from shareaudit.core.aggregation import summarize_assessments
from shareaudit.core.types import ISSUE_RULES, IssueType, RiskAssessment, RiskLevel


def assessment(score, *issue_types):
    issues = [ISSUE_RULES[t].resolve(severity=RiskLevel.LOW, categories="", days=0, count=0)
              for t in issue_types]
    return RiskAssessment(
        score=score,
        level=RiskLevel.from_score(score),
        issues=issues,
        recommendations=[i.recommendation for i in issues],
    )


class TestSummarizeAssessments:

    def test_empty_input(self):
        summary = summarize_assessments([])

        assert summary.total_files == 0
        assert summary.average_score == 0
        assert summary.risky_summary.total == 0
        assert summary.top_issues == []

    def test_level_counts_sum_to_total(self, make_item):
        scores = [0, 15, 40, 55, 60, 79, 80, 100, 39]
        pairs = [(make_item(id=f"f{i}"), assessment(s)) for i, s in enumerate(scores)]

        summary = summarize_assessments(pairs)

        assert summary.total_files == len(scores)
        assert summary.risky_summary.total == len(scores)
        assert summary.risky_summary.to_dict() == {
            "critical": 2, "high": 2, "medium": 2, "low": 3,
        }

    def test_average_rounds_half_up(self, make_item):
        pairs = [(make_item(id="a"), assessment(40)), (make_item(id="b"), assessment(15))]

        # 27.5 -> 28
        assert summarize_assessments(pairs).average_score == 28

    def test_top_issues_by_count_then_first_seen(self, make_item):
        pairs = [
            (make_item(id="1"), assessment(40, IssueType.STALE_SHARING, IssueType.MANY_SHARES)),
            (make_item(id="2"), assessment(40, IssueType.MANY_SHARES, IssueType.PUBLIC_SHARING)),
            (make_item(id="3"), assessment(40, IssueType.PUBLIC_SHARING, IssueType.CONFIDENTIAL_TYPE)),
            (make_item(id="4"), assessment(40, IssueType.EXTERNAL_SHARING, IssueType.EXTERNAL_EDITOR)),
        ]

        top = summarize_assessments(pairs).top_issues

        assert [t.to_dict() for t in top] == [
            {"type": "many_shares", "count": 2},
            {"type": "public_sharing", "count": 2},
            {"type": "stale_sharing", "count": 1},
            {"type": "confidential_type", "count": 1},
            {"type": "external_sharing", "count": 1},
        ]

    def test_accepts_a_generator(self, make_item):
        pairs = ((make_item(id=str(i)), assessment(50)) for i in range(3))

        summary = summarize_assessments(pairs)

        assert summary.total_files == 3
        assert summary.to_dict()["risky_summary"]["medium"] == 3
