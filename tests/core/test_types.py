"""Tests for risk types and the issue rule table."""

import pytest

from shareaudit.core.types import (
    ISSUE_RULES,
    SEVERITY_POINTS,
    IssueType,
    RiskAssessment,
    RiskIssue,
    RiskLevel,
    RiskySummary,
)


class TestRiskLevel:

    @pytest.mark.parametrize("score,level", [
        (0, RiskLevel.LOW),
        (39, RiskLevel.LOW),
        (40, RiskLevel.MEDIUM),
        (59, RiskLevel.MEDIUM),
        (60, RiskLevel.HIGH),
        (79, RiskLevel.HIGH),
        (80, RiskLevel.CRITICAL),
        (100, RiskLevel.CRITICAL),
    ])
    def test_threshold_buckets(self, score, level):
        assert RiskLevel.from_score(score) == level

    def test_rank_orders_levels(self):
        ranked = sorted(RiskLevel, key=lambda level: level.rank)

        assert ranked == [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]


class TestIssueRules:

    def test_every_issue_type_has_a_rule(self):
        assert set(ISSUE_RULES) == set(IssueType)

    def test_fixed_points(self):
        points = {t: ISSUE_RULES[t].points for t in IssueType}

        assert points[IssueType.PUBLIC_SHARING] == 40
        assert points[IssueType.EXTERNAL_SHARING] == 20
        assert points[IssueType.EXTERNAL_EDITOR] == 15
        assert points[IssueType.CONFIDENTIAL_TYPE] == 15
        assert points[IssueType.STALE_SHARING] == 10
        assert points[IssueType.MANY_SHARES] == 5
        assert points[IssueType.SENSITIVE_CONTENT] is None

    def test_sensitive_rule_takes_points_from_severity(self):
        rule = ISSUE_RULES[IssueType.SENSITIVE_CONTENT]

        for level, points in SEVERITY_POINTS.items():
            issue = rule.resolve(severity=level, categories="x")
            assert issue.points == points
            assert issue.severity == level

    def test_sensitive_rule_defaults_to_medium(self):
        issue = ISSUE_RULES[IssueType.SENSITIVE_CONTENT].resolve(categories="x")

        assert issue.severity == RiskLevel.MEDIUM
        assert issue.points == 10

    def test_fixed_severity_ignores_argument(self):
        issue = ISSUE_RULES[IssueType.PUBLIC_SHARING].resolve(severity=RiskLevel.LOW)

        assert issue.severity == RiskLevel.CRITICAL

    def test_issue_carries_rule_recommendation(self):
        issue = ISSUE_RULES[IssueType.MANY_SHARES].resolve(count=12)

        assert issue.description == "Shared with 12 users or groups"
        assert issue.recommendation == ISSUE_RULES[IssueType.MANY_SHARES].recommendation


class TestSerialization:

    def test_assessment_from_dict(self):
        issue = RiskIssue(IssueType.PUBLIC_SHARING, RiskLevel.CRITICAL, 40, "Public")
        data = RiskAssessment(40, RiskLevel.MEDIUM, [issue], [issue.recommendation]).to_dict()

        assert data["level"] == "medium"
        assert data["issues"][0]["type"] == "public_sharing"
        assert RiskAssessment.from_dict(data).issues == [issue]


class TestRiskySummary:

    def test_add_and_merge(self):
        a = RiskySummary()
        a.add(RiskLevel.HIGH)
        a.add(RiskLevel.LOW, 3)
        b = RiskySummary(critical=1, high=1)

        merged = a.merge(b)

        assert merged.to_dict() == {"critical": 1, "high": 2, "medium": 0, "low": 3}
        assert merged.total == 6
        assert a.critical == 0

    def test_highest_level(self):
        assert RiskySummary().highest_level() is None
        assert RiskySummary(medium=2, low=1).highest_level() == RiskLevel.MEDIUM

    def test_from_dict_tolerates_missing_keys(self):
        assert RiskySummary.from_dict(None).total == 0
        assert RiskySummary.from_dict({"high": "2"}).high == 2
