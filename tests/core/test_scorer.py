"""
Tests for the risk scoring engine.

Covers each rule in isolation, the documented scenarios, the score bounds,
purity and monotonicity.
"""

from datetime import timedelta

import pytest

from shareaudit.core.scoring import score_item
from shareaudit.core.scoring.scorer import (
    count_direct_shares,
    has_external_editor,
    has_external_sharing,
    is_internal_owner,
    is_publicly_shared,
    is_shared,
)
from shareaudit.core.types import IssueType, RiskLevel


def issue_types(assessment):
    return [issue.type for issue in assessment.issues]


class TestScenarios:
    """End-to-end scoring of representative items."""

    def test_public_reader_link_only(self, make_item, make_acl, org_domain, now):
        """A lone anyone-reader link scores 40, medium, one issue."""
        item = make_item(permissions=(make_acl("anyone", "reader"),))

        result = score_item(item, org_domain, now=now)

        assert result.score == 40
        assert result.level == RiskLevel.MEDIUM
        assert issue_types(result) == [IssueType.PUBLIC_SHARING]
        assert len(result.recommendations) == 1

    def test_external_domain_writer_on_pdf(self, make_item, make_acl, org_domain, now):
        """External writer on a PDF: 20 + 15 + 15 = 50."""
        item = make_item(
            name="handbook.pdf",
            mime_type="application/pdf",
            permissions=(make_acl("domain", "writer", domain="partner.org"),),
        )

        result = score_item(item, org_domain, now=now)

        assert result.score == 50
        assert result.level == RiskLevel.MEDIUM
        assert issue_types(result) == [
            IssueType.EXTERNAL_SHARING,
            IssueType.EXTERNAL_EDITOR,
            IssueType.CONFIDENTIAL_TYPE,
        ]

    def test_everything_at_once_is_capped(self, make_item, make_acl, org_domain, now):
        """Public writer link, critical name, confidential type, stale, 15 sharers."""
        sharers = tuple(
            make_acl("user", "reader", email=f"user{i}@{org_domain}") for i in range(15)
        )
        item = make_item(
            name="passwords.xlsx",
            mime_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            modified_time=now - timedelta(days=800),
            shared=True,
            permissions=(make_acl("anyone", "writer"),) + sharers,
        )

        result = score_item(item, org_domain, now=now)

        assert result.score == 100
        assert result.level == RiskLevel.CRITICAL
        assert IssueType.MANY_SHARES in issue_types(result)
        assert IssueType.STALE_SHARING in issue_types(result)
        assert sum(issue.points for issue in result.issues) > 100


class TestRules:
    """Each rule on its own."""

    def test_private_file_scores_zero(self, make_item, org_domain, now):
        result = score_item(make_item(), org_domain, now=now)

        assert result.score == 0
        assert result.level == RiskLevel.LOW
        assert result.issues == []
        assert result.recommendations == []

    def test_internal_user_share_is_not_external(self, make_item, make_acl, org_domain, now):
        item = make_item(permissions=(make_acl("user", "writer", email=f"bob@{org_domain}"),))

        result = score_item(item, org_domain, now=now)

        assert result.score == 0

    def test_domain_comparison_ignores_case(self, make_item, make_acl, now):
        item = make_item(permissions=(make_acl("user", "writer", email="Bob@Example.COM"),))

        assert not has_external_sharing(item, "EXAMPLE.com")

    def test_external_group_reader(self, make_item, make_acl, org_domain, now):
        item = make_item(permissions=(make_acl("group", "reader", email="team@vendor.io"),))

        result = score_item(item, org_domain, now=now)

        assert issue_types(result) == [IssueType.EXTERNAL_SHARING]
        assert result.score == 20

    @pytest.mark.parametrize("role", ["writer", "organizer", "fileOrganizer"])
    def test_write_capable_roles_make_external_editor(self, make_item, make_acl, org_domain, role):
        item = make_item(permissions=(make_acl("user", role, email="x@vendor.io"),))

        assert has_external_editor(item, org_domain)

    def test_commenter_is_not_an_editor(self, make_item, make_acl, org_domain):
        item = make_item(permissions=(make_acl("user", "commenter", email="x@vendor.io"),))

        assert has_external_sharing(item, org_domain)
        assert not has_external_editor(item, org_domain)

    def test_public_writer_link_is_an_external_editor(self, make_item, make_acl, org_domain, now):
        item = make_item(permissions=(make_acl("anyone", "writer"),))

        result = score_item(item, org_domain, now=now)

        assert issue_types(result) == [IssueType.PUBLIC_SHARING, IssueType.EXTERNAL_EDITOR]
        assert result.score == 55

    def test_entry_without_email_contributes_nothing(self, make_item, make_acl, org_domain):
        item = make_item(permissions=(make_acl("user", "writer", email=None),))

        assert not has_external_sharing(item, org_domain)

    @pytest.mark.parametrize("mime_type", [
        "application/vnd.google-apps.spreadsheet",
        "application/vnd.google-apps.document",
        "application/msword",
        "application/vnd.ms-excel",
        "text/csv",
    ])
    def test_confidential_mime_types(self, make_item, org_domain, now, mime_type):
        result = score_item(make_item(mime_type=mime_type), org_domain, now=now)

        assert issue_types(result) == [IssueType.CONFIDENTIAL_TYPE]
        assert result.score == 15

    def test_images_are_not_confidential(self, make_item, org_domain, now):
        result = score_item(make_item(name="photo.png", mime_type="image/png"), org_domain, now=now)

        assert result.score == 0

    @pytest.mark.parametrize("name,points,severity", [
        ("passwords.txt", 25, RiskLevel.CRITICAL),
        ("salary_2024.txt", 15, RiskLevel.HIGH),
        ("customer list.txt", 10, RiskLevel.MEDIUM),
        ("weekly minutes.txt", 5, RiskLevel.LOW),
    ])
    def test_sensitive_name_points_follow_level(self, make_item, org_domain, now, name, points, severity):
        result = score_item(make_item(name=name), org_domain, now=now)

        assert issue_types(result) == [IssueType.SENSITIVE_CONTENT]
        assert result.issues[0].points == points
        assert result.issues[0].severity == severity

    def test_sensitive_description_lists_categories(self, make_item, org_domain, now):
        result = score_item(make_item(name="給与_contract.txt"), org_domain, now=now)

        description = result.issues[0].description
        assert "Payroll and compensation" in description
        assert "Contracts and agreements" in description

    def test_stale_requires_sharing(self, make_item, org_domain, now):
        item = make_item(modified_time=now - timedelta(days=500))

        assert score_item(item, org_domain, now=now).score == 0

    def test_stale_shared_flag_counts(self, make_item, org_domain, now):
        item = make_item(modified_time=now - timedelta(days=500), shared=True)

        result = score_item(item, org_domain, now=now)

        assert issue_types(result) == [IssueType.STALE_SHARING]
        assert "500 days" in result.issues[0].description

    def test_stale_boundary_is_exclusive(self, make_item, make_acl, org_domain, now):
        entry = make_acl("user", "reader", email=f"bob@{org_domain}")
        at_limit = make_item(modified_time=now - timedelta(days=365), permissions=(entry,))
        past_limit = make_item(modified_time=now - timedelta(days=366), permissions=(entry,))

        assert score_item(at_limit, org_domain, now=now).score == 0
        assert score_item(past_limit, org_domain, now=now).score == 10

    def test_missing_modified_time_is_not_stale(self, make_item, org_domain, now):
        item = make_item(modified_time=None, shared=True)

        assert score_item(item, org_domain, now=now).score == 0

    def test_many_shares_threshold(self, make_item, make_acl, org_domain, now):
        def with_sharers(n):
            return make_item(permissions=tuple(
                make_acl("user", "reader", email=f"u{i}@{org_domain}") for i in range(n)
            ))

        # Owner entry is a user entry too, so 9 sharers + owner = 10
        assert score_item(with_sharers(9), org_domain, now=now).score == 0
        result = score_item(with_sharers(10), org_domain, now=now)
        assert issue_types(result) == [IssueType.MANY_SHARES]
        assert "11 users or groups" in result.issues[0].description


class TestProperties:
    """Bounds, purity and monotonicity."""

    def test_level_matches_score_bucket(self, make_item, make_acl, org_domain, now):
        items = [
            make_item(),
            make_item(permissions=(make_acl("anyone", "reader"),)),
            make_item(name="passwords.pdf", mime_type="application/pdf",
                      permissions=(make_acl("anyone", "writer"),)),
        ]
        for item in items:
            result = score_item(item, org_domain, now=now)
            assert 0 <= result.score <= 100
            assert result.level == RiskLevel.from_score(result.score)

    def test_scoring_is_pure(self, make_item, make_acl, org_domain, now):
        item = make_item(
            name="budget.xlsx",
            mime_type="application/vnd.ms-excel",
            permissions=(make_acl("user", "writer", email="a@vendor.io"),),
        )

        assert score_item(item, org_domain, now=now) == score_item(item, org_domain, now=now)

    def test_adding_a_condition_never_lowers_score(self, make_item, make_acl, org_domain, now):
        base = dict(name="report.txt", mime_type="text/plain", permissions=())
        previous = score_item(make_item(**base), org_domain, now=now).score

        steps = [
            dict(permissions=(make_acl("user", "reader", email="x@vendor.io"),)),
            dict(permissions=(make_acl("user", "writer", email="x@vendor.io"),)),
            dict(mime_type="application/pdf"),
            dict(name="confidential report.txt"),
            dict(modified_time=now - timedelta(days=400)),
        ]
        for step in steps:
            base.update(step)
            score = score_item(make_item(**base), org_domain, now=now).score
            assert score >= previous
            previous = score


class TestPredicates:

    def test_is_publicly_shared(self, make_item, make_acl):
        assert is_publicly_shared(make_item(permissions=(make_acl("anyone", "reader"),)))
        assert not is_publicly_shared(make_item())

    def test_is_shared_ignores_owner_entry(self, make_item, make_acl):
        assert not is_shared(make_item())
        assert is_shared(make_item(permissions=(make_acl("user", "reader", email="a@b.c"),)))

    def test_count_direct_shares_counts_raw_entries(self, make_item, make_acl):
        entry = make_acl("user", "reader", email="a@b.c")
        item = make_item(permissions=(entry, entry, make_acl("domain", "reader", domain="b.c")))

        # owner + two duplicate user entries; domain entries are not counted
        assert count_direct_shares(item) == 3

    def test_is_internal_owner(self, make_item, org_domain):
        assert is_internal_owner(make_item(), org_domain)
        assert not is_internal_owner(make_item(owner_email="someone@gmail.com"), org_domain)
        assert not is_internal_owner(make_item(owner_email=None), org_domain)
