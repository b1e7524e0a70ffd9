"""
ShareAudit Risk Scoring Engine.

Computes a 0-100 exposure score for one item from its sharing settings,
file type, name and age. Pure: no I/O, no hidden state.

Rules (independent, cumulative, capped at 100):
    public_sharing      40  anyone-with-link entry
    external_sharing    20  a named grant (user, group, domain) outside the organization
    external_editor     15  an outside grant or an anyone-link that can write
    confidential_type   15  spreadsheet / document / pdf / csv mime type
    sensitive_content   5-25 filename matches a sensitive category
    stale_sharing       10  shared, untouched for more than a year
    many_shares          5  more than 10 user/group entries

Levels: critical >= 80, high >= 60, medium >= 40, low otherwise.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from shareaudit.adapters.base import DriveItem, PermissionRole, PrincipalType, email_domain

from ..types import ISSUE_RULES, IssueType, RiskAssessment, RiskIssue, RiskLevel
from .sensitive import detect_sensitive_content

logger = logging.getLogger(__name__)

# =============================================================================
# PARAMETERS
# =============================================================================

MAX_SCORE = 100

STALE_AFTER_DAYS = 365

MANY_SHARES_THRESHOLD = 10

CONFIDENTIAL_MIME_TYPES = frozenset({
    "application/vnd.google-apps.spreadsheet",
    "application/vnd.google-apps.document",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/msword",
    "application/pdf",
    "text/csv",
})


# =============================================================================
# PREDICATES
# =============================================================================


def is_publicly_shared(item: DriveItem) -> bool:
    return any(p.type == PrincipalType.ANYONE for p in item.permissions)


def has_external_sharing(item: DriveItem, organization_domain: str) -> bool:
    return any(p.is_external(organization_domain) for p in item.permissions)


def has_external_editor(item: DriveItem, organization_domain: str) -> bool:
    """Write access for a named outside party or for anyone with the link."""
    return any(
        p.can_write and (p.type == PrincipalType.ANYONE or p.is_external(organization_domain))
        for p in item.permissions
    )


def is_shared(item: DriveItem) -> bool:
    """Shared flag set, or any grant besides the owner's."""
    return item.shared or any(p.role != PermissionRole.OWNER for p in item.permissions)


def count_direct_shares(item: DriveItem) -> int:
    """Raw number of user and group entries (not deduplicated)."""
    return sum(
        1 for p in item.permissions
        if p.type in (PrincipalType.USER, PrincipalType.GROUP)
    )


def is_internal_owner(item: DriveItem, organization_domain: str) -> bool:
    return email_domain(item.owner_email) == organization_domain.lower()


def days_since(moment: datetime, now: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (now - moment).days


def get_risk_level(score: int) -> RiskLevel:
    """Map a score to its risk level."""
    return RiskLevel.from_score(score)


# =============================================================================
# SCORING
# =============================================================================


def score_item(
    item: DriveItem,
    organization_domain: str,
    now: Optional[datetime] = None,
) -> RiskAssessment:
    """
    Score one item.

    Args:
        item: Item with its full ACL
        organization_domain: The organization's primary domain
        now: Reference time for the staleness rule (defaults to current UTC)

    Returns:
        RiskAssessment with one issue and one recommendation per triggered rule
    """
    now = now or datetime.now(timezone.utc)
    issues: List[RiskIssue] = []

    if is_publicly_shared(item):
        issues.append(ISSUE_RULES[IssueType.PUBLIC_SHARING].resolve())

    if has_external_sharing(item, organization_domain):
        issues.append(ISSUE_RULES[IssueType.EXTERNAL_SHARING].resolve())

    if has_external_editor(item, organization_domain):
        issues.append(ISSUE_RULES[IssueType.EXTERNAL_EDITOR].resolve())

    if item.mime_type in CONFIDENTIAL_MIME_TYPES:
        issues.append(ISSUE_RULES[IssueType.CONFIDENTIAL_TYPE].resolve())

    sensitive = detect_sensitive_content(item.name)
    if sensitive.is_sensitive:
        issues.append(ISSUE_RULES[IssueType.SENSITIVE_CONTENT].resolve(
            severity=sensitive.max_level,
            categories=", ".join(sensitive.descriptions),
        ))

    if item.modified_time and is_shared(item):
        age = days_since(item.modified_time, now)
        if age > STALE_AFTER_DAYS:
            issues.append(ISSUE_RULES[IssueType.STALE_SHARING].resolve(days=age))

    share_count = count_direct_shares(item)
    if share_count > MANY_SHARES_THRESHOLD:
        issues.append(ISSUE_RULES[IssueType.MANY_SHARES].resolve(count=share_count))

    score = min(sum(issue.points for issue in issues), MAX_SCORE)

    return RiskAssessment(
        score=score,
        level=get_risk_level(score),
        issues=issues,
        recommendations=[issue.recommendation for issue in issues],
    )
