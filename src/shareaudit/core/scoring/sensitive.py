"""
Sensitive filename detection.

Matches a file name against fixed categories of keywords and regular
expressions. Each category carries a risk level; the scorer awards points
by the highest level matched.

Keywords are matched case-insensitively as substrings, so they cover both
English names ("salary_2024.xlsx") and Japanese names ("給与明細.pdf").
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Tuple

from ..types import RiskLevel


@dataclass(frozen=True)
class SensitiveCategory:
    """One family of sensitive content recognizable from a file name."""
    name: str
    description: str
    level: RiskLevel
    keywords: Tuple[str, ...] = ()
    patterns: Tuple[Pattern[str], ...] = ()

    def matches(self, name: str) -> bool:
        lowered = name.lower()
        if any(keyword in lowered for keyword in self.keywords):
            return True
        return any(pattern.search(name) for pattern in self.patterns)


def _p(*regexes: str) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(r, re.IGNORECASE) for r in regexes)


# =============================================================================
# CATEGORIES
# =============================================================================

SENSITIVE_CATEGORIES: List[SensitiveCategory] = [
    # Critical: direct credential or identity exposure
    SensitiveCategory(
        name="credentials",
        description="Passwords or access credentials",
        level=RiskLevel.CRITICAL,
        keywords=(
            "password", "passwd", "credential", "secret key", "private key",
            "api key", "apikey", "パスワード", "認証情報", "秘密鍵",
        ),
        patterns=_p(r"(^|[^a-z])pw([^a-z]|$)", r"(^|[^a-z])id[_\- ]?pass([^a-z]|$)", r"\.pem$"),
    ),
    SensitiveCategory(
        name="personal_id",
        description="Personal identification numbers",
        level=RiskLevel.CRITICAL,
        keywords=(
            "my number", "mynumber", "social security", "passport",
            "driver's license", "drivers license", "マイナンバー", "個人番号",
            "パスポート", "免許証",
        ),
        patterns=_p(r"(^|[^a-z])ssn([^a-z]|$)"),
    ),
    SensitiveCategory(
        name="bank_account",
        description="Bank account or card details",
        level=RiskLevel.CRITICAL,
        keywords=("bank account", "credit card", "口座番号", "クレジットカード"),
    ),
    # High: payroll, finance and explicit confidentiality markings
    SensitiveCategory(
        name="payroll",
        description="Payroll and compensation",
        level=RiskLevel.HIGH,
        keywords=(
            "payroll", "salary", "salaries", "payslip", "pay slip", "bonus",
            "給与", "給料", "賞与", "源泉徴収",
        ),
    ),
    SensitiveCategory(
        name="financial",
        description="Financial statements and accounting",
        level=RiskLevel.HIGH,
        keywords=(
            "financial statement", "balance sheet", "p&l", "profit and loss",
            "budget", "決算", "財務", "予算", "損益",
        ),
    ),
    SensitiveCategory(
        name="confidential_marking",
        description="Marked confidential",
        level=RiskLevel.HIGH,
        keywords=(
            "confidential", "internal only", "do not share", "restricted",
            "機密", "社外秘", "極秘", "部外秘",
        ),
    ),
    # Medium: personal data of staff or customers, legal documents
    SensitiveCategory(
        name="personnel",
        description="HR and personnel records",
        level=RiskLevel.MEDIUM,
        keywords=(
            "personnel", "employee list", "evaluation", "performance review",
            "resume", "履歴書", "人事", "社員名簿", "評価",
        ),
    ),
    SensitiveCategory(
        name="customer_data",
        description="Customer or member lists",
        level=RiskLevel.MEDIUM,
        keywords=(
            "customer list", "customer data", "client list", "member list",
            "顧客", "会員名簿", "個人情報",
        ),
    ),
    SensitiveCategory(
        name="contract",
        description="Contracts and agreements",
        level=RiskLevel.MEDIUM,
        keywords=("contract", "agreement", "契約書", "覚書", "秘密保持"),
        patterns=_p(r"(^|[^a-z])nda([^a-z]|$)"),
    ),
    # Low: internal but rarely damaging
    SensitiveCategory(
        name="meeting_minutes",
        description="Meeting minutes",
        level=RiskLevel.LOW,
        keywords=("minutes", "議事録"),
    ),
]


@dataclass
class SensitiveMatch:
    """Result of checking one file name."""
    is_sensitive: bool = False
    max_level: Optional[RiskLevel] = None
    details: List[SensitiveCategory] = field(default_factory=list)

    @property
    def descriptions(self) -> List[str]:
        return [category.description for category in self.details]


def detect_sensitive_content(
    name: str,
    categories: Optional[List[SensitiveCategory]] = None,
) -> SensitiveMatch:
    """
    Check a file name against every sensitive category.

    Args:
        name: File name (not path)
        categories: Override the built-in categories

    Returns:
        SensitiveMatch listing matched categories in definition order
    """
    if not name:
        return SensitiveMatch()

    matched = [c for c in (categories or SENSITIVE_CATEGORIES) if c.matches(name)]
    if not matched:
        return SensitiveMatch()

    max_level = max((c.level for c in matched), key=lambda level: level.rank)
    return SensitiveMatch(is_sensitive=True, max_level=max_level, details=matched)
