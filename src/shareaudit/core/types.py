"""
Core data types for the ShareAudit risk engine.

This module defines the types shared by scoring, aggregation and the scan
pipeline:
- RiskLevel: threshold bucket of a 0-100 score
- IssueType / IssueRule: the closed set of risk rules and their fixed texts
- RiskIssue / RiskAssessment: the result of scoring one item
- RiskySummary: per-level counts over many assessments
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

__all__ = [
    # Enums
    "RiskLevel",
    "IssueType",
    # Constants
    "RISK_LEVEL_THRESHOLDS",
    "SEVERITY_POINTS",
    "ISSUE_RULES",
    # Data classes
    "IssueRule",
    "RiskIssue",
    "RiskAssessment",
    "RiskySummary",
]

logger = logging.getLogger(__name__)


class RiskLevel(str, Enum):
    """Risk level of a file, also used as the severity of a single issue."""
    CRITICAL = "critical"  # Score 80-100
    HIGH = "high"          # Score 60-79
    MEDIUM = "medium"      # Score 40-59
    LOW = "low"            # Score 0-39

    @property
    def rank(self) -> int:
        """Ordering key, higher is riskier."""
        return _LEVEL_RANK[self]

    @classmethod
    def from_score(cls, score: int) -> "RiskLevel":
        """Map a score onto the unique threshold bucket containing it."""
        if score >= RISK_LEVEL_THRESHOLDS["critical"]:
            return cls.CRITICAL
        elif score >= RISK_LEVEL_THRESHOLDS["high"]:
            return cls.HIGH
        elif score >= RISK_LEVEL_THRESHOLDS["medium"]:
            return cls.MEDIUM
        return cls.LOW


_LEVEL_RANK = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}

RISK_LEVEL_THRESHOLDS = {
    "critical": 80,
    "high": 60,
    "medium": 40,
}

# Points awarded for a sensitive filename, by the matched category's level
SEVERITY_POINTS: Dict[RiskLevel, int] = {
    RiskLevel.CRITICAL: 25,
    RiskLevel.HIGH: 15,
    RiskLevel.MEDIUM: 10,
    RiskLevel.LOW: 5,
}


class IssueType(str, Enum):
    """Every rule the scoring engine can trigger."""
    PUBLIC_SHARING = "public_sharing"
    EXTERNAL_SHARING = "external_sharing"
    EXTERNAL_EDITOR = "external_editor"
    CONFIDENTIAL_TYPE = "confidential_type"
    SENSITIVE_CONTENT = "sensitive_content"
    STALE_SHARING = "stale_sharing"
    MANY_SHARES = "many_shares"


@dataclass(frozen=True)
class IssueRule:
    """
    Fixed definition of one issue type.

    points/severity of None mean the value is decided by the match itself
    (sensitive filenames score by the matched category's level).
    """
    type: IssueType
    points: Optional[int]
    severity: Optional[RiskLevel]
    label: str
    description: str
    recommendation: str

    def resolve(
        self,
        severity: Optional[RiskLevel] = None,
        **context: Any,
    ) -> "RiskIssue":
        """Build the issue for this rule, formatting the description with context."""
        level = self.severity or severity or RiskLevel.MEDIUM
        points = self.points if self.points is not None else SEVERITY_POINTS[level]
        return RiskIssue(
            type=self.type,
            severity=level,
            points=points,
            description=self.description.format(**context),
        )


ISSUE_RULES: Dict[IssueType, IssueRule] = {
    IssueType.PUBLIC_SHARING: IssueRule(
        type=IssueType.PUBLIC_SHARING,
        points=40,
        severity=RiskLevel.CRITICAL,
        label="Public link",
        description="Anyone with the link can access this file",
        recommendation=(
            "Turn off \"Anyone with the link\" and share only with specific people"
        ),
    ),
    IssueType.EXTERNAL_SHARING: IssueRule(
        type=IssueType.EXTERNAL_SHARING,
        points=20,
        severity=RiskLevel.HIGH,
        label="External sharing",
        description="Shared with people outside the organization",
        recommendation=(
            "Confirm the external share is still needed and remove it if not"
        ),
    ),
    IssueType.EXTERNAL_EDITOR: IssueRule(
        type=IssueType.EXTERNAL_EDITOR,
        points=15,
        severity=RiskLevel.HIGH,
        label="External editor",
        description="People outside the organization can edit this file",
        recommendation=(
            "Downgrade external collaborators to Viewer or remove their access"
        ),
    ),
    IssueType.CONFIDENTIAL_TYPE: IssueRule(
        type=IssueType.CONFIDENTIAL_TYPE,
        points=15,
        severity=RiskLevel.MEDIUM,
        label="Confidential file type",
        description="File type commonly used for confidential data",
        recommendation=(
            "This file type often holds business data. Review who it is shared with"
        ),
    ),
    IssueType.SENSITIVE_CONTENT: IssueRule(
        type=IssueType.SENSITIVE_CONTENT,
        points=None,
        severity=None,
        label="Sensitive content",
        description="Possible sensitive information: {categories}",
        recommendation=(
            "The file name suggests sensitive information. Restrict access to "
            "the people who need it"
        ),
    ),
    IssueType.STALE_SHARING: IssueRule(
        type=IssueType.STALE_SHARING,
        points=10,
        severity=RiskLevel.LOW,
        label="Stale share",
        description="Shared file not modified for over a year ({days} days)",
        recommendation=(
            "This file has not changed in a long time. Check whether it still "
            "needs to be shared"
        ),
    ),
    IssueType.MANY_SHARES: IssueRule(
        type=IssueType.MANY_SHARES,
        points=5,
        severity=RiskLevel.LOW,
        label="Many collaborators",
        description="Shared with {count} users or groups",
        recommendation="Shared with many people. Review the access list",
    ),
}

_missing_rules = set(IssueType) - set(ISSUE_RULES)
if _missing_rules:
    raise RuntimeError(f"Issue types without a rule: {sorted(_missing_rules)}")


@dataclass(frozen=True)
class RiskIssue:
    """One triggered rule on one item."""
    type: IssueType
    severity: RiskLevel
    points: int
    description: str

    @property
    def recommendation(self) -> str:
        return ISSUE_RULES[self.type].recommendation

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "points": self.points,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RiskIssue":
        return cls(
            type=IssueType(data["type"]),
            severity=RiskLevel(data["severity"]),
            points=int(data["points"]),
            description=data.get("description", ""),
        )


@dataclass(frozen=True)
class RiskAssessment:
    """Complete scoring result for a file."""
    score: int                    # Capped risk score (0-100)
    level: RiskLevel              # Threshold bucket of score
    issues: List[RiskIssue]       # One per triggered rule, in rule order
    recommendations: List[str]    # One per issue, same order

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "score": self.score,
            "level": self.level.value,
            "issues": [issue.to_dict() for issue in self.issues],
            "recommendations": list(self.recommendations),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RiskAssessment":
        return cls(
            score=int(data["score"]),
            level=RiskLevel(data["level"]),
            issues=[RiskIssue.from_dict(i) for i in data.get("issues", [])],
            recommendations=list(data.get("recommendations", [])),
        )


@dataclass
class RiskySummary:
    """Number of items per risk level."""
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0

    @property
    def total(self) -> int:
        return self.critical + self.high + self.medium + self.low

    def add(self, level: RiskLevel, count: int = 1) -> None:
        setattr(self, level.value, getattr(self, level.value) + count)

    def merge(self, other: "RiskySummary") -> "RiskySummary":
        """Return a new summary holding the sum of both."""
        return RiskySummary(
            critical=self.critical + other.critical,
            high=self.high + other.high,
            medium=self.medium + other.medium,
            low=self.low + other.low,
        )

    def highest_level(self) -> Optional[RiskLevel]:
        for level in (RiskLevel.CRITICAL, RiskLevel.HIGH, RiskLevel.MEDIUM, RiskLevel.LOW):
            if getattr(self, level.value):
                return level
        return None

    def to_dict(self) -> Dict[str, int]:
        return {
            "critical": self.critical,
            "high": self.high,
            "medium": self.medium,
            "low": self.low,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RiskySummary":
        data = data or {}
        return cls(
            critical=int(data.get("critical", 0)),
            high=int(data.get("high", 0)),
            medium=int(data.get("medium", 0)),
            low=int(data.get("low", 0)),
        )
