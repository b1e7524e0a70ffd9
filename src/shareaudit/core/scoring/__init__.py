"""
ShareAudit Risk Scoring.

Scores one item's exposure from its ACL, file type, name and age.
"""

from .scorer import (
    score_item,
    get_risk_level,
    is_internal_owner,
    is_publicly_shared,
    has_external_sharing,
    has_external_editor,
    CONFIDENTIAL_MIME_TYPES,
)
from .sensitive import (
    detect_sensitive_content,
    SensitiveCategory,
    SENSITIVE_CATEGORIES,
)

__all__ = [
    "score_item",
    "get_risk_level",
    "is_internal_owner",
    "is_publicly_shared",
    "has_external_sharing",
    "has_external_editor",
    "CONFIDENTIAL_MIME_TYPES",
    "detect_sensitive_content",
    "SensitiveCategory",
    "SENSITIVE_CATEGORIES",
]
