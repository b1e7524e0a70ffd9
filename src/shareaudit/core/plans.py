"""
Subscription plan limits.

-1 means unlimited.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from shareaudit.exceptions import PlanLimitError, ValidationError

UNLIMITED = -1


@dataclass(frozen=True)
class Plan:
    name: str
    max_files_per_scan: int
    scans_per_month: int


PLANS: Dict[str, Plan] = {
    "free": Plan("free", max_files_per_scan=1000, scans_per_month=2),
    "basic": Plan("basic", max_files_per_scan=10000, scans_per_month=10),
    "pro": Plan("pro", max_files_per_scan=100000, scans_per_month=UNLIMITED),
    "enterprise": Plan("enterprise", max_files_per_scan=UNLIMITED, scans_per_month=UNLIMITED),
}


def get_plan(name: str) -> Plan:
    try:
        return PLANS[name]
    except KeyError:
        raise ValidationError(f"Unknown plan: {name}", field="plan") from None


def max_files_for_plan(name: str) -> Optional[int]:
    """Counting cap for a scan, None when unlimited."""
    limit = get_plan(name).max_files_per_scan
    return None if limit == UNLIMITED else limit


def check_scan_quota(plan_name: str, scans_this_month: int) -> None:
    """Raise PlanLimitError when the monthly scan allowance is used up."""
    plan = get_plan(plan_name)
    if plan.scans_per_month == UNLIMITED:
        return
    if scans_this_month >= plan.scans_per_month:
        raise PlanLimitError(
            f"Monthly scan limit reached ({plan.scans_per_month} scans on the {plan.name} plan)",
            plan=plan.name,
            limit=plan.scans_per_month,
            used=scans_this_month,
        )
