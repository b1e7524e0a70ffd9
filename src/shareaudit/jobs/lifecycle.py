"""
Scan record state machine.

    status: running -> completed | failed
    phase:  counting -> scanning -> done

Any running scan may fail from any phase. Completion is only reachable from
the scanning phase and moves the phase to done. There is no standing timer:
a scan left running past SCAN_TIMEOUT is reclassified as failed the next
time scan history is listed. The sweep is advisory: the pipeline that owns
the scan keeps writing it and a later completion replaces the timeout.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from shareaudit.exceptions import ScanStateError


class ScanStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ScanPhase(str, Enum):
    COUNTING = "counting"
    SCANNING = "scanning"
    DONE = "done"


PHASE_TRANSITIONS = {
    ScanPhase.COUNTING: frozenset({ScanPhase.SCANNING}),
    ScanPhase.SCANNING: frozenset({ScanPhase.DONE}),
    ScanPhase.DONE: frozenset(),
}

SCAN_TIMEOUT = timedelta(minutes=10)

TIMEOUT_MESSAGE = "Scan timed out"


def is_timeout_failure(status: str, error_message: Optional[str]) -> bool:
    """True for a scan failed by the lazy timeout sweep rather than by its pipeline."""
    return status == ScanStatus.FAILED.value and error_message == TIMEOUT_MESSAGE


def check_running(scan_id: str, status: str, error_message: Optional[str] = None) -> None:
    """
    Raise unless the owning pipeline may still write the scan.

    A scan swept as timed out is still being driven by its pipeline, which
    keeps recording progress and may complete it.
    """
    if status != ScanStatus.RUNNING.value and not is_timeout_failure(status, error_message):
        raise ScanStateError(
            f"Scan is {status}, not running",
            scan_id=scan_id,
            current=status,
        )


def check_phase_transition(scan_id: str, current: str, target: ScanPhase) -> None:
    """Raise if moving from current to target phase is not allowed."""
    if target not in PHASE_TRANSITIONS[ScanPhase(current)]:
        raise ScanStateError(
            f"Cannot move scan from {current} to {target.value}",
            scan_id=scan_id,
            current=current,
            target=target.value,
        )


def is_timed_out(
    status: str,
    started_at: Optional[datetime],
    now: Optional[datetime] = None,
    timeout: timedelta = SCAN_TIMEOUT,
) -> bool:
    """True for a running scan started more than `timeout` ago."""
    if status != ScanStatus.RUNNING.value or started_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    return now - started_at > timeout
