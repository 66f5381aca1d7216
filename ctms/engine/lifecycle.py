"""Training record lifecycle rules - pure functions shared by the read path and the sweeps."""

from datetime import datetime, timedelta

from ctms.clock import as_utc
from ctms.models.enums import RecordStatus

TERMINAL = frozenset({RecordStatus.COMPLETED.value, RecordStatus.LOCKED.value, RecordStatus.EXPIRED.value})

# Statuses that are never left again.
FINAL = frozenset({RecordStatus.LOCKED.value, RecordStatus.EXPIRED.value})

OVERDUE_ELIGIBLE = frozenset({RecordStatus.PENDING.value, RecordStatus.IN_PROGRESS.value})

# from -> allowed to
TRANSITIONS: dict[str, frozenset[str]] = {
    RecordStatus.PENDING: frozenset({RecordStatus.IN_PROGRESS, RecordStatus.OVERDUE}),
    RecordStatus.IN_PROGRESS: frozenset(
        {RecordStatus.COMPLETED, RecordStatus.FAILED, RecordStatus.LOCKED, RecordStatus.OVERDUE}
    ),
    RecordStatus.FAILED: frozenset(
        {RecordStatus.IN_PROGRESS, RecordStatus.COMPLETED, RecordStatus.FAILED, RecordStatus.LOCKED}
    ),
    # Only reachable by an administrator extending the due date.
    RecordStatus.OVERDUE: frozenset({RecordStatus.PENDING, RecordStatus.IN_PROGRESS}),
    RecordStatus.COMPLETED: frozenset({RecordStatus.EXPIRED}),
    RecordStatus.LOCKED: frozenset(),
    RecordStatus.EXPIRED: frozenset(),
}

# Statuses that refuse start calls, with the denial reason code.
START_BLOCKED = {
    RecordStatus.LOCKED: "STATUS_LOCKED",
    RecordStatus.OVERDUE: "STATUS_OVERDUE",
    RecordStatus.COMPLETED: "STATUS_COMPLETED",
    RecordStatus.EXPIRED: "STATUS_EXPIRED",
}

# Submission additionally needs the training to have been started.
SUBMIT_BLOCKED = {**START_BLOCKED, RecordStatus.PENDING: "STATUS_PENDING"}

VALIDITY_UNIT_DAYS = {"days": 1, "months": 30, "years": 365}


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in TRANSITIONS.get(from_status, frozenset())


def is_overdue(status: str, due_date: datetime | None, now: datetime) -> bool:
    """True when a PENDING/IN_PROGRESS record's due date has strictly passed."""
    if status not in OVERDUE_ELIGIBLE or due_date is None:
        return False
    return as_utc(due_date) < as_utc(now)


def derive_status(status: str, due_date: datetime | None, now: datetime) -> str:
    """Time-derived status; the single source of truth for overdue detection."""
    if is_overdue(status, due_date, now):
        return RecordStatus.OVERDUE.value
    return status


def is_expired(status: str, expiry_date: datetime | None, now: datetime) -> bool:
    """True strictly after a completed record's expiry instant. Only the expiry sweep consults this."""
    if status != RecordStatus.COMPLETED or expiry_date is None:
        return False
    return as_utc(expiry_date) < as_utc(now)


def validity_days(validity_period: int | None, validity_unit: str | None) -> int | None:
    """Validity converted to days, or None when the training never expires."""
    if not validity_period or validity_period <= 0:
        return None
    factor = VALIDITY_UNIT_DAYS.get(validity_unit or "days")
    if factor is None:
        raise ValueError(f"Unknown validity unit: {validity_unit}")
    return validity_period * factor


def compute_expiry(
    issued_at: datetime, validity_period: int | None, validity_unit: str | None
) -> datetime | None:
    """Expiry = issuance instant + validity period in days."""
    days = validity_days(validity_period, validity_unit)
    if days is None:
        return None
    return as_utc(issued_at) + timedelta(days=days)
