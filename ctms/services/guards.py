"""Guard layer for administrative writes to training records.

Runs before the state machine sees an update. Each guard returns the list
of violations it found; an empty list lets the write through.
"""

from typing import Any

from ctms.engine.lifecycle import TERMINAL, can_transition
from ctms.models import TrainingRecord
from ctms.models.enums import RecordStatus

GuardResult = list[dict[str, str]]

# Only the state machine and the scheduler write these.
SYSTEM_DERIVED_FIELDS = (
    "expiry_date",
    "certificate_id",
    "certificate_url",
    "completed_date",
    "completed_late",
    "score",
    "passed",
    "result_grade",
    "assessment_attempts",
    "last_attempt_date",
)

# Statuses no client may ever write. Outcomes come from submissions, the
# rest from the clock.
SYSTEM_ONLY_STATUSES = {
    RecordStatus.COMPLETED: "MANUAL_COMPLETED_ASSIGNMENT",
    RecordStatus.EXPIRED: "MANUAL_EXPIRED_ASSIGNMENT",
    RecordStatus.FAILED: "MANUAL_FAILED_ASSIGNMENT",
    RecordStatus.LOCKED: "MANUAL_LOCKED_ASSIGNMENT",
    RecordStatus.OVERDUE: "MANUAL_OVERDUE_ASSIGNMENT",
}

EDITABLE_FIELDS = frozenset({"due_date", "status"})


def guard_system_fields(record: TrainingRecord, changes: dict[str, Any]) -> GuardResult:
    violations = []
    for field in SYSTEM_DERIVED_FIELDS:
        if field in changes:
            violations.append(
                {
                    "field": field,
                    "reason_code": f"MANUAL_EDIT_{field.upper()}",
                    "reason": f"{field} is system-derived and cannot be set directly",
                }
            )
    status = changes.get("status")
    if status in SYSTEM_ONLY_STATUSES:
        violations.append(
            {
                "field": "status",
                "reason_code": SYSTEM_ONLY_STATUSES[status],
                "reason": f"{status} can only be set by the system",
            }
        )
    return violations


def guard_unknown_fields(record: TrainingRecord, changes: dict[str, Any]) -> GuardResult:
    return [
        {"field": field, "reason_code": "FIELD_NOT_EDITABLE", "reason": f"{field} is not editable"}
        for field in changes
        if field not in EDITABLE_FIELDS and field not in SYSTEM_DERIVED_FIELDS
    ]


def guard_terminal(record: TrainingRecord, changes: dict[str, Any]) -> GuardResult:
    if record.status in TERMINAL and changes:
        return [
            {
                "field": "status",
                "reason_code": f"STATUS_{record.status}",
                "reason": f"Records in {record.status} status cannot be edited",
            }
        ]
    return []


def guard_status_transition(record: TrainingRecord, changes: dict[str, Any]) -> GuardResult:
    target = changes.get("status")
    if target is None or target == record.status:
        return []
    if not can_transition(record.status, target):
        return [
            {
                "field": "status",
                "reason_code": "INVALID_TRANSITION",
                "reason": f"Cannot move from {record.status} to {target}",
            }
        ]
    return []


def guard_start_preconditions(record: TrainingRecord, changes: dict[str, Any]) -> GuardResult:
    """An administrator moving a record to IN_PROGRESS is held to the same gate as a start call."""
    if changes.get("status") != RecordStatus.IN_PROGRESS or record.status == RecordStatus.IN_PROGRESS:
        return []
    if not record.document_acknowledged:
        return [
            {
                "field": "status",
                "reason_code": "DOC_NOT_ACKNOWLEDGED",
                "reason": "The training document has not been acknowledged",
            }
        ]
    return []


# Evaluated in order; the first violation wins.
RECORD_UPDATE_GUARDS = (
    guard_system_fields,
    guard_unknown_fields,
    guard_terminal,
    guard_status_transition,
    guard_start_preconditions,
)


def check_record_update(record: TrainingRecord, changes: dict[str, Any]) -> GuardResult:
    for guard in RECORD_UPDATE_GUARDS:
        violations = guard(record, changes)
        if violations:
            return violations
    return []
