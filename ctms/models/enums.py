"""Enumerated values stored as plain strings."""

from enum import StrEnum


class RecordStatus(StrEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    OVERDUE = "OVERDUE"
    LOCKED = "LOCKED"
    EXPIRED = "EXPIRED"


class ResultGrade(StrEnum):
    PASS = "PASS"
    EXCELLENT = "EXCELLENT"


class AttemptResult(StrEnum):
    PASS = "PASS"
    FAIL = "FAIL"


class AssignmentSource(StrEnum):
    MANUAL = "MANUAL"
    SYSTEM = "SYSTEM"


class Role(StrEnum):
    ADMINISTRATOR = "Administrator"
    QA = "QA"
    EMPLOYEE = "Employee"


PRIVILEGED_ROLES = frozenset({Role.ADMINISTRATOR.value, Role.QA.value})


class AuditEventType(StrEnum):
    ASSIGN_TRAINING = "ASSIGN_TRAINING"
    DOCUMENT_VIEWED = "DOCUMENT_VIEWED"
    DOCUMENT_ACKNOWLEDGED = "DOCUMENT_ACKNOWLEDGED"
    ASSESSMENT_STARTED = "ASSESSMENT_STARTED"
    ASSESSMENT_SUBMITTED = "ASSESSMENT_SUBMITTED"
    ASSESSMENT_PASSED = "ASSESSMENT_PASSED"
    ASSESSMENT_FAILED = "ASSESSMENT_FAILED"
    TRAINING_OVERDUE = "TRAINING_OVERDUE"
    LATE_COMPLETION = "LATE_COMPLETION"
    CERTIFICATE_GENERATED = "CERTIFICATE_GENERATED"
    TRAINING_EXPIRED = "TRAINING_EXPIRED"
    MATRIX_ACCESSED = "MATRIX_ACCESSED"
    MATRIX_EXPORTED = "MATRIX_EXPORTED"
    AI_USED = "AI_USED"
    STATUS_CHANGED = "STATUS_CHANGED"
    REJECTED_TRANSITION = "REJECTED_TRANSITION"
    SIGNATURE_CAPTURED = "SIGNATURE_CAPTURED"
    SIGNATURE_FAILED = "SIGNATURE_FAILED"
    GOVERNANCE_CONFIG_UPDATED = "GOVERNANCE_CONFIG_UPDATED"
    GOVERNANCE_CONFIG_ROLLED_BACK = "GOVERNANCE_CONFIG_ROLLED_BACK"


class EventSource(StrEnum):
    USER = "USER"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class NotificationType(StrEnum):
    TRAINING_ASSIGNED = "TRAINING_ASSIGNED"
    RETRAINING_REQUIRED = "RETRAINING_REQUIRED"
    TRAINING_COMPLETED = "TRAINING_COMPLETED"
    TRAINING_FAILED = "TRAINING_FAILED"
    TRAINING_LOCKED = "TRAINING_LOCKED"
    TRAINING_OVERDUE = "TRAINING_OVERDUE"
    TRAINING_DUE_SOON = "TRAINING_DUE_SOON"
    CERTIFICATE_EXPIRING_SOON = "CERTIFICATE_EXPIRING_SOON"
    TRAINING_EXPIRED = "TRAINING_EXPIRED"
