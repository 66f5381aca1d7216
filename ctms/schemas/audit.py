"""Audit event schemas.

Metadata is a tagged variant: each event type has exactly one metadata
model, and ``AuditTrail.record`` refuses a mismatched pairing.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ctms.models.enums import AuditEventType, EventSource


class AuditSubject(BaseModel):
    """What an entry is about."""

    user_id: str | None = None
    training_id: str | None = None
    training_record_id: str | None = None
    assessment_id: str | None = None


class AuditMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid")


class AssignmentMeta(AuditMetadata):
    due_date: datetime
    assigned_by: str | None = None
    source: str = "MANUAL"
    previous_training_ids: list[str] = Field(default_factory=list)


class DocumentMeta(AuditMetadata):
    document_url: str | None = None


class AssessmentStartedMeta(AuditMetadata):
    attempt_number: int


class AssessmentSubmittedMeta(AuditMetadata):
    score: int
    passed: bool
    attempt_number: int
    total_questions: int
    correct_count: int
    completed_late: bool = False
    pass_percentage: int | None = None


class AssessmentResultMeta(AuditMetadata):
    score: int
    attempt_number: int
    grade: str | None = None
    max_attempts: int


class OverdueMeta(AuditMetadata):
    due_date: datetime
    detected_by: str  # READ|SWEEP


class LateCompletionMeta(AuditMetadata):
    due_date: datetime
    completed_date: datetime


class CertificateMeta(AuditMetadata):
    certificate_id: str
    certificate_url: str
    expiry_date: datetime | None = None


class ExpiryMeta(AuditMetadata):
    expiry_date: datetime
    certificate_id: str | None = None
    auto_transitioned: bool = True


class MatrixMeta(AuditMetadata):
    row_count: int
    training_count: int
    export_format: str | None = None


class AIUsageMeta(AuditMetadata):
    feature: str
    model: str | None = None


class StatusChangeMeta(AuditMetadata):
    reason: str | None = None


class RejectedTransitionMeta(AuditMetadata):
    action: str
    reason_code: str
    detail: dict[str, Any] = Field(default_factory=dict)


class SignatureMeta(AuditMetadata):
    action_type: str
    signature_id: str | None = None
    reason: str | None = None
    failure_reason: str | None = None


class GovernanceUpdateMeta(AuditMetadata):
    version: int
    name: str
    signature_id: str
    reason: str
    config_hash: str


class GovernanceRollbackMeta(AuditMetadata):
    from_version: int
    new_version: int
    signature_id: str
    reason: str
    config_hash: str


EVENT_METADATA: dict[AuditEventType, type[AuditMetadata]] = {
    AuditEventType.ASSIGN_TRAINING: AssignmentMeta,
    AuditEventType.DOCUMENT_VIEWED: DocumentMeta,
    AuditEventType.DOCUMENT_ACKNOWLEDGED: DocumentMeta,
    AuditEventType.ASSESSMENT_STARTED: AssessmentStartedMeta,
    AuditEventType.ASSESSMENT_SUBMITTED: AssessmentSubmittedMeta,
    AuditEventType.ASSESSMENT_PASSED: AssessmentResultMeta,
    AuditEventType.ASSESSMENT_FAILED: AssessmentResultMeta,
    AuditEventType.TRAINING_OVERDUE: OverdueMeta,
    AuditEventType.LATE_COMPLETION: LateCompletionMeta,
    AuditEventType.CERTIFICATE_GENERATED: CertificateMeta,
    AuditEventType.TRAINING_EXPIRED: ExpiryMeta,
    AuditEventType.MATRIX_ACCESSED: MatrixMeta,
    AuditEventType.MATRIX_EXPORTED: MatrixMeta,
    AuditEventType.AI_USED: AIUsageMeta,
    AuditEventType.STATUS_CHANGED: StatusChangeMeta,
    AuditEventType.REJECTED_TRANSITION: RejectedTransitionMeta,
    AuditEventType.SIGNATURE_CAPTURED: SignatureMeta,
    AuditEventType.SIGNATURE_FAILED: SignatureMeta,
    AuditEventType.GOVERNANCE_CONFIG_UPDATED: GovernanceUpdateMeta,
    AuditEventType.GOVERNANCE_CONFIG_ROLLED_BACK: GovernanceRollbackMeta,
}


class AuditLogEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    event_type: AuditEventType
    actor_id: str | None
    user_id: str | None
    training_id: str | None
    training_record_id: str | None
    assessment_id: str | None
    previous_status: str | None
    new_status: str | None
    source: EventSource
    metadata_json: dict[str, Any] | None = Field(default=None, serialization_alias="metadata")
    ip_address: str | None
    timestamp: datetime
