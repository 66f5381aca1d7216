"""Training record state machine.

Owns every status change on a training record. Client actions (assign,
view, acknowledge, start, submit via the assessment engine, admin edits)
and the scheduler's sweeps all come through here, so the transition
table in ``ctms.engine.lifecycle`` is enforced in one place.

Transaction discipline: the primary change is committed first, then the
audit entries for it are written in order, then notifications go out.
"""

import logging
from datetime import datetime
from typing import Any, NoReturn

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ctms.auth.identity import SYSTEM_ACTOR, Actor
from ctms.clock import Clock, as_utc, utcnow
from ctms.config import Settings, settings as default_settings
from ctms.engine.lifecycle import (
    FINAL,
    START_BLOCKED,
    TERMINAL,
    derive_status,
    is_expired,
)
from ctms.errors import (
    AccessDeniedError,
    ConcurrencyConflictError,
    ImmutabilityViolation,
    NotFoundError,
    ValidationError,
)
from ctms.models import AssessmentAttempt, AssessmentConfig, ReminderMarker, Training, TrainingRecord
from ctms.models.enums import (
    AssignmentSource,
    AuditEventType,
    NotificationType,
    RecordStatus,
)
from ctms.schemas.assessment import ScoreResult
from ctms.schemas.audit import (
    AssignmentMeta,
    AuditSubject,
    DocumentMeta,
    ExpiryMeta,
    LateCompletionMeta,
    OverdueMeta,
    RejectedTransitionMeta,
    StatusChangeMeta,
)
from ctms.schemas.certificate import CertificateIssue
from ctms.schemas.record import AssignTrainingRequest, AssignTrainingResponse, RecordUpdateRequest
from ctms.services.audit import AuditSink
from ctms.services.certificates import CertificateLifecycleManager
from ctms.services.guards import check_record_update
from ctms.services.notifications import Notifier, dispatch
from ctms.storage import repositories as repo

logger = logging.getLogger(__name__)


def record_subject(record: TrainingRecord, assessment_id: str | None = None) -> AuditSubject:
    return AuditSubject(
        user_id=record.user_id,
        training_id=record.training_id,
        training_record_id=record.id,
        assessment_id=assessment_id,
    )


def new_record(
    *,
    user_id: str,
    training: Training,
    due_date: datetime,
    now: datetime,
    source: AssignmentSource,
    assigned_by: str | None,
) -> TrainingRecord:
    return TrainingRecord(
        user_id=user_id,
        training_id=training.id,
        training_master_id=training.master_id,
        status=RecordStatus.PENDING.value,
        assigned_date=now,
        due_date=as_utc(due_date),
        document_viewed=False,
        document_acknowledged=False,
        assessment_attempts=0,
        passed=False,
        completed_late=False,
        assignment_source=source.value,
        assigned_by=assigned_by,
    )


async def commit_or_conflict(db: AsyncSession) -> None:
    """Commit, turning a lost compare-and-swap or unique race into ConcurrencyConflictError."""
    try:
        await db.commit()
    except (StaleDataError, IntegrityError) as exc:
        await db.rollback()
        raise ConcurrencyConflictError(
            "The training record was changed by another request; please retry"
        ) from exc


class TrainingRecordStateMachine:
    def __init__(
        self,
        audit: AuditSink,
        notifier: Notifier,
        certificates: CertificateLifecycleManager,
        clock: Clock = utcnow,
        settings: Settings = default_settings,
    ):
        self.audit = audit
        self.notifier = notifier
        self.certificates = certificates
        self.clock = clock
        self.settings = settings

    # --- shared helpers ------------------------------------------------------

    async def reject(
        self,
        db: AsyncSession,
        actor: Actor,
        *,
        action: str,
        reason_code: str,
        message: str,
        subject: AuditSubject,
        status: str | None = None,
        detail: dict[str, Any] | None = None,
    ) -> NoReturn:
        """Record a REJECTED_TRANSITION entry, then raise the structured denial."""
        # Keep legitimate state already staged (e.g. a lazy overdue flip).
        await db.commit()
        await self.audit.record(
            AuditEventType.REJECTED_TRANSITION,
            actor=actor,
            subject=subject,
            metadata=RejectedTransitionMeta(action=action, reason_code=reason_code, detail=detail or {}),
            previous_status=status,
            new_status=status,
        )
        raise AccessDeniedError(message, reason_code=reason_code, action=action)

    async def _context(self, db: AsyncSession, record: TrainingRecord, **extra) -> dict[str, Any]:
        training = await repo.get_training(db, record.training_id)
        context = {
            "record_id": record.id,
            "training_id": record.training_id,
            "training_code": training.code if training else None,
            "training_title": training.title if training else None,
            "due_date": as_utc(record.due_date).date().isoformat(),
        }
        context.update(extra)
        return context

    async def notify(
        self, db: AsyncSession, record: TrainingRecord, type: NotificationType, **extra
    ) -> bool:
        return await dispatch(
            self.notifier, record.user_id, type, await self._context(db, record, **extra)
        )

    async def _status_changed(
        self, actor: Actor, record: TrainingRecord, previous: str, reason: str
    ) -> None:
        await self.audit.record(
            AuditEventType.STATUS_CHANGED,
            actor=actor,
            subject=record_subject(record),
            metadata=StatusChangeMeta(reason=reason),
            previous_status=previous,
            new_status=record.status,
        )

    # --- time-derived transitions -----------------------------------------------

    async def mark_overdue(
        self,
        db: AsyncSession,
        record: TrainingRecord,
        actor: Actor = SYSTEM_ACTOR,
        detected_by: str = "READ",
    ) -> bool:
        """Apply the overdue derivation; True when this call moved the record."""
        now = self.clock()
        target = derive_status(record.status, record.due_date, now)
        if target == record.status:
            return False
        previous = record.status
        record.status = target
        try:
            await db.commit()
        except StaleDataError:
            # Someone else (usually the other path) got there first.
            await db.rollback()
            await db.refresh(record)
            return False
        await self.audit.record(
            AuditEventType.TRAINING_OVERDUE,
            actor=SYSTEM_ACTOR,
            subject=record_subject(record),
            metadata=OverdueMeta(due_date=record.due_date, detected_by=detected_by),
            previous_status=previous,
            new_status=target,
        )
        await self.notify(db, record, NotificationType.TRAINING_OVERDUE)
        return True

    async def refresh_status(self, db: AsyncSession, record: TrainingRecord) -> TrainingRecord:
        """Lazy read-path overdue check."""
        await self.mark_overdue(db, record, detected_by="READ")
        return record

    async def expire(
        self, db: AsyncSession, record: TrainingRecord, actor: Actor = SYSTEM_ACTOR
    ) -> bool:
        """COMPLETED -> EXPIRED. Only the scheduler may call this."""
        if not actor.is_system:
            await self.reject(
                db,
                actor,
                action="EXPIRE_TRAINING",
                reason_code="MANUAL_EXPIRED_ASSIGNMENT",
                message="Only the system can expire a training record",
                subject=record_subject(record),
                status=record.status,
            )
        if not is_expired(record.status, record.expiry_date, self.clock()):
            return False
        previous = record.status
        record.status = RecordStatus.EXPIRED.value
        try:
            await db.commit()
        except StaleDataError:
            await db.rollback()
            await db.refresh(record)
            return False
        await self.audit.record(
            AuditEventType.TRAINING_EXPIRED,
            actor=SYSTEM_ACTOR,
            subject=record_subject(record),
            metadata=ExpiryMeta(expiry_date=record.expiry_date, certificate_id=record.certificate_id),
            previous_status=previous,
            new_status=record.status,
        )
        await self.notify(
            db,
            record,
            NotificationType.TRAINING_EXPIRED,
            expiry_date=as_utc(record.expiry_date).date().isoformat(),
        )
        return True

    # --- reads ---------------------------------------------------------------

    async def get(self, db: AsyncSession, actor: Actor, record_id: str) -> TrainingRecord:
        record = await repo.get_record(db, record_id)
        if not record or (not actor.is_privileged and record.user_id != actor.user_id):
            raise NotFoundError("Training record not found")
        return await self.refresh_status(db, record)

    async def list_records(
        self,
        db: AsyncSession,
        actor: Actor,
        user_id: str | None = None,
        training_id: str | None = None,
    ) -> list[TrainingRecord]:
        if not actor.is_privileged:
            user_id = actor.user_id
        records = list(await repo.list_records(db, user_id=user_id, training_id=training_id))
        for record in records:
            await self.refresh_status(db, record)
        return records

    async def record_for(
        self, db: AsyncSession, actor: Actor, training_id: str, action: str
    ) -> TrainingRecord:
        """The actor's own record for a training, refreshed; rejected if not assigned."""
        record = await repo.get_record_for(db, actor.user_id, training_id)
        if not record:
            await self.reject(
                db,
                actor,
                action=action,
                reason_code="NOT_ASSIGNED",
                message="You are not assigned to this training",
                subject=AuditSubject(user_id=actor.user_id, training_id=training_id),
            )
        return await self.refresh_status(db, record)

    # --- assignment ----------------------------------------------------------

    async def assign(
        self, db: AsyncSession, actor: Actor, body: AssignTrainingRequest
    ) -> AssignTrainingResponse:
        if not actor.is_privileged:
            await self.reject(
                db,
                actor,
                action="ASSIGN_TRAINING",
                reason_code="ROLE_NOT_PERMITTED",
                message="Only Administrator or QA can assign trainings",
                subject=AuditSubject(training_id=body.training_id),
            )
        training = await repo.get_training(db, body.training_id)
        if not training:
            raise NotFoundError("Training not found")
        if not training.active:
            raise ValidationError("Training is not active")

        now = self.clock()
        due_date = as_utc(body.due_date)
        if due_date <= now:
            raise ValidationError("Due date must be in the future")

        if body.target_audience == "ALL":
            users = await repo.list_users(db)
        elif body.user_ids or body.departments:
            users = []
            if body.user_ids:
                users += await repo.list_users(db, user_ids=body.user_ids)
                missing = set(body.user_ids) - {u.id for u in users}
                if missing:
                    raise NotFoundError(f"Unknown user ids: {', '.join(sorted(missing))}")
            if body.departments:
                users += await repo.list_users(db, departments=body.departments)
        else:
            raise ValidationError("Select at least one user, department, or ALL")

        target_ids = sorted({u.id for u in users})
        existing = await repo.list_existing_assignee_ids(db, training.id, target_ids)
        records = [
            new_record(
                user_id=user_id,
                training=training,
                due_date=due_date,
                now=now,
                source=AssignmentSource.MANUAL,
                assigned_by=actor.user_id,
            )
            for user_id in target_ids
            if user_id not in existing
        ]
        db.add_all(records)
        await commit_or_conflict(db)

        for record in records:
            await self.audit.record(
                AuditEventType.ASSIGN_TRAINING,
                actor=actor,
                subject=record_subject(record),
                metadata=AssignmentMeta(
                    due_date=due_date, assigned_by=actor.user_id, source=AssignmentSource.MANUAL.value
                ),
                new_status=record.status,
            )
            await self.notify(db, record, NotificationType.TRAINING_ASSIGNED)

        logger.info("Assigned training %s to %d users", training.id, len(records))
        return AssignTrainingResponse(
            message=f"Training assigned to {len(records)} user(s)",
            created_count=len(records),
            skipped_user_ids=sorted(existing),
            record_ids=[r.id for r in records],
        )

    # --- document ------------------------------------------------------------

    async def view_document(self, db: AsyncSession, actor: Actor, training_id: str) -> TrainingRecord:
        record = await self.record_for(db, actor, training_id, "VIEW_DOCUMENT")
        training = await repo.get_training(db, training_id)
        if not record.document_viewed:
            record.document_viewed = True
            record.document_viewed_at = self.clock()
            await commit_or_conflict(db)
        await self.audit.record(
            AuditEventType.DOCUMENT_VIEWED,
            actor=actor,
            subject=record_subject(record),
            metadata=DocumentMeta(document_url=training.document_url if training else None),
        )
        return record

    async def acknowledge_document(
        self, db: AsyncSession, actor: Actor, training_id: str
    ) -> TrainingRecord:
        record = await self.record_for(db, actor, training_id, "ACKNOWLEDGE_DOCUMENT")
        if record.status in FINAL:
            await self.reject(
                db,
                actor,
                action="ACKNOWLEDGE_DOCUMENT",
                reason_code=f"STATUS_{record.status}",
                message=f"Training is {record.status.lower()}",
                subject=record_subject(record),
                status=record.status,
            )
        if record.document_acknowledged:
            raise ValidationError("Document already acknowledged")
        now = self.clock()
        record.document_viewed = True
        record.document_viewed_at = record.document_viewed_at or now
        record.document_acknowledged = True
        record.acknowledged_at = now
        await commit_or_conflict(db)
        training = await repo.get_training(db, training_id)
        await self.audit.record(
            AuditEventType.DOCUMENT_ACKNOWLEDGED,
            actor=actor,
            subject=record_subject(record),
            metadata=DocumentMeta(document_url=training.document_url if training else None),
        )
        return record

    # --- start / submit --------------------------------------------------------

    async def check_can_start(
        self, db: AsyncSession, actor: Actor, record: TrainingRecord, action: str
    ) -> None:
        if record.status in START_BLOCKED:
            await self.reject(
                db,
                actor,
                action=action,
                reason_code=START_BLOCKED[record.status],
                message=f"Training is {record.status.lower().replace('_', ' ')}",
                subject=record_subject(record),
                status=record.status,
            )
        if not record.document_acknowledged:
            await self.reject(
                db,
                actor,
                action=action,
                reason_code="DOC_NOT_ACKNOWLEDGED",
                message="Acknowledge the training document first",
                subject=record_subject(record),
                status=record.status,
            )

    async def start(self, db: AsyncSession, actor: Actor, training_id: str) -> TrainingRecord:
        """PENDING/FAILED -> IN_PROGRESS. Idempotent on IN_PROGRESS."""
        record = await self.record_for(db, actor, training_id, "START_TRAINING")
        await self.check_can_start(db, actor, record, "START_TRAINING")
        if record.status == RecordStatus.IN_PROGRESS:
            return record
        previous = record.status
        record.status = RecordStatus.IN_PROGRESS.value
        record.started_date = record.started_date or self.clock()
        await commit_or_conflict(db)
        await self._status_changed(actor, record, previous, "TRAINING_STARTED")
        return record

    async def apply_assessment_result(
        self,
        db: AsyncSession,
        record: TrainingRecord,
        *,
        attempt: AssessmentAttempt,
        result: ScoreResult,
        config: AssessmentConfig,
    ) -> CertificateIssue | None:
        """
        Stage the aggregate update for one scored attempt on the caller's
        session. The attempt row must already be flushed.
        """
        now = attempt.attempted_at
        record.assessment_attempts = attempt.attempt_number
        record.last_attempt_date = now
        record.score = result.score
        record.started_date = record.started_date or now

        if not result.passed:
            record.passed = False
            record.result_grade = None
            if record.assessment_attempts >= config.max_attempts:
                record.status = RecordStatus.LOCKED.value
            else:
                record.status = RecordStatus.FAILED.value
            return None

        record.status = RecordStatus.COMPLETED.value
        record.passed = True
        record.result_grade = result.grade.value if result.grade else None
        record.completed_date = now
        record.completed_late = as_utc(now) > as_utc(record.due_date)

        training = await repo.get_training(db, record.training_id)
        user = await repo.get_user(db, record.user_id)
        master = await repo.get_master(db, training.master_id) if training.master_id else None
        return await self.certificates.issue(
            db, record, user=user, training=training, master=master, issued_at=now
        )

    async def record_assessment_outcome(
        self,
        db: AsyncSession,
        actor: Actor,
        record: TrainingRecord,
        *,
        previous_status: str,
        issue: CertificateIssue | None,
        max_attempts: int,
    ) -> None:
        """Audit and notify after the submission committed."""
        if record.status == RecordStatus.COMPLETED:
            if record.completed_late:
                await self.audit.record(
                    AuditEventType.LATE_COMPLETION,
                    actor=actor,
                    subject=record_subject(record),
                    metadata=LateCompletionMeta(
                        due_date=record.due_date, completed_date=record.completed_date
                    ),
                )
            if issue is not None:
                await self.certificates.record_issued(actor, record, issue)
        if previous_status != record.status:
            await self._status_changed(actor, record, previous_status, "ASSESSMENT_SUBMITTED")

        if record.status == RecordStatus.COMPLETED:
            await self.notify(db, record, NotificationType.TRAINING_COMPLETED, score=record.score)
        elif record.status == RecordStatus.LOCKED:
            await self.notify(db, record, NotificationType.TRAINING_LOCKED, score=record.score)
        else:
            await self.notify(
                db,
                record,
                NotificationType.TRAINING_FAILED,
                score=record.score,
                attempts_remaining=max(max_attempts - record.assessment_attempts, 0),
            )

    # --- administration ------------------------------------------------------

    async def admin_update(
        self, db: AsyncSession, actor: Actor, record_id: str, body: RecordUpdateRequest
    ) -> TrainingRecord:
        """Guarded administrative edit: due date and permitted status moves."""
        record = await repo.get_record(db, record_id)
        if not record:
            raise NotFoundError("Training record not found")
        changes = body.model_dump(exclude_unset=True)
        if not actor.is_privileged:
            await self.reject(
                db,
                actor,
                action="UPDATE_RECORD",
                reason_code="ROLE_NOT_PERMITTED",
                message="Only Administrator or QA can edit training records",
                subject=record_subject(record),
                status=record.status,
            )
        violations = check_record_update(record, changes)
        if violations:
            first = violations[0]
            await self.reject(
                db,
                actor,
                action="UPDATE_RECORD",
                reason_code=first["reason_code"],
                message=first["reason"],
                subject=record_subject(record),
                status=record.status,
                detail={"fields": sorted(changes), "violations": violations},
            )

        previous = record.status
        now = self.clock()
        if changes.get("due_date") is not None:
            record.due_date = as_utc(changes["due_date"])
            if record.status == RecordStatus.OVERDUE and record.due_date > now:
                record.status = (
                    RecordStatus.IN_PROGRESS.value if record.started_date else RecordStatus.PENDING.value
                )
        if changes.get("status") and changes["status"] != record.status:
            record.status = changes["status"]
            if record.status == RecordStatus.IN_PROGRESS:
                record.started_date = record.started_date or now
        await commit_or_conflict(db)

        if previous != record.status:
            await self._status_changed(actor, record, previous, "ADMIN_UPDATE")
        # The edit may have produced a record that is already past due again.
        return await self.refresh_status(db, record)

    async def delete(self, db: AsyncSession, actor: Actor, record_id: str) -> None:
        record = await repo.get_record(db, record_id)
        if not record:
            raise NotFoundError("Training record not found")
        if not actor.is_privileged:
            await self.reject(
                db,
                actor,
                action="DELETE_RECORD",
                reason_code="ROLE_NOT_PERMITTED",
                message="Only Administrator or QA can delete training records",
                subject=record_subject(record),
                status=record.status,
            )
        if record.status in TERMINAL:
            raise ImmutabilityViolation(
                "Training records with terminal status (COMPLETED, EXPIRED, LOCKED) cannot be deleted"
            )
        attempts = await repo.list_attempts_for_record(db, record.id)
        if attempts:
            raise ImmutabilityViolation("Training records with assessment attempts cannot be deleted")
        await db.execute(delete(ReminderMarker).where(ReminderMarker.record_id == record.id))
        await db.delete(record)
        await db.commit()
        logger.info("Deleted training record %s", record_id)
