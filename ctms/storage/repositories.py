"""Repository functions for users, trainings, records, assessments, audit and governance."""

from collections.abc import Iterable, Sequence
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ctms.models import (
    AssessmentAttempt,
    AssessmentConfig,
    AssessmentQuestion,
    AuditLogEntry,
    ElectronicSignature,
    GovernanceConfig,
    Notification,
    ReminderMarker,
    Training,
    TrainingCertificate,
    TrainingMaster,
    TrainingRecord,
    User,
)


# --- users -----------------------------------------------------------------


async def get_user(db: AsyncSession, user_id: str) -> User | None:
    return await db.get(User, user_id)


async def list_users(
    db: AsyncSession,
    user_ids: Iterable[str] | None = None,
    departments: Iterable[str] | None = None,
) -> Sequence[User]:
    """All users, or those matching the given ids / departments."""
    query = select(User)
    if user_ids is not None:
        query = query.where(User.id.in_(list(user_ids)))
    if departments is not None:
        query = query.where(User.department.in_(list(departments)))
    result = await db.execute(query.order_by(User.name))
    return result.scalars().all()


# --- trainings ---------------------------------------------------------------


async def get_training(db: AsyncSession, training_id: str) -> Training | None:
    return await db.get(Training, training_id)


async def get_master(db: AsyncSession, master_id: str) -> TrainingMaster | None:
    return await db.get(TrainingMaster, master_id)


async def list_masters(db: AsyncSession) -> Sequence[TrainingMaster]:
    result = await db.execute(select(TrainingMaster).order_by(TrainingMaster.training_code))
    return result.scalars().all()


async def get_master_by_code(db: AsyncSession, training_code: str) -> TrainingMaster | None:
    result = await db.execute(
        select(TrainingMaster).where(TrainingMaster.training_code == training_code)
    )
    return result.scalar_one_or_none()


async def get_training_by_code_revision(
    db: AsyncSession, code: str, revision: str
) -> Training | None:
    result = await db.execute(
        select(Training).where(Training.code == code, Training.revision == revision)
    )
    return result.scalar_one_or_none()


async def list_trainings(db: AsyncSession, active_only: bool = False) -> Sequence[Training]:
    query = select(Training)
    if active_only:
        query = query.where(Training.active.is_(True))
    result = await db.execute(query.order_by(Training.code, Training.created_at))
    return result.scalars().all()


async def list_prior_revision_ids(db: AsyncSession, training: Training) -> list[str]:
    """
    Other revisions of the same training: siblings under the same master,
    or, for trainings without a master, every sibling sharing the code.
    """
    query = select(Training.id).where(Training.id != training.id)
    if training.master_id:
        query = query.where(Training.master_id == training.master_id)
    else:
        query = query.where(Training.code == training.code)
    result = await db.execute(query)
    return list(result.scalars().all())


# --- training records ----------------------------------------------------------


async def get_record(db: AsyncSession, record_id: str) -> TrainingRecord | None:
    return await db.get(TrainingRecord, record_id)


async def get_record_for(
    db: AsyncSession, user_id: str, training_id: str
) -> TrainingRecord | None:
    """The record for (user, training), if assigned."""
    result = await db.execute(
        select(TrainingRecord).where(
            TrainingRecord.user_id == user_id,
            TrainingRecord.training_id == training_id,
        )
    )
    return result.scalar_one_or_none()


async def list_records(
    db: AsyncSession,
    user_id: str | None = None,
    training_id: str | None = None,
    user_ids: Iterable[str] | None = None,
) -> Sequence[TrainingRecord]:
    query = select(TrainingRecord)
    if user_id is not None:
        query = query.where(TrainingRecord.user_id == user_id)
    if training_id is not None:
        query = query.where(TrainingRecord.training_id == training_id)
    if user_ids is not None:
        query = query.where(TrainingRecord.user_id.in_(list(user_ids)))
    result = await db.execute(query.order_by(TrainingRecord.due_date))
    return result.scalars().all()


async def list_existing_assignee_ids(
    db: AsyncSession, training_id: str, user_ids: Iterable[str]
) -> set[str]:
    result = await db.execute(
        select(TrainingRecord.user_id).where(
            TrainingRecord.training_id == training_id,
            TrainingRecord.user_id.in_(list(user_ids)),
        )
    )
    return set(result.scalars().all())


async def list_past_due(db: AsyncSession, now: datetime) -> Sequence[TrainingRecord]:
    """PENDING/IN_PROGRESS records whose due date has passed."""
    result = await db.execute(
        select(TrainingRecord).where(
            TrainingRecord.status.in_(["PENDING", "IN_PROGRESS"]),
            TrainingRecord.due_date < now,
        )
    )
    return result.scalars().all()


async def list_past_expiry(db: AsyncSession, now: datetime) -> Sequence[TrainingRecord]:
    """COMPLETED records strictly past their expiry date."""
    result = await db.execute(
        select(TrainingRecord).where(
            TrainingRecord.status == "COMPLETED",
            TrainingRecord.expiry_date.is_not(None),
            TrainingRecord.expiry_date < now,
        )
    )
    return result.scalars().all()


async def list_due_between(
    db: AsyncSession, start: datetime, end: datetime
) -> Sequence[TrainingRecord]:
    result = await db.execute(
        select(TrainingRecord).where(
            TrainingRecord.status.in_(["PENDING", "IN_PROGRESS"]),
            TrainingRecord.due_date >= start,
            TrainingRecord.due_date <= end,
        )
    )
    return result.scalars().all()


async def list_expiring_between(
    db: AsyncSession, start: datetime, end: datetime
) -> Sequence[TrainingRecord]:
    result = await db.execute(
        select(TrainingRecord).where(
            TrainingRecord.status == "COMPLETED",
            TrainingRecord.expiry_date >= start,
            TrainingRecord.expiry_date <= end,
        )
    )
    return result.scalars().all()


async def list_user_ids_with_status(
    db: AsyncSession, training_ids: Iterable[str], statuses: Iterable[str]
) -> list[str]:
    """Distinct users holding a record in one of ``statuses`` on any of ``training_ids``."""
    result = await db.execute(
        select(TrainingRecord.user_id)
        .where(
            TrainingRecord.training_id.in_(list(training_ids)),
            TrainingRecord.status.in_(list(statuses)),
        )
        .distinct()
    )
    return sorted(result.scalars().all())


async def list_completed_without_certificate(db: AsyncSession) -> Sequence[TrainingRecord]:
    result = await db.execute(
        select(TrainingRecord).where(
            TrainingRecord.status == "COMPLETED",
            TrainingRecord.certificate_id.is_(None),
        )
    )
    return result.scalars().all()


# --- assessments -------------------------------------------------------------


async def get_assessment(db: AsyncSession, assessment_id: str) -> AssessmentConfig | None:
    return await db.get(AssessmentConfig, assessment_id)


async def get_assessment_for_training(
    db: AsyncSession, training_id: str
) -> AssessmentConfig | None:
    result = await db.execute(
        select(AssessmentConfig).where(AssessmentConfig.training_id == training_id)
    )
    return result.scalar_one_or_none()


async def list_questions(db: AsyncSession, assessment_id: str) -> Sequence[AssessmentQuestion]:
    result = await db.execute(
        select(AssessmentQuestion)
        .where(AssessmentQuestion.assessment_id == assessment_id)
        .order_by(AssessmentQuestion.position)
    )
    return result.scalars().all()


async def count_attempts_for_training(db: AsyncSession, training_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(AssessmentAttempt)
        .where(AssessmentAttempt.training_id == training_id)
    )
    return int(result.scalar_one())


async def list_attempts_for_record(
    db: AsyncSession, record_id: str
) -> Sequence[AssessmentAttempt]:
    result = await db.execute(
        select(AssessmentAttempt)
        .where(AssessmentAttempt.record_id == record_id)
        .order_by(AssessmentAttempt.attempt_number)
    )
    return result.scalars().all()


# --- certificates ------------------------------------------------------------


async def get_certificate(db: AsyncSession, certificate_id: str) -> TrainingCertificate | None:
    result = await db.execute(
        select(TrainingCertificate).where(TrainingCertificate.certificate_id == certificate_id)
    )
    return result.scalar_one_or_none()


async def get_certificate_for(
    db: AsyncSession, user_id: str, training_id: str
) -> TrainingCertificate | None:
    result = await db.execute(
        select(TrainingCertificate).where(
            TrainingCertificate.user_id == user_id,
            TrainingCertificate.training_id == training_id,
        )
    )
    return result.scalar_one_or_none()


# --- audit -------------------------------------------------------------------


async def list_audit_entries(
    db: AsyncSession,
    user_id: str | None = None,
    training_id: str | None = None,
    training_record_id: str | None = None,
    event_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 200,
) -> Sequence[AuditLogEntry]:
    """Newest first."""
    query = select(AuditLogEntry)
    if user_id:
        query = query.where(AuditLogEntry.user_id == user_id)
    if training_id:
        query = query.where(AuditLogEntry.training_id == training_id)
    if training_record_id:
        query = query.where(AuditLogEntry.training_record_id == training_record_id)
    if event_type:
        query = query.where(AuditLogEntry.event_type == event_type)
    if start:
        query = query.where(AuditLogEntry.timestamp >= start)
    if end:
        query = query.where(AuditLogEntry.timestamp <= end)
    result = await db.execute(query.order_by(AuditLogEntry.timestamp.desc()).limit(limit))
    return result.scalars().all()


# --- signatures / governance -------------------------------------------------


async def get_signature(db: AsyncSession, signature_id: str) -> ElectronicSignature | None:
    return await db.get(ElectronicSignature, signature_id)


async def get_active_governance(db: AsyncSession) -> GovernanceConfig | None:
    result = await db.execute(
        select(GovernanceConfig)
        .where(GovernanceConfig.is_active.is_(True))
        .order_by(GovernanceConfig.version.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_active_governance(db: AsyncSession) -> Sequence[GovernanceConfig]:
    result = await db.execute(
        select(GovernanceConfig).where(GovernanceConfig.is_active.is_(True))
    )
    return result.scalars().all()


async def get_governance_version(db: AsyncSession, version: int) -> GovernanceConfig | None:
    result = await db.execute(select(GovernanceConfig).where(GovernanceConfig.version == version))
    return result.scalar_one_or_none()


async def latest_governance_version(db: AsyncSession) -> int:
    result = await db.execute(select(func.max(GovernanceConfig.version)))
    return int(result.scalar_one() or 0)


async def list_governance_history(db: AsyncSession) -> Sequence[GovernanceConfig]:
    result = await db.execute(select(GovernanceConfig).order_by(GovernanceConfig.version.desc()))
    return result.scalars().all()


# --- notifications -----------------------------------------------------------


async def list_notifications(
    db: AsyncSession, user_id: str, unread_only: bool = False
) -> Sequence[Notification]:
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    result = await db.execute(query.order_by(Notification.created_at.desc()))
    return result.scalars().all()


async def get_notification(db: AsyncSession, notification_id: str) -> Notification | None:
    return await db.get(Notification, notification_id)


async def reminder_marker_exists(
    db: AsyncSession, record_id: str, reminder_type: str, target_date: str
) -> bool:
    result = await db.execute(
        select(ReminderMarker.id).where(
            ReminderMarker.record_id == record_id,
            ReminderMarker.reminder_type == reminder_type,
            ReminderMarker.target_date == target_date,
        )
    )
    return result.first() is not None
