"""Re-assignment of previously qualified users when a new revision is published."""

import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from ctms.auth.identity import SYSTEM_ACTOR
from ctms.clock import Clock, utcnow
from ctms.config import Settings, settings as default_settings
from ctms.models import Training
from ctms.models.enums import AssignmentSource, AuditEventType, NotificationType, RecordStatus
from ctms.schemas.audit import AssignmentMeta
from ctms.schemas.training import RetrainingSummary
from ctms.services.audit import AuditSink
from ctms.services.records import (
    TrainingRecordStateMachine,
    commit_or_conflict,
    new_record,
    record_subject,
)
from ctms.storage import repositories as repo

logger = logging.getLogger(__name__)

# Anyone who reached one of these on an earlier revision must retrain.
QUALIFYING_STATUSES = (
    RecordStatus.COMPLETED.value,
    RecordStatus.EXPIRED.value,
    RecordStatus.LOCKED.value,
)

RETRAINING_SOURCE = "RETRAINING_TRIGGER"


class RetrainingTrigger:
    def __init__(
        self,
        records: TrainingRecordStateMachine,
        audit: AuditSink,
        clock: Clock = utcnow,
        settings: Settings = default_settings,
    ):
        self.records = records
        self.audit = audit
        self.clock = clock
        self.settings = settings

    async def on_revision_created(self, db: AsyncSession, training: Training) -> RetrainingSummary:
        """
        Give every user who completed, expired or was locked out on a prior
        revision a PENDING record on ``training``. Users who already have a
        record on it are skipped, so running this twice assigns nobody twice.
        """
        prior_ids = await repo.list_prior_revision_ids(db, training)
        if not prior_ids:
            return RetrainingSummary(training_id=training.id)

        user_ids = await repo.list_user_ids_with_status(db, prior_ids, QUALIFYING_STATUSES)
        existing = await repo.list_existing_assignee_ids(db, training.id, user_ids)
        now = self.clock()
        due_date = now + timedelta(days=self.settings.retraining_due_days)
        records = [
            new_record(
                user_id=user_id,
                training=training,
                due_date=due_date,
                now=now,
                source=AssignmentSource.SYSTEM,
                assigned_by=None,
            )
            for user_id in user_ids
            if user_id not in existing
        ]
        if not records:
            return RetrainingSummary(training_id=training.id, previous_training_ids=prior_ids)

        db.add_all(records)
        await commit_or_conflict(db)

        for record in records:
            await self.audit.record(
                AuditEventType.ASSIGN_TRAINING,
                actor=SYSTEM_ACTOR,
                subject=record_subject(record),
                metadata=AssignmentMeta(
                    due_date=due_date,
                    source=RETRAINING_SOURCE,
                    previous_training_ids=prior_ids,
                ),
                new_status=record.status,
            )
            await self.records.notify(
                db, record, NotificationType.RETRAINING_REQUIRED, revision=training.revision
            )

        logger.info(
            "Retraining for %s %s: assigned %d users", training.code, training.revision, len(records)
        )
        return RetrainingSummary(
            training_id=training.id,
            previous_training_ids=prior_ids,
            assigned_user_ids=[r.user_id for r in records],
        )
