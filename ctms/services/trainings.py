"""Training catalogue: masters and published revisions."""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ctms.auth.identity import Actor
from ctms.clock import Clock, utcnow
from ctms.errors import NotFoundError, ValidationError
from ctms.models import Training, TrainingMaster
from ctms.schemas.audit import AuditSubject
from ctms.schemas.training import (
    CreateTrainingMasterRequest,
    CreateTrainingRequest,
    CreateTrainingResponse,
    TrainingOut,
)
from ctms.services.records import TrainingRecordStateMachine
from ctms.services.retraining import RetrainingTrigger
from ctms.storage import repositories as repo

logger = logging.getLogger(__name__)


class TrainingCatalogue:
    def __init__(
        self,
        records: TrainingRecordStateMachine,
        retraining: RetrainingTrigger,
        clock: Clock = utcnow,
    ):
        self.records = records
        self.retraining = retraining
        self.clock = clock

    async def _require_privileged(self, db: AsyncSession, actor: Actor, action: str) -> None:
        if not actor.is_privileged:
            await self.records.reject(
                db,
                actor,
                action=action,
                reason_code="ROLE_NOT_PERMITTED",
                message="Only Administrator or QA can manage the training catalogue",
                subject=AuditSubject(),
            )

    async def create_master(
        self, db: AsyncSession, actor: Actor, body: CreateTrainingMasterRequest
    ) -> TrainingMaster:
        await self._require_privileged(db, actor, "CREATE_TRAINING_MASTER")
        code = body.training_code.strip().upper()
        if not code:
            raise ValidationError("Training code is required")
        if await repo.get_master_by_code(db, code):
            raise ValidationError(f"Training code {code} already exists")
        master = TrainingMaster(
            training_code=code,
            title=body.title,
            description=body.description,
            training_type=body.training_type,
            mandatory=body.mandatory,
            validity_period=body.validity_period,
            validity_unit=body.validity_unit,
            status="ACTIVE",
            created_by=actor.user_id,
            created_at=self.clock(),
        )
        db.add(master)
        try:
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            raise ValidationError(f"Training code {code} already exists") from exc
        return master

    async def get_master(self, db: AsyncSession, master_id: str) -> TrainingMaster:
        master = await repo.get_master(db, master_id)
        if not master:
            raise NotFoundError("Training master not found")
        return master

    async def create_training(
        self, db: AsyncSession, actor: Actor, body: CreateTrainingRequest
    ) -> CreateTrainingResponse:
        """Publish a revision, then re-assign users qualified on earlier ones."""
        await self._require_privileged(db, actor, "CREATE_TRAINING")
        code = body.code.strip().upper()
        if body.master_id:
            master = await self.get_master(db, body.master_id)
            if master.training_code != code:
                raise ValidationError(
                    f"Revision code {code} does not match master code {master.training_code}"
                )
        if await repo.get_training_by_code_revision(db, code, body.revision):
            raise ValidationError(f"{code} revision {body.revision} already exists")

        training = Training(
            master_id=body.master_id,
            code=code,
            revision=body.revision,
            title=body.title,
            description=body.description,
            document_url=body.document_url,
            active=True,
            created_by=actor.user_id,
            created_at=self.clock(),
        )
        db.add(training)
        try:
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            raise ValidationError(f"{code} revision {body.revision} already exists") from exc

        summary = await self.retraining.on_revision_created(db, training)
        return CreateTrainingResponse(
            training=TrainingOut.model_validate(training), retraining=summary
        )

    async def get_training(self, db: AsyncSession, training_id: str) -> Training:
        training = await repo.get_training(db, training_id)
        if not training:
            raise NotFoundError("Training not found")
        return training

    async def list_trainings(self, db: AsyncSession, active_only: bool = False) -> list[Training]:
        return list(await repo.list_trainings(db, active_only=active_only))
