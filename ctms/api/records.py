"""Training record endpoints: assignment, document, start, admin edits."""

from fastapi import APIRouter, status

from ctms.api.deps import DbDep, ServicesDep
from ctms.auth.middleware import ActorDep
from ctms.schemas.assessment import AttemptOut
from ctms.schemas.record import (
    AssignTrainingRequest,
    AssignTrainingResponse,
    RecordUpdateRequest,
    TrainingRecordOut,
)

router = APIRouter()


@router.post("/training-records/assign", response_model=AssignTrainingResponse)
async def assign_training(
    body: AssignTrainingRequest, actor: ActorDep, db: DbDep, services: ServicesDep
):
    """Assign a training to users, departments, or everyone."""
    return await services.records.assign(db, actor, body)


@router.get("/training-records", response_model=list[TrainingRecordOut])
async def list_training_records(
    actor: ActorDep,
    db: DbDep,
    services: ServicesDep,
    user_id: str | None = None,
    training_id: str | None = None,
):
    """Employees only ever see their own records."""
    return await services.records.list_records(db, actor, user_id=user_id, training_id=training_id)


@router.get("/training-records/{record_id}", response_model=TrainingRecordOut)
async def get_training_record(record_id: str, actor: ActorDep, db: DbDep, services: ServicesDep):
    return await services.records.get(db, actor, record_id)


@router.patch("/training-records/{record_id}", response_model=TrainingRecordOut)
async def update_training_record(
    record_id: str,
    body: RecordUpdateRequest,
    actor: ActorDep,
    db: DbDep,
    services: ServicesDep,
):
    """
    Administrative edit. Writes to system-derived fields, or to
    COMPLETED/EXPIRED status, are rejected and audited.
    """
    return await services.records.admin_update(db, actor, record_id, body)


@router.delete("/training-records/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_training_record(record_id: str, actor: ActorDep, db: DbDep, services: ServicesDep):
    await services.records.delete(db, actor, record_id)


@router.get("/training-records/{record_id}/attempts", response_model=list[AttemptOut])
async def list_attempts(record_id: str, actor: ActorDep, db: DbDep, services: ServicesDep):
    return await services.assessments.attempts_for(db, actor, record_id)


@router.post("/trainings/{training_id}/document/view", response_model=TrainingRecordOut)
async def view_document(training_id: str, actor: ActorDep, db: DbDep, services: ServicesDep):
    return await services.records.view_document(db, actor, training_id)


@router.post("/trainings/{training_id}/document/acknowledge", response_model=TrainingRecordOut)
async def acknowledge_document(training_id: str, actor: ActorDep, db: DbDep, services: ServicesDep):
    return await services.records.acknowledge_document(db, actor, training_id)


@router.post("/trainings/{training_id}/start", response_model=TrainingRecordOut)
async def start_training(training_id: str, actor: ActorDep, db: DbDep, services: ServicesDep):
    return await services.records.start(db, actor, training_id)
