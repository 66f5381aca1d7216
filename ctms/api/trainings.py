"""Training catalogue endpoints."""

from fastapi import APIRouter

from ctms.api.deps import DbDep, ServicesDep
from ctms.auth.middleware import ActorDep
from ctms.schemas.training import (
    CreateTrainingMasterRequest,
    CreateTrainingRequest,
    CreateTrainingResponse,
    TrainingMasterOut,
    TrainingOut,
)
from ctms.storage.repositories import list_masters

router = APIRouter()


@router.post("/training-masters", response_model=TrainingMasterOut)
async def create_training_master(
    body: CreateTrainingMasterRequest, actor: ActorDep, db: DbDep, services: ServicesDep
):
    """Create a training master (long-lived training definition)."""
    return await services.catalogue.create_master(db, actor, body)


@router.get("/training-masters", response_model=list[TrainingMasterOut])
async def get_training_masters(actor: ActorDep, db: DbDep):
    return await list_masters(db)


@router.get("/training-masters/{master_id}", response_model=TrainingMasterOut)
async def get_training_master(master_id: str, actor: ActorDep, db: DbDep, services: ServicesDep):
    return await services.catalogue.get_master(db, master_id)


@router.post("/trainings", response_model=CreateTrainingResponse)
async def create_training(
    body: CreateTrainingRequest, actor: ActorDep, db: DbDep, services: ServicesDep
):
    """
    Publish a training revision. Users who completed, expired or were
    locked on an earlier revision are re-assigned automatically.
    """
    return await services.catalogue.create_training(db, actor, body)


@router.get("/trainings", response_model=list[TrainingOut])
async def list_trainings(
    actor: ActorDep, db: DbDep, services: ServicesDep, active_only: bool = False
):
    return await services.catalogue.list_trainings(db, active_only=active_only)


@router.get("/trainings/{training_id}", response_model=TrainingOut)
async def get_training(training_id: str, actor: ActorDep, db: DbDep, services: ServicesDep):
    return await services.catalogue.get_training(db, training_id)
