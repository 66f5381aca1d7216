"""Admin endpoints - sweeps, training matrix, certificate backfill."""

from typing import Literal

from fastapi import APIRouter, Query
from fastapi.responses import Response

from ctms.api.deps import DbDep, ServicesDep
from ctms.auth.middleware import ActorDep, PrivilegedActorDep
from ctms.schemas.admin import SweepResult, TrainingMatrix

router = APIRouter()


@router.post("/sweeps/{name}", response_model=SweepResult)
async def run_sweep(
    name: Literal["overdue", "expiry", "reminders"],
    actor: PrivilegedActorDep,
    services: ServicesDep,
):
    """Run one sweep immediately instead of waiting for its timer."""
    return await services.scheduler.run(name)


@router.get("/matrix", response_model=TrainingMatrix)
async def get_matrix(
    actor: ActorDep,
    db: DbDep,
    services: ServicesDep,
    department: list[str] | None = Query(default=None),
    training_id: list[str] | None = Query(default=None),
):
    return await services.matrix.build(db, actor, departments=department, training_ids=training_id)


@router.get("/matrix/export")
async def export_matrix(
    actor: ActorDep,
    db: DbDep,
    services: ServicesDep,
    department: list[str] | None = Query(default=None),
    training_id: list[str] | None = Query(default=None),
):
    """CSV export of the training matrix."""
    body = await services.matrix.export_csv(
        db, actor, departments=department, training_ids=training_id
    )
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="training-matrix.csv"'},
    )


@router.post("/certificates/backfill")
async def backfill_certificates(actor: PrivilegedActorDep, db: DbDep, services: ServicesDep):
    """Issue certificates for completed records that lack one."""
    issued = await services.certificates.backfill_missing(db, actor)
    return {"issued": len(issued), "certificate_ids": [i.certificate_id for i in issued]}
