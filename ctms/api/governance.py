"""Governance configuration endpoints (signature-gated writes)."""

from fastapi import APIRouter

from ctms.api.deps import DbDep, ServicesDep
from ctms.auth.middleware import ActorDep, PrivilegedActorDep
from ctms.schemas.governance import (
    GovernanceConfigOut,
    GovernanceRollbackRequest,
    GovernanceUpdateRequest,
)

router = APIRouter()


@router.get("/governance/current", response_model=GovernanceConfigOut)
async def get_current(actor: ActorDep, db: DbDep, services: ServicesDep):
    return await services.governance.current(db)


@router.get("/governance/history", response_model=list[GovernanceConfigOut])
async def get_history(actor: PrivilegedActorDep, db: DbDep, services: ServicesDep):
    return await services.governance.history(db)


@router.get("/governance/versions/{version}", response_model=GovernanceConfigOut)
async def get_version(version: int, actor: PrivilegedActorDep, db: DbDep, services: ServicesDep):
    return await services.governance.get_version(db, version)


@router.post("/governance", response_model=GovernanceConfigOut)
async def update_governance(
    body: GovernanceUpdateRequest, actor: ActorDep, db: DbDep, services: ServicesDep
):
    """
    Publish a new governance version. Requires the caller's password and a
    reason (electronic signature); creates version N+1.
    """
    return await services.governance.update(db, actor, body)


@router.post("/governance/versions/{version}/rollback", response_model=GovernanceConfigOut)
async def rollback_governance(
    version: int,
    body: GovernanceRollbackRequest,
    actor: ActorDep,
    db: DbDep,
    services: ServicesDep,
):
    """Re-publish an earlier version's configuration as version N+1."""
    return await services.governance.rollback(db, actor, version, body)
