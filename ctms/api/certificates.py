"""Certificate lookup."""

from fastapi import APIRouter

from ctms.api.deps import DbDep
from ctms.auth.middleware import ActorDep
from ctms.schemas.certificate import TrainingCertificateOut
from ctms.services.certificates import get_certificate

router = APIRouter()


@router.get("/certificates/{certificate_id}", response_model=TrainingCertificateOut)
async def read_certificate(certificate_id: str, actor: ActorDep, db: DbDep):
    return await get_certificate(db, actor, certificate_id)
