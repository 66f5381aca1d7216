"""Assessment endpoints."""

from fastapi import APIRouter

from ctms.api.deps import DbDep, ServicesDep
from ctms.auth.middleware import ActorDep
from ctms.schemas.assessment import (
    AssessmentView,
    CreateAssessmentRequest,
    SubmissionResult,
    SubmitAssessmentRequest,
    UpdateAssessmentRequest,
)

router = APIRouter()


@router.post("/assessments", response_model=AssessmentView)
async def create_assessment(
    body: CreateAssessmentRequest, actor: ActorDep, db: DbDep, services: ServicesDep
):
    """Create a training's assessment. Every question needs four options."""
    return await services.assessments.create_config(db, actor, body)


@router.patch("/assessments/{assessment_id}", response_model=AssessmentView)
async def update_assessment(
    assessment_id: str,
    body: UpdateAssessmentRequest,
    actor: ActorDep,
    db: DbDep,
    services: ServicesDep,
):
    """Locked (409) once any attempt exists."""
    return await services.assessments.update_config(db, actor, assessment_id, body)


@router.get("/trainings/{training_id}/assessment", response_model=AssessmentView)
async def get_assessment(training_id: str, actor: ActorDep, db: DbDep, services: ServicesDep):
    return await services.assessments.get_for_training(db, actor, training_id)


@router.post("/assessments/submit", response_model=SubmissionResult)
async def submit_assessment(
    body: SubmitAssessmentRequest, actor: ActorDep, db: DbDep, services: ServicesDep
):
    """Score a submission and advance the training record."""
    return await services.assessments.submit(db, actor, body)
