"""Training catalogue schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class CreateTrainingMasterRequest(BaseModel):
    training_code: str
    title: str
    description: str = ""
    training_type: Literal[
        "Document-driven", "Role-based", "Instructor-led", "External / Certification"
    ]
    mandatory: bool = True
    validity_period: int | None = Field(default=None, ge=0)
    validity_unit: Literal["days", "months", "years"] = "days"


class TrainingMasterOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    training_code: str
    title: str
    description: str
    training_type: str
    mandatory: bool
    validity_period: int | None
    validity_unit: str
    status: str


class CreateTrainingRequest(BaseModel):
    """Publishing a revision re-assigns previously qualified users."""

    code: str
    revision: str = "1.0"
    title: str
    description: str = ""
    master_id: str | None = None
    document_url: str | None = None


class TrainingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    master_id: str | None
    code: str
    revision: str
    title: str
    description: str
    document_url: str | None
    active: bool
    created_at: datetime


class RetrainingSummary(BaseModel):
    training_id: str
    previous_training_ids: list[str] = Field(default_factory=list)
    assigned_user_ids: list[str] = Field(default_factory=list)


class CreateTrainingResponse(BaseModel):
    training: TrainingOut
    retraining: RetrainingSummary
