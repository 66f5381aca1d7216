"""Training record schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class AssignTrainingRequest(BaseModel):
    """Target users explicitly, by department, or everyone."""

    training_id: str
    due_date: datetime
    user_ids: list[str] = Field(default_factory=list)
    departments: list[str] = Field(default_factory=list)
    target_audience: Literal["ALL"] | None = None


class AssignTrainingResponse(BaseModel):
    message: str
    created_count: int
    skipped_user_ids: list[str] = Field(default_factory=list)
    record_ids: list[str] = Field(default_factory=list)


class RecordUpdateRequest(BaseModel):
    """
    Administrative edit. Extra fields are accepted on purpose so the
    update guard can see, reject and audit writes to system-owned fields.
    """

    model_config = {"extra": "allow"}

    due_date: datetime | None = None
    status: str | None = None


class TrainingRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    training_id: str
    training_master_id: str | None
    status: str
    assigned_date: datetime
    due_date: datetime
    started_date: datetime | None
    completed_date: datetime | None
    document_viewed: bool
    document_acknowledged: bool
    acknowledged_at: datetime | None
    assessment_attempts: int
    last_attempt_date: datetime | None
    score: int | None
    passed: bool
    result_grade: str | None
    completed_late: bool
    expiry_date: datetime | None
    certificate_id: str | None
    certificate_url: str | None
    assignment_source: str
