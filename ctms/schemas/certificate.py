"""Certificate schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class CertificateIssue(BaseModel):
    """What the lifecycle manager hands back to the state machine."""

    certificate_id: str | None = None
    certificate_url: str | None = None
    expiry_date: datetime | None = None
    issued: bool = False
    render_failed: bool = False


class TrainingCertificateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    certificate_id: str
    user_id: str
    training_id: str
    record_id: str
    issue_date: datetime
    expiry_date: datetime | None
    score: int
    result_grade: str
    certificate_url: str
