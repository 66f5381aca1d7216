"""Assessment request/response schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ctms.models.enums import ResultGrade


class QuestionIn(BaseModel):
    """Question as authored. Shape rules are enforced by the scoring engine."""

    question_text: str
    options: list[str] = Field(default_factory=list)
    correct_answer: str


class CreateAssessmentRequest(BaseModel):
    training_id: str
    pass_percentage: int = Field(ge=0, le=100)
    max_attempts: int = Field(ge=1)
    questions: list[QuestionIn] = Field(default_factory=list)


class UpdateAssessmentRequest(BaseModel):
    """Partial update; ``questions`` replaces the whole set."""

    pass_percentage: int | None = Field(default=None, ge=0, le=100)
    max_attempts: int | None = Field(default=None, ge=1)
    questions: list[QuestionIn] | None = None


class QuestionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    position: int
    question_text: str
    options: list[str]
    correct_answer: str | None = None


class AssessmentView(BaseModel):
    id: str
    training_id: str
    pass_percentage: int
    max_attempts: int
    is_locked: bool
    questions: list[QuestionOut]


class SubmitAssessmentRequest(BaseModel):
    """POST /v1/assessments/submit - answers keyed by question id."""

    training_id: str
    answers: dict[str, str] = Field(default_factory=dict)


class ScoreResult(BaseModel):
    """Outcome of scoring one submission."""

    correct_count: int
    total_questions: int
    score: int
    passed: bool
    grade: ResultGrade | None = None
    answers: dict[str, str] = Field(default_factory=dict)


class SubmissionResult(BaseModel):
    message: str
    record_id: str
    attempt_id: str
    score: int
    passed: bool
    grade: ResultGrade | None = None
    status: str
    attempt_number: int
    max_attempts: int
    completed_late: bool = False
    certificate_id: str | None = None
    certificate_url: str | None = None
    expiry_date: datetime | None = None


class AttemptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    record_id: str
    attempt_number: int
    score: int
    result: str
    grade: str | None
    correct_count: int
    total_questions: int
    attempted_at: datetime
