"""Admin/operations schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class SweepResult(BaseModel):
    sweep: str
    processed: int = 0
    transitioned: list[str] = Field(default_factory=list)
    notified: int = 0


class MatrixCell(BaseModel):
    training_id: str
    status: str
    record_id: str | None = None
    due_date: str | None = None
    expiry_date: str | None = None


class MatrixRow(BaseModel):
    user_id: str
    name: str
    department: str | None
    cells: list[MatrixCell] = Field(default_factory=list)


class TrainingMatrix(BaseModel):
    trainings: list[dict] = Field(default_factory=list)
    rows: list[MatrixRow] = Field(default_factory=list)


class ComplianceMetrics(BaseModel):
    total_assigned: int = 0
    completed: int = 0
    overdue: int = 0
    expired: int = 0
    failed: int = 0
    compliance_percentage: float = 0.0
    overdue_percentage: float = 0.0
    expired_percentage: float = 0.0
    failure_rate: float = 0.0
    avg_attempts: float = 0.0
    risk_score: float = 0.0


class DepartmentCompliance(BaseModel):
    department: str
    total_assigned: int
    compliance_percentage: float
    risk_score: float


class TrainingRisk(BaseModel):
    training_id: str
    title: str
    failure_rate: float
    risk_level: str


class AnalyticsDashboard(BaseModel):
    generated_at: datetime
    department: str | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    metrics: ComplianceMetrics
    by_department: list[DepartmentCompliance] = Field(default_factory=list)
    risk_heatmap: list[TrainingRisk] = Field(default_factory=list)
