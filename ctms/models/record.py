"""Training record model."""

from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ctms.database import Base, UTCDateTime
from ctms.models.ids import new_id


class TrainingRecord(Base):
    """One user's assignment to one training revision.

    ``version_id`` is checked on every UPDATE so two concurrent submissions
    cannot both write ``assessment_attempts = N + 1``.
    """

    __tablename__ = "training_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    training_id: Mapped[str] = mapped_column(String(36), ForeignKey("trainings.id"), nullable=False)
    training_master_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("training_masters.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    assigned_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    due_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    started_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    document_viewed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    document_viewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    document_acknowledged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    acknowledged_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    assessment_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_attempt_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    result_grade: Mapped[str | None] = mapped_column(String(10), nullable=True)
    completed_late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # System-derived; rejected by the update guard when written from outside.
    expiry_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    certificate_id: Mapped[str | None] = mapped_column(String(80), unique=True, nullable=True)
    certificate_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    assignment_source: Mapped[str] = mapped_column(String(10), nullable=False, default="MANUAL")
    assigned_by: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        UniqueConstraint("user_id", "training_id", name="uq_training_records_user_training"),
        Index("ix_training_records_status_due", "status", "due_date"),
        Index("ix_training_records_status_expiry", "status", "expiry_date"),
    )
