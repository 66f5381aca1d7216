"""Issued certificate model."""

from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ctms.database import Base, UTCDateTime
from ctms.models.ids import new_id


class TrainingCertificate(Base):
    """Denormalized issuance record, unique per (user, training)."""

    __tablename__ = "training_certificates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    certificate_id: Mapped[str] = mapped_column(String(80), unique=True, nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    training_id: Mapped[str] = mapped_column(String(36), ForeignKey("trainings.id"), nullable=False)
    record_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("training_records.id"), nullable=False
    )
    issue_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expiry_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    result_grade: Mapped[str] = mapped_column(String(10), nullable=False)
    certificate_url: Mapped[str] = mapped_column(String(500), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "training_id", name="uq_certificates_user_training"),
    )
