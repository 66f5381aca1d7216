"""Training master and revision models."""

from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ctms.database import Base, UTCDateTime
from ctms.models.ids import new_id


class TrainingMaster(Base):
    """Long-lived training definition; revisions hang off it."""

    __tablename__ = "training_masters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    training_code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    training_type: Mapped[str] = mapped_column(String(40), nullable=False)
    mandatory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    validity_period: Mapped[int | None] = mapped_column(Integer, nullable=True)
    validity_unit: Mapped[str] = mapped_column(String(10), nullable=False, default="days")
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="ACTIVE")  # ACTIVE|INACTIVE
    created_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class Training(Base):
    """One published revision of a training."""

    __tablename__ = "trainings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    master_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("training_masters.id"), nullable=True
    )
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    revision: Mapped[str] = mapped_column(String(20), nullable=False, default="1.0")
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    document_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (UniqueConstraint("code", "revision", name="uq_trainings_code_revision"),)
