"""In-app notifications and reminder dedup markers."""

from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ctms.database import Base, JSONType, UTCDateTime
from ctms.models.ids import new_id


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    type: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    context: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class ReminderMarker(Base):
    """Written before a reminder goes out; its presence suppresses repeats."""

    __tablename__ = "reminder_markers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    record_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("training_records.id"), nullable=False
    )
    reminder_type: Mapped[str] = mapped_column(String(40), nullable=False)
    target_date: Mapped[str] = mapped_column(String(10), nullable=False)  # YYYY-MM-DD
    sent_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "record_id", "reminder_type", "target_date", name="uq_reminder_markers_once"
        ),
    )
