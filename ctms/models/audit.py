"""Audit trail model."""

from datetime import datetime

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ctms.database import Base, JSONType, UTCDateTime
from ctms.models.ids import new_id


class AuditLogEntry(Base):
    """Typed audit event - append-only, rejected on update/delete by the session guard."""

    __tablename__ = "audit_log_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    training_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    training_record_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    assessment_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    previous_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    source: Mapped[str] = mapped_column(String(10), nullable=False)  # USER|ADMIN|SYSTEM
    metadata_json: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("ix_audit_timestamp", "timestamp"),
        Index("ix_audit_user_timestamp", "user_id", "timestamp"),
        Index("ix_audit_training_timestamp", "training_id", "timestamp"),
        Index("ix_audit_event_timestamp", "event_type", "timestamp"),
    )
