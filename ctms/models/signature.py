"""Electronic signature model."""

from datetime import datetime

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ctms.database import Base, UTCDateTime
from ctms.models.ids import new_id


class ElectronicSignature(Base):
    """Proof of password re-verification plus justification - append-only."""

    __tablename__ = "electronic_signatures"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    signer_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    action_type: Mapped[str] = mapped_column(String(60), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    signed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
