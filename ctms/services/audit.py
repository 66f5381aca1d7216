"""Append-only audit trail with a best-effort write contract."""

import logging
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ctms.auth.identity import Actor
from ctms.clock import Clock, utcnow
from ctms.models import AuditLogEntry
from ctms.models.enums import AuditEventType
from ctms.schemas.audit import EVENT_METADATA, AuditMetadata, AuditSubject

logger = logging.getLogger(__name__)
fallback_logger = logging.getLogger("ctms.audit.fallback")


class AuditSink(Protocol):
    async def record(
        self,
        event_type: AuditEventType,
        *,
        actor: Actor,
        subject: AuditSubject,
        metadata: AuditMetadata,
        previous_status: str | None = None,
        new_status: str | None = None,
        timestamp: datetime | None = None,
    ) -> str | None: ...


class AuditTrail:
    """
    Writes each entry in its own short session so a failing audit write can
    never roll back, or be rolled back by, the caller's transaction.

    Failures (storage down, mismatched metadata, anything else) are logged
    to ``ctms.audit.fallback`` with the full entry and swallowed.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    async def record(
        self,
        event_type: AuditEventType,
        *,
        actor: Actor,
        subject: AuditSubject,
        metadata: AuditMetadata,
        previous_status: str | None = None,
        new_status: str | None = None,
        timestamp: datetime | None = None,
    ) -> str | None:
        """Persist one entry and return its id, or None if it went to the fallback channel."""
        when = timestamp or self._clock()
        try:
            expected = EVENT_METADATA[AuditEventType(event_type)]
            if not isinstance(metadata, expected):
                raise TypeError(
                    f"{event_type} expects {expected.__name__}, got {type(metadata).__name__}"
                )
            entry = AuditLogEntry(
                event_type=str(event_type),
                actor_id=actor.user_id,
                user_id=subject.user_id,
                training_id=subject.training_id,
                training_record_id=subject.training_record_id,
                assessment_id=subject.assessment_id,
                previous_status=previous_status,
                new_status=new_status,
                source=str(actor.source),
                metadata_json=metadata.model_dump(mode="json"),
                ip_address=actor.ip_address,
                timestamp=when,
            )
            async with self._session_factory() as session:
                session.add(entry)
                await session.commit()
            return entry.id
        except Exception:
            fallback_logger.error(
                "Audit write failed: %s",
                event_type,
                extra={
                    "event_type": str(event_type),
                    "actor_id": actor.user_id,
                    "subject": subject.model_dump(),
                    "audit_metadata": _safe_dump(metadata),
                    "previous_status": previous_status,
                    "new_status": new_status,
                    "timestamp": when.isoformat(),
                },
                exc_info=True,
            )
            return None


def _safe_dump(metadata) -> dict | str:
    try:
        return metadata.model_dump(mode="json")
    except Exception:
        return repr(metadata)
