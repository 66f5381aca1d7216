"""Audit log query (read-only; entries are never edited)."""

from datetime import datetime

from fastapi import APIRouter, Query

from ctms.api.deps import DbDep
from ctms.auth.middleware import PrivilegedActorDep
from ctms.models.enums import AuditEventType
from ctms.schemas.audit import AuditLogEntryOut
from ctms.storage.repositories import list_audit_entries

router = APIRouter()


@router.get("/audit-logs", response_model=list[AuditLogEntryOut], response_model_by_alias=True)
async def get_audit_logs(
    actor: PrivilegedActorDep,
    db: DbDep,
    user_id: str | None = None,
    training_id: str | None = None,
    training_record_id: str | None = None,
    event_type: AuditEventType | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = Query(default=200, ge=1, le=1000),
):
    """Filtered audit trail, newest first."""
    return await list_audit_entries(
        db,
        user_id=user_id,
        training_id=training_id,
        training_record_id=training_record_id,
        event_type=event_type.value if event_type else None,
        start=start,
        end=end,
        limit=limit,
    )
