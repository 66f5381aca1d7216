"""Session-level write guards for append-only and system-owned data.

Listeners run inside ``Session.flush`` before any SQL is emitted and on
every ORM-enabled ``execute``, so a forbidden mutation fails without
touching storage regardless of which code path attempted it.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm import ORMExecuteState, Session

from ctms.errors import ImmutabilityViolation
from ctms.models.assessment import AssessmentAttempt
from ctms.models.audit import AuditLogEntry
from ctms.models.certificate import TrainingCertificate
from ctms.models.governance import GovernanceConfig
from ctms.models.record import TrainingRecord
from ctms.models.signature import ElectronicSignature

APPEND_ONLY = (AuditLogEntry, AssessmentAttempt, ElectronicSignature, TrainingCertificate)

TERMINAL_STATUSES = frozenset({"COMPLETED", "LOCKED", "EXPIRED"})

# Bulk statements bypass per-row checks, so they are refused outright.
NO_BULK_WRITES = (*APPEND_ONLY, GovernanceConfig, TrainingRecord)


def _changed_attributes(obj) -> list[str]:
    state = inspect(obj)
    return [attr.key for attr in state.attrs if attr.history.has_changes()]


def check_pending_writes(session: Session) -> None:
    """Raise ImmutabilityViolation if the session holds a forbidden change."""
    for obj in session.dirty:
        if isinstance(obj, APPEND_ONLY):
            if session.is_modified(obj):
                raise ImmutabilityViolation(
                    f"{type(obj).__name__} is append-only and cannot be updated"
                )
        elif isinstance(obj, GovernanceConfig):
            changed = _changed_attributes(obj)
            if any(key != "is_active" for key in changed):
                raise ImmutabilityViolation("Governance configuration versions are immutable")
            if "is_active" in changed and obj.is_active:
                raise ImmutabilityViolation(
                    "A previous governance version cannot be reactivated in place"
                )

    for obj in session.deleted:
        if isinstance(obj, APPEND_ONLY):
            raise ImmutabilityViolation(
                f"{type(obj).__name__} is append-only and cannot be deleted"
            )
        if isinstance(obj, GovernanceConfig):
            raise ImmutabilityViolation("Governance configuration versions cannot be deleted")
        if isinstance(obj, TrainingRecord) and obj.status in TERMINAL_STATUSES:
            raise ImmutabilityViolation(
                "Training records with terminal status (COMPLETED, EXPIRED, LOCKED) cannot be deleted"
            )


@event.listens_for(Session, "before_flush")
def _guard_flush(session, flush_context, instances):
    check_pending_writes(session)


@event.listens_for(Session, "do_orm_execute")
def _guard_bulk_statements(orm_execute_state: ORMExecuteState):
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    for mapper in orm_execute_state.all_mappers:
        if issubclass(mapper.class_, NO_BULK_WRITES):
            raise ImmutabilityViolation(
                f"Bulk UPDATE/DELETE against {mapper.class_.__name__} is not permitted"
            )
