"""Training record state machine: assignment, document flow, overdue and admin edits."""

from datetime import timedelta

import pytest

from ctms.auth.identity import SYSTEM_ACTOR
from ctms.errors import AccessDeniedError, ImmutabilityViolation, NotFoundError, ValidationError
from ctms.schemas.record import AssignTrainingRequest, RecordUpdateRequest
from ctms.storage import repositories as repo


async def test_assign_creates_pending_records(workflow, db, employee, other, notifier, clock):
    """Assignment creates PENDING records, notifies and audits."""
    training = await workflow.training()
    response = await workflow.assign(training, employee, other, due_in_days=10)

    assert response.created_count == 2
    record = await repo.get_record_for(db, employee.user_id, training.id)
    assert record.status == "PENDING"
    assert record.due_date == clock() + timedelta(days=10)
    assert record.assignment_source == "MANUAL"
    assert record.training_master_id == training.master_id
    assert len(notifier.of_type("TRAINING_ASSIGNED")) == 2
    assigned = await workflow.audit("ASSIGN_TRAINING")
    assert {e.user_id for e in assigned} == {employee.user_id, other.user_id}
    assert assigned[0].new_status == "PENDING"


async def test_assign_skips_existing_assignees(workflow, employee, other):
    """Users already assigned are skipped."""
    training = await workflow.training()
    await workflow.assign(training, employee)
    response = await workflow.assign(training, employee, other)
    assert response.created_count == 1
    assert response.skipped_user_ids == [employee.user_id]


async def test_assign_by_department(services, workflow, db, admin, clock, other):
    """Assignment can target whole departments."""
    training = await workflow.training()
    response = await services.records.assign(
        db,
        admin,
        AssignTrainingRequest(
            training_id=training.id,
            due_date=clock() + timedelta(days=5),
            departments=["Warehouse"],
        ),
    )
    assert response.created_count == 1
    assert await repo.get_record_for(db, other.user_id, training.id) is not None


async def test_assign_validation(services, workflow, db, admin, employee, clock):
    """Past due dates and unknown trainings are refused."""
    training = await workflow.training()
    with pytest.raises(ValidationError):
        await services.records.assign(
            db,
            admin,
            AssignTrainingRequest(training_id=training.id, due_date=clock(), user_ids=[employee.user_id]),
        )
    with pytest.raises(NotFoundError):
        await services.records.assign(
            db,
            admin,
            AssignTrainingRequest(
                training_id=training.id, due_date=clock() + timedelta(days=1), user_ids=["nobody"]
            ),
        )
    with pytest.raises(ValidationError):
        await services.records.assign(
            db,
            admin,
            AssignTrainingRequest(training_id=training.id, due_date=clock() + timedelta(days=1)),
        )


async def test_employee_cannot_assign(services, workflow, db, employee, clock):
    """Only privileged users assign training."""
    training = await workflow.training()
    with pytest.raises(AccessDeniedError) as exc:
        await services.records.assign(
            db,
            employee,
            AssignTrainingRequest(
                training_id=training.id,
                due_date=clock() + timedelta(days=1),
                user_ids=[employee.user_id],
            ),
        )
    assert exc.value.reason_code == "ROLE_NOT_PERMITTED"
    rejected = await workflow.audit("REJECTED_TRANSITION")
    assert rejected[0].actor_id == employee.user_id


async def test_start_requires_acknowledgement(services, workflow, db, employee):
    """Start is refused until the document is acknowledged."""
    training = await workflow.training()
    await workflow.assign(training, employee)

    with pytest.raises(AccessDeniedError) as exc:
        await services.records.start(db, employee, training.id)
    assert exc.value.reason_code == "DOC_NOT_ACKNOWLEDGED"

    await services.records.view_document(db, employee, training.id)
    await services.records.view_document(db, employee, training.id)
    assert len(await workflow.audit("DOCUMENT_VIEWED")) == 2

    record = await workflow.prepare(employee, training)
    assert record.status == "IN_PROGRESS"
    assert record.document_acknowledged is True
    assert record.started_date is not None
    started = await workflow.audit("STATUS_CHANGED")
    assert started[0].metadata_json["reason"] == "TRAINING_STARTED"
    assert (started[0].previous_status, started[0].new_status) == ("PENDING", "IN_PROGRESS")


async def test_start_is_idempotent(services, workflow, db, employee):
    """A second start is a no-op and writes no extra status change."""
    training = await workflow.training()
    await workflow.assign(training, employee)
    await workflow.prepare(employee, training)
    await services.records.start(db, employee, training.id)
    assert len(await workflow.audit("STATUS_CHANGED")) == 1


async def test_second_acknowledgement_rejected(services, workflow, db, employee):
    """A document is acknowledged once."""
    training = await workflow.training()
    await workflow.assign(training, employee)
    await services.records.acknowledge_document(db, employee, training.id)
    with pytest.raises(ValidationError):
        await services.records.acknowledge_document(db, employee, training.id)


async def test_unassigned_user_is_rejected(services, workflow, db, other):
    """Users without a record cannot act on the training."""
    training = await workflow.training()
    with pytest.raises(AccessDeniedError) as exc:
        await services.records.view_document(db, other, training.id)
    assert exc.value.reason_code == "NOT_ASSIGNED"


async def test_read_marks_overdue(services, workflow, db, employee, clock, notifier):
    """The first read after the due date flips the record and audits it once."""
    training = await workflow.training()
    response = await workflow.assign(training, employee, due_in_days=1)
    record_id = response.record_ids[0]

    clock.advance(days=1)
    record = await services.records.get(db, employee, record_id)
    assert record.status == "PENDING"

    clock.advance(seconds=1)
    record = await services.records.get(db, employee, record_id)
    assert record.status == "OVERDUE"
    await services.records.list_records(db, employee)

    overdue = await workflow.audit("TRAINING_OVERDUE")
    assert len(overdue) == 1
    assert overdue[0].metadata_json["detected_by"] == "READ"
    assert overdue[0].source == "SYSTEM"
    assert len(notifier.of_type("TRAINING_OVERDUE")) == 1

    with pytest.raises(AccessDeniedError) as exc:
        await services.records.start(db, employee, training.id)
    assert exc.value.reason_code == "STATUS_OVERDUE"


async def test_employee_sees_only_own_records(services, workflow, db, employee, other):
    """Employees only list their own records."""
    training = await workflow.training()
    response = await workflow.assign(training, employee, other)

    mine = await services.records.list_records(db, employee)
    assert [r.user_id for r in mine] == [employee.user_id]
    theirs = await repo.get_record_for(db, other.user_id, training.id)
    assert theirs.id in response.record_ids
    with pytest.raises(NotFoundError):
        await services.records.get(db, employee, theirs.id)


async def test_due_date_extension_reopens_overdue(services, workflow, db, admin, employee, clock):
    """Extending the due date returns an overdue record to PENDING."""
    training = await workflow.training()
    response = await workflow.assign(training, employee, due_in_days=1)
    clock.advance(days=2)
    record = await services.records.get(db, admin, response.record_ids[0])
    assert record.status == "OVERDUE"

    record = await services.records.admin_update(
        db, admin, record.id, RecordUpdateRequest(due_date=clock() + timedelta(days=5))
    )
    assert record.status == "PENDING"
    changed = await workflow.audit("STATUS_CHANGED")
    assert changed[0].metadata_json["reason"] == "ADMIN_UPDATE"
    assert changed[0].source == "ADMIN"


@pytest.mark.parametrize(
    "changes, reason_code",
    [
        ({"status": "EXPIRED"}, "MANUAL_EXPIRED_ASSIGNMENT"),
        ({"status": "COMPLETED"}, "MANUAL_COMPLETED_ASSIGNMENT"),
        ({"expiry_date": "2030-01-01T00:00:00Z"}, "MANUAL_EDIT_EXPIRY_DATE"),
        ({"certificate_id": "CERT-FAKE"}, "MANUAL_EDIT_CERTIFICATE_ID"),
        ({"score": 100}, "MANUAL_EDIT_SCORE"),
        ({"title": "renamed"}, "FIELD_NOT_EDITABLE"),
        ({"status": "LOCKED"}, "MANUAL_LOCKED_ASSIGNMENT"),
        ({"status": "FAILED"}, "MANUAL_FAILED_ASSIGNMENT"),
        ({"status": "OVERDUE"}, "MANUAL_OVERDUE_ASSIGNMENT"),
        ({"status": "IN_PROGRESS"}, "DOC_NOT_ACKNOWLEDGED"),
    ],
)
async def test_admin_update_guards(services, workflow, db, admin, employee, changes, reason_code):
    """Each guarded write is refused, audited and leaves the record untouched."""
    training = await workflow.training()
    response = await workflow.assign(training, employee)
    record_id = response.record_ids[0]

    with pytest.raises(AccessDeniedError) as exc:
        await services.records.admin_update(db, admin, record_id, RecordUpdateRequest(**changes))
    assert exc.value.reason_code == reason_code

    record = await repo.get_record(db, record_id)
    assert record.status == "PENDING"
    assert record.certificate_id is None
    rejected = await workflow.audit("REJECTED_TRANSITION")
    assert rejected[0].metadata_json["reason_code"] == reason_code
    assert rejected[0].metadata_json["detail"]["fields"] == sorted(changes)


async def test_started_record_cannot_be_locked_by_hand(services, workflow, db, admin, employee):
    """LOCKED only follows the last failing submission."""
    training = await workflow.training()
    await workflow.assessment(training)
    await workflow.assign(training, employee)
    record = await workflow.prepare(employee, training)

    with pytest.raises(AccessDeniedError) as exc:
        await services.records.admin_update(db, admin, record.id, RecordUpdateRequest(status="LOCKED"))
    assert exc.value.reason_code == "MANUAL_LOCKED_ASSIGNMENT"

    record = await repo.get_record(db, record.id)
    assert record.status == "IN_PROGRESS"
    assert record.assessment_attempts == 0


async def test_admin_cannot_move_started_record_back(services, workflow, db, admin, employee):
    """IN_PROGRESS -> PENDING is not in the transition table."""
    training = await workflow.training()
    await workflow.assign(training, employee)
    record = await workflow.prepare(employee, training)

    with pytest.raises(AccessDeniedError) as exc:
        await services.records.admin_update(db, admin, record.id, RecordUpdateRequest(status="PENDING"))
    assert exc.value.reason_code == "INVALID_TRANSITION"


async def test_admin_start_after_acknowledgement(services, workflow, db, admin, employee):
    """An acknowledged PENDING record may be moved to IN_PROGRESS by an administrator."""
    training = await workflow.training()
    await workflow.assign(training, employee)
    await services.records.acknowledge_document(db, employee, training.id)
    record = await repo.get_record_for(db, employee.user_id, training.id)

    record = await services.records.admin_update(
        db, admin, record.id, RecordUpdateRequest(status="IN_PROGRESS")
    )
    assert record.status == "IN_PROGRESS"
    assert record.started_date is not None


async def test_terminal_record_cannot_be_edited(services, workflow, db, admin, employee):
    """Completed records are closed to edits."""
    training = await workflow.training()
    await workflow.assessment(training)
    await workflow.assign(training, employee)
    await workflow.prepare(employee, training)
    result = await workflow.submit(employee, training, correct=4)

    with pytest.raises(AccessDeniedError) as exc:
        await services.records.admin_update(
            db, admin, result.record_id, RecordUpdateRequest(status="IN_PROGRESS")
        )
    assert exc.value.reason_code == "STATUS_COMPLETED"


async def test_only_the_system_expires(services, workflow, db, admin, employee):
    """Only the system actor may expire a record."""
    training = await workflow.training()
    response = await workflow.assign(training, employee)
    record = await repo.get_record(db, response.record_ids[0])

    with pytest.raises(AccessDeniedError) as exc:
        await services.records.expire(db, record, admin)
    assert exc.value.reason_code == "MANUAL_EXPIRED_ASSIGNMENT"
    assert await services.records.expire(db, record, SYSTEM_ACTOR) is False


async def test_delete_rules(services, workflow, db, admin, employee, other):
    """Records with attempts are kept, untouched records may be deleted."""
    training = await workflow.training()
    await workflow.assessment(training)
    response = await workflow.assign(training, employee, other)
    mine = await repo.get_record_for(db, employee.user_id, training.id)
    theirs = await repo.get_record_for(db, other.user_id, training.id)

    await workflow.prepare(employee, training)
    await workflow.submit(employee, training, correct=0)
    with pytest.raises(ImmutabilityViolation):
        await services.records.delete(db, admin, mine.id)

    await services.records.delete(db, admin, theirs.id)
    assert await repo.get_record(db, theirs.id) is None
    assert len(response.record_ids) == 2


async def test_completed_record_cannot_be_deleted(services, workflow, db, admin, employee):
    """Terminal records are never deleted."""
    training = await workflow.training()
    await workflow.assessment(training)
    await workflow.assign(training, employee)
    await workflow.prepare(employee, training)
    result = await workflow.submit(employee, training, correct=4)

    with pytest.raises(ImmutabilityViolation):
        await services.records.delete(db, admin, result.record_id)


async def test_late_completion(workflow, db, employee, clock):
    """A FAILED record is not swept to OVERDUE, so it can still complete late."""
    training = await workflow.training()
    await workflow.assessment(training)
    await workflow.assign(training, employee, due_in_days=1)
    await workflow.prepare(employee, training)
    await workflow.submit(employee, training, correct=0)

    clock.advance(days=3)
    result = await workflow.submit(employee, training, correct=4)

    assert result.status == "COMPLETED"
    assert result.completed_late is True
    late = await workflow.audit("LATE_COMPLETION")
    assert len(late) == 1
    assert late[0].metadata_json["completed_date"].startswith(clock().date().isoformat())
