"""Automatic re-assignment when a new revision is published."""

from datetime import timedelta

from ctms.storage import repositories as repo


async def _complete(workflow, actor, training):
    await workflow.assessment(training)
    await workflow.assign(training, actor)
    await workflow.prepare(actor, training)
    await workflow.submit(actor, training, correct=4)


async def test_new_revision_reassigns_qualified_users(workflow, db, employee, other, clock, notifier):
    """Users qualified on an earlier revision are assigned the new one."""
    v1 = await workflow.training(revision="1.0")
    await _complete(workflow, employee, v1)
    await workflow.assign(v1, other)  # still PENDING, not qualified

    clock.advance(days=3)
    v2 = await workflow.training(revision="2.0")

    assert v2.master_id == v1.master_id
    assert v2.retraining.assigned_user_ids == [employee.user_id]
    assert v2.retraining.previous_training_ids == [v1.id]

    record = await repo.get_record_for(db, employee.user_id, v2.id)
    assert record.status == "PENDING"
    assert record.assignment_source == "SYSTEM"
    assert record.assigned_by is None
    assert record.due_date == clock() + timedelta(days=14)
    assert await repo.get_record_for(db, other.user_id, v2.id) is None

    assigned = await workflow.audit("ASSIGN_TRAINING", training_id=v2.id)
    assert len(assigned) == 1
    assert assigned[0].source == "SYSTEM"
    assert assigned[0].actor_id is None
    assert assigned[0].metadata_json["source"] == "RETRAINING_TRIGGER"
    assert len(notifier.of_type("RETRAINING_REQUIRED")) == 1


async def test_retraining_is_idempotent(services, workflow, db, employee):
    """Running the trigger twice creates no duplicate records."""
    v1 = await workflow.training(revision="1.0")
    await _complete(workflow, employee, v1)
    v2 = await workflow.training(revision="2.0")

    summary = await services.retraining.on_revision_created(db, v2)

    assert summary.assigned_user_ids == []
    assert len(await repo.list_records(db, training_id=v2.id)) == 1


async def test_locked_users_are_reassigned(workflow, employee):
    """Users locked out of an earlier revision get another chance."""
    v1 = await workflow.training(revision="1.0")
    await workflow.assessment(v1, max_attempts=1)
    await workflow.assign(v1, employee)
    await workflow.prepare(employee, v1)
    await workflow.submit(employee, v1, correct=0)

    v2 = await workflow.training(revision="2.0")
    assert v2.retraining.assigned_user_ids == [employee.user_id]


async def test_first_revision_assigns_nobody(workflow):
    """The first revision has nothing to retrain."""
    v1 = await workflow.training(revision="1.0")
    assert v1.retraining.assigned_user_ids == []
    assert v1.retraining.previous_training_ids == []


async def test_masterless_revision_matches_on_code(workflow, employee):
    """A revision published without a master still finds earlier revisions by code."""
    v1 = await workflow.training(revision="1.0")
    await _complete(workflow, employee, v1)

    v2 = await workflow.training(revision="2.0", with_master=False)

    assert v2.master_id is None
    assert v2.retraining.previous_training_ids == [v1.id]
    assert v2.retraining.assigned_user_ids == [employee.user_id]
