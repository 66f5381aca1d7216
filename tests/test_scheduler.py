"""Overdue, expiry and reminder sweeps driven with a frozen clock."""

from datetime import datetime, timedelta, timezone

import pytest

from ctms.errors import ValidationError
from ctms.services.scheduler import day_window
from ctms.storage import repositories as repo


async def _completed(workflow, employee):
    training = await workflow.training()
    await workflow.assessment(training)
    await workflow.assign(training, employee)
    await workflow.prepare(employee, training)
    return await workflow.submit(employee, training, correct=4)


def test_day_window_is_utc_calendar_day():
    """Reminder windows span one UTC calendar day."""
    now = datetime(2026, 3, 2, 23, 30, tzinfo=timezone.utc)
    start, end = day_window(now, 7)
    assert start == datetime(2026, 3, 9, tzinfo=timezone.utc)
    assert end.date() == start.date()
    assert end > start + timedelta(hours=23, minutes=59)


async def test_overdue_sweep(services, workflow, db, employee, other, clock, notifier):
    """The sweep moves past-due records to OVERDUE."""
    training = await workflow.training()
    await workflow.assign(training, employee, due_in_days=1)
    await workflow.assign(training, other, due_in_days=5)

    clock.advance(days=2)
    result = await services.scheduler.run_overdue_sweep()

    assert result.processed == 1
    record = await repo.get_record_for(db, employee.user_id, training.id)
    await db.refresh(record)
    assert record.status == "OVERDUE"
    assert result.transitioned == [record.id]
    overdue = await workflow.audit("TRAINING_OVERDUE")
    assert overdue[0].metadata_json["detected_by"] == "SWEEP"
    assert len(notifier.of_type("TRAINING_OVERDUE")) == 1

    again = await services.scheduler.run_overdue_sweep()
    assert again.processed == 0


async def test_expiry_is_strictly_after_expiry_date(services, workflow, db, employee, clock, notifier):
    """Records expire only after their expiry date has passed."""
    result = await _completed(workflow, employee)

    clock.advance(days=30)
    sweep = await services.scheduler.run_expiry_sweep()
    assert sweep.transitioned == []

    clock.advance(seconds=1)
    sweep = await services.scheduler.run_expiry_sweep()
    assert sweep.transitioned == [result.record_id]

    record = await repo.get_record(db, result.record_id)
    await db.refresh(record)
    assert record.status == "EXPIRED"
    expired = await workflow.audit("TRAINING_EXPIRED")
    assert len(expired) == 1
    assert expired[0].metadata_json["certificate_id"] == result.certificate_id
    assert expired[0].previous_status == "COMPLETED"
    assert len(notifier.of_type("TRAINING_EXPIRED")) == 1


async def test_reminders_sent_once(services, workflow, employee, other, notifier):
    """Only records due in the reminder window are notified, and only once."""
    training = await workflow.training()
    await workflow.assign(training, employee, due_in_days=7)
    await workflow.assign(training, other, due_in_days=8)

    first = await services.scheduler.run_reminder_sweep()
    second = await services.scheduler.run_reminder_sweep()

    assert first.notified == 1
    assert second.notified == 0
    due_soon = notifier.of_type("TRAINING_DUE_SOON")
    assert [n[0] for n in due_soon] == [employee.user_id]


async def test_expiring_soon_reminder(services, workflow, employee, clock, notifier):
    """Completed records near expiry get a heads-up."""
    result = await _completed(workflow, employee)
    # Expiry is 30 days after completion; the warning goes out 30 days ahead.
    await services.scheduler.run_reminder_sweep()

    expiring = notifier.of_type("CERTIFICATE_EXPIRING_SOON")
    assert len(expiring) == 1
    assert expiring[0][2]["expiry_date"] == result.expiry_date.date().isoformat()


async def test_notification_failure_does_not_block_sweep(services, workflow, db, employee, clock, notifier):
    """Notifier failures do not undo the transition."""
    training = await workflow.training()
    await workflow.assign(training, employee, due_in_days=1)
    notifier.fail = True

    clock.advance(days=2)
    result = await services.scheduler.run_overdue_sweep()

    assert len(result.transitioned) == 1
    assert len(await workflow.audit("TRAINING_OVERDUE")) == 1


async def test_run_by_name(services):
    """Sweeps run on demand by name, and unknown names are rejected."""
    result = await services.scheduler.run("overdue")
    assert result.sweep == "overdue"
    with pytest.raises(ValidationError):
        await services.scheduler.run("weekly")


async def test_start_and_stop(services):
    """The scheduler starts one loop per sweep and stops them all."""
    await services.scheduler.start()
    assert len(services.scheduler._tasks) == 3
    await services.scheduler.stop()
    assert services.scheduler._tasks == []
