"""Compliance analytics dashboard."""

from datetime import timedelta

import pytest

from conftest import T0
from ctms.errors import AccessDeniedError
from ctms.storage import repositories as repo


async def _landscape(workflow, employee, other, clock):
    """One completed, one failed and one overdue record across two departments."""
    sop = await workflow.training(code="SOP-001")
    gmp = await workflow.training(code="GMP-002")
    await workflow.assessment(sop)
    await workflow.assign(sop, employee, other)
    await workflow.assign(gmp, employee, due_in_days=1)
    await workflow.prepare(employee, sop)
    await workflow.submit(employee, sop, correct=4)
    await workflow.prepare(other, sop)
    await workflow.submit(other, sop, correct=0)
    clock.advance(days=2)
    return sop, gmp


async def test_dashboard_metrics(services, workflow, db, admin, employee, other, clock):
    """Headline counts, percentages and the weighted risk score."""
    sop, gmp = await _landscape(workflow, employee, other, clock)

    dashboard = await services.analytics.dashboard(db, admin)

    metrics = dashboard.metrics
    assert (metrics.total_assigned, metrics.completed, metrics.overdue, metrics.failed) == (3, 1, 1, 1)
    assert metrics.expired == 0
    assert metrics.compliance_percentage == 33.33
    assert metrics.overdue_percentage == 33.33
    assert metrics.failure_rate == 50.0
    assert metrics.avg_attempts == 1.0
    assert metrics.risk_score == 28.33
    assert dashboard.generated_at == clock()


async def test_dashboard_breakdowns(services, workflow, db, admin, employee, other, clock):
    """Per-department compliance and per-training risk levels."""
    sop, gmp = await _landscape(workflow, employee, other, clock)

    dashboard = await services.analytics.dashboard(db, admin)

    departments = {d.department: d for d in dashboard.by_department}
    assert departments["Production"].compliance_percentage == 50.0
    assert departments["Production"].risk_score == 20.0
    assert departments["Warehouse"].compliance_percentage == 0.0
    assert departments["Warehouse"].risk_score == 30.0

    assert [(t.training_id, t.risk_level) for t in dashboard.risk_heatmap] == [
        (sop.id, "MEDIUM"),
        (gmp.id, "LOW"),
    ]


async def test_dashboard_is_read_only(services, workflow, db, admin, employee, other, clock):
    """The overdue status is derived for the counts but never written back."""
    sop, gmp = await _landscape(workflow, employee, other, clock)

    await services.analytics.dashboard(db, admin)

    record = await repo.get_record_for(db, employee.user_id, gmp.id)
    await db.refresh(record)
    assert record.status == "PENDING"
    assert await workflow.audit("TRAINING_OVERDUE") == []


@pytest.mark.parametrize(
    "department, total",
    [("Warehouse", 1), ("Production", 2), ("All Departments", 3), ("Finance", 0)],
)
async def test_dashboard_department_filter(
    services, workflow, db, admin, employee, other, clock, department, total
):
    """Department filter, including the all-departments value."""
    await _landscape(workflow, employee, other, clock)
    dashboard = await services.analytics.dashboard(db, admin, department=department)
    assert dashboard.metrics.total_assigned == total


async def test_dashboard_date_range(services, workflow, db, admin, employee, other, clock):
    """A record is in range when its assigned, due or completed date falls inside it."""
    sop, gmp = await _landscape(workflow, employee, other, clock)

    due_day = T0 + timedelta(days=1)
    dashboard = await services.analytics.dashboard(db, admin, from_date=due_day, to_date=due_day)
    assert dashboard.metrics.total_assigned == 1
    assert dashboard.metrics.overdue == 1

    later = await services.analytics.dashboard(
        db, admin, from_date=T0 + timedelta(days=20), to_date=T0 + timedelta(days=30)
    )
    assert later.metrics.total_assigned == 0
    assert later.metrics.compliance_percentage == 0.0
    assert later.risk_heatmap == []


async def test_dashboard_requires_privilege(services, workflow, db, employee):
    """Employees are denied and the denial is audited."""
    with pytest.raises(AccessDeniedError) as exc:
        await services.analytics.dashboard(db, employee)
    assert exc.value.reason_code == "ROLE_NOT_PERMITTED"
    rejected = await workflow.audit("REJECTED_TRANSITION")
    assert rejected[0].metadata_json["action"] == "VIEW_ANALYTICS"
