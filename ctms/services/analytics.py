"""Compliance analytics dashboard.

Strictly read-only: statuses are derived on the fly with the same overdue
rule the state machine uses, and nothing is written back.
"""

from collections import defaultdict
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from ctms.auth.identity import Actor
from ctms.clock import Clock, as_utc, utcnow
from ctms.engine.lifecycle import derive_status
from ctms.models import TrainingRecord
from ctms.models.enums import RecordStatus
from ctms.schemas.admin import (
    AnalyticsDashboard,
    ComplianceMetrics,
    DepartmentCompliance,
    TrainingRisk,
)
from ctms.schemas.audit import AuditSubject
from ctms.services.records import TrainingRecordStateMachine
from ctms.storage import repositories as repo

ALL_DEPARTMENTS = "All Departments"
UNASSIGNED = "Unassigned"

# Weights of the composite risk score.
FAILURE_WEIGHT = 0.3
OVERDUE_WEIGHT = 0.4
EXPIRED_WEIGHT = 0.3


def percentage(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def risk_score(failure_rate: float, overdue_pct: float, expired_pct: float) -> float:
    return round(
        failure_rate * FAILURE_WEIGHT + overdue_pct * OVERDUE_WEIGHT + expired_pct * EXPIRED_WEIGHT,
        2,
    )


def risk_level(failure_rate: float) -> str:
    if failure_rate > 50:
        return "HIGH"
    if failure_rate > 20:
        return "MEDIUM"
    return "LOW"


def in_range(record: TrainingRecord, start: datetime, end: datetime) -> bool:
    """Any of the assigned, due or completed dates falls inside [start, end]."""
    for value in (record.assigned_date, record.due_date, record.completed_date):
        value = as_utc(value)
        if value is not None and start <= value <= end:
            return True
    return False


def count_status(rows: list[tuple[TrainingRecord, str]], target: str) -> int:
    return sum(1 for _, status in rows if status == target)


def failure_rate(records: list[tuple[TrainingRecord, str]]) -> float:
    """Share of users who attempted and are currently FAILED."""
    attempted = {
        r.user_id
        for r, status in records
        if status in (RecordStatus.COMPLETED, RecordStatus.FAILED) or r.assessment_attempts > 0
    }
    failed = {r.user_id for r, status in records if status == RecordStatus.FAILED}
    return percentage(len(failed), len(attempted))


class ComplianceAnalyticsService:
    def __init__(self, records: TrainingRecordStateMachine, clock: Clock = utcnow):
        self.records = records
        self.clock = clock

    async def dashboard(
        self,
        db: AsyncSession,
        actor: Actor,
        department: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> AnalyticsDashboard:
        if not actor.is_privileged:
            await self.records.reject(
                db,
                actor,
                action="VIEW_ANALYTICS",
                reason_code="ROLE_NOT_PERMITTED",
                message="Only Administrator or QA can view compliance analytics",
                subject=AuditSubject(user_id=actor.user_id),
            )
        now = self.clock()
        departments = {u.id: u.department or UNASSIGNED for u in await repo.list_users(db)}
        rows = [(r, derive_status(r.status, r.due_date, now)) for r in await repo.list_records(db)]

        if department and department != ALL_DEPARTMENTS:
            rows = [(r, s) for r, s in rows if departments.get(r.user_id, UNASSIGNED) == department]
        # A range needs both ends.
        if from_date is not None and to_date is not None:
            start, end = as_utc(from_date), as_utc(to_date)
            rows = [(r, s) for r, s in rows if in_range(r, start, end)]

        return AnalyticsDashboard(
            generated_at=now,
            department=department,
            from_date=from_date,
            to_date=to_date,
            metrics=self._metrics(rows),
            by_department=self._by_department(rows, departments),
            risk_heatmap=await self._heatmap(db, rows),
        )

    def _metrics(self, rows: list[tuple[TrainingRecord, str]]) -> ComplianceMetrics:
        total = len(rows)
        completed = [r for r, s in rows if s == RecordStatus.COMPLETED]
        expired = [r for r, s in rows if s == RecordStatus.EXPIRED]
        overdue = count_status(rows, RecordStatus.OVERDUE)
        failed = count_status(rows, RecordStatus.FAILED)

        # An expiry is no longer outstanding once another revision of the
        # same master was completed after the expired record was assigned.
        outstanding = 0
        for record in expired:
            renewed = any(
                c.user_id == record.user_id
                and record.training_master_id is not None
                and c.training_master_id == record.training_master_id
                and as_utc(c.completed_date) > as_utc(record.assigned_date)
                for c in completed
            )
            if not renewed:
                outstanding += 1

        failures = failure_rate(rows)
        overdue_pct = percentage(overdue, total)
        expired_pct = percentage(outstanding, len(completed))
        attempts = sum(r.assessment_attempts or 1 for r in completed)
        return ComplianceMetrics(
            total_assigned=total,
            completed=len(completed),
            overdue=overdue,
            expired=len(expired),
            failed=failed,
            compliance_percentage=percentage(len(completed), total),
            overdue_percentage=overdue_pct,
            expired_percentage=expired_pct,
            failure_rate=failures,
            avg_attempts=round(attempts / len(completed), 2) if completed else 0.0,
            risk_score=risk_score(failures, overdue_pct, expired_pct),
        )

    def _by_department(
        self, rows: list[tuple[TrainingRecord, str]], departments: dict[str, str]
    ) -> list[DepartmentCompliance]:
        grouped = defaultdict(list)
        for record, status in rows:
            grouped[departments.get(record.user_id, UNASSIGNED)].append((record, status))
        breakdown = []
        for name in sorted(grouped):
            group = grouped[name]
            total = len(group)
            breakdown.append(
                DepartmentCompliance(
                    department=name,
                    total_assigned=total,
                    compliance_percentage=percentage(count_status(group, RecordStatus.COMPLETED), total),
                    risk_score=risk_score(
                        failure_rate(group),
                        percentage(count_status(group, RecordStatus.OVERDUE), total),
                        percentage(count_status(group, RecordStatus.EXPIRED), total),
                    ),
                )
            )
        return breakdown

    async def _heatmap(
        self, db: AsyncSession, rows: list[tuple[TrainingRecord, str]]
    ) -> list[TrainingRisk]:
        grouped = defaultdict(list)
        for record, status in rows:
            grouped[record.training_id].append((record, status))
        heatmap = []
        for training_id, group in grouped.items():
            training = await repo.get_training(db, training_id)
            rate = failure_rate(group)
            heatmap.append(
                TrainingRisk(
                    training_id=training_id,
                    title=training.title if training else "Unknown Training",
                    failure_rate=rate,
                    risk_level=risk_level(rate),
                )
            )
        return sorted(heatmap, key=lambda t: (-t.failure_rate, t.title))
