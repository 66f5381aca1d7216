"""Compliance analytics dashboard (read-only)."""

from datetime import datetime

from fastapi import APIRouter

from ctms.api.deps import DbDep, ServicesDep
from ctms.auth.middleware import ActorDep
from ctms.schemas.admin import AnalyticsDashboard

router = APIRouter()


@router.get("/analytics/dashboard", response_model=AnalyticsDashboard)
async def get_dashboard(
    actor: ActorDep,
    db: DbDep,
    services: ServicesDep,
    department: str | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
):
    """Compliance, overdue, expiry and failure metrics with department and training breakdowns."""
    return await services.analytics.dashboard(
        db, actor, department=department, from_date=from_date, to_date=to_date
    )
