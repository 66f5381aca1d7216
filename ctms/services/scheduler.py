"""Time-driven sweeps: overdue, expiry and reminders.

Each sweep is a plain coroutine that reads candidates and hands each record
to the state machine, so tests drive them directly with a frozen clock.
``start``/``stop`` wrap them in background loops for the running service.
Only the instance with ``scheduler_enabled`` should start the loops.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, time, timedelta, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ctms.auth.identity import SYSTEM_ACTOR
from ctms.clock import Clock, as_utc, utcnow
from ctms.config import Settings, settings as default_settings
from ctms.errors import ValidationError
from ctms.models import ReminderMarker, TrainingRecord
from ctms.models.enums import NotificationType
from ctms.schemas.admin import SweepResult
from ctms.services.records import TrainingRecordStateMachine
from ctms.storage import repositories as repo

logger = logging.getLogger(__name__)


def day_window(now: datetime, days_ahead: int) -> tuple[datetime, datetime]:
    """[start, end] of the UTC calendar day ``days_ahead`` days after ``now``."""
    target = (as_utc(now) + timedelta(days=days_ahead)).date()
    start = datetime.combine(target, time.min, tzinfo=timezone.utc)
    end = datetime.combine(target, time.max, tzinfo=timezone.utc)
    return start, end


class Scheduler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        records: TrainingRecordStateMachine,
        clock: Clock = utcnow,
        settings: Settings = default_settings,
    ):
        self.session_factory = session_factory
        self.records = records
        self.clock = clock
        self.settings = settings
        self._tasks: list[asyncio.Task] = []

    # --- sweeps --------------------------------------------------------------

    async def _candidate_ids(self, query) -> list[str]:
        async with self.session_factory() as db:
            return [record.id for record in await query(db)]

    async def _for_each_record(self, ids: list[str], label: str, step) -> list[str]:
        """
        Run ``step(db, record)`` per record in its own session so one
        failure or rollback cannot disturb the rest of the sweep.
        Returns the ids for which the step reported a change.
        """
        changed = []
        for record_id in ids:
            async with self.session_factory() as db:
                record = await repo.get_record(db, record_id)
                if record is None:
                    continue
                try:
                    if await step(db, record):
                        changed.append(record_id)
                except Exception:
                    logger.exception("%s sweep failed on record %s", label, record_id)
        return changed

    async def run_overdue_sweep(self) -> SweepResult:
        """PENDING/IN_PROGRESS past their due date -> OVERDUE."""
        now = self.clock()
        ids = await self._candidate_ids(lambda db: repo.list_past_due(db, now))

        async def step(db, record):
            return await self.records.mark_overdue(db, record, SYSTEM_ACTOR, detected_by="SWEEP")

        changed = await self._for_each_record(ids, "Overdue", step)
        logger.info("Overdue sweep processed %d records, %d marked overdue", len(ids), len(changed))
        return SweepResult(sweep="overdue", processed=len(ids), transitioned=changed)

    async def run_expiry_sweep(self) -> SweepResult:
        """COMPLETED strictly past expiry -> EXPIRED. The only writer of EXPIRED."""
        now = self.clock()
        ids = await self._candidate_ids(lambda db: repo.list_past_expiry(db, now))

        async def step(db, record):
            return await self.records.expire(db, record, SYSTEM_ACTOR)

        changed = await self._for_each_record(ids, "Expiry", step)
        logger.info("Expiry sweep processed %d records, %d expired", len(ids), len(changed))
        return SweepResult(sweep="expiry", processed=len(ids), transitioned=changed)

    async def _remind_once(
        self,
        db: AsyncSession,
        record: TrainingRecord,
        type: NotificationType,
        target: datetime,
        **extra,
    ) -> bool:
        """Write the dedup marker, then notify. An existing marker means already sent."""
        target_day = as_utc(target).date().isoformat()
        if await repo.reminder_marker_exists(db, record.id, str(type), target_day):
            return False
        db.add(
            ReminderMarker(
                record_id=record.id,
                reminder_type=str(type),
                target_date=target_day,
                sent_at=self.clock(),
            )
        )
        try:
            await db.commit()
        except IntegrityError:
            # A concurrent run wrote the marker first.
            await db.rollback()
            return False
        return await self.records.notify(db, record, type, **extra)

    async def run_reminder_sweep(self) -> SweepResult:
        """Due-soon and expiring-soon reminders, at most once per record per target day."""
        now = self.clock()
        due_start, due_end = day_window(now, self.settings.due_reminder_days)
        due_ids = await self._candidate_ids(lambda db: repo.list_due_between(db, due_start, due_end))
        exp_start, exp_end = day_window(now, self.settings.expiry_warning_days)
        expiring_ids = await self._candidate_ids(
            lambda db: repo.list_expiring_between(db, exp_start, exp_end)
        )

        async def due_soon(db, record):
            return await self._remind_once(
                db, record, NotificationType.TRAINING_DUE_SOON, record.due_date
            )

        async def expiring_soon(db, record):
            return await self._remind_once(
                db,
                record,
                NotificationType.CERTIFICATE_EXPIRING_SOON,
                record.expiry_date,
                expiry_date=as_utc(record.expiry_date).date().isoformat(),
            )

        notified = await self._for_each_record(due_ids, "Reminder", due_soon)
        notified += await self._for_each_record(expiring_ids, "Reminder", expiring_soon)
        logger.info("Reminder sweep sent %d reminders", len(notified))
        return SweepResult(
            sweep="reminders", processed=len(due_ids) + len(expiring_ids), notified=len(notified)
        )

    def sweeps(self) -> dict[str, Callable[[], Awaitable[SweepResult]]]:
        return {
            "overdue": self.run_overdue_sweep,
            "expiry": self.run_expiry_sweep,
            "reminders": self.run_reminder_sweep,
        }

    async def run(self, name: str) -> SweepResult:
        """Run one sweep on demand."""
        sweep = self.sweeps().get(name)
        if sweep is None:
            raise ValidationError(f"Unknown sweep {name!r}; expected one of {sorted(self.sweeps())}")
        return await sweep()

    # --- background loops ----------------------------------------------------

    async def _loop(self, sweep: Callable[[], Awaitable[SweepResult]], interval: int) -> None:
        await asyncio.sleep(self.settings.startup_sweep_delay_seconds)
        while True:
            try:
                await sweep()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Scheduled sweep %s failed", sweep.__name__)
            await asyncio.sleep(interval)

    async def start(self) -> None:
        if self._tasks:
            return
        intervals = {
            "overdue": self.settings.overdue_sweep_interval_seconds,
            "expiry": self.settings.expiry_sweep_interval_seconds,
            "reminders": self.settings.reminder_sweep_interval_seconds,
        }
        for name, sweep in self.sweeps().items():
            self._tasks.append(
                asyncio.create_task(self._loop(sweep, intervals[name]), name=f"sweep-{name}")
            )
        logger.info("Scheduler started")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Scheduler stopped")
