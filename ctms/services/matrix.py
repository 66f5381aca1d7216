"""Users x trainings compliance matrix and its CSV export."""

import csv
import io

from sqlalchemy.ext.asyncio import AsyncSession

from ctms.auth.identity import Actor
from ctms.models.enums import AuditEventType
from ctms.schemas.admin import MatrixCell, MatrixRow, TrainingMatrix
from ctms.schemas.audit import AuditSubject, MatrixMeta
from ctms.services.audit import AuditSink
from ctms.services.records import TrainingRecordStateMachine
from ctms.storage import repositories as repo

NOT_ASSIGNED = "NOT_ASSIGNED"


class TrainingMatrixService:
    def __init__(self, records: TrainingRecordStateMachine, audit: AuditSink):
        self.records = records
        self.audit = audit

    async def _grid(
        self,
        db: AsyncSession,
        actor: Actor,
        action: str,
        departments: list[str] | None,
        training_ids: list[str] | None,
    ) -> TrainingMatrix:
        if not actor.is_privileged:
            await self.records.reject(
                db,
                actor,
                action=action,
                reason_code="ROLE_NOT_PERMITTED",
                message="Only Administrator or QA can view the training matrix",
                subject=AuditSubject(user_id=actor.user_id),
            )
        trainings = [
            t for t in await repo.list_trainings(db, active_only=True)
            if not training_ids or t.id in training_ids
        ]
        users = await repo.list_users(db, departments=departments or None)
        records = await repo.list_records(db, user_ids=[u.id for u in users])
        by_key = {}
        for record in records:
            await self.records.refresh_status(db, record)
            by_key[(record.user_id, record.training_id)] = record

        rows = []
        for user in users:
            cells = []
            for training in trainings:
                record = by_key.get((user.id, training.id))
                if record is None:
                    cells.append(MatrixCell(training_id=training.id, status=NOT_ASSIGNED))
                    continue
                cells.append(
                    MatrixCell(
                        training_id=training.id,
                        status=record.status,
                        record_id=record.id,
                        due_date=record.due_date.date().isoformat(),
                        expiry_date=record.expiry_date.date().isoformat() if record.expiry_date else None,
                    )
                )
            rows.append(
                MatrixRow(user_id=user.id, name=user.name, department=user.department, cells=cells)
            )
        return TrainingMatrix(
            trainings=[
                {"id": t.id, "code": t.code, "revision": t.revision, "title": t.title}
                for t in trainings
            ],
            rows=rows,
        )

    async def build(
        self,
        db: AsyncSession,
        actor: Actor,
        departments: list[str] | None = None,
        training_ids: list[str] | None = None,
    ) -> TrainingMatrix:
        matrix = await self._grid(db, actor, "VIEW_MATRIX", departments, training_ids)
        await self.audit.record(
            AuditEventType.MATRIX_ACCESSED,
            actor=actor,
            subject=AuditSubject(),
            metadata=MatrixMeta(row_count=len(matrix.rows), training_count=len(matrix.trainings)),
        )
        return matrix

    async def export_csv(
        self,
        db: AsyncSession,
        actor: Actor,
        departments: list[str] | None = None,
        training_ids: list[str] | None = None,
    ) -> str:
        matrix = await self._grid(db, actor, "EXPORT_MATRIX", departments, training_ids)
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(
            ["User", "Department"] + [f"{t['code']} ({t['revision']})" for t in matrix.trainings]
        )
        for row in matrix.rows:
            writer.writerow([row.name, row.department or ""] + [c.status for c in row.cells])
        await self.audit.record(
            AuditEventType.MATRIX_EXPORTED,
            actor=actor,
            subject=AuditSubject(),
            metadata=MatrixMeta(
                row_count=len(matrix.rows),
                training_count=len(matrix.trainings),
                export_format="csv",
            ),
        )
        return buffer.getvalue()
