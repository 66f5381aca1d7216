"""Certificate issuance and expiry computation."""

import logging
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from ctms.auth.identity import SYSTEM_ACTOR, Actor
from ctms.clock import Clock, as_utc, utcnow
from ctms.config import Settings, settings as default_settings
from ctms.engine.lifecycle import compute_expiry
from ctms.errors import NotFoundError
from ctms.models import Training, TrainingCertificate, TrainingMaster, TrainingRecord, User
from ctms.models.enums import AuditEventType
from ctms.schemas.audit import AuditSubject, CertificateMeta
from ctms.schemas.certificate import CertificateIssue
from ctms.services.audit import AuditSink
from ctms.storage import repositories as repo
from ctms.utils.canonical import certificate_id as derive_certificate_id

logger = logging.getLogger(__name__)


class CertificateRenderer(Protocol):
    async def render(
        self,
        record: TrainingRecord,
        user: User,
        training: Training,
        master: TrainingMaster | None,
        certificate_id: str,
    ) -> str: ...


class UrlCertificateRenderer:
    """Resolves the artifact location; document generation happens downstream."""

    def __init__(self, base_url: str | None = None):
        self.base_url = (base_url or default_settings.certificate_base_url).rstrip("/")

    async def render(self, record, user, training, master, certificate_id) -> str:
        return f"{self.base_url}/{certificate_id}.pdf"


class CertificateLifecycleManager:
    """
    Issues at most one certificate per (user, training).

    ``issue`` only stages changes on the caller's session; the caller commits
    together with the completion and then calls ``record_issued``.
    """

    def __init__(
        self,
        renderer: CertificateRenderer,
        audit: AuditSink,
        clock: Clock = utcnow,
        settings: Settings = default_settings,
    ):
        self.renderer = renderer
        self.audit = audit
        self.clock = clock
        self.settings = settings

    async def issue(
        self,
        db: AsyncSession,
        record: TrainingRecord,
        *,
        user: User,
        training: Training,
        master: TrainingMaster | None,
        issued_at: datetime,
    ) -> CertificateIssue:
        if record.certificate_id:
            return CertificateIssue(
                certificate_id=record.certificate_id,
                certificate_url=record.certificate_url,
                expiry_date=record.expiry_date,
            )

        existing = await repo.get_certificate_for(db, record.user_id, record.training_id)
        if existing:
            record.certificate_id = existing.certificate_id
            record.certificate_url = existing.certificate_url
            record.expiry_date = existing.expiry_date
            return CertificateIssue(
                certificate_id=existing.certificate_id,
                certificate_url=existing.certificate_url,
                expiry_date=existing.expiry_date,
            )

        issued_at = as_utc(issued_at)
        expiry = None
        if master is not None:
            expiry = compute_expiry(issued_at, master.validity_period, master.validity_unit)
        record.expiry_date = expiry

        cert_id = derive_certificate_id(training.code, user.id, record.id)
        try:
            url = await self.renderer.render(record, user, training, master, cert_id)
        except Exception:
            # Completion stands; the backfill utility can issue later.
            logger.exception("Certificate rendering failed for record %s", record.id)
            return CertificateIssue(expiry_date=expiry, render_failed=True)

        record.certificate_id = cert_id
        record.certificate_url = url
        db.add(
            TrainingCertificate(
                certificate_id=cert_id,
                user_id=record.user_id,
                training_id=record.training_id,
                record_id=record.id,
                issue_date=issued_at,
                expiry_date=expiry,
                score=record.score or 0,
                result_grade=record.result_grade or "PASS",
                certificate_url=url,
            )
        )
        return CertificateIssue(
            certificate_id=cert_id, certificate_url=url, expiry_date=expiry, issued=True
        )

    async def record_issued(
        self, actor: Actor, record: TrainingRecord, issue: CertificateIssue
    ) -> None:
        """Audit a freshly issued certificate (after the caller committed)."""
        if not issue.issued:
            return
        await self.audit.record(
            AuditEventType.CERTIFICATE_GENERATED,
            actor=actor,
            subject=AuditSubject(
                user_id=record.user_id,
                training_id=record.training_id,
                training_record_id=record.id,
            ),
            metadata=CertificateMeta(
                certificate_id=issue.certificate_id,
                certificate_url=issue.certificate_url,
                expiry_date=issue.expiry_date,
            ),
        )

    async def backfill_missing(
        self, db: AsyncSession, actor: Actor = SYSTEM_ACTOR
    ) -> list[CertificateIssue]:
        """Issue certificates for completed records that never got one."""
        issued = []
        for record in await repo.list_completed_without_certificate(db):
            user = await repo.get_user(db, record.user_id)
            training = await repo.get_training(db, record.training_id)
            if not user or not training:
                logger.warning("Skipping record %s: user or training missing", record.id)
                continue
            master = await repo.get_master(db, training.master_id) if training.master_id else None
            issue = await self.issue(
                db,
                record,
                user=user,
                training=training,
                master=master,
                issued_at=record.completed_date or self.clock(),
            )
            await db.commit()
            await self.record_issued(actor, record, issue)
            if issue.issued:
                issued.append(issue)
        logger.info("Certificate backfill issued %d certificates", len(issued))
        return issued


async def get_certificate(db: AsyncSession, actor: Actor, certificate_id: str) -> TrainingCertificate:
    cert = await repo.get_certificate(db, certificate_id)
    if not cert or (not actor.is_privileged and cert.user_id != actor.user_id):
        raise NotFoundError("Certificate not found")
    return cert
