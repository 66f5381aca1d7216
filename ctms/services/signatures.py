"""Electronic signatures and the governance configuration they protect."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from ctms.auth.credentials import BcryptVerifier, CredentialVerifier
from ctms.auth.identity import Actor
from ctms.clock import Clock, utcnow
from ctms.errors import AccessDeniedError, NotFoundError, SignatureRequiredError, ValidationError
from ctms.models import ElectronicSignature, GovernanceConfig
from ctms.models.enums import AuditEventType
from ctms.schemas.audit import (
    AuditSubject,
    GovernanceRollbackMeta,
    GovernanceUpdateMeta,
    RejectedTransitionMeta,
    SignatureMeta,
)
from ctms.schemas.governance import GovernanceRollbackRequest, GovernanceUpdateRequest
from ctms.services.audit import AuditSink
from ctms.services.records import commit_or_conflict
from ctms.storage import repositories as repo
from ctms.utils.canonical import config_hash

logger = logging.getLogger(__name__)

GOVERNANCE_UPDATE = "GOVERNANCE_CONFIG_UPDATE"
GOVERNANCE_ROLLBACK = "GOVERNANCE_CONFIG_ROLLBACK"


class ElectronicSignatureGate:
    """Password re-verification plus justification, recorded as an immutable signature."""

    def __init__(
        self,
        audit: AuditSink,
        verifier: CredentialVerifier | None = None,
        clock: Clock = utcnow,
    ):
        self.audit = audit
        self.verifier = verifier or BcryptVerifier()
        self.clock = clock

    async def capture(
        self,
        db: AsyncSession,
        actor: Actor,
        action_type: str,
        password: str | None,
        reason: str | None,
    ) -> ElectronicSignature:
        if not password or not reason or not reason.strip():
            raise SignatureRequiredError(
                "Electronic signature required: provide your password and a reason",
                reason_code="SIGNATURE_REQUIRED",
                action=action_type,
            )
        if not actor.is_privileged:
            await self.audit.record(
                AuditEventType.REJECTED_TRANSITION,
                actor=actor,
                subject=AuditSubject(user_id=actor.user_id),
                metadata=RejectedTransitionMeta(action=action_type, reason_code="ROLE_NOT_PERMITTED"),
            )
            raise AccessDeniedError(
                "Only Administrator or QA can sign governance changes",
                reason_code="ROLE_NOT_PERMITTED",
                action=action_type,
            )

        user = await repo.get_user(db, actor.user_id)
        if not user:
            raise NotFoundError("User not found")
        if not self.verifier.verify(password, user.password_hash):
            await self.audit.record(
                AuditEventType.SIGNATURE_FAILED,
                actor=actor,
                subject=AuditSubject(user_id=actor.user_id),
                metadata=SignatureMeta(
                    action_type=action_type, reason=reason, failure_reason="INVALID_PASSWORD"
                ),
            )
            raise SignatureRequiredError(
                "Invalid password. Electronic signature verification failed.",
                reason_code="INVALID_SIGNATURE",
                action=action_type,
            )

        signature = ElectronicSignature(
            signer_id=user.id,
            action_type=action_type,
            reason=reason.strip(),
            ip_address=actor.ip_address,
            user_agent=actor.user_agent,
            signed_at=self.clock(),
        )
        db.add(signature)
        await db.commit()
        await self.audit.record(
            AuditEventType.SIGNATURE_CAPTURED,
            actor=actor,
            subject=AuditSubject(user_id=actor.user_id),
            metadata=SignatureMeta(
                action_type=action_type, signature_id=signature.id, reason=signature.reason
            ),
        )
        return signature


class GovernanceService:
    """
    Versioned governance configuration. Every change appends version N+1
    and deactivates the previous active one; old versions are never edited
    or reactivated.
    """

    def __init__(self, gate: ElectronicSignatureGate, audit: AuditSink, clock: Clock = utcnow):
        self.gate = gate
        self.audit = audit
        self.clock = clock

    async def current(self, db: AsyncSession) -> GovernanceConfig:
        config = await repo.get_active_governance(db)
        if not config:
            raise NotFoundError("No active governance configuration")
        return config

    async def history(self, db: AsyncSession) -> list[GovernanceConfig]:
        return list(await repo.list_governance_history(db))

    async def get_version(self, db: AsyncSession, version: int) -> GovernanceConfig:
        config = await repo.get_governance_version(db, version)
        if not config:
            raise NotFoundError(f"Governance version {version} not found")
        return config

    async def _append(
        self,
        db: AsyncSession,
        actor: Actor,
        *,
        name: str,
        description: str | None,
        config: dict,
        signature: ElectronicSignature,
        rolled_back_from: int | None = None,
    ) -> GovernanceConfig:
        version = await repo.latest_governance_version(db) + 1
        for active in await repo.list_active_governance(db):
            active.is_active = False
        new = GovernanceConfig(
            version=version,
            name=name,
            description=description,
            config=config,
            is_active=True,
            rolled_back_from=rolled_back_from,
            created_by=actor.user_id,
            signature_id=signature.id,
            created_at=self.clock(),
        )
        db.add(new)
        await commit_or_conflict(db)
        logger.info("Governance configuration v%d activated by %s", version, actor.user_id)
        return new

    async def update(
        self, db: AsyncSession, actor: Actor, body: GovernanceUpdateRequest
    ) -> GovernanceConfig:
        if not body.name or not body.name.strip():
            raise ValidationError("Configuration name is required")
        signature = await self.gate.capture(
            db, actor, GOVERNANCE_UPDATE, body.signature_password, body.signature_reason
        )
        new = await self._append(
            db,
            actor,
            name=body.name.strip(),
            description=body.description,
            config=body.config,
            signature=signature,
        )
        await self.audit.record(
            AuditEventType.GOVERNANCE_CONFIG_UPDATED,
            actor=actor,
            subject=AuditSubject(user_id=actor.user_id),
            metadata=GovernanceUpdateMeta(
                version=new.version,
                name=new.name,
                signature_id=signature.id,
                reason=signature.reason,
                config_hash=config_hash(new.config),
            ),
        )
        return new

    async def rollback(
        self, db: AsyncSession, actor: Actor, version: int, body: GovernanceRollbackRequest
    ) -> GovernanceConfig:
        """Re-publish an old version's configuration as a new version."""
        target = await self.get_version(db, version)
        active = await repo.get_active_governance(db)
        if active and active.version == target.version:
            raise ValidationError(f"Version {version} is already active")
        signature = await self.gate.capture(
            db, actor, GOVERNANCE_ROLLBACK, body.signature_password, body.signature_reason
        )
        new = await self._append(
            db,
            actor,
            name=f"Rollback to v{target.version}: {target.name}",
            description=target.description,
            config=dict(target.config),
            signature=signature,
            rolled_back_from=target.version,
        )
        await self.audit.record(
            AuditEventType.GOVERNANCE_CONFIG_ROLLED_BACK,
            actor=actor,
            subject=AuditSubject(user_id=actor.user_id),
            metadata=GovernanceRollbackMeta(
                from_version=target.version,
                new_version=new.version,
                signature_id=signature.id,
                reason=signature.reason,
                config_hash=config_hash(new.config),
            ),
        )
        return new
