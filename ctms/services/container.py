"""Wiring of the service graph around one session factory and clock."""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ctms.auth.credentials import CredentialVerifier
from ctms.clock import Clock, utcnow
from ctms.config import Settings, settings as default_settings
from ctms.services.analytics import ComplianceAnalyticsService
from ctms.services.assessments import AssessmentEngine
from ctms.services.audit import AuditSink, AuditTrail
from ctms.services.certificates import (
    CertificateLifecycleManager,
    CertificateRenderer,
    UrlCertificateRenderer,
)
from ctms.services.matrix import TrainingMatrixService
from ctms.services.notifications import InAppNotifier, Notifier
from ctms.services.records import TrainingRecordStateMachine
from ctms.services.retraining import RetrainingTrigger
from ctms.services.scheduler import Scheduler
from ctms.services.signatures import ElectronicSignatureGate, GovernanceService
from ctms.services.trainings import TrainingCatalogue


@dataclass
class Services:
    audit: AuditSink
    notifier: Notifier
    certificates: CertificateLifecycleManager
    records: TrainingRecordStateMachine
    assessments: AssessmentEngine
    retraining: RetrainingTrigger
    catalogue: TrainingCatalogue
    signatures: ElectronicSignatureGate
    governance: GovernanceService
    matrix: TrainingMatrixService
    analytics: ComplianceAnalyticsService
    scheduler: Scheduler


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    clock: Clock = utcnow,
    settings: Settings = default_settings,
    audit: AuditSink | None = None,
    notifier: Notifier | None = None,
    renderer: CertificateRenderer | None = None,
    verifier: CredentialVerifier | None = None,
) -> Services:
    audit = audit or AuditTrail(session_factory, clock)
    notifier = notifier or InAppNotifier(session_factory, clock)
    renderer = renderer or UrlCertificateRenderer(settings.certificate_base_url)
    certificates = CertificateLifecycleManager(renderer, audit, clock, settings)
    records = TrainingRecordStateMachine(audit, notifier, certificates, clock, settings)
    retraining = RetrainingTrigger(records, audit, clock, settings)
    gate = ElectronicSignatureGate(audit, verifier, clock)
    return Services(
        audit=audit,
        notifier=notifier,
        certificates=certificates,
        records=records,
        assessments=AssessmentEngine(records, audit, clock, settings),
        retraining=retraining,
        catalogue=TrainingCatalogue(records, retraining, clock),
        signatures=gate,
        governance=GovernanceService(gate, audit, clock),
        matrix=TrainingMatrixService(records, audit),
        analytics=ComplianceAnalyticsService(records, clock),
        scheduler=Scheduler(session_factory, records, clock, settings),
    )
