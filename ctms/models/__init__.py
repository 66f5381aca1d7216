"""Database models."""

from ctms.models.user import User
from ctms.models.training import Training, TrainingMaster
from ctms.models.record import TrainingRecord
from ctms.models.assessment import AssessmentAttempt, AssessmentConfig, AssessmentQuestion
from ctms.models.audit import AuditLogEntry
from ctms.models.signature import ElectronicSignature
from ctms.models.governance import GovernanceConfig
from ctms.models.certificate import TrainingCertificate
from ctms.models.notification import Notification, ReminderMarker

from ctms.storage import immutability  # noqa: E402,F401  registers session guards

__all__ = [
    "User",
    "Training",
    "TrainingMaster",
    "TrainingRecord",
    "AssessmentConfig",
    "AssessmentQuestion",
    "AssessmentAttempt",
    "AuditLogEntry",
    "ElectronicSignature",
    "GovernanceConfig",
    "TrainingCertificate",
    "Notification",
    "ReminderMarker",
]
