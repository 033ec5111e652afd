"""Database models for wotc-relay."""

from .audit import AuditEvent, AuditEventType, AuditSeverity
from .base import Base, TimestampMixin, utc_now
from .determination import DeterminationRecord, DeterminationSource, DeterminationStatus
from .portal import (
    ChannelType,
    CredentialRotationHistory,
    MfaType,
    PortalStatus,
    RotationType,
    StatePortalConfig,
)
from .submission import CLAIMABLE_STATUSES, JobStatus, SubmissionJob

__all__ = [
    "Base",
    "TimestampMixin",
    "utc_now",
    "StatePortalConfig",
    "CredentialRotationHistory",
    "ChannelType",
    "MfaType",
    "PortalStatus",
    "RotationType",
    "SubmissionJob",
    "JobStatus",
    "CLAIMABLE_STATUSES",
    "DeterminationRecord",
    "DeterminationSource",
    "DeterminationStatus",
    "AuditEvent",
    "AuditEventType",
    "AuditSeverity",
]
