"""Audit event models for credential and submission accountability."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid7

from sqlalchemy import Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, PortableJSON, PortableUUID, UTCDateTime, utc_now


class AuditEventType(str, Enum):
    """Types of audit events tracked in the system."""

    # Credential vault
    CREDENTIAL_ACCESSED = "credential.accessed"
    CREDENTIAL_ROTATED = "credential.rotated"
    CREDENTIAL_SCHEDULE_CHANGED = "credential.schedule_changed"
    CREDENTIAL_TESTED = "credential.tested"
    CREDENTIALS_SEALED = "credential.sealed"
    PORTAL_DISABLED = "portal.disabled"

    # Submission lifecycle
    SUBMISSION_CREATED = "submission.created"
    SUBMISSION_PROCESSING = "submission.processing"
    SUBMISSION_RETRYING = "submission.retrying"
    SUBMISSION_SUCCEEDED = "submission.succeeded"
    SUBMISSION_FAILED = "submission.failed"
    SUBMISSION_CONFLICT = "submission.conflict"

    # Determinations
    DETERMINATION_CAPTURED = "determination.captured"


class AuditSeverity(str, Enum):
    """Severity levels for audit events."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(Base):
    """Immutable audit log entry.

    Audit events are append-only. ``event_data`` carries identifiers, hashes
    and counts only; decrypted secrets and SSNs are never written here.
    """

    __tablename__ = "audit_events"

    # UUIDv7 is time-ordered, making audit events naturally sortable by ID
    audit_id: Mapped[UUID] = mapped_column(PortableUUID(), primary_key=True, default=uuid7)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="info")

    actor: Mapped[str] = mapped_column(String(255), nullable=False, default="system")
    correlation_id: Mapped[UUID | None] = mapped_column(PortableUUID(), nullable=True)

    resource_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    event_data: Mapped[dict] = mapped_column(PortableJSON(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utc_now, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_audit_event_type", "event_type"),
        Index("idx_audit_resource", "resource_type", "resource_id"),
        Index("idx_audit_created", "created_at"),
        Index("idx_audit_correlation", "correlation_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditEvent(id={self.audit_id}, type={self.event_type}, "
            f"resource={self.resource_type}:{self.resource_id})>"
        )
