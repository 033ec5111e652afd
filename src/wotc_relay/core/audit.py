"""Audit logging service for credential and submission accountability."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wotc_relay.db.models.audit import AuditEvent, AuditEventType, AuditSeverity


class AuditLogger:
    """Service for creating and querying audit events.

    Audit events are immutable, append-only records of every credential
    access, rotation and submission transition. Events are added to the
    caller's session and flushed, so they commit or roll back together with
    the change they describe.
    """

    def __init__(self, db: AsyncSession):
        """Initialize audit logger with database session.

        Args:
            db: Async SQLAlchemy session for database operations
        """
        self.db = db

    async def log_event(
        self,
        event_type: AuditEventType | str,
        event_data: dict[str, Any],
        *,
        actor: str = "system",
        resource_type: str | None = None,
        resource_id: str | UUID | None = None,
        correlation_id: UUID | None = None,
        severity: AuditSeverity | str = AuditSeverity.INFO,
    ) -> AuditEvent:
        """Create an immutable audit log entry.

        Args:
            event_type: Type of event (credential.rotated, submission.failed, etc.)
            event_data: Structured event details (JSON serializable, no secrets)
            actor: Who triggered the event (admin identity or "system")
            resource_type: Resource kind (portal, submission_job, ...)
            resource_id: Resource identifier
            correlation_id: Groups related events, e.g. a retry chain
            severity: Event severity level (default: INFO)

        Returns:
            Created AuditEvent instance

        Example:
            >>> audit = AuditLogger(db_session)
            >>> await audit.log_event(
            ...     AuditEventType.CREDENTIAL_ROTATED,
            ...     {"rotation_type": "manual"},
            ...     actor="admin@example.com",
            ...     resource_type="portal",
            ...     resource_id=portal.portal_id,
            ... )
        """
        if isinstance(event_type, AuditEventType):
            event_type = event_type.value
        if isinstance(severity, AuditSeverity):
            severity = severity.value

        event = AuditEvent(
            event_type=event_type,
            severity=severity,
            actor=actor,
            correlation_id=correlation_id,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            event_data=event_data,
        )

        self.db.add(event)
        await self.db.flush()

        return event

    async def query_events(
        self,
        event_type: AuditEventType | str | None = None,
        resource_type: str | None = None,
        resource_id: str | UUID | None = None,
        correlation_id: UUID | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        severity: AuditSeverity | str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AuditEvent]:
        """Query audit events with filters.

        Returns:
            Matching audit events, newest first
        """
        if isinstance(event_type, AuditEventType):
            event_type = event_type.value
        if isinstance(severity, AuditSeverity):
            severity = severity.value

        query = select(AuditEvent).order_by(
            AuditEvent.created_at.desc(),
            AuditEvent.audit_id.desc(),  # Secondary sort for equal timestamps
        )

        if event_type is not None:
            query = query.where(AuditEvent.event_type == event_type)
        if resource_type is not None:
            query = query.where(AuditEvent.resource_type == resource_type)
        if resource_id is not None:
            query = query.where(AuditEvent.resource_id == str(resource_id))
        if correlation_id is not None:
            query = query.where(AuditEvent.correlation_id == correlation_id)
        if start_date is not None:
            query = query.where(AuditEvent.created_at >= start_date)
        if end_date is not None:
            query = query.where(AuditEvent.created_at <= end_date)
        if severity is not None:
            query = query.where(AuditEvent.severity == severity)

        query = query.limit(min(limit, 1000)).offset(offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())
