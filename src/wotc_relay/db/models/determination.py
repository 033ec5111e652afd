"""Agency determination model."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid7

from sqlalchemy import Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, PortableUUID, UTCDateTime, utc_now


class DeterminationStatus(str, Enum):
    """Agency decision on a submitted certification request."""

    CERTIFIED = "certified"
    DENIED = "denied"
    PENDING = "pending"

    @property
    def is_terminal(self) -> bool:
        return self is not DeterminationStatus.PENDING


class DeterminationSource(str, Enum):
    """Where a determination was learned from."""

    SUBMISSION = "submission"
    CAPTURE = "capture"


class DeterminationRecord(Base):
    """Immutable agency decision for one employee in one state.

    A later status for the same employee is a new row; the latest row wins.
    """

    __tablename__ = "determination_records"

    determination_id: Mapped[UUID] = mapped_column(
        PortableUUID(), primary_key=True, default=uuid7
    )
    employee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    screening_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    ssn_last4: Mapped[str | None] = mapped_column(String(4), nullable=True)
    state_code: Mapped[str] = mapped_column(String(2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    certification_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    credit_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    source: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DeterminationSource.CAPTURE.value
    )
    captured_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utc_now, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_determination_employee_state", "employee_id", "state_code", "captured_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return DeterminationStatus(self.status).is_terminal

    def __repr__(self) -> str:
        return (
            f"<DeterminationRecord(employee={self.employee_id}, state={self.state_code}, "
            f"status={self.status})>"
        )
