"""Submission job model."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid7

from sqlalchemy import Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, PortableJSON, PortableUUID, TimestampMixin, UTCDateTime


class JobStatus(str, Enum):
    """Lifecycle of a submission job.

    pending -> processing -> {succeeded | retrying -> processing | failed}
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RETRYING = "retrying"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


# Statuses a dispatcher may claim
CLAIMABLE_STATUSES = (JobStatus.PENDING.value, JobStatus.RETRYING.value)


class SubmissionJob(TimestampMixin, Base):
    """One attempt-tracked transmission of a batch for an (employer, state) pair."""

    __tablename__ = "submission_jobs"

    job_id: Mapped[UUID] = mapped_column(PortableUUID(), primary_key=True, default=uuid7)
    employer_id: Mapped[UUID] = mapped_column(PortableUUID(), nullable=False)
    state_code: Mapped[str] = mapped_column(String(2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobStatus.PENDING.value
    )

    record_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_kind: Mapped[str | None] = mapped_column(String(20), nullable=True)
    confirmation_number: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payload_digest: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Certified screenings in this batch; empty means "all certified for the pair"
    screening_ids: Mapped[list] = mapped_column(PortableJSON(), nullable=False, default=list)

    next_attempt_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        Index("idx_job_pair_status", "employer_id", "state_code", "status"),
        Index("idx_job_status_next_attempt", "status", "next_attempt_at"),
        # At most one processing job per (employer, state) pair
        Index(
            "uq_job_pair_processing",
            "employer_id",
            "state_code",
            unique=True,
            postgresql_where=text("status = 'processing'"),
            sqlite_where=text("status = 'processing'"),
        ),
    )

    @property
    def job_status(self) -> JobStatus:
        return JobStatus(self.status)

    def __repr__(self) -> str:
        return (
            f"<SubmissionJob(id={self.job_id}, state={self.state_code}, "
            f"status={self.status}, attempts={self.attempt_count})>"
        )
