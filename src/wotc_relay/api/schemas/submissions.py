"""Submission job request and response schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from wotc_relay.db.models.submission import SubmissionJob


class SubmissionCreateRequest(BaseModel):
    """Request a submission for one (employer, state) pair.

    Without ``screening_ids`` the job covers every certified, unsubmitted
    screening for the pair.
    """

    employer_id: UUID
    state_code: str = Field(..., min_length=2, max_length=2, description="Two-letter state code")
    screening_ids: list[str] | None = Field(default=None, min_length=1)


class SubmissionAccepted(BaseModel):
    """Returned when a job has been queued."""

    job_id: UUID
    status: str
    retry_of: UUID | None = None


class SubmissionJobResponse(BaseModel):
    """Current state of a submission job."""

    job_id: UUID
    employer_id: UUID
    state_code: str
    status: str
    record_count: int
    attempt_count: int
    max_attempts: int
    confirmation_number: str | None = None
    error_kind: str | None = None
    last_error: str | None = None
    payload_digest: str | None = None
    next_attempt_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_job(cls, job: SubmissionJob) -> "SubmissionJobResponse":
        return cls(
            job_id=job.job_id,
            employer_id=job.employer_id,
            state_code=job.state_code,
            status=job.status,
            record_count=job.record_count,
            attempt_count=job.attempt_count,
            max_attempts=job.max_attempts,
            confirmation_number=job.confirmation_number,
            error_kind=job.error_kind,
            last_error=job.last_error,
            payload_digest=job.payload_digest,
            next_attempt_at=job.next_attempt_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class SubmissionListResponse(BaseModel):
    """A page of submission jobs, newest first."""

    items: list[SubmissionJobResponse]
    limit: int
    offset: int
