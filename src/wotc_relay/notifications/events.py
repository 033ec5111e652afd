"""Notification events emitted by the submission orchestrator.

Events carry data only; rendering to email or chat happens downstream.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class SubmissionSucceededEvent(BaseModel):
    """A batch reached the agency."""

    model_config = ConfigDict(frozen=True)

    event: str = "submission.succeeded"
    employer_name: str
    employer_email: str | None
    state_code: str
    record_count: int
    confirmation_number: str | None
    submitted_at: datetime


class SubmissionFailedEvent(BaseModel):
    """A batch failed terminally; addressed to the platform admin.

    Attributes:
        retry_count: Attempts made before giving up
        fatal: True when the failure was not retryable
        rotation_needed: True when the portal rejected the credentials
    """

    model_config = ConfigDict(frozen=True)

    event: str = "submission.failed"
    employer_name: str
    admin_email: str
    state_code: str
    record_count: int
    error_message: str
    job_id: UUID
    retry_count: int
    error_kind: str | None = None
    fatal: bool = False
    rotation_needed: bool = False
