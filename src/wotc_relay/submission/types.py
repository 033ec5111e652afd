"""Types and errors for the submission orchestrator."""

from dataclasses import dataclass, field
from uuid import UUID

from wotc_relay.utils.exceptions import NotFoundError, WotcRelayError

# Job error_kind recorded when the portal's sealed secrets cannot be used
VAULT_ERROR_KIND = "vault_integrity"


class ConcurrencyConflictError(WotcRelayError):
    """Another submission for the same (employer, state) pair is in progress."""

    def __init__(self, employer_id: UUID, state_code: str):
        super().__init__(
            f"Submission already in progress for employer {employer_id} in {state_code}"
        )
        self.employer_id = employer_id
        self.state_code = state_code


class JobNotFoundError(NotFoundError):
    """No submission job with the given id."""

    def __init__(self, job_id: UUID | str):
        super().__init__("SubmissionJob", job_id)


class JobNotRetryableError(WotcRelayError):
    """Only failed jobs can be resubmitted."""

    def __init__(self, job_id: UUID, status: str):
        super().__init__(f"Job {job_id} is {status}; only failed jobs can be retried")
        self.job_id = job_id
        self.status = status


@dataclass
class DispatchReport:
    """What one dispatch pass did with the due jobs.

    Attributes:
        claimed: Jobs moved to processing and handed to a task
        conflicts: Jobs left waiting because their pair was busy
        skipped: Jobs another dispatcher claimed first, or beyond capacity
        recovered: Abandoned processing jobs put back through the retry policy
    """

    claimed: list[UUID] = field(default_factory=list)
    conflicts: list[UUID] = field(default_factory=list)
    skipped: list[UUID] = field(default_factory=list)
    recovered: list[UUID] = field(default_factory=list)


@dataclass(frozen=True)
class PlannedBatch:
    """A group of screenings that will become one submission job."""

    employer_id: UUID
    state_code: str
    screening_ids: tuple[str, ...]
    priority: int = 0
    urgent: bool = False

    @property
    def record_count(self) -> int:
        return len(self.screening_ids)
