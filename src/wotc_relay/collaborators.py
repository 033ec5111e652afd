"""Interfaces to the systems that own screenings and employers.

The relay does not store screenings or employer profiles. It reads them
through these protocols and reports outcomes back. In-memory
implementations back the tests and local runs.
"""

import re
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable
from uuid import UUID

from wotc_relay.db.models.determination import DeterminationRecord
from wotc_relay.formatting.types import EmployerProfile, SubmissionRecord
from wotc_relay.utils.exceptions import NotFoundError


@dataclass(frozen=True)
class ScreeningMatch:
    """A screening resolved from an agency determination."""

    screening_id: str
    employee_id: str
    employer_id: UUID
    state_code: str


@dataclass(frozen=True)
class ReadyScreening:
    """A certified screening waiting to be batched."""

    employer_id: UUID
    state_code: str
    record: SubmissionRecord

    @property
    def screening_id(self) -> str:
        return self.record.screening_id

    @property
    def priority(self) -> int:
        return self.record.priority


@runtime_checkable
class ScreeningSource(Protocol):
    """Owner of screening records."""

    async def list_certified(self, employer_id: UUID, state_code: str) -> list[SubmissionRecord]:
        """Certified screenings for the pair that have not been submitted."""
        ...

    async def list_ready(self, employer_id: UUID) -> list[ReadyScreening]:
        """Certified, unsubmitted screenings for an employer across all states."""
        ...

    async def find_by_ssn(self, state_code: str, ssn: str) -> ScreeningMatch | None:
        ...

    async def mark_submitted(
        self, screening_ids: list[str], job_id: UUID, confirmation_number: str | None
    ) -> None:
        ...

    async def apply_determination(
        self, match: ScreeningMatch, determination: DeterminationRecord
    ) -> None:
        ...


@runtime_checkable
class EmployerDirectory(Protocol):
    """Owner of employer profiles."""

    async def get_employer(self, employer_id: UUID) -> EmployerProfile:
        """Raises NotFoundError for an unknown employer."""
        ...


def _digits(value: str) -> str:
    return re.sub(r"\D", "", value)


@dataclass
class _StoredScreening:
    employer_id: UUID
    state_code: str
    record: SubmissionRecord
    job_id: UUID | None = None
    confirmation_number: str | None = None
    determination_status: str | None = None


@dataclass
class InMemoryScreeningSource:
    """Screening source backed by a dict."""

    screenings: dict[str, _StoredScreening] = field(default_factory=dict)

    def add(self, employer_id: UUID, state_code: str, record: SubmissionRecord) -> None:
        self.screenings[record.screening_id] = _StoredScreening(
            employer_id=employer_id, state_code=state_code.upper(), record=record
        )

    def _ready(self, employer_id: UUID) -> list[_StoredScreening]:
        return [
            s for s in self.screenings.values() if s.employer_id == employer_id and s.job_id is None
        ]

    async def list_certified(self, employer_id: UUID, state_code: str) -> list[SubmissionRecord]:
        state_code = state_code.upper()
        return [s.record for s in self._ready(employer_id) if s.state_code == state_code]

    async def list_ready(self, employer_id: UUID) -> list[ReadyScreening]:
        return [
            ReadyScreening(employer_id=s.employer_id, state_code=s.state_code, record=s.record)
            for s in self._ready(employer_id)
        ]

    async def find_by_ssn(self, state_code: str, ssn: str) -> ScreeningMatch | None:
        wanted = _digits(ssn)
        state_code = state_code.upper()
        for s in self.screenings.values():
            if s.state_code == state_code and _digits(s.record.ssn) == wanted:
                return ScreeningMatch(
                    screening_id=s.record.screening_id,
                    employee_id=s.record.employee_id,
                    employer_id=s.employer_id,
                    state_code=s.state_code,
                )
        return None

    async def mark_submitted(
        self, screening_ids: list[str], job_id: UUID, confirmation_number: str | None
    ) -> None:
        for screening_id in screening_ids:
            stored = self.screenings.get(screening_id)
            if stored is not None:
                stored.job_id = job_id
                stored.confirmation_number = confirmation_number

    async def apply_determination(
        self, match: ScreeningMatch, determination: DeterminationRecord
    ) -> None:
        stored = self.screenings.get(match.screening_id)
        if stored is not None:
            stored.determination_status = determination.status


@dataclass
class InMemoryEmployerDirectory:
    """Employer directory backed by a dict."""

    employers: dict[str, EmployerProfile] = field(default_factory=dict)

    def add(self, profile: EmployerProfile) -> None:
        self.employers[profile.employer_id] = profile

    async def get_employer(self, employer_id: UUID) -> EmployerProfile:
        profile = self.employers.get(str(employer_id))
        if profile is None:
            raise NotFoundError("Employer", employer_id)
        return profile
