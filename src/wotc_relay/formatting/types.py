"""Types for the record formatter."""

import hashlib
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from wotc_relay.config.channels import StateChannelConfig


class LayoutKind(str, Enum):
    """Agency file layouts."""

    FIXED_WIDTH = "fixed_width"
    TEXAS_CSV = "texas_csv"
    CERTLINK_CSV = "certlink_csv"


class EmployerProfile(BaseModel):
    """Employer identity as printed on agency forms."""

    model_config = ConfigDict(frozen=True)

    employer_id: str
    name: str
    email: str | None = None
    ein: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""


class SubmissionRecord(BaseModel):
    """One certified screening ready for transmission.

    Produced by the screening collaborator; carries plaintext SSN because the
    agency file needs it.
    """

    model_config = ConfigDict(frozen=True)

    employee_id: str
    screening_id: str
    first_name: str
    last_name: str
    ssn: str
    date_of_birth: date | None = None
    hire_date: date | None = None
    start_date: date | None = None
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    county: str = ""
    phone: str = ""
    hourly_wage: Decimal | None = None
    occupation_code: str = ""
    target_groups: tuple[str, ...] = ()
    date_gave_info: date | None = None
    date_offered_job: date | None = None
    priority: int = Field(default=0, ge=0, le=10)

    @property
    def effective_start_date(self) -> date | None:
        return self.start_date or self.hire_date

    @property
    def full_name(self) -> str:
        return f"{self.first_name.strip()} {self.last_name.strip()}".strip()


@dataclass
class FormatOptions:
    """Inputs to formatting that are not per-record.

    Attributes:
        employer: Employer printed on the forms
        channel_config: Per-state overrides (consultant id, signators, ...)
        pin_or_password: Fixed-width PIN column; blank unless the vendor requires it
        consultant_ein: Texas consultant EIN override
    """

    employer: EmployerProfile
    channel_config: StateChannelConfig = field(default_factory=StateChannelConfig)
    pin_or_password: str = ""
    consultant_ein: str | None = None


@dataclass(frozen=True)
class FormattedPayload:
    """Rendered agency file ready for a channel adapter."""

    content: bytes
    filename: str
    record_count: int
    layout: LayoutKind
    state_code: str
    remote_path: str | None = None
    has_header: bool = False
    encoding: str = "utf-8"

    @property
    def text(self) -> str:
        return self.content.decode(self.encoding)

    @property
    def digest(self) -> str:
        """SHA-256 hex digest of the content."""
        return hashlib.sha256(self.content).hexdigest()


@dataclass(frozen=True)
class NothingToSend:
    """Returned instead of a payload when the batch is empty."""

    state_code: str
    reason: str = "no certified records"


@dataclass(frozen=True)
class Preview:
    """First lines of a rendered file, SSNs masked."""

    lines: list[str]
    record_count: int
    filename: str
    remote_path: str | None

    @property
    def text(self) -> str:
        return "\n".join(self.lines)
