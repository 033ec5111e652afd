"""Types returned by channel adapters."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from wotc_relay.db.models.portal import ChannelType
from wotc_relay.utils.exceptions import WotcRelayError


class ErrorKind(str, Enum):
    """Failure category reported by an adapter.

    Only TRANSIENT is retried; every other kind fails the job.
    """

    AUTH = "auth"
    MFA = "mfa"
    TRANSIENT = "transient"
    STRUCTURAL = "structural"
    REJECTED = "rejected"
    UNEXPECTED = "unexpected"

    @property
    def is_retryable(self) -> bool:
        return self is ErrorKind.TRANSIENT

    @property
    def needs_rotation(self) -> bool:
        return self is ErrorKind.AUTH


class ChannelError(WotcRelayError):
    """Classified failure raised inside an adapter step.

    Adapters convert library exceptions into this and return it as a typed
    outcome; it does not escape ``submit``.
    """

    def __init__(self, kind: ErrorKind, detail: str):
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind.value}: {detail}")


class ChannelNotRegisteredError(WotcRelayError):
    """No adapter is registered for a channel type."""

    def __init__(self, channel_type: ChannelType | str):
        self.channel_type = channel_type
        value = channel_type.value if isinstance(channel_type, ChannelType) else channel_type
        super().__init__(f"No adapter registered for channel: {value}")


@dataclass(frozen=True)
class SubmissionOutcome:
    """Result of one transmission attempt."""

    success: bool
    confirmation_number: str | None = None
    error_kind: ErrorKind | None = None
    error_detail: str | None = None
    records_submitted: int = 0
    records_rejected: int = 0

    @classmethod
    def succeeded(
        cls,
        confirmation_number: str | None,
        records_submitted: int,
        records_rejected: int = 0,
    ) -> "SubmissionOutcome":
        return cls(
            success=True,
            confirmation_number=confirmation_number,
            records_submitted=records_submitted,
            records_rejected=records_rejected,
        )

    @classmethod
    def failed(
        cls, kind: ErrorKind, detail: str, records_rejected: int = 0
    ) -> "SubmissionOutcome":
        return cls(
            success=False,
            error_kind=kind,
            error_detail=detail,
            records_rejected=records_rejected,
        )

    @classmethod
    def from_error(cls, error: ChannelError) -> "SubmissionOutcome":
        return cls.failed(error.kind, error.detail)


@dataclass(frozen=True)
class CredentialTestResult:
    """Result of a login-only credential check."""

    success: bool
    error_kind: ErrorKind | None = None
    detail: str | None = None


@dataclass(frozen=True)
class CapturedDetermination:
    """One agency decision as read from the channel, before matching.

    ``status`` is the agency's raw wording.
    """

    ssn: str = field(repr=False)
    status: str
    certification_number: str | None = None
    credit_amount: Decimal | None = None


@dataclass(frozen=True)
class CaptureOutcome:
    """Result of reading determinations from a channel."""

    success: bool
    items: list[CapturedDetermination] = field(default_factory=list)
    error_kind: ErrorKind | None = None
    error_detail: str | None = None

    @classmethod
    def from_error(cls, error: ChannelError) -> "CaptureOutcome":
        return cls(success=False, error_kind=error.kind, error_detail=error.detail)


def parse_amount(value: str | None) -> Decimal | None:
    """Parse a scraped currency cell such as ``$2,400.00``."""
    if not value:
        return None
    cleaned = value.replace("$", "").replace(",", "").strip()
    if not cleaned:
        return None
    try:
        return Decimal(cleaned)
    except ArithmeticError:
        return None
