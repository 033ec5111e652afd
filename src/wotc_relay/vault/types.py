"""Types exchanged with the credential vault."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, SecretStr

from wotc_relay.config.channels import StateChannelConfig
from wotc_relay.db.models.portal import ChannelType, MfaType


class PortalCredentials(BaseModel):
    """Username/password pair for a state portal."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    password: SecretStr

    def to_payload(self) -> dict[str, str]:
        """Plaintext form sealed by the vault. Never log this."""
        return {"userId": self.user_id, "password": self.password.get_secret_value()}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "PortalCredentials":
        return cls(user_id=payload["userId"], password=SecretStr(payload["password"]))


class ChallengeQuestion(BaseModel):
    """Security question with its sealed answer."""

    model_config = ConfigDict(frozen=True)

    question: str
    answer: SecretStr


@dataclass
class DecryptedPortal:
    """Portal configuration with secrets opened for one adapter call.

    Secret fields are SecretStr so they never render in repr or logs.
    Instances are not cached; discard after the call.
    """

    portal_id: UUID
    state_code: str
    display_name: str
    channel_type: ChannelType
    portal_url: str | None
    credentials: PortalCredentials = field(repr=False)
    mfa_type: MfaType = MfaType.NONE
    mfa_secret: SecretStr | None = field(default=None, repr=False)
    backup_codes: list[SecretStr] = field(default_factory=list, repr=False)
    challenge_questions: list[ChallengeQuestion] = field(default_factory=list, repr=False)
    channel_config: StateChannelConfig = field(default_factory=StateChannelConfig)


class RotationDueStatus(str, Enum):
    """Coarse urgency of a due rotation."""

    OVERDUE = "overdue"
    DUE_SOON = "due-soon"


@dataclass
class RotationDueEntry:
    """One portal whose credentials need rotating."""

    portal_id: UUID
    state_code: str
    display_name: str
    next_rotation_due: datetime | None
    credential_expiry_date: datetime | None
    days_overdue: int
    status: RotationDueStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "portal_id": str(self.portal_id),
            "state_code": self.state_code,
            "display_name": self.display_name,
            "next_rotation_due": (
                self.next_rotation_due.isoformat() if self.next_rotation_due else None
            ),
            "credential_expiry_date": (
                self.credential_expiry_date.isoformat() if self.credential_expiry_date else None
            ),
            "days_overdue": self.days_overdue,
            "status": self.status.value,
        }


@dataclass
class RotationResult:
    """Outcome of a successful credential rotation."""

    portal_id: UUID
    state_code: str
    history_id: UUID
    rotated_at: datetime
    next_rotation_due: datetime
    old_credential_hash: str | None
    new_credential_hash: str
    mfa_changed: bool = False
    re_enabled: bool = False
