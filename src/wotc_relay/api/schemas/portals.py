"""Portal credential management schemas.

Responses carry hashes and schedule dates only. No schema here has a field
for decrypted material or ciphertext.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, SecretStr

from wotc_relay.db.models.portal import CredentialRotationHistory, RotationType
from wotc_relay.vault.types import RotationDueEntry, RotationResult


class CredentialTestRequest(BaseModel):
    state_code: str = Field(..., min_length=2, max_length=2)


class CredentialTestResponse(BaseModel):
    state_code: str
    success: bool
    error_kind: str | None = None
    detail: str | None = None


class RotateCredentialsRequest(BaseModel):
    """New credentials for a portal. Validated by the vault before any write."""

    user_id: str
    password: SecretStr
    reason: str | None = None
    rotation_type: RotationType = RotationType.MANUAL


class RotationResponse(BaseModel):
    portal_id: UUID
    state_code: str
    history_id: UUID
    rotated_at: datetime
    next_rotation_due: datetime
    mfa_changed: bool
    re_enabled: bool

    @classmethod
    def from_result(cls, result: RotationResult) -> "RotationResponse":
        return cls(
            portal_id=result.portal_id,
            state_code=result.state_code,
            history_id=result.history_id,
            rotated_at=result.rotated_at,
            next_rotation_due=result.next_rotation_due,
            mfa_changed=result.mfa_changed,
            re_enabled=result.re_enabled,
        )


class RotationScheduleRequest(BaseModel):
    frequency_days: int
    credential_expiry_date: datetime | None = None


class RotationScheduleResponse(BaseModel):
    portal_id: UUID
    state_code: str
    rotation_frequency_days: int
    next_rotation_due: datetime | None
    credential_expiry_date: datetime | None


class RotationDueResponse(BaseModel):
    portal_id: UUID
    state_code: str
    display_name: str
    next_rotation_due: datetime | None
    credential_expiry_date: datetime | None
    days_overdue: int
    status: str

    @classmethod
    def from_entry(cls, entry: RotationDueEntry) -> "RotationDueResponse":
        return cls(
            portal_id=entry.portal_id,
            state_code=entry.state_code,
            display_name=entry.display_name,
            next_rotation_due=entry.next_rotation_due,
            credential_expiry_date=entry.credential_expiry_date,
            days_overdue=entry.days_overdue,
            status=entry.status.value,
        )


class RotationHistoryResponse(BaseModel):
    history_id: UUID
    portal_id: UUID
    rotated_by: str
    rotation_type: str
    reason: str | None
    old_credential_hash: str | None
    new_credential_hash: str
    mfa_changed: bool
    rotated_at: datetime

    @classmethod
    def from_row(cls, row: CredentialRotationHistory) -> "RotationHistoryResponse":
        return cls(
            history_id=row.history_id,
            portal_id=row.portal_id,
            rotated_by=row.rotated_by,
            rotation_type=row.rotation_type,
            reason=row.reason,
            old_credential_hash=row.old_credential_hash,
            new_credential_hash=row.new_credential_hash,
            mfa_changed=row.mfa_changed,
            rotated_at=row.rotated_at,
        )
