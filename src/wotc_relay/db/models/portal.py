"""State portal configuration and credential rotation history models."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid7

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, PortableJSON, PortableUUID, TimestampMixin, UTCDateTime, utc_now


class ChannelType(str, Enum):
    """How a state agency accepts submissions."""

    BROWSER = "browser"
    SFTP = "sftp"
    VENDOR_PORTAL = "vendor_portal"


class MfaType(str, Enum):
    """Second factor required by a portal login."""

    TOTP = "totp"
    SMS = "sms"
    EMAIL = "email"
    NONE = "none"


class PortalStatus(str, Enum):
    """Usability of a portal's stored credentials."""

    ACTIVE = "active"
    DISABLED = "disabled"  # secrets unusable until re-entered


class RotationType(str, Enum):
    """Why a credential rotation happened."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"
    SECURITY_INCIDENT = "security_incident"


class StatePortalConfig(TimestampMixin, Base):
    """Submission channel and sealed credentials for one state agency.

    All ``encrypted_*`` columns hold opaque vault envelopes. Rows are never
    deleted; credential changes are recorded in CredentialRotationHistory.
    """

    __tablename__ = "state_portal_configs"

    portal_id: Mapped[UUID] = mapped_column(PortableUUID(), primary_key=True, default=uuid7)
    state_code: Mapped[str] = mapped_column(String(2), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    channel_type: Mapped[str] = mapped_column(String(20), nullable=False)
    portal_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Sealed secrets
    encrypted_credentials: Mapped[str | None] = mapped_column(Text, nullable=True)
    mfa_type: Mapped[str] = mapped_column(String(10), nullable=False, default=MfaType.NONE.value)
    encrypted_mfa_secret: Mapped[str | None] = mapped_column(Text, nullable=True)
    encrypted_backup_codes: Mapped[str | None] = mapped_column(Text, nullable=True)
    encrypted_challenge_questions: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Rotation schedule
    rotation_frequency_days: Mapped[int] = mapped_column(Integer, nullable=False, default=90)
    last_rotated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    next_rotation_due: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    credential_expiry_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    rotation_reminder_sent_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PortalStatus.ACTIVE.value
    )
    disabled_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Tagged per-state configuration (see config.channels.StateChannelConfig)
    channel_config: Mapped[dict] = mapped_column(PortableJSON(), nullable=False, default=dict)

    __table_args__ = (Index("idx_portal_next_rotation", "next_rotation_due"),)

    @property
    def is_disabled(self) -> bool:
        return self.status == PortalStatus.DISABLED.value

    def __repr__(self) -> str:
        return (
            f"<StatePortalConfig(state={self.state_code}, channel={self.channel_type}, "
            f"status={self.status})>"
        )


class CredentialRotationHistory(Base):
    """Immutable record of one credential rotation.

    Stores one-way hashes of the old and new credential material, never the
    material itself.
    """

    __tablename__ = "credential_rotation_history"

    history_id: Mapped[UUID] = mapped_column(PortableUUID(), primary_key=True, default=uuid7)
    portal_id: Mapped[UUID] = mapped_column(
        PortableUUID(), ForeignKey("state_portal_configs.portal_id"), nullable=False
    )
    rotated_by: Mapped[str] = mapped_column(String(255), nullable=False)
    rotation_type: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    old_credential_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    new_credential_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    mfa_changed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    rotated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utc_now, server_default=func.now(), nullable=False
    )

    __table_args__ = (Index("idx_rotation_portal", "portal_id", "rotated_at"),)

    def __repr__(self) -> str:
        return (
            f"<CredentialRotationHistory(portal={self.portal_id}, "
            f"type={self.rotation_type}, at={self.rotated_at})>"
        )
