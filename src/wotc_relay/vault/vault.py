"""Encrypted credential vault for state portals.

The vault is the only component that sees plaintext portal secrets. It seals
them into StatePortalConfig, opens them for the duration of one adapter call,
and owns credential rotation and its schedule.

Usage:
    vault = CredentialVault(session)

    portal = await vault.get_portal_by_state("TX")
    decrypted = await vault.open_portal(portal, actor="orchestrator")

    result = await vault.rotate(
        portal.portal_id,
        PortalCredentials(user_id="acme-tx", password=SecretStr("n3w-pass")),
        actor="admin@example.com",
        reason="quarterly rotation",
    )
"""

import asyncio
import math
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncSession

from wotc_relay.config.channels import StateChannelConfig
from wotc_relay.config.settings import get_settings
from wotc_relay.core.audit import AuditLogger
from wotc_relay.core.encryption import DecryptionError, Encryptor, fingerprint, get_encryptor
from wotc_relay.db.models.audit import AuditEventType, AuditSeverity
from wotc_relay.db.models.base import utc_now
from wotc_relay.db.models.portal import (
    ChannelType,
    CredentialRotationHistory,
    MfaType,
    PortalStatus,
    RotationType,
    StatePortalConfig,
)
from wotc_relay.db.repositories.portal import PortalRepository, RotationHistoryRepository
from wotc_relay.observability.metrics import record_decrypt_failure, record_rotation

from .errors import (
    CredentialValidationError,
    PortalDisabledError,
    PortalNotFoundError,
    RotationInProgressError,
    ScheduleValidationError,
    VaultIntegrityError,
)
from .types import (
    ChallengeQuestion,
    DecryptedPortal,
    PortalCredentials,
    RotationDueEntry,
    RotationDueStatus,
    RotationResult,
)

logger = structlog.get_logger()

# Sealed field names, bound into each envelope as associated data
FIELD_CREDENTIALS = "credentials"
FIELD_MFA_SECRET = "mfa_secret"
FIELD_BACKUP_CODES = "backup_codes"
FIELD_CHALLENGE_QUESTIONS = "challenge_questions"

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6
MIN_FREQUENCY_DAYS = 1
MAX_FREQUENCY_DAYS = 365
DEFAULT_HISTORY_LIMIT = 50

# Rotation is serialized per portal across all vault instances in the process
_rotation_locks: dict[UUID, asyncio.Lock] = {}


def _rotation_lock(portal_id: UUID) -> asyncio.Lock:
    lock = _rotation_locks.get(portal_id)
    if lock is None:
        lock = asyncio.Lock()
        _rotation_locks[portal_id] = lock
    return lock


def validate_credentials(user_id: str, password: str) -> PortalCredentials:
    """Trim and validate a credential pair.

    Raises:
        CredentialValidationError: If the username is shorter than 3 or the
            password shorter than 6 characters after trimming
    """
    user_id = (user_id or "").strip()
    password = (password or "").strip()
    if len(user_id) < MIN_USERNAME_LENGTH:
        raise CredentialValidationError(
            "user_id", f"Username must be at least {MIN_USERNAME_LENGTH} characters"
        )
    if len(password) < MIN_PASSWORD_LENGTH:
        raise CredentialValidationError(
            "password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    return PortalCredentials(user_id=user_id, password=SecretStr(password))


def credential_hash(credentials: PortalCredentials) -> str:
    """One-way SHA-256 of the canonical credential payload."""
    return fingerprint(credentials.to_payload())


class CredentialVault:
    """Seals, opens and rotates state portal secrets.

    Every mutating operation runs in the given session and either commits as
    one unit (config change + history row + audit event) or rolls back.
    """

    def __init__(self, session: AsyncSession, encryptor: Encryptor | None = None):
        """Initialize the vault.

        Args:
            session: Database session for portal reads and writes
            encryptor: Encryptor to use (defaults to the global one)
        """
        self.session = session
        self._encryptor = encryptor
        self.portals = PortalRepository(session)
        self.history = RotationHistoryRepository(session)
        self.audit = AuditLogger(session)

    @property
    def encryptor(self) -> Encryptor:
        if self._encryptor is None:
            self._encryptor = get_encryptor()
        return self._encryptor

    # ----------------------------------------------------------------
    # Primitives
    # ----------------------------------------------------------------

    def encrypt(self, plaintext: str, *, field: str = FIELD_CREDENTIALS) -> str:
        """Seal a string for storage in ``field``."""
        return self.encryptor.seal(plaintext, field=field)

    def decrypt(self, ciphertext: str, *, field: str = FIELD_CREDENTIALS) -> str:
        """Open a sealed string.

        Raises:
            VaultIntegrityError: If the value was not produced by encrypt()
                for this field under the current master key
        """
        try:
            return self.encryptor.open(ciphertext, field=field)
        except DecryptionError as e:
            raise VaultIntegrityError(str(e), field=field) from e

    def _open_json(self, ciphertext: str, field: str) -> Any:
        try:
            return self.encryptor.open_json(ciphertext, field=field)
        except DecryptionError as e:
            raise VaultIntegrityError(str(e), field=field) from e

    # ----------------------------------------------------------------
    # Portal lookup
    # ----------------------------------------------------------------

    async def get_portal(self, portal_id: UUID) -> StatePortalConfig:
        portal = await self.portals.get(portal_id)
        if portal is None:
            raise PortalNotFoundError(portal_id)
        return portal

    async def get_portal_by_state(self, state_code: str) -> StatePortalConfig:
        portal = await self.portals.get_by_state(state_code)
        if portal is None:
            raise PortalNotFoundError(state_code.upper())
        return portal

    # ----------------------------------------------------------------
    # Sealing and opening
    # ----------------------------------------------------------------

    async def seal_portal_secrets(
        self,
        portal: StatePortalConfig,
        credentials: PortalCredentials,
        *,
        mfa_type: MfaType | None = None,
        mfa_secret: str | None = None,
        backup_codes: Iterable[str] | None = None,
        challenge_questions: Iterable[ChallengeQuestion] | None = None,
        actor: str = "system",
    ) -> StatePortalConfig:
        """Seal onboarding secrets into a portal and flush.

        The caller commits. Used when a portal is first configured; later
        changes go through rotate().
        """
        credentials = validate_credentials(
            credentials.user_id, credentials.password.get_secret_value()
        )
        portal.encrypted_credentials = self.encryptor.seal_json(
            credentials.to_payload(), field=FIELD_CREDENTIALS
        )
        if mfa_type is not None:
            portal.mfa_type = mfa_type.value
        if mfa_secret is not None:
            portal.encrypted_mfa_secret = self.encrypt(mfa_secret, field=FIELD_MFA_SECRET)
        if backup_codes is not None:
            portal.encrypted_backup_codes = self.encryptor.seal_json(
                list(backup_codes), field=FIELD_BACKUP_CODES
            )
        if challenge_questions is not None:
            portal.encrypted_challenge_questions = self.encryptor.seal_json(
                [
                    {"question": q.question, "answer": q.answer.get_secret_value()}
                    for q in challenge_questions
                ],
                field=FIELD_CHALLENGE_QUESTIONS,
            )

        if portal.next_rotation_due is None:
            frequency = (
                portal.rotation_frequency_days or get_settings().DEFAULT_ROTATION_FREQUENCY_DAYS
            )
            portal.next_rotation_due = utc_now() + timedelta(days=frequency)
        portal.status = PortalStatus.ACTIVE.value
        portal.disabled_reason = None

        self.session.add(portal)
        await self.session.flush()
        await self.audit.log_event(
            AuditEventType.CREDENTIALS_SEALED,
            {
                "state_code": portal.state_code,
                "credential_hash": credential_hash(credentials),
                "mfa_type": portal.mfa_type,
            },
            actor=actor,
            resource_type="portal",
            resource_id=portal.portal_id,
        )
        return portal

    async def open_portal(self, portal: StatePortalConfig, *, actor: str = "system") -> DecryptedPortal:
        """Decrypt every secret of a portal for one adapter call.

        On an integrity failure the portal is disabled (and committed) before
        the error propagates, so no further job tries the bad secrets.

        Raises:
            PortalDisabledError: If the portal is already disabled
            VaultIntegrityError: If any stored secret fails to open
        """
        if portal.is_disabled:
            raise PortalDisabledError(portal.portal_id, portal.disabled_reason)
        if portal.encrypted_credentials is None:
            raise PortalDisabledError(portal.portal_id, "no credentials stored")

        try:
            credentials = PortalCredentials.from_payload(
                self._open_json(portal.encrypted_credentials, FIELD_CREDENTIALS)
            )
            mfa_secret = (
                SecretStr(self.decrypt(portal.encrypted_mfa_secret, field=FIELD_MFA_SECRET))
                if portal.encrypted_mfa_secret
                else None
            )
            backup_codes = (
                [
                    SecretStr(code)
                    for code in self._open_json(portal.encrypted_backup_codes, FIELD_BACKUP_CODES)
                ]
                if portal.encrypted_backup_codes
                else []
            )
            challenge_questions = (
                [
                    ChallengeQuestion(question=item["question"], answer=SecretStr(item["answer"]))
                    for item in self._open_json(
                        portal.encrypted_challenge_questions, FIELD_CHALLENGE_QUESTIONS
                    )
                ]
                if portal.encrypted_challenge_questions
                else []
            )
        except VaultIntegrityError as e:
            await self._disable_portal(portal, e, actor=actor)
            raise
        except (KeyError, TypeError) as e:
            error = VaultIntegrityError(f"Malformed sealed payload: {type(e).__name__}")
            await self._disable_portal(portal, error, actor=actor)
            raise error from e

        await self.audit.log_event(
            AuditEventType.CREDENTIAL_ACCESSED,
            {"state_code": portal.state_code, "channel_type": portal.channel_type},
            actor=actor,
            resource_type="portal",
            resource_id=portal.portal_id,
        )
        await self.session.commit()

        return DecryptedPortal(
            portal_id=portal.portal_id,
            state_code=portal.state_code,
            display_name=portal.display_name,
            channel_type=ChannelType(portal.channel_type),
            portal_url=portal.portal_url,
            credentials=credentials,
            mfa_type=MfaType(portal.mfa_type),
            mfa_secret=mfa_secret,
            backup_codes=backup_codes,
            challenge_questions=challenge_questions,
            channel_config=StateChannelConfig.model_validate(portal.channel_config or {}),
        )

    async def _disable_portal(
        self, portal: StatePortalConfig, error: VaultIntegrityError, *, actor: str
    ) -> None:
        reason = f"Stored secrets failed integrity check: {error}"
        portal.status = PortalStatus.DISABLED.value
        portal.disabled_reason = reason
        await self.audit.log_event(
            AuditEventType.PORTAL_DISABLED,
            {"state_code": portal.state_code, "field": error.field, "reason": reason},
            actor=actor,
            resource_type="portal",
            resource_id=portal.portal_id,
            severity=AuditSeverity.CRITICAL,
        )
        await self.session.commit()
        record_decrypt_failure(portal.state_code)
        logger.error(
            "portal_disabled_integrity_failure",
            portal_id=str(portal.portal_id),
            state_code=portal.state_code,
            field=error.field,
        )

    # ----------------------------------------------------------------
    # Rotation
    # ----------------------------------------------------------------

    async def rotate(
        self,
        portal_id: UUID,
        new_credentials: PortalCredentials,
        *,
        actor: str,
        reason: str | None = None,
        rotation_type: RotationType = RotationType.MANUAL,
        new_mfa_secret: str | None = None,
        now: datetime | None = None,
    ) -> RotationResult:
        """Replace a portal's credentials and reset its rotation schedule.

        Validation happens before any write. The config update, history row
        and audit event commit together or not at all.

        Raises:
            CredentialValidationError: Invalid new credentials
            RotationInProgressError: Another rotation holds this portal
            PortalNotFoundError: Unknown portal
        """
        credentials = validate_credentials(
            new_credentials.user_id, new_credentials.password.get_secret_value()
        )

        lock = _rotation_lock(portal_id)
        if lock.locked():
            raise RotationInProgressError(portal_id)

        async with lock:
            try:
                result = await self._rotate_locked(
                    portal_id,
                    credentials,
                    actor=actor,
                    reason=reason,
                    rotation_type=rotation_type,
                    new_mfa_secret=new_mfa_secret,
                    now=now or utc_now(),
                )
                await self.session.commit()
            except Exception:
                await self.session.rollback()
                raise

        record_rotation(result.state_code, rotation_type.value)
        logger.info(
            "credentials_rotated",
            portal_id=str(portal_id),
            rotation_type=rotation_type.value,
            mfa_changed=result.mfa_changed,
        )
        return result

    async def _rotate_locked(
        self,
        portal_id: UUID,
        credentials: PortalCredentials,
        *,
        actor: str,
        reason: str | None,
        rotation_type: RotationType,
        new_mfa_secret: str | None,
        now: datetime,
    ) -> RotationResult:
        portal = await self.get_portal(portal_id)

        old_hash: str | None = None
        if portal.encrypted_credentials:
            try:
                old_hash = fingerprint(
                    self._open_json(portal.encrypted_credentials, FIELD_CREDENTIALS)
                )
            except VaultIntegrityError:
                logger.warning("rotation_old_credentials_unreadable", portal_id=str(portal_id))
        new_hash = credential_hash(credentials)

        portal.encrypted_credentials = self.encryptor.seal_json(
            credentials.to_payload(), field=FIELD_CREDENTIALS
        )
        next_due = now + timedelta(days=portal.rotation_frequency_days)
        portal.last_rotated_at = now
        portal.next_rotation_due = next_due
        portal.credential_expiry_date = next_due
        portal.rotation_reminder_sent_at = None

        mfa_changed = new_mfa_secret is not None
        if mfa_changed:
            portal.encrypted_mfa_secret = self.encrypt(new_mfa_secret, field=FIELD_MFA_SECRET)

        re_enabled = portal.is_disabled
        portal.status = PortalStatus.ACTIVE.value
        portal.disabled_reason = None

        entry = await self.history.add(
            CredentialRotationHistory(
                portal_id=portal.portal_id,
                rotated_by=actor,
                rotation_type=rotation_type.value,
                reason=reason,
                old_credential_hash=old_hash,
                new_credential_hash=new_hash,
                mfa_changed=mfa_changed,
                rotated_at=now,
            )
        )
        await self.audit.log_event(
            AuditEventType.CREDENTIAL_ROTATED,
            {
                "state_code": portal.state_code,
                "rotation_type": rotation_type.value,
                "reason": reason,
                "history_id": str(entry.history_id),
                "mfa_changed": mfa_changed,
                "re_enabled": re_enabled,
            },
            actor=actor,
            resource_type="portal",
            resource_id=portal.portal_id,
        )
        return RotationResult(
            portal_id=portal.portal_id,
            state_code=portal.state_code,
            history_id=entry.history_id,
            rotated_at=now,
            next_rotation_due=next_due,
            old_credential_hash=old_hash,
            new_credential_hash=new_hash,
            mfa_changed=mfa_changed,
            re_enabled=re_enabled,
        )

    async def set_rotation_schedule(
        self,
        portal_id: UUID,
        frequency_days: int,
        *,
        actor: str,
        credential_expiry_date: datetime | None = None,
    ) -> StatePortalConfig:
        """Change how often a portal's credentials must rotate.

        The next due date is the explicit expiry when given, otherwise the
        last rotation (or creation) plus the new frequency.

        Raises:
            ScheduleValidationError: If frequency is outside 1..365 days
            PortalNotFoundError: Unknown portal
        """
        if not MIN_FREQUENCY_DAYS <= frequency_days <= MAX_FREQUENCY_DAYS:
            raise ScheduleValidationError(
                f"Rotation frequency must be between {MIN_FREQUENCY_DAYS} "
                f"and {MAX_FREQUENCY_DAYS} days"
            )

        if credential_expiry_date is not None and credential_expiry_date.tzinfo is None:
            credential_expiry_date = credential_expiry_date.replace(tzinfo=UTC)

        portal = await self.get_portal(portal_id)
        anchor = portal.last_rotated_at or portal.created_at
        next_due = credential_expiry_date or anchor + timedelta(days=frequency_days)

        portal.rotation_frequency_days = frequency_days
        portal.next_rotation_due = next_due
        portal.credential_expiry_date = credential_expiry_date

        await self.audit.log_event(
            AuditEventType.CREDENTIAL_SCHEDULE_CHANGED,
            {
                "state_code": portal.state_code,
                "frequency_days": frequency_days,
                "next_rotation_due": next_due.isoformat(),
                "explicit_expiry": credential_expiry_date is not None,
            },
            actor=actor,
            resource_type="portal",
            resource_id=portal.portal_id,
        )
        await self.session.commit()
        await self.session.refresh(portal)
        return portal

    async def list_rotation_due(self, now: datetime | None = None) -> list[RotationDueEntry]:
        """Portals with credentials whose expiry or rotation date has passed.

        Sorted by due date, most overdue first.
        """
        now = now or utc_now()
        entries: list[RotationDueEntry] = []
        for portal in await self.portals.list_rotation_candidates(now):
            due = portal.credential_expiry_date or portal.next_rotation_due
            days_overdue = max(0, math.floor((now - due).total_seconds() / 86400))
            entries.append(
                RotationDueEntry(
                    portal_id=portal.portal_id,
                    state_code=portal.state_code,
                    display_name=portal.display_name,
                    next_rotation_due=portal.next_rotation_due,
                    credential_expiry_date=portal.credential_expiry_date,
                    days_overdue=days_overdue,
                    status=(
                        RotationDueStatus.OVERDUE if days_overdue > 0 else RotationDueStatus.DUE_SOON
                    ),
                )
            )
        entries.sort(key=lambda e: e.credential_expiry_date or e.next_rotation_due)
        return entries

    async def rotation_history(
        self, portal_id: UUID, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> list[CredentialRotationHistory]:
        """Rotation history for a portal, newest first."""
        await self.get_portal(portal_id)
        return await self.history.list_for_portal(portal_id, limit=limit)
