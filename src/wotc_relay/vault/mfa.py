"""MFA helpers for portal automation.

TOTP codes are generated from the decrypted portal secret with pyotp. SMS
and email factors need a human in the loop, so they resolve to None and the
adapter reports an MFA failure.
"""

import hashlib
import secrets
from datetime import datetime

import pyotp
import structlog

from wotc_relay.db.models.portal import MfaType

from .types import ChallengeQuestion, DecryptedPortal

logger = structlog.get_logger()

TOTP_DIGITS = 6
TOTP_INTERVAL = 30


def _totp(secret: str) -> pyotp.TOTP:
    return pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL, digest=hashlib.sha1)


def generate_totp(secret: str, at: datetime | None = None) -> str:
    """Current (or point-in-time) 6-digit code for a base32 secret."""
    totp = _totp(secret)
    return totp.at(at) if at is not None else totp.now()


def verify_totp(token: str, secret: str, window: int = 1) -> bool:
    """Check a code allowing ``window`` steps of clock drift."""
    return _totp(secret).verify(token, valid_window=window)


def generate_totp_secret() -> str:
    return pyotp.random_base32()


def generate_backup_codes(count: int = 10) -> list[str]:
    """Random 8-character uppercase backup codes."""
    return [secrets.token_hex(4).upper() for _ in range(count)]


def resolve_mfa_code(portal: DecryptedPortal) -> str | None:
    """Code to type into the portal's MFA prompt, or None if unavailable.

    None for SMS/email means manual entry is required.
    """
    if portal.mfa_type is MfaType.TOTP:
        if portal.mfa_secret is None:
            logger.warning("mfa_secret_missing", state_code=portal.state_code)
            return None
        return generate_totp(portal.mfa_secret.get_secret_value())

    if portal.mfa_type in (MfaType.SMS, MfaType.EMAIL):
        logger.warning(
            "mfa_manual_entry_required",
            state_code=portal.state_code,
            mfa_type=portal.mfa_type.value,
        )
    return None


def consume_backup_code(codes: list[str]) -> tuple[str | None, list[str]]:
    """Take the first backup code.

    Returns:
        (code, remaining codes); code is None when none are left
    """
    if not codes:
        return None, []
    return codes[0], list(codes[1:])


def answer_for_question(questions: list[ChallengeQuestion], prompt: str) -> str | None:
    """Find the stored answer for a challenge prompt (case-insensitive)."""
    normalized = " ".join(prompt.split()).lower()
    if not normalized:
        return None
    for item in questions:
        question = " ".join(item.question.split()).lower()
        if question == normalized or question in normalized:
            return item.answer.get_secret_value()
    return None
