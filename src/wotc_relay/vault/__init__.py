"""Encrypted credential vault for state portals."""

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
from .vault import CredentialVault, credential_hash, validate_credentials

__all__ = [
    "CredentialVault",
    "credential_hash",
    "validate_credentials",
    "ChallengeQuestion",
    "DecryptedPortal",
    "PortalCredentials",
    "RotationDueEntry",
    "RotationDueStatus",
    "RotationResult",
    "CredentialValidationError",
    "PortalDisabledError",
    "PortalNotFoundError",
    "RotationInProgressError",
    "ScheduleValidationError",
    "VaultIntegrityError",
]
