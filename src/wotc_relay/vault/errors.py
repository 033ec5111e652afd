"""Credential vault exceptions."""

from uuid import UUID

from wotc_relay.core.encryption import DecryptionError
from wotc_relay.utils.exceptions import NotFoundError, ValidationError, WotcRelayError


class VaultIntegrityError(DecryptionError):
    """A stored secret failed to open.

    Raised for a bad envelope prefix, bad base64, a truncated blob or an
    authentication failure. Never carries any part of the plaintext.

    Attributes:
        field: Name of the sealed field that failed
    """

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field

    def __str__(self) -> str:
        if self.field:
            return f"{self.args[0]} (field: {self.field})"
        return self.args[0]


class CredentialValidationError(ValidationError):
    """New credentials were rejected before anything was persisted.

    Attributes:
        field: The offending input field (user_id or password)
    """

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class ScheduleValidationError(ValidationError):
    """A rotation schedule change was rejected."""

    pass


class RotationInProgressError(WotcRelayError):
    """Another rotation for the same portal is still running."""

    def __init__(self, portal_id: UUID):
        super().__init__(f"Credential rotation already in progress for portal {portal_id}")
        self.portal_id = portal_id


class PortalDisabledError(WotcRelayError):
    """Portal secrets are unusable until credentials are re-entered."""

    def __init__(self, portal_id: UUID, reason: str | None = None):
        super().__init__(f"Portal {portal_id} is disabled: {reason or 'no reason recorded'}")
        self.portal_id = portal_id
        self.reason = reason


class PortalNotFoundError(NotFoundError):
    """No portal is configured for the given id or state."""

    def __init__(self, identifier: object):
        super().__init__("StatePortalConfig", identifier)
