"""Login-only credential checks against a state portal."""

import asyncio

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from wotc_relay.core.encryption import Encryptor
from wotc_relay.db.models.audit import AuditEventType, AuditSeverity
from wotc_relay.vault.vault import CredentialVault

from .registry import ChannelRegistry
from .types import CredentialTestResult, ErrorKind

logger = structlog.get_logger()


async def verify_portal_credentials(
    session: AsyncSession,
    channels: ChannelRegistry,
    state_code: str,
    *,
    actor: str,
    timeout: float,
    encryptor: Encryptor | None = None,
) -> CredentialTestResult:
    """Log in to a state's portal with its stored credentials.

    Nothing is transmitted. The result is audited either way.

    Raises:
        PortalNotFoundError: No portal configured for the state.
        PortalDisabledError: The portal is disabled.
        VaultIntegrityError: Sealed secrets failed to open.
        ChannelNotRegisteredError: No adapter for the portal's channel.
    """
    vault = CredentialVault(session, encryptor)
    portal_row = await vault.get_portal_by_state(state_code.strip().upper())
    adapter = channels.resolve(portal_row.channel_type)
    portal = await vault.open_portal(portal_row, actor=actor)

    try:
        result = await asyncio.wait_for(adapter.test_credentials(portal), timeout=timeout)
    except TimeoutError:
        result = CredentialTestResult(
            success=False,
            error_kind=ErrorKind.TRANSIENT,
            detail=f"Credential test timed out after {timeout}s",
        )

    await vault.audit.log_event(
        AuditEventType.CREDENTIAL_TESTED,
        {
            "state_code": portal_row.state_code,
            "success": result.success,
            "error_kind": result.error_kind.value if result.error_kind else None,
        },
        actor=actor,
        resource_type="portal",
        resource_id=portal_row.portal_id,
        severity=AuditSeverity.INFO if result.success else AuditSeverity.WARNING,
    )
    await session.commit()

    logger.info(
        "portal_credentials_tested",
        state_code=portal_row.state_code,
        success=result.success,
        error_kind=result.error_kind.value if result.error_kind else None,
    )
    return result
