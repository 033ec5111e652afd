"""Repositories for state portal configuration and rotation history."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import or_, select

from wotc_relay.db.models.portal import CredentialRotationHistory, StatePortalConfig

from .base import BaseRepository


class PortalRepository(BaseRepository[StatePortalConfig, UUID]):
    """Access to StatePortalConfig rows. Portals are never deleted."""

    async def get_by_state(self, state_code: str) -> StatePortalConfig | None:
        """Get the portal configured for a state."""
        stmt = select(StatePortalConfig).where(
            StatePortalConfig.state_code == state_code.upper()
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_rotation_candidates(self, now: datetime) -> list[StatePortalConfig]:
        """Portals holding credentials whose expiry or rotation date has passed."""
        stmt = (
            select(StatePortalConfig)
            .where(StatePortalConfig.encrypted_credentials.is_not(None))
            .where(
                or_(
                    StatePortalConfig.credential_expiry_date < now,
                    StatePortalConfig.next_rotation_due < now,
                )
            )
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())


class RotationHistoryRepository(BaseRepository[CredentialRotationHistory, UUID]):
    """Append-only access to credential rotation history."""

    async def add(self, entry: CredentialRotationHistory) -> CredentialRotationHistory:
        """Stage a history row in the current transaction."""
        return await self.create(entry, commit=False)

    async def list_for_portal(
        self, portal_id: UUID, *, limit: int = 50
    ) -> list[CredentialRotationHistory]:
        """Rotation history for a portal, newest first."""
        stmt = (
            select(CredentialRotationHistory)
            .where(CredentialRotationHistory.portal_id == portal_id)
            .order_by(
                CredentialRotationHistory.rotated_at.desc(),
                CredentialRotationHistory.history_id.desc(),
            )
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
