"""Repository for agency determinations."""

from uuid import UUID

from sqlalchemy import select

from wotc_relay.db.models.determination import DeterminationRecord

from .base import BaseRepository


class DeterminationRepository(BaseRepository[DeterminationRecord, UUID]):
    """Insert-only access to DeterminationRecord rows."""

    async def latest_for_employee(
        self, employee_id: str, state_code: str
    ) -> DeterminationRecord | None:
        """Most recently captured determination for an employee in a state."""
        stmt = (
            select(DeterminationRecord)
            .where(
                DeterminationRecord.employee_id == employee_id,
                DeterminationRecord.state_code == state_code,
            )
            .order_by(
                DeterminationRecord.captured_at.desc(),
                DeterminationRecord.determination_id.desc(),
            )
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_state(self, state_code: str, *, limit: int = 500) -> list[DeterminationRecord]:
        """Determinations for a state, newest first."""
        stmt = (
            select(DeterminationRecord)
            .where(DeterminationRecord.state_code == state_code)
            .order_by(DeterminationRecord.captured_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
