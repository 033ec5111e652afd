"""Repository for submission jobs."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, exists, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased

from wotc_relay.db.models.base import utc_now
from wotc_relay.db.models.submission import CLAIMABLE_STATUSES, JobStatus, SubmissionJob

from .base import BaseRepository


class SubmissionJobRepository(BaseRepository[SubmissionJob, UUID]):
    """Persistence for SubmissionJob, including the atomic claim."""

    async def list_due(self, now: datetime, *, limit: int = 100) -> list[SubmissionJob]:
        """Jobs ready to dispatch: pending, or retrying with a passed backoff."""
        stmt = (
            select(SubmissionJob)
            .where(
                or_(
                    SubmissionJob.status == JobStatus.PENDING.value,
                    and_(
                        SubmissionJob.status == JobStatus.RETRYING.value,
                        or_(
                            SubmissionJob.next_attempt_at.is_(None),
                            SubmissionJob.next_attempt_at <= now,
                        ),
                    ),
                )
            )
            .order_by(SubmissionJob.created_at, SubmissionJob.job_id)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def claim(self, job_id: UUID) -> bool:
        """Atomically move a claimable job to processing.

        The update matches only while the job is still claimable and no other
        job of its (employer, state) pair is processing. The partial unique
        index ``uq_job_pair_processing`` rejects the loser when two
        dispatchers claim different jobs of one pair at the same instant.
        Commits on success.

        Returns:
            True if this caller claimed the job
        """
        now = utc_now()
        busy = aliased(SubmissionJob)
        pair_busy = exists().where(
            busy.employer_id == SubmissionJob.employer_id,
            busy.state_code == SubmissionJob.state_code,
            busy.status == JobStatus.PROCESSING.value,
        )
        stmt = (
            update(SubmissionJob)
            .where(SubmissionJob.job_id == job_id)
            .where(SubmissionJob.status.in_(CLAIMABLE_STATUSES))
            .where(~pair_busy)
            .values(
                status=JobStatus.PROCESSING.value,
                attempt_count=SubmissionJob.attempt_count + 1,
                started_at=now,
                next_attempt_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return False
        return result.rowcount == 1

    async def list_stale(self, started_before: datetime, *, limit: int = 100) -> list[SubmissionJob]:
        """Processing jobs whose attempt started before ``started_before``."""
        stmt = (
            select(SubmissionJob)
            .where(
                SubmissionJob.status == JobStatus.PROCESSING.value,
                or_(
                    SubmissionJob.started_at.is_(None),
                    SubmissionJob.started_at < started_before,
                ),
            )
            .order_by(SubmissionJob.started_at, SubmissionJob.job_id)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def release_stale(self, job_id: UUID, started_before: datetime) -> bool:
        """Take an abandoned processing job back from its lost dispatcher.

        Only one caller wins; the job moves to retrying and the caller then
        applies the retry or failure policy to it.
        """
        stmt = (
            update(SubmissionJob)
            .where(SubmissionJob.job_id == job_id)
            .where(SubmissionJob.status == JobStatus.PROCESSING.value)
            .where(
                or_(
                    SubmissionJob.started_at.is_(None),
                    SubmissionJob.started_at < started_before,
                )
            )
            .values(status=JobStatus.RETRYING.value, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def count_processing(self, employer_id: UUID, state_code: str) -> int:
        """Number of jobs currently processing for an (employer, state) pair."""
        stmt = select(SubmissionJob.job_id).where(
            SubmissionJob.employer_id == employer_id,
            SubmissionJob.state_code == state_code,
            SubmissionJob.status == JobStatus.PROCESSING.value,
        )
        result = await self.db.execute(stmt)
        return len(result.scalars().all())

    async def search(
        self,
        *,
        employer_id: UUID | None = None,
        state_code: str | None = None,
        status: JobStatus | str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[SubmissionJob]:
        """Filtered job listing, newest first."""
        if isinstance(status, JobStatus):
            status = status.value

        stmt = select(SubmissionJob).order_by(
            SubmissionJob.created_at.desc(), SubmissionJob.job_id.desc()
        )
        if employer_id is not None:
            stmt = stmt.where(SubmissionJob.employer_id == employer_id)
        if state_code is not None:
            stmt = stmt.where(SubmissionJob.state_code == state_code.upper())
        if status is not None:
            stmt = stmt.where(SubmissionJob.status == status)

        result = await self.db.execute(stmt.limit(limit).offset(offset))
        return list(result.scalars().all())
