"""Submission job orchestrator.

Creates jobs, dispatches due jobs to channel adapters and drives each job
through its state machine:

    pending -> processing -> {succeeded | retrying -> processing | failed}

Every transition is audited. Only transient channel failures and adapter
timeouts are retried; everything else fails the job immediately.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wotc_relay.channels.registry import ChannelRegistry
from wotc_relay.channels.types import ChannelNotRegisteredError, ErrorKind, SubmissionOutcome
from wotc_relay.collaborators import EmployerDirectory, ScreeningSource
from wotc_relay.config.channels import StateChannelConfig
from wotc_relay.config.settings import OrchestratorConfig, get_settings
from wotc_relay.core.audit import AuditLogger
from wotc_relay.core.encryption import Encryptor
from wotc_relay.db.models.audit import AuditEventType, AuditSeverity
from wotc_relay.db.models.base import utc_now
from wotc_relay.db.models.portal import ChannelType
from wotc_relay.db.models.submission import JobStatus, SubmissionJob
from wotc_relay.db.repositories.portal import PortalRepository
from wotc_relay.db.repositories.submission import SubmissionJobRepository
from wotc_relay.formatting.errors import RecordFormatError
from wotc_relay.formatting.formatter import format_records
from wotc_relay.formatting.types import EmployerProfile, FormatOptions, NothingToSend
from wotc_relay.notifications.events import SubmissionFailedEvent, SubmissionSucceededEvent
from wotc_relay.notifications.publisher import NotificationPublisher
from wotc_relay.observability.metrics import (
    SUBMISSIONS_IN_PROGRESS,
    record_job_conflict,
    record_job_retry,
    record_job_terminal,
    record_notification_failure,
)
from wotc_relay.utils.exceptions import NotFoundError, ValidationError
from wotc_relay.vault.errors import PortalDisabledError, VaultIntegrityError
from wotc_relay.vault.vault import CredentialVault

from .batching import plan_batches
from .locks import PairLease, PairLockManager
from .types import (
    VAULT_ERROR_KIND,
    ConcurrencyConflictError,
    DispatchReport,
    JobNotFoundError,
    JobNotRetryableError,
)

logger = structlog.get_logger()

RESOURCE_TYPE = "submission_job"


class SubmissionOrchestrator:
    """Creates and runs submission jobs.

    Each claimed job runs in its own asyncio task, bounded by
    ``max_concurrent_jobs``. At most one job per (employer, state) pair
    runs at a time, across processes too since the claim itself is
    pair-exclusive; a job whose pair is busy stays where it is and is
    reported as a conflict.

    Usage:
        orchestrator = SubmissionOrchestrator(
            session_factory,
            screening_source=source,
            employer_directory=directory,
            channels=create_default_registry(),
            notifier=create_publisher(),
        )
        job = await orchestrator.create_job(employer_id, "TX")
        await orchestrator.start()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        screening_source: ScreeningSource,
        employer_directory: EmployerDirectory,
        channels: ChannelRegistry,
        notifier: NotificationPublisher,
        locks: PairLockManager | None = None,
        config: OrchestratorConfig | None = None,
        encryptor: Encryptor | None = None,
        admin_email: str | None = None,
        consultant_ein: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        settings = get_settings()
        self._session_factory = session_factory
        self._screenings = screening_source
        self._employers = employer_directory
        self._channels = channels
        self._notifier = notifier
        self._locks = locks or PairLockManager()
        self.config = config or settings.orchestrator
        self._encryptor = encryptor
        self._admin_email = admin_email or settings.PLATFORM_ADMIN_EMAIL
        self._consultant_ein = consultant_ein or settings.TEXAS_CONSULTANT_EIN
        self._clock = clock

        self._semaphore = asyncio.Semaphore(self.config.max_concurrent_jobs)
        self._tasks: set[asyncio.Task[None]] = set()
        self._running: set[UUID] = set()
        self._loop_task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    # ----------------------------------------------------------------
    # Job creation and queries
    # ----------------------------------------------------------------

    async def create_job(
        self,
        employer_id: UUID,
        state_code: str,
        screening_ids: list[str] | None = None,
        *,
        actor: str = "system",
        retry_of: UUID | None = None,
    ) -> SubmissionJob:
        """Persist a pending job and return it without contacting any agency.

        When ``screening_ids`` is omitted the job covers every certified,
        unsubmitted screening for the pair at creation time.

        Raises:
            ValidationError: If the state code is malformed.
        """
        code = state_code.strip().upper()
        if len(code) != 2 or not code.isalpha():
            raise ValidationError(f"Invalid state code: {state_code!r}")

        if screening_ids is None:
            records = await self._screenings.list_certified(employer_id, code)
            screening_ids = [r.screening_id for r in records]

        async with self._session_factory() as session:
            job = SubmissionJob(
                employer_id=employer_id,
                state_code=code,
                status=JobStatus.PENDING.value,
                record_count=len(screening_ids),
                attempt_count=0,
                max_attempts=self.config.max_attempts,
                screening_ids=list(screening_ids),
            )
            session.add(job)
            await session.flush()

            event_data = {
                "employer_id": str(employer_id),
                "state_code": code,
                "record_count": job.record_count,
                "to_status": JobStatus.PENDING.value,
            }
            if retry_of is not None:
                event_data["retry_of"] = str(retry_of)
            await AuditLogger(session).log_event(
                AuditEventType.SUBMISSION_CREATED,
                event_data,
                actor=actor,
                resource_type=RESOURCE_TYPE,
                resource_id=job.job_id,
                correlation_id=retry_of or job.job_id,
            )
            await session.commit()

        logger.info(
            "submission_job_created",
            job_id=str(job.job_id),
            employer_id=str(employer_id),
            state_code=code,
            record_count=job.record_count,
        )
        return job

    async def get_job(self, job_id: UUID) -> SubmissionJob:
        async with self._session_factory() as session:
            job = await SubmissionJobRepository(session).get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job

    async def list_jobs(
        self,
        *,
        employer_id: UUID | None = None,
        state_code: str | None = None,
        status: JobStatus | str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[SubmissionJob]:
        async with self._session_factory() as session:
            return await SubmissionJobRepository(session).search(
                employer_id=employer_id,
                state_code=state_code,
                status=status,
                limit=limit,
                offset=offset,
            )

    async def retry_failed_job(self, job_id: UUID, *, actor: str = "system") -> SubmissionJob:
        """Create a fresh job for the same pair and screenings as a failed job.

        The failed job is left untouched.

        Raises:
            JobNotFoundError: Unknown job id.
            JobNotRetryableError: The job has not failed.
        """
        original = await self.get_job(job_id)
        if original.status != JobStatus.FAILED.value:
            raise JobNotRetryableError(job_id, original.status)

        return await self.create_job(
            original.employer_id,
            original.state_code,
            list(original.screening_ids) or None,
            actor=actor,
            retry_of=original.job_id,
        )

    async def enqueue_ready(self, employer_id: UUID, *, actor: str = "system") -> list[SubmissionJob]:
        """Plan batches for an employer's ready screenings and create one job each."""
        ready = await self._screenings.list_ready(employer_id)
        if not ready:
            return []

        async with self._session_factory() as session:
            portals = PortalRepository(session)
            sizes: dict[str, int] = {}
            for state_code in {s.state_code.upper() for s in ready}:
                portal = await portals.get_by_state(state_code)
                if portal is not None:
                    config = StateChannelConfig.model_validate(portal.channel_config or {})
                    sizes[state_code] = config.max_batch_size

        jobs = []
        for batch in plan_batches(ready, state_batch_sizes=sizes):
            jobs.append(
                await self.create_job(
                    batch.employer_id, batch.state_code, list(batch.screening_ids), actor=actor
                )
            )
        return jobs

    # ----------------------------------------------------------------
    # Dispatch
    # ----------------------------------------------------------------

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    async def run_pending_jobs(self) -> DispatchReport:
        """One dispatch pass over the due jobs.

        Recovers abandoned processing jobs first, then claims as many due
        jobs as there is free capacity and starts a task for each. Returns
        without waiting for the tasks.
        """
        report = DispatchReport()
        async with self._session_factory() as session:
            repo = SubmissionJobRepository(session)
            report.recovered = await self._recover_stale(session)
            due = [
                (job.job_id, job.employer_id, job.state_code, job.status)
                for job in await repo.list_due(self._clock())
            ]

            for job_id, employer_id, state_code, status in due:
                if self.active_jobs >= self.config.max_concurrent_jobs:
                    report.skipped.append(job_id)
                    continue

                lease = await self._locks.acquire(employer_id, state_code)
                if lease is not None and await repo.claim(job_id):
                    report.claimed.append(job_id)
                    self._spawn(job_id, lease)
                    continue

                if lease is not None:
                    await self._locks.release(lease)
                if lease is None or await repo.count_processing(employer_id, state_code):
                    await self._report_conflict(session, job_id, employer_id, state_code, status)
                    report.conflicts.append(job_id)
                else:
                    report.skipped.append(job_id)

        if report.claimed or report.conflicts or report.recovered:
            logger.info(
                "dispatch_pass_complete",
                claimed=len(report.claimed),
                conflicts=len(report.conflicts),
                skipped=len(report.skipped),
                recovered=len(report.recovered),
            )
        return report

    async def _recover_stale(self, session: AsyncSession) -> list[UUID]:
        """Apply the transient retry policy to processing jobs nobody is running.

        A job is abandoned when its attempt started longer ago than the
        adapter timeout plus ``stale_job_grace_seconds`` and no task in this
        process is running it.
        """
        repo = SubmissionJobRepository(session)
        cutoff = self._clock() - timedelta(
            seconds=self.config.adapter_timeout_seconds + self.config.stale_job_grace_seconds
        )
        recovered: list[UUID] = []
        for job in await repo.list_stale(cutoff):
            if job.job_id in self._running or not await repo.release_stale(job.job_id, cutoff):
                continue

            started = job.started_at.isoformat() if job.started_at else "unknown"
            detail = f"Attempt abandoned by its dispatcher (processing since {started})"
            logger.warning(
                "stale_job_recovered",
                job_id=str(job.job_id),
                state_code=job.state_code,
                attempt=job.attempt_count,
            )
            if job.attempt_count < job.max_attempts:
                await self._schedule_retry(session, job, ErrorKind.TRANSIENT, detail)
            else:
                await self._fail(session, job, ErrorKind.TRANSIENT.value, detail)
            recovered.append(job.job_id)
        return recovered

    async def _report_conflict(
        self,
        session: AsyncSession,
        job_id: UUID,
        employer_id: UUID,
        state_code: str,
        status: str,
    ) -> None:
        conflict = ConcurrencyConflictError(employer_id, state_code)
        await AuditLogger(session).log_event(
            AuditEventType.SUBMISSION_CONFLICT,
            {
                "employer_id": str(employer_id),
                "state_code": state_code,
                "status": status,
                "reason": str(conflict),
            },
            resource_type=RESOURCE_TYPE,
            resource_id=job_id,
            severity=AuditSeverity.WARNING,
        )
        await session.commit()
        record_job_conflict(state_code)
        logger.info(
            "submission_conflict",
            job_id=str(job_id),
            employer_id=str(employer_id),
            state_code=state_code,
            reason=str(conflict),
        )

    def _spawn(self, job_id: UUID, lease: PairLease) -> None:
        self._running.add(job_id)
        task = asyncio.create_task(self._run_claimed(job_id, lease), name=f"submission-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_claimed(self, job_id: UUID, lease: PairLease) -> None:
        try:
            async with self._semaphore:
                SUBMISSIONS_IN_PROGRESS.inc()
                try:
                    await self.process_job(job_id)
                finally:
                    SUBMISSIONS_IN_PROGRESS.dec()
        except Exception:
            logger.exception("submission_task_crashed", job_id=str(job_id))
        finally:
            self._running.discard(job_id)
            await self._locks.release(lease)

    async def join(self) -> None:
        """Wait for every running job task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def start(self) -> None:
        """Start the polling dispatch loop."""
        if self._loop_task is not None and not self._loop_task.done():
            return
        self._stopping.clear()
        self._loop_task = asyncio.create_task(self._poll_loop(), name="submission-dispatch")
        logger.info("dispatch_loop_started", poll_interval=self.config.poll_interval_seconds)

    async def stop(self) -> None:
        """Stop polling and wait for in-flight jobs."""
        self._stopping.set()
        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None
        await self.join()
        logger.info("dispatch_loop_stopped")

    async def _poll_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_pending_jobs()
            except Exception:
                logger.exception("dispatch_pass_failed")
            try:
                await asyncio.wait_for(
                    self._stopping.wait(), timeout=self.config.poll_interval_seconds
                )
            except TimeoutError:
                continue

    # ----------------------------------------------------------------
    # Processing
    # ----------------------------------------------------------------

    async def process_job(self, job_id: UUID) -> SubmissionJob:
        """Run one attempt of a claimed (processing) job to its next status."""
        async with self._session_factory() as session:
            job = await SubmissionJobRepository(session).get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            await session.refresh(job)
            if job.status != JobStatus.PROCESSING.value:
                logger.warning("process_job_not_claimed", job_id=str(job_id), status=job.status)
                return job

            with structlog.contextvars.bound_contextvars(
                job_id=str(job.job_id), state_code=job.state_code
            ):
                from_status = (
                    JobStatus.PENDING.value if job.attempt_count <= 1 else JobStatus.RETRYING.value
                )
                await self._audit_transition(
                    session, job, AuditEventType.SUBMISSION_PROCESSING, from_status
                )
                await session.commit()

                await self._attempt(session, job)
            return job

    async def _attempt(self, session: AsyncSession, job: SubmissionJob) -> None:
        try:
            employer = await self._employers.get_employer(job.employer_id)
            records = await self._screenings.list_certified(job.employer_id, job.state_code)
            if job.screening_ids:
                wanted = set(job.screening_ids)
                records = [r for r in records if r.screening_id in wanted]

            vault = CredentialVault(session, self._encryptor)
            portal_row = await vault.portals.get_by_state(job.state_code)
            if portal_row is None:
                await self._fail(
                    session,
                    job,
                    ErrorKind.STRUCTURAL.value,
                    f"No portal configured for {job.state_code}",
                )
                return
            channel_type = ChannelType(portal_row.channel_type)
            channel_config = StateChannelConfig.model_validate(portal_row.channel_config or {})

            payload = format_records(
                channel_type,
                job.state_code,
                records,
                FormatOptions(
                    employer=employer,
                    channel_config=channel_config,
                    consultant_ein=channel_config.consultant_ein or self._consultant_ein,
                ),
            )
            if isinstance(payload, NothingToSend):
                await self._succeed(session, job, employer, None, 0, [])
                return

            adapter = self._channels.resolve(channel_type)
            portal = await vault.open_portal(portal_row)
        except (VaultIntegrityError, PortalDisabledError) as exc:
            await self._fail(session, job, VAULT_ERROR_KIND, str(exc))
            return
        except RecordFormatError as exc:
            await self._fail(session, job, ErrorKind.REJECTED.value, str(exc))
            return
        except (NotFoundError, ValidationError, ChannelNotRegisteredError) as exc:
            await self._fail(session, job, ErrorKind.STRUCTURAL.value, str(exc))
            return
        except Exception as exc:
            logger.exception("submission_preparation_failed")
            await session.rollback()
            await session.refresh(job)
            await self._fail(
                session, job, ErrorKind.UNEXPECTED.value, f"{type(exc).__name__}: {exc}"
            )
            return

        job.payload_digest = payload.digest
        try:
            outcome = await asyncio.wait_for(
                adapter.submit(portal, payload), timeout=self.config.adapter_timeout_seconds
            )
        except TimeoutError:
            outcome = SubmissionOutcome.failed(
                ErrorKind.TRANSIENT,
                f"Adapter timed out after {self.config.adapter_timeout_seconds}s",
            )
        except Exception as exc:
            logger.exception("adapter_raised", channel=channel_type.value)
            outcome = SubmissionOutcome.failed(
                ErrorKind.UNEXPECTED, f"{type(exc).__name__}: {exc}"
            )

        if outcome.success:
            await self._succeed(
                session,
                job,
                employer,
                outcome.confirmation_number,
                outcome.records_submitted or payload.record_count,
                [r.screening_id for r in records],
            )
            return

        kind = outcome.error_kind or ErrorKind.UNEXPECTED
        detail = outcome.error_detail or "submission failed"
        if kind.is_retryable and job.attempt_count < job.max_attempts:
            await self._schedule_retry(session, job, kind, detail)
        else:
            await self._fail(session, job, kind.value, detail)

    async def _succeed(
        self,
        session: AsyncSession,
        job: SubmissionJob,
        employer: EmployerProfile,
        confirmation_number: str | None,
        record_count: int,
        screening_ids: list[str],
    ) -> None:
        now = self._clock()
        job.status = JobStatus.SUCCEEDED.value
        job.confirmation_number = confirmation_number
        job.record_count = record_count
        job.completed_at = now
        job.last_error = None
        job.error_kind = None
        await self._audit_transition(
            session,
            job,
            AuditEventType.SUBMISSION_SUCCEEDED,
            JobStatus.PROCESSING.value,
            confirmation_number=confirmation_number,
            record_count=record_count,
        )
        await session.commit()
        record_job_terminal(job.state_code, job.status)
        logger.info(
            "submission_succeeded",
            attempt=job.attempt_count,
            record_count=record_count,
            confirmation_number=confirmation_number,
        )

        if not screening_ids:
            return

        try:
            await self._screenings.mark_submitted(screening_ids, job.job_id, confirmation_number)
        except Exception:
            logger.exception("mark_submitted_failed", screening_count=len(screening_ids))

        await self._notify_success(
            SubmissionSucceededEvent(
                employer_name=employer.name,
                employer_email=employer.email,
                state_code=job.state_code,
                record_count=record_count,
                confirmation_number=confirmation_number,
                submitted_at=now,
            )
        )

    async def _schedule_retry(
        self, session: AsyncSession, job: SubmissionJob, kind: ErrorKind, detail: str
    ) -> None:
        delay = self.config.retry_base_delay_seconds * 2 ** (job.attempt_count - 1)
        job.status = JobStatus.RETRYING.value
        job.next_attempt_at = self._clock() + timedelta(seconds=delay)
        job.last_error = detail
        job.error_kind = kind.value
        await self._audit_transition(
            session,
            job,
            AuditEventType.SUBMISSION_RETRYING,
            JobStatus.PROCESSING.value,
            error_kind=kind.value,
            error=detail,
            next_attempt_at=job.next_attempt_at.isoformat(),
        )
        await session.commit()
        record_job_retry(job.state_code)
        logger.warning(
            "submission_retry_scheduled",
            attempt=job.attempt_count,
            max_attempts=job.max_attempts,
            delay_seconds=delay,
            error_kind=kind.value,
            error=detail,
        )

    async def _fail(self, session: AsyncSession, job: SubmissionJob, kind: str, detail: str) -> None:
        fatal = kind != ErrorKind.TRANSIENT.value
        rotation_needed = kind in (ErrorKind.AUTH.value, VAULT_ERROR_KIND)

        job.status = JobStatus.FAILED.value
        job.completed_at = self._clock()
        job.last_error = detail
        job.error_kind = kind
        await self._audit_transition(
            session,
            job,
            AuditEventType.SUBMISSION_FAILED,
            JobStatus.PROCESSING.value,
            severity=AuditSeverity.ERROR,
            error_kind=kind,
            error=detail,
            fatal=fatal,
            rotation_needed=rotation_needed,
        )
        await session.commit()
        record_job_terminal(job.state_code, job.status)
        logger.error(
            "submission_failed",
            attempt=job.attempt_count,
            error_kind=kind,
            error=detail,
            fatal=fatal,
            rotation_needed=rotation_needed,
        )

        try:
            employer_name = (await self._employers.get_employer(job.employer_id)).name
        except NotFoundError:
            employer_name = str(job.employer_id)

        await self._notify_failure(
            SubmissionFailedEvent(
                employer_name=employer_name,
                admin_email=self._admin_email,
                state_code=job.state_code,
                record_count=job.record_count,
                error_message=detail,
                job_id=job.job_id,
                retry_count=job.attempt_count,
                error_kind=kind,
                fatal=fatal,
                rotation_needed=rotation_needed,
            )
        )

    async def _audit_transition(
        self,
        session: AsyncSession,
        job: SubmissionJob,
        event_type: AuditEventType,
        from_status: str,
        *,
        severity: AuditSeverity = AuditSeverity.INFO,
        **details,
    ) -> None:
        await AuditLogger(session).log_event(
            event_type,
            {
                "from_status": from_status,
                "to_status": job.status,
                "attempt_count": job.attempt_count,
                "state_code": job.state_code,
                **details,
            },
            resource_type=RESOURCE_TYPE,
            resource_id=job.job_id,
            correlation_id=job.job_id,
            severity=severity,
        )

    async def _notify_success(self, event: SubmissionSucceededEvent) -> None:
        try:
            await self._notifier.publish_success(event)
        except Exception:
            record_notification_failure(event.event)
            logger.exception("notification_failed", notification_event=event.event)

    async def _notify_failure(self, event: SubmissionFailedEvent) -> None:
        try:
            await self._notifier.publish_failure(event)
        except Exception:
            record_notification_failure(event.event)
            logger.exception("notification_failed", notification_event=event.event)
