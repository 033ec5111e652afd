"""Unit tests for the submission orchestrator."""

from datetime import UTC, datetime
from uuid import uuid7

import pytest

from wotc_relay.channels.registry import ChannelRegistry
from wotc_relay.channels.types import ErrorKind, SubmissionOutcome
from wotc_relay.core.audit import AuditLogger
from wotc_relay.db.models.audit import AuditEventType, AuditSeverity
from wotc_relay.db.models.portal import ChannelType, PortalStatus
from wotc_relay.db.models.submission import JobStatus, SubmissionJob
from wotc_relay.db.repositories.portal import PortalRepository
from wotc_relay.db.repositories.submission import SubmissionJobRepository
from wotc_relay.submission.orchestrator import SubmissionOrchestrator
from wotc_relay.submission.types import VAULT_ERROR_KIND, JobNotFoundError, JobNotRetryableError
from wotc_relay.utils.exceptions import ValidationError


class ExplodingAdapter:
    async def submit(self, portal, payload):
        raise RuntimeError("browser crashed")

    async def test_credentials(self, portal):
        raise AssertionError("not used")

    async def capture_determinations(self, portal):
        raise AssertionError("not used")


def build_orchestrator(adapter, *, session_factory, screening_source, employer_directory, notifier, fast_config, encryptor):
    return SubmissionOrchestrator(
        session_factory,
        screening_source=screening_source,
        employer_directory=employer_directory,
        channels=ChannelRegistry({channel: adapter for channel in ChannelType}),
        notifier=notifier,
        config=fast_config,
        encryptor=encryptor,
        admin_email="ops@relay.example",
    )


@pytest.fixture
def seeded(screening_source, employer_id, record_factory):
    """Three certified TX screenings for the test employer."""
    for index in range(1, 4):
        screening_source.add(employer_id, "TX", record_factory(index))
    return screening_source


@pytest.fixture
def orchestrator_with(
    session_factory, screening_source, employer_directory, notifier, fast_config, encryptor
):
    def make(adapter):
        return build_orchestrator(
            adapter,
            session_factory=session_factory,
            screening_source=screening_source,
            employer_directory=employer_directory,
            notifier=notifier,
            fast_config=fast_config,
            encryptor=encryptor,
        )

    return make


LONG_AGO = datetime(2020, 1, 1, tzinfo=UTC)


async def run_once(orchestrator):
    report = await orchestrator.run_pending_jobs()
    await orchestrator.join()
    return report


class TestCreateJob:
    """Tests for job creation."""

    @pytest.mark.asyncio
    async def test_creates_pending_job(self, orchestrator, seeded, employer_id, db_session):
        job = await orchestrator.create_job(employer_id, " tx ", actor="admin@relay.example")

        assert job.status == JobStatus.PENDING.value
        assert job.state_code == "TX"
        assert job.record_count == 3
        assert job.attempt_count == 0
        assert job.screening_ids == ["scr-001", "scr-002", "scr-003"]

        events = await AuditLogger(db_session).query_events(resource_id=job.job_id)
        assert [e.event_type for e in events] == [AuditEventType.SUBMISSION_CREATED.value]
        assert events[0].actor == "admin@relay.example"
        assert events[0].correlation_id == job.job_id

    @pytest.mark.asyncio
    async def test_explicit_screenings(self, orchestrator, seeded, employer_id):
        job = await orchestrator.create_job(employer_id, "TX", ["scr-002"])

        assert job.record_count == 1
        assert job.screening_ids == ["scr-002"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state_code", ["T", "TEX", "1X", ""])
    async def test_rejects_malformed_state(self, orchestrator, employer_id, state_code):
        with pytest.raises(ValidationError):
            await orchestrator.create_job(employer_id, state_code)

    @pytest.mark.asyncio
    async def test_get_unknown_job(self, orchestrator):
        with pytest.raises(JobNotFoundError):
            await orchestrator.get_job(uuid7())

    @pytest.mark.asyncio
    async def test_list_jobs_filters(self, orchestrator, seeded, employer_id):
        tx = await orchestrator.create_job(employer_id, "TX")
        ga = await orchestrator.create_job(employer_id, "GA", [])

        assert {j.job_id for j in await orchestrator.list_jobs(employer_id=employer_id)} == {
            tx.job_id,
            ga.job_id,
        }
        assert [j.job_id for j in await orchestrator.list_jobs(state_code="ga")] == [ga.job_id]
        assert await orchestrator.list_jobs(status=JobStatus.FAILED) == []


class TestDispatch:
    """Tests for a dispatch pass and job processing."""

    @pytest.mark.asyncio
    async def test_success(
        self, orchestrator, seeded, employer_id, portal_factory, recording_adapter, notifier, db_session
    ):
        await portal_factory("TX")
        job = await orchestrator.create_job(employer_id, "TX")

        report = await run_once(orchestrator)

        assert report.claimed == [job.job_id]
        done = await orchestrator.get_job(job.job_id)
        assert done.status == JobStatus.SUCCEEDED.value
        assert done.confirmation_number == "CONF-1"
        assert done.record_count == 3
        assert done.attempt_count == 1
        assert done.payload_digest == recording_adapter.payloads[0].digest
        assert done.completed_at is not None

        assert all(s.job_id == job.job_id for s in seeded.screenings.values())
        assert len(notifier.successes) == 1
        assert notifier.successes[0].employer_name == "Acme Staffing"
        assert notifier.successes[0].confirmation_number == "CONF-1"

        events = await AuditLogger(db_session).query_events(resource_id=job.job_id)
        assert [e.event_type for e in reversed(events)] == [
            "submission.created",
            "submission.processing",
            "submission.succeeded",
        ]

    @pytest.mark.asyncio
    async def test_nothing_to_send(self, orchestrator, employer_id, portal_factory, recording_adapter, notifier):
        await portal_factory("TX")
        job = await orchestrator.create_job(employer_id, "TX")

        await run_once(orchestrator)

        done = await orchestrator.get_job(job.job_id)
        assert done.status == JobStatus.SUCCEEDED.value
        assert done.record_count == 0
        assert done.confirmation_number is None
        assert recording_adapter.payloads == []
        assert notifier.successes == []

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, orchestrator_with, adapter_factory, seeded, employer_id, portal_factory, notifier):
        adapter = adapter_factory(
            [
                SubmissionOutcome.failed(ErrorKind.TRANSIENT, "portal returned 503"),
                SubmissionOutcome.succeeded("CONF-2", 3),
            ]
        )
        orchestrator = orchestrator_with(adapter)
        await portal_factory("TX")
        job = await orchestrator.create_job(employer_id, "TX")

        await run_once(orchestrator)

        retrying = await orchestrator.get_job(job.job_id)
        assert retrying.status == JobStatus.RETRYING.value
        assert retrying.error_kind == "transient"
        assert retrying.last_error == "portal returned 503"
        assert retrying.next_attempt_at is not None
        assert notifier.failures == []

        await run_once(orchestrator)

        done = await orchestrator.get_job(job.job_id)
        assert done.status == JobStatus.SUCCEEDED.value
        assert done.attempt_count == 2
        assert done.confirmation_number == "CONF-2"
        assert done.error_kind is None

    @pytest.mark.asyncio
    async def test_auth_failure_is_fatal(self, orchestrator_with, adapter_factory, seeded, employer_id, portal_factory, notifier):
        adapter = adapter_factory([SubmissionOutcome.failed(ErrorKind.AUTH, "invalid password")])
        orchestrator = orchestrator_with(adapter)
        await portal_factory("TX")
        job = await orchestrator.create_job(employer_id, "TX")

        await run_once(orchestrator)

        done = await orchestrator.get_job(job.job_id)
        assert done.status == JobStatus.FAILED.value
        assert done.attempt_count == 1
        assert done.error_kind == "auth"

        [event] = notifier.failures
        assert event.rotation_needed is True
        assert event.fatal is True
        assert event.retry_count == 1
        assert event.admin_email == "ops@relay.example"
        assert event.employer_name == "Acme Staffing"
        assert all(s.job_id is None for s in seeded.screenings.values())

    @pytest.mark.asyncio
    async def test_timeouts_exhaust_attempts(self, orchestrator_with, adapter_factory, seeded, employer_id, portal_factory, notifier):
        orchestrator = orchestrator_with(adapter_factory(delay=1.0))
        await portal_factory("TX")
        job = await orchestrator.create_job(employer_id, "TX")

        for _ in range(3):
            await run_once(orchestrator)

        done = await orchestrator.get_job(job.job_id)
        assert done.status == JobStatus.FAILED.value
        assert done.attempt_count == 3
        assert done.error_kind == "transient"
        assert done.last_error == "Adapter timed out after 0.2s"

        [event] = notifier.failures
        assert event.retry_count == 3
        assert event.fatal is False
        assert event.rotation_needed is False

    @pytest.mark.asyncio
    async def test_adapter_exception_is_unexpected(self, orchestrator_with, seeded, employer_id, portal_factory):
        orchestrator = orchestrator_with(ExplodingAdapter())
        await portal_factory("TX")
        job = await orchestrator.create_job(employer_id, "TX")

        await run_once(orchestrator)

        done = await orchestrator.get_job(job.job_id)
        assert done.status == JobStatus.FAILED.value
        assert done.error_kind == "unexpected"
        assert done.last_error == "RuntimeError: browser crashed"

    @pytest.mark.asyncio
    async def test_missing_portal_is_structural(self, orchestrator, seeded, employer_id, recording_adapter, db_session):
        job = await orchestrator.create_job(employer_id, "TX")

        await run_once(orchestrator)

        done = await orchestrator.get_job(job.job_id)
        assert done.status == JobStatus.FAILED.value
        assert done.error_kind == "structural"
        assert done.last_error == "No portal configured for TX"
        assert recording_adapter.payloads == []

        [failed] = await AuditLogger(db_session).query_events(
            event_type=AuditEventType.SUBMISSION_FAILED
        )
        assert failed.severity == AuditSeverity.ERROR.value
        assert failed.event_data["from_status"] == "processing"
        assert failed.event_data["to_status"] == "failed"

    @pytest.mark.asyncio
    async def test_unknown_employer_is_structural(self, orchestrator, screening_source, portal_factory, record_factory, notifier):
        stranger = uuid7()
        screening_source.add(stranger, "TX", record_factory(9))
        await portal_factory("TX")
        job = await orchestrator.create_job(stranger, "TX")

        await run_once(orchestrator)

        done = await orchestrator.get_job(job.job_id)
        assert done.error_kind == "structural"
        assert notifier.failures[0].employer_name == str(stranger)

    @pytest.mark.asyncio
    async def test_undecryptable_secrets_fail_job(
        self, orchestrator, seeded, employer_id, portal_factory, session_factory, recording_adapter, notifier
    ):
        portal = await portal_factory("TX")
        async with session_factory() as session:
            row = await PortalRepository(session).get(portal.portal_id)
            row.encrypted_credentials = "v1:AAAA"
            await session.commit()
        job = await orchestrator.create_job(employer_id, "TX")

        await run_once(orchestrator)

        done = await orchestrator.get_job(job.job_id)
        assert done.status == JobStatus.FAILED.value
        assert done.error_kind == VAULT_ERROR_KIND
        assert recording_adapter.payloads == []
        assert notifier.failures[0].rotation_needed is True

        async with session_factory() as session:
            row = await PortalRepository(session).get(portal.portal_id)
            assert row.status == PortalStatus.DISABLED.value

    @pytest.mark.asyncio
    async def test_notification_failure_keeps_job_state(
        self, orchestrator, seeded, employer_id, portal_factory, notifier
    ):
        notifier.should_fail = True
        await portal_factory("TX")
        job = await orchestrator.create_job(employer_id, "TX")

        await run_once(orchestrator)

        done = await orchestrator.get_job(job.job_id)
        assert done.status == JobStatus.SUCCEEDED.value
        assert len(notifier.successes) == 1


class TestConcurrency:
    """Tests for the one-job-per-pair rule."""

    @pytest.mark.asyncio
    async def test_second_job_for_pair_waits(self, orchestrator, seeded, employer_id, portal_factory, db_session):
        await portal_factory("TX")
        first = await orchestrator.create_job(employer_id, "TX", ["scr-001"])
        second = await orchestrator.create_job(employer_id, "TX", ["scr-002"])

        report = await run_once(orchestrator)

        assert report.claimed == [first.job_id]
        assert report.conflicts == [second.job_id]
        assert (await orchestrator.get_job(second.job_id)).status == JobStatus.PENDING.value

        [conflict] = await AuditLogger(db_session).query_events(
            event_type=AuditEventType.SUBMISSION_CONFLICT
        )
        assert conflict.resource_id == str(second.job_id)
        assert conflict.severity == AuditSeverity.WARNING.value
        assert "already in progress" in conflict.event_data["reason"]

        report = await run_once(orchestrator)

        assert report.claimed == [second.job_id]
        assert (await orchestrator.get_job(second.job_id)).status == JobStatus.SUCCEEDED.value

    @pytest.mark.asyncio
    async def test_two_dispatchers_never_run_a_pair_twice(
        self, orchestrator_with, adapter_factory, seeded, employer_id, portal_factory, db_session
    ):
        """Dispatchers with separate in-process locks still honor the pair rule."""
        await portal_factory("TX")
        first_dispatcher = orchestrator_with(adapter_factory(delay=0.1))
        second_dispatcher = orchestrator_with(adapter_factory())
        first = await first_dispatcher.create_job(employer_id, "TX", ["scr-001"])
        second = await first_dispatcher.create_job(employer_id, "TX", ["scr-002"])

        report_a = await first_dispatcher.run_pending_jobs()
        report_b = await second_dispatcher.run_pending_jobs()

        assert report_a.claimed == [first.job_id]
        assert report_b.claimed == []
        assert report_b.conflicts == [second.job_id]
        assert (await first_dispatcher.get_job(second.job_id)).status == JobStatus.PENDING.value

        await first_dispatcher.join()
        assert (await run_once(second_dispatcher)).claimed == [second.job_id]

    @pytest.mark.asyncio
    async def test_different_pairs_run_together(self, orchestrator, screening_source, employer_id, record_factory, portal_factory):
        screening_source.add(employer_id, "TX", record_factory(1))
        screening_source.add(employer_id, "GA", record_factory(2, state="GA"))
        await portal_factory("TX")
        await portal_factory("GA")
        tx = await orchestrator.create_job(employer_id, "TX")
        ga = await orchestrator.create_job(employer_id, "GA")

        report = await run_once(orchestrator)

        assert set(report.claimed) == {tx.job_id, ga.job_id}
        assert report.conflicts == []

    @pytest.mark.asyncio
    async def test_capacity_skips_extra_jobs(
        self,
        session_factory,
        screening_source,
        employer_directory,
        notifier,
        fast_config,
        encryptor,
        employer_id,
        adapter_factory,
    ):
        config = fast_config.model_copy(update={"max_concurrent_jobs": 1})
        orchestrator = SubmissionOrchestrator(
            session_factory,
            screening_source=screening_source,
            employer_directory=employer_directory,
            channels=ChannelRegistry({c: adapter_factory(delay=0.05) for c in ChannelType}),
            notifier=notifier,
            config=config,
            encryptor=encryptor,
        )
        tx = await orchestrator.create_job(employer_id, "TX", [])
        ga = await orchestrator.create_job(employer_id, "GA", [])

        report = await run_once(orchestrator)

        assert report.claimed == [tx.job_id]
        assert report.skipped == [ga.job_id]


class TestStaleRecovery:
    """Tests for jobs abandoned in processing by a dispatcher that went away."""

    @staticmethod
    async def abandon(session_factory, employer_id, *, attempt_count: int, started_at: datetime) -> SubmissionJob:
        async with session_factory() as session:
            return await SubmissionJobRepository(session).create(
                SubmissionJob(
                    employer_id=employer_id,
                    state_code="TX",
                    status=JobStatus.PROCESSING.value,
                    record_count=1,
                    attempt_count=attempt_count,
                    max_attempts=3,
                    screening_ids=["scr-001"],
                    started_at=started_at,
                )
            )

    @pytest.mark.asyncio
    async def test_abandoned_job_is_retried_and_pair_unblocked(
        self, orchestrator, seeded, employer_id, portal_factory, session_factory, db_session
    ):
        await portal_factory("TX")
        stale = await self.abandon(session_factory, employer_id, attempt_count=1, started_at=LONG_AGO)
        fresh = await orchestrator.create_job(employer_id, "TX", ["scr-002"])

        report = await run_once(orchestrator)

        assert report.recovered == [stale.job_id]
        assert report.claimed == [stale.job_id]
        assert report.conflicts == [fresh.job_id]
        recovered = await orchestrator.get_job(stale.job_id)
        assert recovered.status == JobStatus.SUCCEEDED.value
        assert recovered.attempt_count == 2

        [retry] = await AuditLogger(db_session).query_events(
            event_type=AuditEventType.SUBMISSION_RETRYING, resource_id=stale.job_id
        )
        assert retry.event_data["from_status"] == JobStatus.PROCESSING.value
        assert retry.event_data["error_kind"] == ErrorKind.TRANSIENT.value
        assert "abandoned" in retry.event_data["error"]

        assert (await run_once(orchestrator)).claimed == [fresh.job_id]
        assert (await orchestrator.get_job(fresh.job_id)).status == JobStatus.SUCCEEDED.value

    @pytest.mark.asyncio
    async def test_abandoned_job_out_of_attempts_fails(
        self, orchestrator, seeded, employer_id, portal_factory, session_factory, notifier
    ):
        await portal_factory("TX")
        stale = await self.abandon(session_factory, employer_id, attempt_count=3, started_at=LONG_AGO)

        report = await run_once(orchestrator)

        assert report.recovered == [stale.job_id]
        failed = await orchestrator.get_job(stale.job_id)
        assert failed.status == JobStatus.FAILED.value
        assert failed.error_kind == ErrorKind.TRANSIENT.value
        [event] = notifier.failures
        assert event.retry_count == 3
        assert "abandoned" in event.error_message

    @pytest.mark.asyncio
    async def test_recent_processing_job_is_left_alone(
        self, orchestrator, seeded, employer_id, portal_factory, session_factory
    ):
        await portal_factory("TX")
        running = await self.abandon(
            session_factory, employer_id, attempt_count=1, started_at=datetime.now(UTC)
        )
        waiting = await orchestrator.create_job(employer_id, "TX", ["scr-002"])

        report = await run_once(orchestrator)

        assert report.recovered == []
        assert report.conflicts == [waiting.job_id]
        assert (await orchestrator.get_job(running.job_id)).status == JobStatus.PROCESSING.value


class TestRetryAndEnqueue:
    """Tests for manual retry and batch enqueueing."""

    @pytest.mark.asyncio
    async def test_retry_failed_job(self, orchestrator, seeded, employer_id, db_session):
        failed = await orchestrator.create_job(employer_id, "TX")
        await run_once(orchestrator)

        retry = await orchestrator.retry_failed_job(failed.job_id, actor="admin@relay.example")

        assert retry.job_id != failed.job_id
        assert retry.status == JobStatus.PENDING.value
        assert retry.screening_ids == failed.screening_ids
        assert (await orchestrator.get_job(failed.job_id)).status == JobStatus.FAILED.value

        [created] = await AuditLogger(db_session).query_events(resource_id=retry.job_id)
        assert created.event_data["retry_of"] == str(failed.job_id)
        assert created.correlation_id == failed.job_id

    @pytest.mark.asyncio
    async def test_retry_rejects_unfailed_job(self, orchestrator, seeded, employer_id):
        job = await orchestrator.create_job(employer_id, "TX")

        with pytest.raises(JobNotRetryableError, match="pending"):
            await orchestrator.retry_failed_job(job.job_id)

    @pytest.mark.asyncio
    async def test_enqueue_ready_uses_state_batch_size(
        self, orchestrator, screening_source, employer_id, record_factory, portal_factory
    ):
        for index in range(1, 4):
            screening_source.add(employer_id, "AZ", record_factory(index, state="AZ"))
        screening_source.add(employer_id, "TX", record_factory(4))
        await portal_factory("AZ", channel_config={"max_batch_size": 2})

        jobs = await orchestrator.enqueue_ready(employer_id)

        assert sorted((j.state_code, j.record_count) for j in jobs) == [
            ("AZ", 1),
            ("AZ", 2),
            ("TX", 1),
        ]

    @pytest.mark.asyncio
    async def test_enqueue_nothing_ready(self, orchestrator, employer_id):
        assert await orchestrator.enqueue_ready(employer_id) == []
