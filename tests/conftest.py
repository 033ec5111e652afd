"""Pytest fixtures for wotc-relay tests."""

import asyncio
from collections.abc import AsyncGenerator, Callable
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
import structlog
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from wotc_relay.channels.registry import ChannelRegistry
from wotc_relay.channels.types import CaptureOutcome, CredentialTestResult, SubmissionOutcome
from wotc_relay.collaborators import InMemoryEmployerDirectory, InMemoryScreeningSource
from wotc_relay.config.settings import OrchestratorConfig, Settings, get_settings
from wotc_relay.core.encryption import Encryptor, key_to_string, reset_encryptor
from wotc_relay.db.models.base import Base
from wotc_relay.db.models.portal import ChannelType, MfaType, StatePortalConfig
from wotc_relay.formatting.types import EmployerProfile, FormattedPayload, SubmissionRecord
from wotc_relay.notifications.publisher import InMemoryNotificationPublisher
from wotc_relay.vault.types import DecryptedPortal, PortalCredentials
from wotc_relay.vault.vault import CredentialVault

TEST_KEY = b"k" * 32
TEST_API_KEY = "test-api-secret"


# =============================================================================
# Structlog and settings
# =============================================================================


@pytest.fixture(scope="function", autouse=True)
def reset_structlog_after_test():
    """Reset structlog configuration after each test.

    This ensures tests that modify structlog global state
    don't affect other tests.
    """
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch):
    """Point settings at a fixed master key and no external services."""
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("ENCRYPTION_KEY", key_to_string(TEST_KEY))
    monkeypatch.delenv("NOTIFICATION_WEBHOOK_URL", raising=False)
    monkeypatch.delenv("API_SECRET_KEY", raising=False)
    get_settings.cache_clear()
    reset_encryptor()
    yield
    get_settings.cache_clear()
    reset_encryptor()


@pytest.fixture
def encryptor() -> Encryptor:
    """Encryptor using the test master key."""
    return Encryptor(TEST_KEY)


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """File-backed SQLite engine so separate sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# Domain data
# =============================================================================


@pytest.fixture
def employer_id() -> UUID:
    return UUID("0f1c2b3a-4d5e-4f60-8a7b-9c8d7e6f5a4b")


@pytest.fixture
def employer(employer_id: UUID) -> EmployerProfile:
    return EmployerProfile(
        employer_id=str(employer_id),
        name="Acme Staffing",
        email="payroll@acme.example",
        ein="12-3456789",
        phone="(512) 555-0100",
        address="100 Congress Ave",
        city="Austin",
        state="TX",
        zip_code="78701",
    )


def make_record(index: int = 1, **overrides) -> SubmissionRecord:
    """A certified screening record with plausible defaults."""
    values = {
        "employee_id": f"emp-{index:03d}",
        "screening_id": f"scr-{index:03d}",
        "first_name": "Maria",
        "last_name": f"Lopez{index}",
        "ssn": f"123-45-{6000 + index:04d}",
        "date_of_birth": date(1990, 4, 12),
        "hire_date": date(2024, 3, 1),
        "start_date": date(2024, 3, 4),
        "address": "12 Elm St",
        "city": "Austin",
        "state": "TX",
        "zip_code": "78702",
        "county": "Travis",
        "phone": "512-555-0199",
        "hourly_wage": Decimal("15.50"),
        "occupation_code": "41-2031",
        "target_groups": ("SNAP",),
        "date_gave_info": date(2024, 2, 27),
        "date_offered_job": date(2024, 2, 28),
    }
    values.update(overrides)
    return SubmissionRecord(**values)


@pytest.fixture
def record_factory() -> Callable[..., SubmissionRecord]:
    return make_record


@pytest.fixture
def screening_source() -> InMemoryScreeningSource:
    return InMemoryScreeningSource()


@pytest.fixture
def employer_directory(employer: EmployerProfile) -> InMemoryEmployerDirectory:
    directory = InMemoryEmployerDirectory()
    directory.add(employer)
    return directory


@pytest.fixture
def notifier() -> InMemoryNotificationPublisher:
    return InMemoryNotificationPublisher()


@pytest.fixture
def fast_config() -> OrchestratorConfig:
    """Orchestrator config with no backoff and a short adapter timeout."""
    return OrchestratorConfig(
        max_attempts=3,
        retry_base_delay_seconds=0.0,
        max_concurrent_jobs=5,
        poll_interval_seconds=0.05,
        adapter_timeout_seconds=0.2,
    )


async def create_portal(
    session: AsyncSession,
    encryptor: Encryptor,
    state_code: str = "TX",
    *,
    channel_type: ChannelType = ChannelType.SFTP,
    user_id: str = "acme-user",
    password: str = "s3cret-pass",
    mfa_type: MfaType | None = None,
    mfa_secret: str | None = None,
    channel_config: dict | None = None,
    portal_url: str | None = "https://portal.example.gov/login",
) -> StatePortalConfig:
    """Create a portal with sealed credentials and commit it."""
    portal = StatePortalConfig(
        state_code=state_code,
        display_name=f"{state_code} Workforce Agency",
        channel_type=channel_type.value,
        portal_url=portal_url,
        channel_config=channel_config or {},
    )
    session.add(portal)
    await session.flush()
    await CredentialVault(session, encryptor).seal_portal_secrets(
        portal,
        PortalCredentials(user_id=user_id, password=SecretStr(password)),
        mfa_type=mfa_type,
        mfa_secret=mfa_secret,
    )
    await session.commit()
    return portal


@pytest.fixture
def portal_factory(session_factory, encryptor):
    """Create sealed portals in their own committed session."""

    async def factory(state_code: str = "TX", **kwargs) -> StatePortalConfig:
        async with session_factory() as session:
            return await create_portal(session, encryptor, state_code, **kwargs)

    return factory


def make_decrypted_portal(
    state_code: str = "TX",
    *,
    channel_type: ChannelType = ChannelType.BROWSER,
    portal_url: str | None = "https://portal.example.gov/login",
    **overrides,
) -> DecryptedPortal:
    values = {
        "portal_id": uuid4(),
        "state_code": state_code,
        "display_name": f"{state_code} Workforce Agency",
        "channel_type": channel_type,
        "portal_url": portal_url,
        "credentials": PortalCredentials(user_id="acme-user", password=SecretStr("s3cret-pass")),
    }
    values.update(overrides)
    return DecryptedPortal(**values)


@pytest.fixture
def decrypted_portal_factory() -> Callable[..., DecryptedPortal]:
    return make_decrypted_portal


# =============================================================================
# Fake channel adapter
# =============================================================================


class RecordingAdapter:
    """Channel adapter that records payloads and returns scripted outcomes.

    ``outcomes`` are consumed in order; the last one repeats. ``delay``
    makes every submit sleep, to exercise the orchestrator timeout.
    """

    def __init__(
        self,
        outcomes: list[SubmissionOutcome] | None = None,
        *,
        delay: float = 0.0,
        capture: CaptureOutcome | None = None,
        credential_result: CredentialTestResult | None = None,
    ):
        self.outcomes = list(outcomes or [SubmissionOutcome.succeeded("CONF-1", 0)])
        self.delay = delay
        self.capture = capture or CaptureOutcome(success=True)
        self.credential_result = credential_result or CredentialTestResult(success=True)
        self.payloads: list[FormattedPayload] = []
        self.portals: list[DecryptedPortal] = []
        self.capture_calls = 0

    async def submit(self, portal: DecryptedPortal, payload: FormattedPayload) -> SubmissionOutcome:
        self.portals.append(portal)
        self.payloads.append(payload)
        if self.delay:
            await asyncio.sleep(self.delay)
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]

    async def test_credentials(self, portal: DecryptedPortal) -> CredentialTestResult:
        self.portals.append(portal)
        return self.credential_result

    async def capture_determinations(self, portal: DecryptedPortal) -> CaptureOutcome:
        self.capture_calls += 1
        return self.capture


@pytest.fixture
def recording_adapter() -> RecordingAdapter:
    return RecordingAdapter()


@pytest.fixture
def adapter_factory() -> type[RecordingAdapter]:
    """Build recording adapters with scripted outcomes."""
    return RecordingAdapter


@pytest.fixture
def channels(recording_adapter: RecordingAdapter) -> ChannelRegistry:
    """Registry serving every channel type with the recording adapter."""
    return ChannelRegistry({channel: recording_adapter for channel in ChannelType})


@pytest.fixture
def orchestrator(
    session_factory,
    screening_source,
    employer_directory,
    channels,
    notifier,
    fast_config,
    encryptor,
):
    from wotc_relay.submission.orchestrator import SubmissionOrchestrator

    return SubmissionOrchestrator(
        session_factory,
        screening_source=screening_source,
        employer_directory=employer_directory,
        channels=channels,
        notifier=notifier,
        config=fast_config,
        encryptor=encryptor,
        admin_email="ops@relay.example",
    )


@pytest.fixture
def capture(session_factory, screening_source, channels, fast_config, encryptor):
    from wotc_relay.determination.capture import DeterminationCapture

    return DeterminationCapture(
        session_factory,
        screening_source=screening_source,
        channels=channels,
        config=fast_config,
        encryptor=encryptor,
    )


# =============================================================================
# API
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Create settings for API testing."""
    return Settings(
        API_SECRET_KEY=SecretStr(TEST_API_KEY),
        ENCRYPTION_KEY=SecretStr(key_to_string(TEST_KEY)),
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        ENVIRONMENT="test",
        DEBUG=True,
        log_level="DEBUG",
    )


@pytest.fixture
def test_app(
    test_settings, session_factory, orchestrator, capture, channels, fast_config, encryptor
) -> FastAPI:
    """FastAPI application wired to the test database and fakes."""
    from wotc_relay.api.app import create_app
    from wotc_relay.api.dependencies import ApiServices

    services = ApiServices(
        session_factory=session_factory,
        orchestrator=orchestrator,
        capture=capture,
        channels=channels,
        config=fast_config,
        encryptor=encryptor,
    )
    return create_app(settings=test_settings, services=services)


@pytest_asyncio.fixture
async def test_client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated async HTTP client for the test application."""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as client:
        yield client


@pytest_asyncio.fixture
async def authenticated_client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client carrying the test API key and an operator name."""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
        headers={
            "Authorization": f"Bearer {TEST_API_KEY}",
            "X-Actor": "admin@relay.example",
        },
    ) as client:
        yield client
