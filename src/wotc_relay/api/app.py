"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from wotc_relay import __version__
from wotc_relay.api.dependencies import ApiServices
from wotc_relay.api.middleware import (
    AuthenticationMiddleware,
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
)
from wotc_relay.api.routers import health_router, v1_router
from wotc_relay.channels.registry import create_default_registry
from wotc_relay.collaborators import (
    EmployerDirectory,
    InMemoryEmployerDirectory,
    InMemoryScreeningSource,
    ScreeningSource,
)
from wotc_relay.config.settings import Settings, get_settings
from wotc_relay.core.logging import setup_logging
from wotc_relay.core.redis import close_redis, get_redis_client
from wotc_relay.db.config import close_db, get_session_factory, init_db
from wotc_relay.determination.capture import DeterminationCapture
from wotc_relay.notifications.publisher import create_publisher
from wotc_relay.observability.metrics import get_metrics_manager
from wotc_relay.submission.locks import PairLockManager, RedisJobLock
from wotc_relay.submission.orchestrator import SubmissionOrchestrator

logger = structlog.get_logger()


def create_app(
    settings: Settings | None = None,
    *,
    services: ApiServices | None = None,
    screening_source: ScreeningSource | None = None,
    employer_directory: EmployerDirectory | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    When ``services`` is given the app uses it as is and runs no background
    loops; tests build their own. Otherwise the lifespan builds the
    production services and starts the dispatch and capture loops.

    Args:
        settings: Optional settings override (useful for testing)
        services: Prebuilt services to serve requests with
        screening_source: Screening store backing the orchestrator
        employer_directory: Employer profile lookup

    Example:
        uvicorn wotc_relay.api.app:create_app --factory
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="wotc-relay",
        description="WOTC state submission and credential management API",
        version=__version__,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        lifespan=_lifespan,
    )

    app.state.settings = settings
    app.state.services = services
    app.state.screening_source = screening_source
    app.state.employer_directory = employer_directory

    # Added innermost first; Starlette runs the last added outermost
    app.add_middleware(AuthenticationMiddleware)
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router)
    app.include_router(v1_router)

    return app


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings
    setup_logging()
    get_metrics_manager().initialize(
        service_name="wotc-relay", service_version=__version__, environment=settings.ENVIRONMENT
    )

    owned = app.state.services is None
    if owned:
        await init_db()
        app.state.services = await _build_services(app, settings)
        await app.state.services.orchestrator.start()
        await app.state.services.capture.start()
    logger.info("api_started", environment=settings.ENVIRONMENT, owns_services=owned)

    yield

    if owned:
        await app.state.services.capture.stop()
        await app.state.services.orchestrator.stop()
        await close_redis()
        await close_db()
    logger.info("api_stopped")


async def _build_services(app: FastAPI, settings: Settings) -> ApiServices:
    screening_source = app.state.screening_source
    employer_directory = app.state.employer_directory
    if screening_source is None or employer_directory is None:
        logger.warning("screening_store_not_configured", fallback="in_memory")
        screening_source = screening_source or InMemoryScreeningSource()
        employer_directory = employer_directory or InMemoryEmployerDirectory()

    redis_lock = None
    if settings.USE_REDIS_LOCKS:
        redis_lock = RedisJobLock(
            await get_redis_client(), ttl_seconds=settings.orchestrator.lock_ttl_seconds
        )

    session_factory = get_session_factory()
    channels = create_default_registry()
    return ApiServices(
        session_factory=session_factory,
        orchestrator=SubmissionOrchestrator(
            session_factory,
            screening_source=screening_source,
            employer_directory=employer_directory,
            channels=channels,
            notifier=create_publisher(settings),
            locks=PairLockManager(redis_lock=redis_lock),
            config=settings.orchestrator,
        ),
        capture=DeterminationCapture(
            session_factory,
            screening_source=screening_source,
            channels=channels,
            config=settings.orchestrator,
        ),
        channels=channels,
        config=settings.orchestrator,
    )
