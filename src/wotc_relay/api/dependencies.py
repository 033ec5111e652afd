"""FastAPI dependencies for API endpoints."""

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wotc_relay.channels.registry import ChannelRegistry
from wotc_relay.config.settings import OrchestratorConfig
from wotc_relay.core.encryption import Encryptor
from wotc_relay.determination.capture import DeterminationCapture
from wotc_relay.submission.orchestrator import SubmissionOrchestrator


@dataclass
class ApiServices:
    """Long-lived components shared by every request.

    Built once in the application lifespan (or injected by tests) and kept
    on ``app.state.services``.
    """

    session_factory: async_sessionmaker[AsyncSession]
    orchestrator: SubmissionOrchestrator
    capture: DeterminationCapture
    channels: ChannelRegistry
    config: OrchestratorConfig
    encryptor: Encryptor | None = None


def get_services(request: Request) -> ApiServices:
    return request.app.state.services


async def get_db(
    services: Annotated[ApiServices, Depends(get_services)],
) -> AsyncGenerator[AsyncSession, None]:
    """Database session from the shared factory, closed after the request."""
    async with services.session_factory() as session:
        yield session


def get_actor(request: Request) -> str:
    """Actor name set by AuthenticationMiddleware, used for audit events."""
    return getattr(request.state, "actor", "anonymous")


def get_orchestrator(
    services: Annotated[ApiServices, Depends(get_services)],
) -> SubmissionOrchestrator:
    return services.orchestrator


def get_capture(
    services: Annotated[ApiServices, Depends(get_services)],
) -> DeterminationCapture:
    return services.capture


Services = Annotated[ApiServices, Depends(get_services)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
Actor = Annotated[str, Depends(get_actor)]
Orchestrator = Annotated[SubmissionOrchestrator, Depends(get_orchestrator)]
Capture = Annotated[DeterminationCapture, Depends(get_capture)]
