"""Notification publishers."""

from typing import Any, Protocol, runtime_checkable

import httpx
import structlog
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from wotc_relay.config.settings import Settings, get_settings
from wotc_relay.utils.exceptions import WotcRelayError

from .events import SubmissionFailedEvent, SubmissionSucceededEvent

logger = structlog.get_logger()


class NotificationError(WotcRelayError):
    """A notification could not be delivered."""

    def __init__(self, event: str, reason: str):
        super().__init__(f"Failed to deliver {event}: {reason}")
        self.event = event
        self.reason = reason


@runtime_checkable
class NotificationPublisher(Protocol):
    """Delivers submission outcome events."""

    async def publish_success(self, event: SubmissionSucceededEvent) -> None:
        """Notify the employer that a batch was submitted."""
        ...

    async def publish_failure(self, event: SubmissionFailedEvent) -> None:
        """Alert the platform admin that a batch failed."""
        ...


class InMemoryNotificationPublisher:
    """Records events in memory. Used in tests and local runs."""

    def __init__(self, should_fail: bool = False) -> None:
        self.should_fail = should_fail
        self.successes: list[SubmissionSucceededEvent] = []
        self.failures: list[SubmissionFailedEvent] = []

    async def publish_success(self, event: SubmissionSucceededEvent) -> None:
        self.successes.append(event)
        if self.should_fail:
            raise NotificationError(event.event, "in-memory publisher set to fail")

    async def publish_failure(self, event: SubmissionFailedEvent) -> None:
        self.failures.append(event)
        if self.should_fail:
            raise NotificationError(event.event, "in-memory publisher set to fail")


class WebhookNotificationPublisher:
    """POSTs events as JSON to a webhook, retrying on any HTTP error."""

    def __init__(
        self,
        url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        max_attempts: int = 3,
        retry_wait: wait_base | None = None,
    ) -> None:
        self.url = url
        self._client = client
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)

    async def publish_success(self, event: SubmissionSucceededEvent) -> None:
        await self._deliver(event)

    async def publish_failure(self, event: SubmissionFailedEvent) -> None:
        await self._deliver(event)

    async def _deliver(self, event: BaseModel) -> None:
        body = event.model_dump(mode="json")
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=self._retry_wait,
                retry=retry_if_exception_type(httpx.HTTPError),
                reraise=True,
            ):
                with attempt:
                    await self._post(body)
        except httpx.HTTPError as exc:
            raise NotificationError(body["event"], str(exc)) from exc

        logger.debug("notification_delivered", notification_event=body["event"], url=self.url)

    async def _post(self, body: dict[str, Any]) -> None:
        if self._client is not None:
            response = await self._client.post(self.url, json=body)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self.url, json=body)
        response.raise_for_status()


def create_publisher(settings: Settings | None = None) -> NotificationPublisher:
    """Webhook publisher when a URL is configured, otherwise in-memory."""
    settings = settings or get_settings()
    if settings.NOTIFICATION_WEBHOOK_URL:
        return WebhookNotificationPublisher(settings.NOTIFICATION_WEBHOOK_URL)
    logger.warning("notification_webhook_not_configured")
    return InMemoryNotificationPublisher()
