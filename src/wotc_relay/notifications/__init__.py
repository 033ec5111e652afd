"""Submission outcome notifications."""

from .events import SubmissionFailedEvent, SubmissionSucceededEvent
from .publisher import (
    InMemoryNotificationPublisher,
    NotificationError,
    NotificationPublisher,
    WebhookNotificationPublisher,
    create_publisher,
)

__all__ = [
    "InMemoryNotificationPublisher",
    "NotificationError",
    "NotificationPublisher",
    "SubmissionFailedEvent",
    "SubmissionSucceededEvent",
    "WebhookNotificationPublisher",
    "create_publisher",
]
