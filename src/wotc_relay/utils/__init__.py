"""Utility modules for wotc-relay."""

from wotc_relay.utils.exceptions import (
    ConfigurationError,
    NotFoundError,
    ValidationError,
    WotcRelayError,
)

__all__ = [
    "WotcRelayError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
]
