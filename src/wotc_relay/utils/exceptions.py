"""Custom exceptions for wotc-relay."""


class WotcRelayError(Exception):
    """Base exception for all wotc-relay errors."""

    pass


class ConfigurationError(WotcRelayError):
    """Error in configuration or settings."""

    pass


class ValidationError(WotcRelayError):
    """Input rejected before anything was persisted."""

    pass


class NotFoundError(WotcRelayError):
    """A referenced record does not exist.

    Attributes:
        resource_type: Kind of record that was looked up
        resource_id: Identifier that was not found
    """

    def __init__(self, resource_type: str, resource_id: object):
        super().__init__(f"{resource_type} not found: {resource_id}")
        self.resource_type = resource_type
        self.resource_id = str(resource_id)
