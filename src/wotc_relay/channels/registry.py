"""Channel registry.

Maps each ChannelType to the adapter instance that serves it.
"""

import structlog

from wotc_relay.db.models.portal import ChannelType

from .protocol import ChannelAdapter
from .types import ChannelNotRegisteredError

logger = structlog.get_logger()


class ChannelRegistry:
    """Lookup table from channel type to adapter.

    Usage:
        registry = ChannelRegistry()
        registry.register(ChannelType.SFTP, SftpAdapter())
        adapter = registry.resolve(ChannelType.SFTP)
    """

    def __init__(self, adapters: dict[ChannelType, ChannelAdapter] | None = None):
        self._adapters: dict[ChannelType, ChannelAdapter] = {}
        for channel_type, adapter in (adapters or {}).items():
            self.register(channel_type, adapter)

    def register(self, channel_type: ChannelType, adapter: ChannelAdapter) -> None:
        """Register (or replace) the adapter for a channel type.

        Raises:
            TypeError: If the adapter does not implement ChannelAdapter.
        """
        if not isinstance(adapter, ChannelAdapter):
            raise TypeError(f"{type(adapter).__name__} does not implement ChannelAdapter")
        self._adapters[ChannelType(channel_type)] = adapter
        logger.info(
            "channel_adapter_registered",
            channel=ChannelType(channel_type).value,
            adapter=type(adapter).__name__,
        )

    def resolve(self, channel_type: ChannelType | str) -> ChannelAdapter:
        try:
            return self._adapters[ChannelType(channel_type)]
        except (KeyError, ValueError):
            raise ChannelNotRegisteredError(channel_type) from None

    def __contains__(self, channel_type: object) -> bool:
        return channel_type in self._adapters

    @property
    def channel_types(self) -> list[ChannelType]:
        return list(self._adapters)


def create_default_registry() -> ChannelRegistry:
    """Registry with the production adapters for every channel type."""
    from .browser import BrowserPortalAdapter
    from .sftp import SftpAdapter
    from .vendor_portal import VendorPortalAdapter

    return ChannelRegistry(
        {
            ChannelType.BROWSER: BrowserPortalAdapter(),
            ChannelType.SFTP: SftpAdapter(),
            ChannelType.VENDOR_PORTAL: VendorPortalAdapter(),
        }
    )
