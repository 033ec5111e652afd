"""Configuration module for wotc-relay."""

from wotc_relay.config.channels import BrowserSelectors, SignatureRequirement, StateChannelConfig
from wotc_relay.config.settings import OrchestratorConfig, Settings, get_settings

__all__ = [
    "Settings",
    "OrchestratorConfig",
    "get_settings",
    "StateChannelConfig",
    "BrowserSelectors",
    "SignatureRequirement",
]
