"""Channel adapters for transmitting payloads to state agencies.

Three channels exist:
- browser: agency-hosted bulk upload portals driven with Playwright
- sftp: the shared vendor SFTP drop
- vendor_portal: CertLink-hosted state portals
"""

from .protocol import ChannelAdapter
from .registry import ChannelRegistry, create_default_registry
from .types import (
    CapturedDetermination,
    CaptureOutcome,
    ChannelError,
    ChannelNotRegisteredError,
    CredentialTestResult,
    ErrorKind,
    SubmissionOutcome,
)
from .verification import verify_portal_credentials

__all__ = [
    "CaptureOutcome",
    "CapturedDetermination",
    "ChannelAdapter",
    "ChannelError",
    "ChannelNotRegisteredError",
    "ChannelRegistry",
    "CredentialTestResult",
    "ErrorKind",
    "SubmissionOutcome",
    "create_default_registry",
    "verify_portal_credentials",
]
