"""Channel adapter protocol.

A channel adapter transmits a formatted payload to a state agency and
reads determinations back. Adapters never raise for expected failures;
they return typed outcomes carrying an ErrorKind.
"""

from typing import Protocol, runtime_checkable

from wotc_relay.formatting.types import FormattedPayload
from wotc_relay.vault.types import DecryptedPortal

from .types import CaptureOutcome, CredentialTestResult, SubmissionOutcome


@runtime_checkable
class ChannelAdapter(Protocol):
    """Interface every submission channel implements.

    Example implementation:
        class FaxAdapter:
            async def submit(self, portal, payload) -> SubmissionOutcome:
                ...

            async def test_credentials(self, portal) -> CredentialTestResult:
                ...

            async def capture_determinations(self, portal) -> CaptureOutcome:
                ...
    """

    async def submit(
        self, portal: DecryptedPortal, payload: FormattedPayload
    ) -> SubmissionOutcome:
        """Transmit a payload.

        Args:
            portal: Portal with opened secrets, valid for this call only.
            payload: Rendered agency file.

        Returns:
            SubmissionOutcome with a confirmation number or an ErrorKind.
        """
        ...

    async def test_credentials(self, portal: DecryptedPortal) -> CredentialTestResult:
        """Log in without transmitting any data."""
        ...

    async def capture_determinations(self, portal: DecryptedPortal) -> CaptureOutcome:
        """Read agency determinations available on the channel."""
        ...
