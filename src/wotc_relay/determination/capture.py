"""Determination capture.

Reads agency decisions from a state's channel and records them. Capture is
independent of submission jobs and idempotent: re-reading an unchanged
remote set creates nothing.
"""

import asyncio
import re
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wotc_relay.channels.registry import ChannelRegistry
from wotc_relay.channels.types import CaptureOutcome, ErrorKind
from wotc_relay.collaborators import ScreeningSource
from wotc_relay.config.channels import StateChannelConfig
from wotc_relay.config.settings import OrchestratorConfig, get_settings
from wotc_relay.core.audit import AuditLogger
from wotc_relay.core.encryption import Encryptor
from wotc_relay.db.models.audit import AuditEventType, AuditSeverity
from wotc_relay.db.models.base import utc_now
from wotc_relay.db.models.determination import (
    DeterminationRecord,
    DeterminationSource,
    DeterminationStatus,
)
from wotc_relay.db.models.portal import PortalStatus
from wotc_relay.db.repositories.determination import DeterminationRepository
from wotc_relay.db.repositories.portal import PortalRepository
from wotc_relay.observability.metrics import record_determination
from wotc_relay.vault.vault import CredentialVault

logger = structlog.get_logger()

# Negated approvals are listed before any approval wording is considered
DENIED_PATTERN = re.compile(
    r"\b(?:not\s+(?:approved|certified|eligible)|disapprov\w*|uncertif\w*"
    r"|den(?:ied|y)|reject(?:ed)?|ineligible)\b"
)
CERTIFIED_PATTERN = re.compile(r"\b(?:approved?|certified)\b")


def normalize_status(raw: str) -> DeterminationStatus:
    """Map an agency's wording to a DeterminationStatus.

    Anything not recognizably approved or denied stays pending.
    """
    text = " ".join(raw.lower().split())
    if DENIED_PATTERN.search(text):
        return DeterminationStatus.DENIED
    if CERTIFIED_PATTERN.search(text):
        return DeterminationStatus.CERTIFIED
    return DeterminationStatus.PENDING


@dataclass
class CaptureSummary:
    """Counts from one capture run.

    Attributes:
        captured: Items read from the channel
        created: New determination records
        skipped: Items matching the latest known status, or after a terminal one
        unmatched: Items with no screening for the SSN
    """

    state_code: str
    captured: int = 0
    created: int = 0
    skipped: int = 0
    unmatched: int = 0
    success: bool = True
    error_kind: str | None = None
    error_detail: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


class DeterminationCapture:
    """Captures determinations per state, on demand or on a schedule."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        screening_source: ScreeningSource,
        channels: ChannelRegistry,
        config: OrchestratorConfig | None = None,
        encryptor: Encryptor | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._session_factory = session_factory
        self._screenings = screening_source
        self._channels = channels
        self.config = config or get_settings().orchestrator
        self._encryptor = encryptor
        self._clock = clock
        self._loop_task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    async def capture(self, state_code: str, *, actor: str = "system") -> CaptureSummary:
        """Read and record determinations for one state.

        Raises:
            PortalNotFoundError: No portal configured for the state.
            PortalDisabledError: The portal is disabled.
            VaultIntegrityError: Sealed secrets failed to open (portal is disabled).
            ChannelNotRegisteredError: No adapter for the portal's channel.
        """
        code = state_code.strip().upper()
        summary = CaptureSummary(state_code=code)

        async with self._session_factory() as session:
            vault = CredentialVault(session, self._encryptor)
            portal_row = await vault.get_portal_by_state(code)
            adapter = self._channels.resolve(portal_row.channel_type)
            portal = await vault.open_portal(portal_row, actor=actor)

            try:
                outcome = await asyncio.wait_for(
                    adapter.capture_determinations(portal),
                    timeout=self.config.adapter_timeout_seconds,
                )
            except TimeoutError:
                outcome = CaptureOutcome(
                    success=False,
                    error_kind=ErrorKind.TRANSIENT,
                    error_detail=f"Capture timed out after {self.config.adapter_timeout_seconds}s",
                )

            if outcome.success:
                await self._record(session, code, outcome, summary)
            else:
                summary.success = False
                summary.error_kind = outcome.error_kind.value if outcome.error_kind else None
                summary.error_detail = outcome.error_detail

            await AuditLogger(session).log_event(
                AuditEventType.DETERMINATION_CAPTURED,
                summary.to_dict(),
                actor=actor,
                resource_type="portal",
                resource_id=portal_row.portal_id,
                severity=AuditSeverity.INFO if summary.success else AuditSeverity.WARNING,
            )
            await session.commit()

        log = logger.info if summary.success else logger.warning
        log("determination_capture_complete", **summary.to_dict())
        return summary

    async def _record(
        self,
        session: AsyncSession,
        state_code: str,
        outcome: CaptureOutcome,
        summary: CaptureSummary,
    ) -> None:
        repo = DeterminationRepository(session)
        for item in outcome.items:
            summary.captured += 1
            match = await self._screenings.find_by_ssn(state_code, item.ssn)
            if match is None:
                summary.unmatched += 1
                continue

            status = normalize_status(item.status)
            latest = await repo.latest_for_employee(match.employee_id, state_code)
            if latest is not None and (latest.is_terminal or latest.status == status.value):
                summary.skipped += 1
                continue

            digits = re.sub(r"\D", "", item.ssn)
            record = DeterminationRecord(
                employee_id=match.employee_id,
                screening_id=match.screening_id,
                ssn_last4=digits[-4:] or None,
                state_code=state_code,
                status=status.value,
                certification_number=item.certification_number,
                credit_amount=item.credit_amount,
                source=DeterminationSource.CAPTURE.value,
                captured_at=self._clock(),
            )
            session.add(record)
            await session.flush()
            await self._screenings.apply_determination(match, record)
            record_determination(state_code, status.value)
            summary.created += 1

        if summary.unmatched:
            logger.info(
                "determinations_unmatched", state_code=state_code, unmatched=summary.unmatched
            )

    # ----------------------------------------------------------------
    # Scheduled capture
    # ----------------------------------------------------------------

    async def capture_all(self, *, actor: str = "system") -> list[CaptureSummary]:
        """Capture every active, automation-enabled portal in turn."""
        async with self._session_factory() as session:
            portals = await PortalRepository(session).list(limit=1000)
            states = [
                p.state_code
                for p in portals
                if p.status == PortalStatus.ACTIVE.value
                and p.encrypted_credentials is not None
                and StateChannelConfig.model_validate(p.channel_config or {}).automation_enabled
            ]

        summaries = []
        for state_code in states:
            try:
                summaries.append(await self.capture(state_code, actor=actor))
            except Exception:
                logger.exception("determination_capture_failed", state_code=state_code)
        return summaries

    async def start(self) -> None:
        if self._loop_task is not None and not self._loop_task.done():
            return
        self._stopping.clear()
        self._loop_task = asyncio.create_task(self._loop(), name="determination-capture")
        logger.info("capture_loop_started", interval=self.config.capture_interval_seconds)

    async def stop(self) -> None:
        self._stopping.set()
        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None
        logger.info("capture_loop_stopped")

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            await self.capture_all()
            try:
                await asyncio.wait_for(
                    self._stopping.wait(), timeout=self.config.capture_interval_seconds
                )
            except TimeoutError:
                continue
