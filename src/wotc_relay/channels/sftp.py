"""SFTP drop adapter for vendor-hosted state intake.

Payloads are written to the state's directory on the shared host;
determination files are read back from the same directory.
"""

import csv
import io
import posixpath
import re
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

import asyncssh
import structlog

from wotc_relay.config.settings import get_settings
from wotc_relay.db.models.portal import ChannelType
from wotc_relay.formatting.types import FormattedPayload
from wotc_relay.observability.metrics import observe_adapter_call
from wotc_relay.vault.types import DecryptedPortal

from .types import (
    CapturedDetermination,
    CaptureOutcome,
    CredentialTestResult,
    ErrorKind,
    SubmissionOutcome,
    parse_amount,
)

logger = structlog.get_logger()

# "det" also covers "determination"
DETERMINATION_FILE_MARKERS = ("det", "result", "response")

SFTP_ERRORS = (asyncssh.Error, OSError)


def classify_sftp_error(exc: BaseException) -> ErrorKind:
    """Map an asyncssh or socket exception to an ErrorKind."""
    if isinstance(exc, asyncssh.PermissionDenied):
        return ErrorKind.AUTH
    if isinstance(exc, asyncssh.HostKeyNotVerifiable):
        return ErrorKind.STRUCTURAL
    if isinstance(exc, asyncssh.DisconnectError):
        return ErrorKind.TRANSIENT
    if isinstance(exc, asyncssh.SFTPNoSuchFile):
        return ErrorKind.STRUCTURAL
    if isinstance(exc, asyncssh.SFTPPermissionDenied):
        return ErrorKind.AUTH
    if isinstance(exc, asyncssh.SFTPError):
        return ErrorKind.STRUCTURAL
    if isinstance(exc, (OSError, asyncssh.ChannelOpenError)):
        return ErrorKind.TRANSIENT
    return ErrorKind.UNEXPECTED


def sftp_confirmation(payload: FormattedPayload) -> str:
    """Confirmation for an SFTP drop: the file name plus a content fingerprint."""
    return f"{payload.filename}:{payload.digest[:12]}"


def is_determination_file(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in DETERMINATION_FILE_MARKERS)


def parse_determination_file(text: str) -> list[CapturedDetermination]:
    """Parse ``ssn,status,certification_number,credit_amount`` lines.

    Header lines and rows without a 9-digit SSN are skipped.
    """
    items: list[CapturedDetermination] = []
    for row in csv.reader(io.StringIO(text)):
        cells = [cell.strip() for cell in row]
        if len(cells) < 2:
            continue
        ssn = re.sub(r"\D", "", cells[0])
        if len(ssn) != 9 or not cells[1]:
            continue
        items.append(
            CapturedDetermination(
                ssn=ssn,
                status=cells[1],
                certification_number=(cells[2] or None) if len(cells) > 2 else None,
                credit_amount=parse_amount(cells[3]) if len(cells) > 3 else None,
            )
        )
    return items


class SftpAdapter:
    """Writes payloads to the shared vendor SFTP host.

    ``connect`` defaults to ``asyncssh.connect``; tests inject a fake.
    """

    channel = ChannelType.SFTP

    def __init__(
        self,
        connect: Callable[..., Any] | None = None,
        *,
        host: str | None = None,
        port: int | None = None,
        known_hosts: str | None = None,
        connect_timeout: float = 30.0,
    ):
        settings = get_settings()
        self._connect = connect or asyncssh.connect
        self.host = host or settings.SFTP_HOST
        self.port = port or settings.SFTP_PORT
        self.known_hosts = known_hosts or settings.SFTP_KNOWN_HOSTS
        self.connect_timeout = connect_timeout

    @asynccontextmanager
    async def _client(self, portal: DecryptedPortal) -> AsyncIterator[asyncssh.SFTPClient]:
        config = portal.channel_config
        options: dict[str, Any] = {
            "port": config.sftp_port or self.port,
            "username": portal.credentials.user_id,
            "password": portal.credentials.password.get_secret_value(),
            "client_keys": None,
            "connect_timeout": self.connect_timeout,
        }
        if self.known_hosts:
            options["known_hosts"] = self.known_hosts

        async with self._connect(config.sftp_host or self.host, **options) as conn:
            async with conn.start_sftp_client() as sftp:
                yield sftp

    def _directory(self, portal: DecryptedPortal) -> str:
        return portal.channel_config.remote_dir or f"{portal.state_code}.DIR;1"

    def _remote_path(self, portal: DecryptedPortal, payload: FormattedPayload) -> str | None:
        if portal.channel_config.remote_dir:
            return posixpath.join(portal.channel_config.remote_dir, payload.filename)
        return payload.remote_path

    async def submit(
        self, portal: DecryptedPortal, payload: FormattedPayload
    ) -> SubmissionOutcome:
        remote_path = self._remote_path(portal, payload)
        if not remote_path:
            return SubmissionOutcome.failed(ErrorKind.STRUCTURAL, "payload has no remote path")

        with observe_adapter_call(self.channel.value, "submit") as ctx:
            try:
                async with self._client(portal) as sftp:
                    async with sftp.open(remote_path, "wb") as remote:
                        await remote.write(payload.content)
            except SFTP_ERRORS as exc:
                kind = classify_sftp_error(exc)
                ctx["outcome"] = kind.value
                logger.warning(
                    "sftp_upload_failed",
                    state_code=portal.state_code,
                    remote_path=remote_path,
                    error_kind=kind.value,
                    error=str(exc),
                )
                return SubmissionOutcome.failed(kind, f"{type(exc).__name__}: {exc}")

        confirmation = sftp_confirmation(payload)
        logger.info(
            "sftp_upload_complete",
            state_code=portal.state_code,
            remote_path=remote_path,
            bytes=len(payload.content),
            confirmation_number=confirmation,
        )
        return SubmissionOutcome.succeeded(confirmation, payload.record_count)

    async def test_credentials(self, portal: DecryptedPortal) -> CredentialTestResult:
        with observe_adapter_call(self.channel.value, "test_credentials") as ctx:
            try:
                async with self._client(portal) as sftp:
                    await sftp.listdir("/")
            except SFTP_ERRORS as exc:
                kind = classify_sftp_error(exc)
                ctx["outcome"] = kind.value
                return CredentialTestResult(
                    success=False, error_kind=kind, detail=f"{type(exc).__name__}: {exc}"
                )
        return CredentialTestResult(success=True, detail="connected and listed /")

    async def capture_determinations(self, portal: DecryptedPortal) -> CaptureOutcome:
        directory = self._directory(portal)
        items: list[CapturedDetermination] = []

        with observe_adapter_call(self.channel.value, "capture") as ctx:
            try:
                async with self._client(portal) as sftp:
                    for name in sorted(await sftp.listdir(directory)):
                        if not is_determination_file(name):
                            continue
                        async with sftp.open(posixpath.join(directory, name), "rb") as remote:
                            data = await remote.read()
                        parsed = parse_determination_file(data.decode("utf-8", errors="replace"))
                        logger.debug(
                            "sftp_determination_file_read",
                            state_code=portal.state_code,
                            file=name,
                            rows=len(parsed),
                        )
                        items.extend(parsed)
            except SFTP_ERRORS as exc:
                kind = classify_sftp_error(exc)
                ctx["outcome"] = kind.value
                return CaptureOutcome(
                    success=False, error_kind=kind, error_detail=f"{type(exc).__name__}: {exc}"
                )

        return CaptureOutcome(success=True, items=items)
