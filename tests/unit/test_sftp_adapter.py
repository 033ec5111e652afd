"""Unit tests for the SFTP drop adapter."""

from decimal import Decimal

import asyncssh
import pytest

from wotc_relay.channels.sftp import (
    SftpAdapter,
    classify_sftp_error,
    is_determination_file,
    parse_determination_file,
    sftp_confirmation,
)
from wotc_relay.channels.types import ErrorKind
from wotc_relay.config.channels import StateChannelConfig
from wotc_relay.db.models.portal import ChannelType
from wotc_relay.formatting.types import FormattedPayload, LayoutKind


class FakeRemoteFile:
    def __init__(self, server: "FakeSftpServer", path: str):
        self.server = server
        self.path = path

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def write(self, data: bytes) -> None:
        self.server.files[self.path] = data

    async def read(self) -> bytes:
        return self.server.files[self.path]


class FakeSftpClient:
    def __init__(self, server: "FakeSftpServer"):
        self.server = server

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def open(self, path: str, mode: str) -> FakeRemoteFile:
        if self.server.open_error:
            raise self.server.open_error
        return FakeRemoteFile(self.server, path)

    async def listdir(self, path: str) -> list[str]:
        prefix = "" if path == "/" else path.rstrip("/") + "/"
        return [name[len(prefix) :] for name in self.server.files if name.startswith(prefix)]


class FakeConnection:
    def __init__(self, server: "FakeSftpServer"):
        self.server = server

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def start_sftp_client(self) -> FakeSftpClient:
        return FakeSftpClient(self.server)


class FakeSftpServer:
    """In-memory SFTP host; ``connect`` mimics asyncssh.connect."""

    def __init__(self, *, connect_error=None, open_error=None):
        self.files: dict[str, bytes] = {}
        self.connect_error = connect_error
        self.open_error = open_error
        self.connections: list[tuple[str, dict]] = []

    def connect(self, host: str, **options) -> FakeConnection:
        self.connections.append((host, options))
        if self.connect_error:
            raise self.connect_error
        return FakeConnection(self)


def make_adapter(server: FakeSftpServer, **kwargs) -> SftpAdapter:
    return SftpAdapter(server.connect, host="sftp.example.com", port=2222, **kwargs)


@pytest.fixture
def payload() -> FormattedPayload:
    return FormattedPayload(
        content=b"ROCKERBOX   123456789...",
        filename="ALNOVELEVENTXT.txt",
        record_count=1,
        layout=LayoutKind.FIXED_WIDTH,
        state_code="AL",
        remote_path="AL.DIR;1/ALNOVELEVENTXT.txt",
    )


@pytest.fixture
def portal(decrypted_portal_factory):
    return decrypted_portal_factory("AL", channel_type=ChannelType.SFTP, portal_url=None)


class TestClassifySftpError:
    """Tests for mapping asyncssh failures to error kinds."""

    @pytest.mark.parametrize(
        "exc,expected",
        [
            (asyncssh.PermissionDenied("bad password"), ErrorKind.AUTH),
            (asyncssh.HostKeyNotVerifiable("unknown host"), ErrorKind.STRUCTURAL),
            (asyncssh.ConnectionLost("reset"), ErrorKind.TRANSIENT),
            (asyncssh.SFTPNoSuchFile("no such dir"), ErrorKind.STRUCTURAL),
            (asyncssh.SFTPPermissionDenied("read only"), ErrorKind.AUTH),
            (asyncssh.SFTPFailure("quota"), ErrorKind.STRUCTURAL),
            (ConnectionRefusedError("refused"), ErrorKind.TRANSIENT),
            (TimeoutError(), ErrorKind.TRANSIENT),
            (ValueError("odd"), ErrorKind.UNEXPECTED),
        ],
    )
    def test_classification(self, exc, expected):
        assert classify_sftp_error(exc) is expected


class TestSftpSubmit:
    """Tests for uploading payloads."""

    @pytest.mark.asyncio
    async def test_upload_writes_remote_file(self, portal, payload):
        server = FakeSftpServer()

        outcome = await make_adapter(server).submit(portal, payload)

        assert outcome.success is True
        assert outcome.records_submitted == 1
        assert outcome.confirmation_number == f"ALNOVELEVENTXT.txt:{payload.digest[:12]}"
        assert outcome.confirmation_number == sftp_confirmation(payload)
        assert server.files["AL.DIR;1/ALNOVELEVENTXT.txt"] == payload.content

    @pytest.mark.asyncio
    async def test_connection_options(self, portal, payload):
        server = FakeSftpServer()

        await make_adapter(server, known_hosts="/etc/ssh/known_hosts").submit(portal, payload)

        host, options = server.connections[0]
        assert host == "sftp.example.com"
        assert options["port"] == 2222
        assert options["username"] == "acme-user"
        assert options["password"] == "s3cret-pass"
        assert options["client_keys"] is None
        assert options["known_hosts"] == "/etc/ssh/known_hosts"

    @pytest.mark.asyncio
    async def test_channel_config_overrides_host_and_directory(
        self, decrypted_portal_factory, payload
    ):
        portal = decrypted_portal_factory(
            "AL",
            channel_type=ChannelType.SFTP,
            channel_config=StateChannelConfig(
                sftp_host="drop.agency.gov", sftp_port=22, remote_dir="/inbound"
            ),
        )
        server = FakeSftpServer()

        await make_adapter(server).submit(portal, payload)

        assert server.connections[0][0] == "drop.agency.gov"
        assert server.connections[0][1]["port"] == 22
        assert "/inbound/ALNOVELEVENTXT.txt" in server.files

    @pytest.mark.asyncio
    async def test_missing_remote_path_is_structural(self, portal):
        payload = FormattedPayload(
            content=b"x", filename="x.csv", record_count=1, layout=LayoutKind.TEXAS_CSV, state_code="TX"
        )
        server = FakeSftpServer()

        outcome = await make_adapter(server).submit(portal, payload)

        assert outcome.error_kind is ErrorKind.STRUCTURAL
        assert server.connections == []

    @pytest.mark.asyncio
    async def test_permission_denied_is_auth(self, portal, payload):
        server = FakeSftpServer(connect_error=asyncssh.PermissionDenied("Permission denied"))

        outcome = await make_adapter(server).submit(portal, payload)

        assert outcome.error_kind is ErrorKind.AUTH
        assert outcome.error_detail.startswith("PermissionDenied:")

    @pytest.mark.asyncio
    async def test_socket_error_is_transient(self, portal, payload):
        server = FakeSftpServer(connect_error=ConnectionResetError("reset by peer"))

        outcome = await make_adapter(server).submit(portal, payload)

        assert outcome.error_kind is ErrorKind.TRANSIENT
        assert outcome.error_kind.is_retryable

    @pytest.mark.asyncio
    async def test_missing_directory_is_structural(self, portal, payload):
        server = FakeSftpServer(open_error=asyncssh.SFTPNoSuchFile("No such file"))

        outcome = await make_adapter(server).submit(portal, payload)

        assert outcome.error_kind is ErrorKind.STRUCTURAL


class TestSftpCredentialsAndCapture:
    """Tests for credential checks and determination capture."""

    @pytest.mark.asyncio
    async def test_test_credentials(self, portal):
        result = await make_adapter(FakeSftpServer()).test_credentials(portal)

        assert result.success is True

    @pytest.mark.asyncio
    async def test_test_credentials_failure(self, portal):
        server = FakeSftpServer(connect_error=asyncssh.PermissionDenied("nope"))

        result = await make_adapter(server).test_credentials(portal)

        assert result.success is False
        assert result.error_kind is ErrorKind.AUTH

    @pytest.mark.asyncio
    async def test_capture_reads_determination_files(self, portal):
        server = FakeSftpServer()
        server.files["AL.DIR;1/ALNOVELEVENTXT.txt"] = b"outbound file"
        server.files["AL.DIR;1/AL_DETERMINATIONS_0601.csv"] = (
            b"ssn,status,cert,amount\n"
            b"123-45-6001,Certified,AL-1,\"$2,400.00\"\n"
            b"123-45-6002,Denied,,\n"
        )
        server.files["AL.DIR;1/results_0602.csv"] = b"123456003,Pending\n"

        outcome = await make_adapter(server).capture_determinations(portal)

        assert outcome.success is True
        assert [item.ssn for item in outcome.items] == ["123456001", "123456002", "123456003"]
        assert outcome.items[0].credit_amount == Decimal("2400.00")
        assert outcome.items[0].certification_number == "AL-1"
        assert outcome.items[1].certification_number is None

    @pytest.mark.asyncio
    async def test_capture_failure(self, portal):
        server = FakeSftpServer(connect_error=asyncssh.ConnectionLost("gone"))

        outcome = await make_adapter(server).capture_determinations(portal)

        assert outcome.success is False
        assert outcome.error_kind is ErrorKind.TRANSIENT


class TestDeterminationFiles:
    """Tests for determination file helpers."""

    def test_is_determination_file(self):
        assert is_determination_file("TX_Determinations.csv")
        assert is_determination_file("results.csv")
        assert is_determination_file("RESPONSE_0601.txt")
        assert not is_determination_file("ALNOVELEVENTXT.txt")

    def test_parse_skips_invalid_rows(self):
        text = "ssn,status\n12345,Certified\n123456789,\n987-65-4321,Denied\n"

        items = parse_determination_file(text)

        assert len(items) == 1
        assert items[0].ssn == "987654321"
        assert items[0].status == "Denied"
