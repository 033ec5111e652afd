"""Unit tests for the CertLink vendor portal adapter."""

from contextlib import asynccontextmanager

import pytest
from playwright.async_api import Error as PlaywrightError

from wotc_relay.channels.types import ErrorKind
from wotc_relay.channels.vendor_portal import (
    ERROR_PAGE_LINK,
    ERROR_ROWS,
    POA_MESSAGE,
    VALIDATION_SUMMARY,
    BatchErrorRow,
    VendorPortalAdapter,
    classify_batch_errors,
)
from wotc_relay.db.models.portal import ChannelType
from wotc_relay.formatting.certlink import SIGNATOR_COLUMN, parse_csv
from wotc_relay.formatting.formatter import format_records
from wotc_relay.formatting.types import FormatOptions


class FakeRow:
    def __init__(self, cells: list[str]):
        self.cells = cells

    def locator(self, selector: str) -> "FakeRow":
        return self

    async def all_inner_texts(self) -> list[str]:
        return self.cells


class FakeLocator:
    def __init__(self, page: "FakeCertLinkPage", selector: str):
        self.page = page
        self.selector = selector

    async def count(self) -> int:
        if self.selector == VALIDATION_SUMMARY:
            return 1 if self.page.validation_errors else 0
        for number in range(2, len(self.page.current_pages()) + 1):
            if self.selector == ERROR_PAGE_LINK.format(number=number):
                return 1
        return 0

    async def all(self) -> list[FakeRow]:
        if self.selector != ERROR_ROWS:
            return []
        pages = self.page.current_pages()
        if not pages:
            return []
        return [FakeRow(cells) for cells in pages[self.page.error_page - 1]]


class FakeCertLinkPage:
    """CertLink portal double.

    ``error_tables[n]`` holds the validation pages (lists of rows) shown
    after the n-th upload; uploads beyond the list validate cleanly.
    """

    def __init__(
        self,
        error_tables: list[list[list[list[str]]]] | None = None,
        *,
        dashboard_reached: bool = True,
        validation_errors: bool = False,
    ):
        self.error_tables = error_tables or []
        self.dashboard_reached = dashboard_reached
        self.validation_errors = validation_errors
        self.uploads: list[str] = []
        self.clicks: list[str] = []
        self.error_page = 1

    def current_pages(self) -> list[list[list[str]]]:
        index = len(self.uploads) - 1
        if 0 <= index < len(self.error_tables):
            return self.error_tables[index]
        return []

    async def goto(self, url, wait_until=None, timeout=None):
        pass

    async def fill(self, selector, value, timeout=None):
        pass

    async def check(self, selector, timeout=None):
        pass

    async def click(self, selector, timeout=None):
        self.clicks.append(selector)
        if selector.startswith("a[aria-controls='tblBatchDetails']"):
            self.error_page = int(selector.rsplit("Page ", 1)[1].rstrip("']"))

    async def wait_for_url(self, url, timeout=None):
        if not self.dashboard_reached:
            raise PlaywrightError("Timeout 100ms exceeded")

    async def wait_for_load_state(self, state=None, timeout=None):
        pass

    async def wait_for_selector(self, selector, timeout=None):
        pass

    async def set_input_files(self, selector, files=None, timeout=None):
        self.uploads.append(files["buffer"].decode("utf-8"))
        self.error_page = 1

    async def text_content(self, selector, timeout=None):
        return ""

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)


def make_adapter(page: FakeCertLinkPage) -> VendorPortalAdapter:
    @asynccontextmanager
    async def factory():
        yield page

    return VendorPortalAdapter(factory, action_timeout_ms=100, navigation_timeout_ms=100)


def error(row: int, message: str = POA_MESSAGE, severity: str = "Error") -> list[str]:
    return [str(row), message, "ICF_SignatorName", severity]


@pytest.fixture
def portal(decrypted_portal_factory):
    return decrypted_portal_factory("AZ", channel_type=ChannelType.VENDOR_PORTAL)


@pytest.fixture
def payload(employer, record_factory):
    records = [record_factory(i) for i in range(1, 4)]
    return format_records(
        ChannelType.VENDOR_PORTAL, "AZ", records, FormatOptions(employer=employer)
    )


class TestClassifyBatchErrors:
    """Tests for splitting batch errors into fixes and removals."""

    def test_poa_only_rows_are_fixed(self):
        errors = [
            BatchErrorRow(1, POA_MESSAGE, "ICF_SignatorName", "Error"),
            BatchErrorRow(2, "Invalid SSN", "Form8850_ApplicantSSN", "Error"),
            BatchErrorRow(2, POA_MESSAGE, "ICF_SignatorName", "Error"),
            BatchErrorRow(0, "Header problem", "", "Error"),
        ]

        fix, remove = classify_batch_errors(errors)

        assert fix == {1}
        assert remove == {2}

    def test_no_errors(self):
        assert classify_batch_errors([]) == (set(), set())


class TestVendorPortalSubmit:
    """Tests for the batch upload loop."""

    @pytest.mark.asyncio
    async def test_clean_batch_is_processed(self, portal, payload):
        page = FakeCertLinkPage()

        outcome = await make_adapter(page).submit(portal, payload)

        assert outcome.success is True
        assert outcome.confirmation_number is None
        assert outcome.records_submitted == 3
        assert outcome.records_rejected == 0
        assert len(page.uploads) == 1
        assert "#btnProcess" in page.clicks

    @pytest.mark.asyncio
    async def test_signator_error_is_fixed_and_reuploaded(self, portal, payload):
        page = FakeCertLinkPage([[[error(1)]]])

        outcome = await make_adapter(page).submit(portal, payload)

        assert outcome.success is True
        assert outcome.records_submitted == 3
        assert len(page.uploads) == 2
        _, rows = parse_csv(page.uploads[1])
        assert rows[0][SIGNATOR_COLUMN] == "Philip Wentworth, CEO"
        assert rows[1][SIGNATOR_COLUMN] == "David Young"

    @pytest.mark.asyncio
    async def test_other_errors_remove_rows(self, portal, payload):
        page = FakeCertLinkPage([[[error(2, "Invalid SSN"), error(3, "Ignored", "Warning")]]])

        outcome = await make_adapter(page).submit(portal, payload)

        assert outcome.success is True
        assert outcome.records_submitted == 2
        assert outcome.records_rejected == 1
        _, rows = parse_csv(page.uploads[1])
        assert [r["Form8850_ApplicantSSN"] for r in rows] == ["123456001", "123456003"]

    @pytest.mark.asyncio
    async def test_errors_on_later_pages_are_read(self, portal, payload):
        page = FakeCertLinkPage([[[], [error(3, "Invalid zip")]]])

        outcome = await make_adapter(page).submit(portal, payload)

        assert outcome.records_submitted == 2
        assert ERROR_PAGE_LINK.format(number=2) in page.clicks

    @pytest.mark.asyncio
    async def test_all_rows_rejected(self, portal, payload):
        page = FakeCertLinkPage([[[error(1, "Bad"), error(2, "Bad"), error(3, "Bad")]]])

        outcome = await make_adapter(page).submit(portal, payload)

        assert outcome.success is False
        assert outcome.error_kind is ErrorKind.REJECTED
        assert outcome.error_detail == "all records rejected after 1 attempt(s)"
        assert outcome.records_rejected == 3

    @pytest.mark.asyncio
    async def test_unresolved_after_max_attempts(self, portal, payload):
        page = FakeCertLinkPage([[[error(1)]], [[error(1)]], [[error(1)]]])

        outcome = await make_adapter(page).submit(portal, payload)

        assert outcome.error_kind is ErrorKind.REJECTED
        assert "unresolved after 3 attempts" in outcome.error_detail
        assert len(page.uploads) == 3


class TestVendorPortalLogin:
    """Tests for CertLink login classification."""

    @pytest.mark.asyncio
    async def test_validation_summary_is_auth(self, portal):
        page = FakeCertLinkPage(dashboard_reached=False, validation_errors=True)

        result = await make_adapter(page).test_credentials(portal)

        assert result.error_kind is ErrorKind.AUTH

    @pytest.mark.asyncio
    async def test_no_dashboard_is_transient(self, portal):
        page = FakeCertLinkPage(dashboard_reached=False)

        result = await make_adapter(page).test_credentials(portal)

        assert result.error_kind is ErrorKind.TRANSIENT

    @pytest.mark.asyncio
    async def test_login_succeeds(self, portal):
        result = await make_adapter(FakeCertLinkPage()).test_credentials(portal)

        assert result.success is True
