"""CertLink vendor portal adapter.

Several states host WOTC intake on the CertLink platform. A batch upload is
validated server-side; rows with errors are either fixed (power of attorney
signator mismatch) or dropped, the batch is deleted and the cleaned file is
uploaded again.
"""

from dataclasses import dataclass

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from wotc_relay.db.models.portal import ChannelType
from wotc_relay.formatting.certlink import CERTLINK_STATES, fix_signator_rows, submitted_records
from wotc_relay.formatting.types import FormattedPayload
from wotc_relay.vault.types import DecryptedPortal

from .browser import PlaywrightAdapter
from .types import ChannelError, ErrorKind, SubmissionOutcome

logger = structlog.get_logger()

MAX_BATCH_ATTEMPTS = 3
MAX_ERROR_PAGES = 50

POA_MESSAGE = "Signator listed is not on employer's Power of Attorney for start date."

DASHBOARD_URL = "**/Employer/Dashboard**"
LOGIN_BUTTON = "div:nth-of-type(4) > button"
VALIDATION_SUMMARY = ".validation-summary-errors, .field-validation-error"
BATCH_LINK = (
    '#empAppCollapse ul li:nth-of-type(4) > a, a:has-text("Batch Applications"), '
    'a[href*="BatchApplication"]'
)
ERROR_ROWS = "table#tblBatchDetails tbody tr"
ERROR_PAGE_LINK = "a[aria-controls='tblBatchDetails'][aria-label='Page {number}']"
DELETE_BUTTON = 'button:has-text("Delete Batch Import"), a:has-text("Delete Batch Import")'
CONFIRM_DELETE = 'button:has-text("Yes, Delete this batch"), a:has-text("Yes, Delete this batch")'


@dataclass(frozen=True)
class BatchErrorRow:
    """One row of the CertLink batch validation table."""

    row_number: int
    message: str
    field_name: str
    severity: str


def classify_batch_errors(errors: list[BatchErrorRow]) -> tuple[set[int], set[int]]:
    """Split rejected rows into signator fixes and removals.

    A row whose only error is the power of attorney signator mismatch can be
    fixed by rotating the signator; any other error removes the row.

    Returns:
        (rows to fix, rows to remove)
    """
    poa_rows: set[int] = set()
    other_rows: set[int] = set()
    for error in errors:
        if error.row_number <= 0:
            continue
        if error.message == POA_MESSAGE:
            poa_rows.add(error.row_number)
        else:
            other_rows.add(error.row_number)
    return poa_rows - other_rows, other_rows


class VendorPortalAdapter(PlaywrightAdapter):
    """Batch upload through a CertLink-hosted state portal."""

    channel = ChannelType.VENDOR_PORTAL

    async def _login(self, page: Page, portal: DecryptedPortal) -> None:
        if not portal.portal_url:
            raise ChannelError(ErrorKind.STRUCTURAL, "portal has no login URL")

        await self._goto(page, portal.portal_url, "open_login")
        async with self._step("fill_login", ErrorKind.STRUCTURAL):
            await page.fill("#Email", portal.credentials.user_id, timeout=self.action_timeout_ms)
            await page.fill(
                "#Password",
                portal.credentials.password.get_secret_value(),
                timeout=self.action_timeout_ms,
            )
            await page.check("#Agreement", timeout=self.action_timeout_ms)
            await page.click(LOGIN_BUTTON, timeout=self.action_timeout_ms)

        try:
            await page.wait_for_url(DASHBOARD_URL, timeout=self.navigation_timeout_ms)
        except PlaywrightError as exc:
            if await self._present(page, VALIDATION_SUMMARY):
                raise ChannelError(ErrorKind.AUTH, "portal rejected the credentials") from exc
            raise ChannelError(ErrorKind.TRANSIENT, "dashboard not reached after login") from exc

        logger.debug("certlink_login_complete", state_code=portal.state_code)

    def _signator_candidates(self, portal: DecryptedPortal) -> tuple[str, ...]:
        if portal.channel_config.signator_candidates:
            return tuple(portal.channel_config.signator_candidates)
        state = CERTLINK_STATES.get(portal.state_code)
        return state.candidates if state else ()

    async def _submit(
        self, page: Page, portal: DecryptedPortal, payload: FormattedPayload
    ) -> SubmissionOutcome:
        candidates = self._signator_candidates(portal)
        content = payload.text
        total = payload.record_count

        for attempt in range(1, MAX_BATCH_ATTEMPTS + 1):
            await self._upload_batch(page, payload.filename, content)
            errors = await self._read_batch_errors(page)

            if not errors:
                async with self._step("confirm_batch", ErrorKind.STRUCTURAL):
                    await page.click("#btnProcess", timeout=self.action_timeout_ms)
                await self._wait_idle(page, "await_processing")
                submitted = len(submitted_records(content))
                logger.info(
                    "certlink_batch_confirmed",
                    state_code=portal.state_code,
                    attempt=attempt,
                    records_submitted=submitted,
                )
                return SubmissionOutcome.succeeded(
                    None, records_submitted=submitted, records_rejected=total - submitted
                )

            fix_rows, remove_rows = classify_batch_errors(errors)
            if fix_rows and len(candidates) < 2:
                remove_rows |= fix_rows
                fix_rows = set()

            logger.warning(
                "certlink_batch_errors",
                state_code=portal.state_code,
                attempt=attempt,
                errors=len(errors),
                rows_fixed=len(fix_rows),
                rows_removed=len(remove_rows),
            )
            content = fix_signator_rows(content, fix_rows, remove_rows, candidates)
            await self._delete_batch(page)

            if not content:
                return SubmissionOutcome.failed(
                    ErrorKind.REJECTED,
                    f"all records rejected after {attempt} attempt(s)",
                    records_rejected=total,
                )

        return SubmissionOutcome.failed(
            ErrorKind.REJECTED,
            f"batch errors unresolved after {MAX_BATCH_ATTEMPTS} attempts",
            records_rejected=total,
        )

    async def _upload_batch(self, page: Page, filename: str, content: str) -> None:
        async with self._step("open_batch_applications", ErrorKind.STRUCTURAL):
            await page.click(BATCH_LINK, timeout=self.action_timeout_ms)
        await self._wait_idle(page, "await_batch_applications")

        async with self._step("upload_batch", ErrorKind.STRUCTURAL):
            await page.set_input_files(
                "#BatchData",
                files={
                    "name": filename,
                    "mimeType": "text/csv",
                    "buffer": content.encode("utf-8"),
                },
                timeout=self.action_timeout_ms,
            )
            await page.click("#Upload", timeout=self.action_timeout_ms)

        async with self._step("await_validation", ErrorKind.TRANSIENT):
            await page.wait_for_selector("#btnProcess", timeout=self.navigation_timeout_ms)

    async def _read_batch_errors(self, page: Page) -> list[BatchErrorRow]:
        """Collect Severity=Error rows across every page of the results table."""
        seen: dict[tuple[int, str], BatchErrorRow] = {}

        async with self._step("read_batch_errors", ErrorKind.STRUCTURAL):
            for number in range(1, MAX_ERROR_PAGES + 1):
                if number > 1:
                    link = ERROR_PAGE_LINK.format(number=number)
                    if await page.locator(link).count() == 0:
                        break
                    await page.click(link, timeout=self.action_timeout_ms)

                for row in await page.locator(ERROR_ROWS).all():
                    cells = [c.strip() for c in await row.locator("td").all_inner_texts()]
                    if len(cells) < 4 or cells[3] != "Error":
                        continue
                    error = BatchErrorRow(
                        row_number=int(cells[0]) if cells[0].isdigit() else 0,
                        message=cells[1],
                        field_name=cells[2],
                        severity=cells[3],
                    )
                    seen.setdefault((error.row_number, error.message), error)

        return list(seen.values())

    async def _delete_batch(self, page: Page) -> None:
        async with self._step("delete_batch", ErrorKind.STRUCTURAL):
            await page.click(DELETE_BUTTON, timeout=self.navigation_timeout_ms)
            await page.click(CONFIRM_DELETE, timeout=self.navigation_timeout_ms)
        await self._wait_idle(page, "await_delete")
