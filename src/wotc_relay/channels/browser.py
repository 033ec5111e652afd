"""Browser automation adapter for state agency web portals.

Drives the portal's bulk-upload flow with Playwright: log in, complete the
MFA step, upload the file, accept the agreements and read back the
confirmation. Each step declares the ErrorKind its failures map to.
"""

import asyncio
import re
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from functools import partial
from uuid import UUID

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, async_playwright

from wotc_relay.config.settings import get_settings
from wotc_relay.db.models.portal import ChannelType, MfaType
from wotc_relay.formatting.types import FormattedPayload
from wotc_relay.observability.metrics import observe_adapter_call
from wotc_relay.vault.mfa import answer_for_question, resolve_mfa_code
from wotc_relay.vault.types import DecryptedPortal

from .types import (
    CapturedDetermination,
    CaptureOutcome,
    ChannelError,
    CredentialTestResult,
    ErrorKind,
    SubmissionOutcome,
    parse_amount,
)

logger = structlog.get_logger()

PageFactory = Callable[[], AbstractAsyncContextManager[Page]]

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-blink-features=AutomationControlled",
]

LOGIN_ERROR_PATTERN = re.compile(r"invalid.*credentials|incorrect.*password|login.*failed", re.I)
INCOMPLETE_PATTERN = re.compile(r"incomplete.*applications", re.I)
SUCCESS_PATTERN = re.compile(r"\bsuccessfully\b|\bsubmitted\b", re.I)

# Tried in order; the first match wins
CONFIRMATION_PATTERNS = (
    re.compile(r"claim number range:\s*([\d-]+\s*to\s*[\d-]+)", re.I),
    re.compile(r"confirmation.*number[s]?:\s*([\d-]+(?:\s*to\s*[\d-]+)?)", re.I),
    re.compile(r"successfully.*submitted.*?(\d+)\s*applications?", re.I),
)


def extract_confirmation(text: str) -> str | None:
    """Pull the confirmation identifier out of the post-submit page text."""
    for pattern in CONFIRMATION_PATTERNS:
        match = pattern.search(text)
        if match:
            return " ".join(match.group(1).split())
    return None


@asynccontextmanager
async def launch_page(headless: bool = True) -> AsyncIterator[Page]:
    """Open a fresh Chromium page; the browser closes on exit."""
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=headless, args=LAUNCH_ARGS)
        try:
            context = await browser.new_context(
                viewport={"width": 1366, "height": 768},
                locale="en-US",
            )
            yield await context.new_page()
        finally:
            await browser.close()


class PlaywrightAdapter:
    """Shared session handling and step classification for browser channels.

    Logins are serialized per portal: two callers never drive the same
    portal account at once.
    """

    channel: ChannelType = ChannelType.BROWSER

    def __init__(
        self,
        page_factory: PageFactory | None = None,
        *,
        action_timeout_ms: int = 20_000,
        navigation_timeout_ms: int = 60_000,
    ):
        if page_factory is None:
            page_factory = partial(launch_page, get_settings().BROWSER_HEADLESS)
        self._page_factory = page_factory
        self.action_timeout_ms = action_timeout_ms
        self.navigation_timeout_ms = navigation_timeout_ms
        self._session_locks: dict[UUID, asyncio.Lock] = {}

    def _lock_for(self, portal_id: UUID) -> asyncio.Lock:
        lock = self._session_locks.get(portal_id)
        if lock is None:
            lock = self._session_locks[portal_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def _session(self, portal: DecryptedPortal) -> AsyncIterator[Page]:
        async with self._lock_for(portal.portal_id):
            async with self._page_factory() as page:
                yield page

    @asynccontextmanager
    async def _step(self, name: str, kind: ErrorKind) -> AsyncIterator[None]:
        """Map Playwright failures inside the block to ``kind``."""
        try:
            yield
        except PlaywrightError as exc:
            message = str(exc).strip().splitlines()
            detail = message[0] if message else type(exc).__name__
            raise ChannelError(kind, f"{name}: {detail}") from exc

    async def _present(self, page: Page, selector: str) -> bool:
        async with self._step("find_element", ErrorKind.STRUCTURAL):
            return await page.locator(selector).count() > 0

    async def _body_text(self, page: Page) -> str:
        async with self._step("read_page", ErrorKind.STRUCTURAL):
            return await page.text_content("body", timeout=self.action_timeout_ms) or ""

    async def _wait_idle(self, page: Page, name: str) -> None:
        async with self._step(name, ErrorKind.TRANSIENT):
            await page.wait_for_load_state("networkidle", timeout=self.navigation_timeout_ms)

    async def _goto(self, page: Page, url: str, name: str) -> None:
        async with self._step(name, ErrorKind.TRANSIENT):
            await page.goto(url, wait_until="networkidle", timeout=self.navigation_timeout_ms)

    # Subclasses implement the portal flows

    async def _login(self, page: Page, portal: DecryptedPortal) -> None:
        raise NotImplementedError

    async def _submit(
        self, page: Page, portal: DecryptedPortal, payload: FormattedPayload
    ) -> SubmissionOutcome:
        raise NotImplementedError

    async def _capture(self, page: Page, portal: DecryptedPortal) -> list[CapturedDetermination]:
        """Scrape (SSN, status, certification number, credit) rows from ``results_url``."""
        config = portal.channel_config
        if not config.results_url:
            raise ChannelError(ErrorKind.STRUCTURAL, "no results_url configured")

        await self._goto(page, config.results_url, "open_results")
        items: list[CapturedDetermination] = []
        async with self._step("read_results", ErrorKind.STRUCTURAL):
            rows = await page.locator(config.selectors.results_rows).all()
            for row in rows:
                cells = [c.strip() for c in await row.locator("td").all_inner_texts()]
                if len(cells) < 2 or not cells[0]:
                    continue
                items.append(
                    CapturedDetermination(
                        ssn=cells[0],
                        status=cells[1],
                        certification_number=(cells[2] or None) if len(cells) > 2 else None,
                        credit_amount=parse_amount(cells[3]) if len(cells) > 3 else None,
                    )
                )
        return items

    async def submit(
        self, portal: DecryptedPortal, payload: FormattedPayload
    ) -> SubmissionOutcome:
        with observe_adapter_call(self.channel.value, "submit") as ctx:
            try:
                async with self._session(portal) as page:
                    await self._login(page, portal)
                    outcome = await self._submit(page, portal, payload)
            except ChannelError as exc:
                outcome = SubmissionOutcome.from_error(exc)
            except PlaywrightError as exc:
                outcome = SubmissionOutcome.failed(
                    ErrorKind.TRANSIENT, f"browser session failed: {exc}"
                )
            ctx["outcome"] = "success" if outcome.success else outcome.error_kind.value

        log = logger.info if outcome.success else logger.warning
        log(
            "portal_submission_finished",
            channel=self.channel.value,
            state_code=portal.state_code,
            success=outcome.success,
            error_kind=outcome.error_kind.value if outcome.error_kind else None,
            error_detail=outcome.error_detail,
            records_submitted=outcome.records_submitted,
        )
        return outcome

    async def test_credentials(self, portal: DecryptedPortal) -> CredentialTestResult:
        with observe_adapter_call(self.channel.value, "test_credentials") as ctx:
            try:
                async with self._session(portal) as page:
                    await self._login(page, portal)
            except ChannelError as exc:
                ctx["outcome"] = exc.kind.value
                return CredentialTestResult(success=False, error_kind=exc.kind, detail=exc.detail)
            except PlaywrightError as exc:
                ctx["outcome"] = ErrorKind.TRANSIENT.value
                return CredentialTestResult(
                    success=False,
                    error_kind=ErrorKind.TRANSIENT,
                    detail=f"browser session failed: {exc}",
                )
        return CredentialTestResult(success=True, detail="login succeeded")

    async def capture_determinations(self, portal: DecryptedPortal) -> CaptureOutcome:
        with observe_adapter_call(self.channel.value, "capture") as ctx:
            try:
                async with self._session(portal) as page:
                    await self._login(page, portal)
                    items = await self._capture(page, portal)
            except ChannelError as exc:
                ctx["outcome"] = exc.kind.value
                return CaptureOutcome.from_error(exc)
            except PlaywrightError as exc:
                ctx["outcome"] = ErrorKind.TRANSIENT.value
                return CaptureOutcome(
                    success=False,
                    error_kind=ErrorKind.TRANSIENT,
                    error_detail=f"browser session failed: {exc}",
                )
        return CaptureOutcome(success=True, items=items)


class BrowserPortalAdapter(PlaywrightAdapter):
    """Agency-hosted bulk upload portals (Texas style).

    Selectors come from the portal's ``channel_config.selectors``.
    """

    channel = ChannelType.BROWSER

    async def _login(self, page: Page, portal: DecryptedPortal) -> None:
        selectors = portal.channel_config.selectors
        if not portal.portal_url:
            raise ChannelError(ErrorKind.STRUCTURAL, "portal has no login URL")

        await self._goto(page, portal.portal_url, "open_login")
        async with self._step("fill_login", ErrorKind.STRUCTURAL):
            await page.fill(
                selectors.username, portal.credentials.user_id, timeout=self.action_timeout_ms
            )
            await page.fill(
                selectors.password,
                portal.credentials.password.get_secret_value(),
                timeout=self.action_timeout_ms,
            )
            await page.click(selectors.submit, timeout=self.action_timeout_ms)
        await self._wait_idle(page, "await_login")

        if await self._present(page, selectors.login_error) or LOGIN_ERROR_PATTERN.search(
            await self._body_text(page)
        ):
            raise ChannelError(ErrorKind.AUTH, "portal rejected the credentials")

        await self._complete_mfa(page, portal)
        logger.debug("browser_login_complete", state_code=portal.state_code)

    async def _complete_mfa(self, page: Page, portal: DecryptedPortal) -> None:
        selectors = portal.channel_config.selectors

        if portal.mfa_type is not MfaType.NONE:
            code = resolve_mfa_code(portal)
            if code is None:
                raise ChannelError(
                    ErrorKind.MFA,
                    f"{portal.mfa_type.value} code unavailable, manual entry required",
                )
            if await self._present(page, selectors.mfa_input):
                await self._answer_prompt(page, portal, selectors.mfa_input, code)

        if portal.challenge_questions and await self._present(page, selectors.challenge_question):
            async with self._step("read_challenge", ErrorKind.STRUCTURAL):
                prompt = await page.text_content(
                    selectors.challenge_question, timeout=self.action_timeout_ms
                )
            answer = answer_for_question(portal.challenge_questions, prompt or "")
            if answer is None:
                raise ChannelError(ErrorKind.MFA, "no stored answer for the challenge question")
            await self._answer_prompt(page, portal, selectors.challenge_answer, answer)

    async def _answer_prompt(
        self, page: Page, portal: DecryptedPortal, selector: str, value: str
    ) -> None:
        selectors = portal.channel_config.selectors
        async with self._step("answer_mfa", ErrorKind.STRUCTURAL):
            await page.fill(selector, value, timeout=self.action_timeout_ms)
            await page.click(selectors.mfa_submit, timeout=self.action_timeout_ms)
        await self._wait_idle(page, "await_mfa")
        if await self._present(page, selectors.mfa_error):
            raise ChannelError(ErrorKind.MFA, "portal rejected the MFA response")

    async def _submit(
        self, page: Page, portal: DecryptedPortal, payload: FormattedPayload
    ) -> SubmissionOutcome:
        config = portal.channel_config
        selectors = config.selectors

        if config.bulk_upload_url:
            await self._goto(page, config.bulk_upload_url, "open_bulk_upload")
        else:
            async with self._step("open_bulk_upload", ErrorKind.STRUCTURAL):
                await page.click(selectors.bulk_upload_link, timeout=self.action_timeout_ms)
            await self._wait_idle(page, "await_bulk_upload")

        mime_type = "text/csv" if payload.filename.endswith(".csv") else "text/plain"
        async with self._step("attach_file", ErrorKind.STRUCTURAL):
            await page.set_input_files(
                selectors.file_input,
                files={"name": payload.filename, "mimeType": mime_type, "buffer": payload.content},
                timeout=self.action_timeout_ms,
            )
            await page.click(selectors.next_button, timeout=self.action_timeout_ms)
        await self._wait_idle(page, "await_review")

        if INCOMPLETE_PATTERN.search(await self._body_text(page)):
            return SubmissionOutcome.failed(
                ErrorKind.REJECTED,
                "agency reported incomplete applications",
                records_rejected=payload.record_count,
            )

        required = config.min_agreement_checkboxes
        checkboxes = page.locator(selectors.agreement_checkbox)
        async with self._step("accept_agreements", ErrorKind.STRUCTURAL):
            found = await checkboxes.count()
            if found < required:
                raise ChannelError(
                    ErrorKind.STRUCTURAL,
                    f"expected {required} agreement checkboxes, found {found}",
                )
            for index in range(required):
                await checkboxes.nth(index).check(timeout=self.action_timeout_ms)
            await page.click(selectors.submit_button, timeout=self.action_timeout_ms)
        await self._wait_idle(page, "await_confirmation")

        body = await self._body_text(page)
        confirmation = extract_confirmation(body)
        if confirmation is None and not SUCCESS_PATTERN.search(body):
            raise ChannelError(ErrorKind.STRUCTURAL, "no confirmation shown after submit")
        return SubmissionOutcome.succeeded(confirmation, payload.record_count)

