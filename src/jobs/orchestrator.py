"""
Query orchestration: one listing query plus per-row detail fetches on a
checked-out session, with whole-run retries on a fresh session.
"""
import logging
from typing import Awaitable, Callable, Optional

from src.auth.login_detector import is_login_page
from src.auth.session import Session
from src.config import config
from src.errors import AuthenticationError, ScraperError
from src.fetch.endpoints import build_query_payload, detail_url, query_action_url
from src.jobs.retry import RetryPolicy
from src.parse.detail import parse_detail
from src.parse.listing import RESULTS_TABLE_SELECTOR, parse_listing
from src.parse.models import Credentials, DetailError, ListingRow, QueryRequest, ScrapeResult
from src.parse.redact import redact_cookies, redact_dict
from src.pool.session_pool import SessionPool

logger = logging.getLogger(__name__)

QUALIFYING_STATUS = "SOLICITADO"
MISSING_CODE_ERROR = "Sin codigoAutorizacion"
SESSION_EXPIRED_ERROR = "Sesión expirada: el portal redirigió al login"

ScreenshotSink = Callable[[str, bytes], Awaitable[None]]


async def log_screenshot(authorization_code: str, image: bytes) -> None:
    """Default sink: screenshots are not persisted, only reported."""
    logger.info(f"Screenshot for {authorization_code}: {len(image)} bytes")


class QueryOrchestrator:
    """Runs listing queries through the session pool."""

    def __init__(
        self,
        pool: SessionPool,
        max_details: Optional[int] = None,
        show_full_details: Optional[bool] = None,
        save_screenshots: Optional[bool] = None,
        screenshot_sink: Optional[ScreenshotSink] = None,
        max_attempts: Optional[int] = None,
        first_run_extra_attempts: Optional[int] = None,
        retry_wait_seconds: Optional[float] = None,
        navigation_timeout_ms: Optional[int] = None,
        results_timeout_ms: Optional[int] = None,
    ):
        self.pool = pool
        self.max_details = config.MAX_DETAILS if max_details is None else max_details
        self.show_full_details = config.SHOW_FULL_DETAILS if show_full_details is None else show_full_details
        self.save_screenshots = config.SAVE_SCREENSHOTS if save_screenshots is None else save_screenshots
        self.screenshot_sink = screenshot_sink or log_screenshot
        self.max_attempts = config.MAX_ATTEMPTS if max_attempts is None else max_attempts
        self.first_run_extra_attempts = (
            config.FIRST_RUN_EXTRA_ATTEMPTS if first_run_extra_attempts is None else first_run_extra_attempts
        )
        self.retry_wait_seconds = config.RETRY_WAIT_SECONDS if retry_wait_seconds is None else retry_wait_seconds
        self.navigation_timeout_ms = navigation_timeout_ms or config.NAVIGATION_TIMEOUT_MS
        self.results_timeout_ms = results_timeout_ms or config.RESULTS_TIMEOUT_MS
        self._first_run = True

    def _retry_policy(self) -> RetryPolicy:
        attempts = self.max_attempts
        if self._first_run:
            # Cold browser and first login are the likeliest to flake
            attempts += self.first_run_extra_attempts
            self._first_run = False
        return RetryPolicy(max_attempts=attempts, wait_seconds=self.retry_wait_seconds)

    async def execute(self, credentials: Credentials, request: QueryRequest) -> ScrapeResult:
        """Run the query, retrying retryable failures on a new session each time."""
        policy = self._retry_policy()

        async def attempt(number: int) -> ScrapeResult:
            logger.info(f"Query {request.authorization_code} attempt {number}/{policy.max_attempts}")
            async with self.pool.session(credentials) as session:
                return await self.run(session, request)

        return await policy.call(attempt)

    def _qualifies(self, row: ListingRow) -> bool:
        return self.show_full_details or row.status == QUALIFYING_STATUS

    async def run(self, session: Session, request: QueryRequest) -> ScrapeResult:
        """One attempt on an already-authenticated session."""
        driver = session.driver
        log = session.log
        payload = build_query_payload(request)
        log.info(f"Submitting query: {redact_dict(payload)}")

        await driver.navigate(config.QUERY_PAGE_URL, timeout_ms=self.navigation_timeout_ms)
        await driver.submit_form(query_action_url(), payload, timeout_ms=self.navigation_timeout_ms)
        try:
            await driver.wait_for_selector(RESULTS_TABLE_SELECTOR, timeout_ms=self.results_timeout_ms)
        except ScraperError as e:
            # Parsing the page reports the missing table
            log.info(f"Results table did not appear: {e}")

        html = await driver.content()
        if is_login_page(html, driver.url):
            raise AuthenticationError(SESSION_EXPIRED_ERROR)
        listing = parse_listing(html)
        if listing.message:
            log.info(f"Empty listing: {listing.message}")
            return ScrapeResult(rows=[], message=listing.message)

        log.debug(f"Session cookies: {redact_cookies(await driver.read_cookies())}")
        referer = driver.url
        fetched = 0
        for row in listing.rows:
            if not self._qualifies(row):
                continue
            if fetched >= self.max_details:
                log.info(f"Detail limit {self.max_details} reached")
                break
            fetched += 1
            row.detail = await self._fetch_detail(session, row, referer)

        log.info(f"Query {request.authorization_code}: {len(listing.rows)} rows, {fetched} details")
        return ScrapeResult(rows=listing.rows)

    async def _fetch_detail(self, session: Session, row: ListingRow, referer: str):
        """Fetch and parse one detail page. Failures stay with the row."""
        if not row.authorization_code:
            return DetailError(error=MISSING_CODE_ERROR)

        driver = session.driver
        try:
            await driver.navigate(detail_url(row.authorization_code), timeout_ms=self.navigation_timeout_ms)
            html = await driver.content()
            if self.save_screenshots:
                await self.screenshot_sink(row.authorization_code, await driver.screenshot())
            detail = parse_detail(html)
        except ScraperError as e:
            session.log.warning(f"Detail {row.authorization_code} failed: {e.message}")
            detail = DetailError(error=e.message)

        try:
            await driver.navigate(referer, timeout_ms=self.navigation_timeout_ms)
        except ScraperError as e:
            session.log.warning(f"Could not return to listing page: {e.message}")
        return detail
