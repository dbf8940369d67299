"""
Automation driver: the capability contract the core needs from a browser page,
plus its Playwright implementation.

Every wait carries an explicit timeout. Playwright exceptions are translated
here into NavigationTimeoutError / DriverError so nothing above this module
depends on the engine.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Protocol

from playwright.async_api import BrowserContext, Page
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from src.errors import DriverError, NavigationTimeoutError

logger = logging.getLogger(__name__)

# Builds and submits a same-origin POST form from a {name: value} mapping.
SUBMIT_FORM_JS = """
([action, fields]) => {
    const form = document.createElement('form');
    form.method = 'POST';
    form.action = action;
    for (const [key, value] of Object.entries(fields)) {
        const input = document.createElement('input');
        input.type = 'hidden';
        input.name = key;
        input.value = value;
        form.appendChild(input);
    }
    document.body.appendChild(form);
    form.submit();
}
"""

CHALLENGE_JS = """
([siteKey, action]) => new Promise((resolve) => {
    try {
        grecaptcha.ready(() => {
            grecaptcha.execute(siteKey, { action: action })
                .then((token) => resolve(token))
                .catch(() => resolve(null));
        });
    } catch (e) {
        resolve(null);
    }
})
"""

BLOCKED_RESOURCE_TYPES = ("image", "font", "stylesheet")


class AutomationDriver(Protocol):
    """What the authenticator and orchestrator need from one browser page."""

    @property
    def url(self) -> str: ...

    async def navigate(self, url: str, *, timeout_ms: int, wait_until: str = "domcontentloaded") -> None: ...

    async def fill(self, selector: str, value: str, *, timeout_ms: int) -> None: ...

    async def click(self, selector: str, *, timeout_ms: int) -> None: ...

    async def click_and_wait_for_navigation(self, selector: str, *, timeout_ms: int) -> None: ...

    async def wait_for_selector(self, selector: str, *, timeout_ms: int) -> None: ...

    async def wait_for_predicate(self, expression: str, *, timeout_ms: int) -> None: ...

    async def evaluate(self, script: str, arg: Any = None, *, timeout_ms: int) -> Any: ...

    async def submit_form(self, action: str, fields: dict[str, str], *, timeout_ms: int) -> None: ...

    async def content(self) -> str: ...

    async def read_cookies(self) -> list[dict]: ...

    async def screenshot(self) -> bytes: ...

    async def try_solve_challenge(self, site_key: str, action: str, *, timeout_ms: int) -> Optional[str]: ...

    async def close(self) -> None: ...


@asynccontextmanager
async def translate_errors(step: str, timeout_ms: Optional[int] = None) -> AsyncIterator[None]:
    """Map engine errors for *step* to the project's error taxonomy."""
    try:
        yield
    except (PlaywrightTimeout, asyncio.TimeoutError) as e:
        raise NavigationTimeoutError(step, timeout_ms) from e
    except PlaywrightError as e:
        raise DriverError(f"{step} failed: {e}") from e


class PlaywrightDriver:
    """AutomationDriver over one Playwright page in its own browser context."""

    def __init__(self, page: Page, context: BrowserContext):
        self.page = page
        self.context = context
        self._closed = False

    @classmethod
    async def open(cls, context: BrowserContext, block_resources: bool = False) -> "PlaywrightDriver":
        """
        Create a page in *context*, optionally aborting heavy resources.
        The context is closed if the page cannot be set up.
        """
        try:
            async with translate_errors("new page"):
                page = await context.new_page()
                if block_resources:
                    async def _route(route):
                        if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
                            await route.abort()
                        else:
                            await route.continue_()

                    await page.route("**/*", _route)
        except (DriverError, NavigationTimeoutError, asyncio.CancelledError):
            try:
                await context.close()
            except PlaywrightError as e:
                logger.debug(f"Error closing context after failed page setup: {e}")
            raise
        return cls(page, context)

    @property
    def url(self) -> str:
        return self.page.url

    async def navigate(self, url: str, *, timeout_ms: int, wait_until: str = "domcontentloaded") -> None:
        async with translate_errors(f"navigation to {url}", timeout_ms):
            await self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)

    async def fill(self, selector: str, value: str, *, timeout_ms: int) -> None:
        async with translate_errors(f"fill {selector}", timeout_ms):
            await self.page.fill(selector, value, timeout=timeout_ms)

    async def click(self, selector: str, *, timeout_ms: int) -> None:
        async with translate_errors(f"click {selector}", timeout_ms):
            await self.page.click(selector, timeout=timeout_ms)

    async def click_and_wait_for_navigation(self, selector: str, *, timeout_ms: int) -> None:
        async with translate_errors(f"navigation after clicking {selector}", timeout_ms):
            async with self.page.expect_navigation(wait_until="domcontentloaded", timeout=timeout_ms):
                await self.page.click(selector, timeout=timeout_ms)

    async def wait_for_selector(self, selector: str, *, timeout_ms: int) -> None:
        async with translate_errors(f"selector {selector}", timeout_ms):
            await self.page.wait_for_selector(selector, timeout=timeout_ms)

    async def wait_for_predicate(self, expression: str, *, timeout_ms: int) -> None:
        async with translate_errors(f"predicate {expression}", timeout_ms):
            await self.page.wait_for_function(expression, timeout=timeout_ms)

    async def evaluate(self, script: str, arg: Any = None, *, timeout_ms: int) -> Any:
        # page.evaluate has no timeout of its own
        async with translate_errors("script evaluation", timeout_ms):
            return await asyncio.wait_for(self.page.evaluate(script, arg), timeout_ms / 1000)

    async def submit_form(self, action: str, fields: dict[str, str], *, timeout_ms: int) -> None:
        async with translate_errors(f"form post to {action}", timeout_ms):
            async with self.page.expect_navigation(wait_until="domcontentloaded", timeout=timeout_ms):
                await self.page.evaluate(SUBMIT_FORM_JS, [action, fields])

    async def content(self) -> str:
        async with translate_errors("page content"):
            return await self.page.content()

    async def read_cookies(self) -> list[dict]:
        async with translate_errors("cookie read"):
            return [dict(c) for c in await self.context.cookies()]

    async def screenshot(self) -> bytes:
        async with translate_errors("screenshot"):
            return await self.page.screenshot(full_page=True)

    async def try_solve_challenge(self, site_key: str, action: str, *, timeout_ms: int) -> Optional[str]:
        """Best-effort in-page reCAPTCHA token. Any failure yields None."""
        try:
            token = await asyncio.wait_for(
                self.page.evaluate(CHALLENGE_JS, [site_key, action]), timeout_ms / 1000
            )
        except (PlaywrightError, asyncio.TimeoutError) as e:
            logger.info(f"Challenge token not obtained: {e}")
            return None
        return token or None

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self.context.close()
        except PlaywrightError as e:
            logger.warning(f"Failed to close browser context cleanly: {e}")
