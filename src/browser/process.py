"""Single shared browser process: lazy idempotent launch and teardown."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import Browser, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from src.browser.driver import PlaywrightDriver, translate_errors
from src.config import config
from src.errors import BrowserInitError

logger = logging.getLogger(__name__)

Launcher = Callable[[], Awaitable[tuple[Any, Any]]]


async def launch_chromium(
    headless: Optional[bool] = None,
    slow_mo: Optional[int] = None,
    executable_path: Optional[str] = None,
) -> tuple[Playwright, Browser]:
    """Start Playwright and launch Chromium. Returns (playwright, browser)."""
    show_browser = config.SHOW_BROWSER if headless is None else not headless
    slow_mo = config.SLOWMO if slow_mo is None else slow_mo
    executable_path = executable_path or config.BROWSER_EXECUTABLE_PATH

    playwright = await async_playwright().start()
    try:
        browser = await playwright.chromium.launch(
            headless=not show_browser,
            slow_mo=slow_mo if show_browser else 0,
            executable_path=executable_path,
            args=["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"],
        )
    except Exception:
        await playwright.stop()
        raise
    return playwright, browser


class BrowserProcessManager:
    """
    Owns the one browser process shared by every session.

    ensure_started() launches at most once: concurrent callers await the same
    in-flight launch. A failed launch leaves the manager uninitialized.
    """

    def __init__(
        self,
        launcher: Optional[Launcher] = None,
        user_agent: Optional[str] = None,
        block_resources: Optional[bool] = None,
    ):
        self._launcher = launcher or launch_chromium
        self.user_agent = user_agent or config.USER_AGENT
        self.block_resources = config.SAVE_LIGHT if block_resources is None else block_resources
        self._playwright: Any = None
        self._browser: Any = None
        self._initializing: Optional[asyncio.Task] = None
        self.launch_count = 0

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def ensure_started(self) -> Any:
        """Return the running browser, launching it if needed."""
        if self._browser is not None:
            return self._browser
        if self._initializing is None:
            self._initializing = asyncio.get_running_loop().create_task(self._launch())
        task = self._initializing
        try:
            return await asyncio.shield(task)
        finally:
            if task.done() and self._initializing is task:
                self._initializing = None

    async def _launch(self) -> Any:
        logger.info("Inicializando navegador...")
        try:
            playwright, browser = await self._launcher()
        except Exception as e:
            self._playwright = None
            self._browser = None
            logger.error(f"Error al inicializar el navegador: {e}")
            raise BrowserInitError(f"Error al inicializar el navegador: {e}") from e
        self._playwright = playwright
        self._browser = browser
        self.launch_count += 1
        logger.info("Navegador inicializado correctamente")
        return browser

    async def new_driver(self) -> PlaywrightDriver:
        """Open an isolated context + page on the shared browser."""
        browser = await self.ensure_started()
        async with translate_errors("new context"):
            context = await browser.new_context(user_agent=self.user_agent)
        return await PlaywrightDriver.open(context, block_resources=self.block_resources)

    async def shutdown(self) -> None:
        """Close the browser process. Safe when already closed."""
        browser, playwright = self._browser, self._playwright
        self._browser = None
        self._playwright = None
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as e:
                logger.warning(f"Error closing browser: {e}")
        if playwright is not None:
            try:
                await playwright.stop()
            except PlaywrightError as e:
                logger.warning(f"Error stopping Playwright: {e}")
        if browser is not None:
            logger.info("Navegador cerrado")

    async def restart(self) -> Any:
        """Tear down and relaunch the browser process."""
        await self.shutdown()
        return await self.ensure_started()
