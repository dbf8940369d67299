"""Login and module activation for a fresh session."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from src.auth.login_detector import is_login_error_url, login_error_code
from src.auth.session import Session, SessionState
from src.config import config
from src.errors import AuthenticationError, DriverError, NavigationTimeoutError, ScraperError

logger = logging.getLogger(__name__)

USERNAME_SELECTOR = 'input[name="j_username"]'
PASSWORD_SELECTOR = 'input[name="j_password"]'
SUBMIT_SELECTOR = 'button[type="submit"]'
CHALLENGE_FIELD = "g-recaptcha-response"

ACTIVATION_PREDICATE = 'typeof muestraPagina === "function"'

# Adds the challenge token to the login form as a hidden field.
INJECT_TOKEN_JS = """
([name, token]) => {
    const form = document.querySelector('form');
    if (!form) return false;
    let input = form.querySelector(`input[name="${name}"]`);
    if (!input) {
        input = document.createElement('input');
        input.type = 'hidden';
        input.name = name;
        form.appendChild(input);
    }
    input.value = token;
    return true;
}
"""


@dataclass
class AuthTimeouts:
    navigation_ms: int = config.NAVIGATION_TIMEOUT_MS
    selector_ms: int = config.SELECTOR_TIMEOUT_MS
    challenge_ms: int = config.CHALLENGE_TIMEOUT_MS
    login_ms: int = config.LOGIN_TIMEOUT_MS
    activation_ms: int = config.ACTIVATION_TIMEOUT_MS


class Authenticator:
    """
    Drive a session from Unauthenticated to Ready.

    Bad credentials and failed challenges end the session in Failed with an
    AuthenticationError. There is no retry here; callers decide.
    """

    def __init__(
        self,
        login_url: Optional[str] = None,
        challenge_site_key: Optional[str] = None,
        activation_module: Optional[str] = None,
        activation_required: Optional[bool] = None,
        timeouts: Optional[AuthTimeouts] = None,
        activation_settle_seconds: float = 0.5,
    ):
        self.login_url = login_url or config.LOGIN_URL
        self.challenge_site_key = challenge_site_key or config.RECAPTCHA_SITE_KEY
        self.activation_module = activation_module or config.ACTIVATION_MODULE
        self.activation_required = (
            config.ACTIVATION_REQUIRED if activation_required is None else activation_required
        )
        self.timeouts = timeouts or AuthTimeouts()
        self.activation_settle_seconds = activation_settle_seconds

    async def authenticate(self, session: Session) -> Session:
        """Log in and activate the query module. Returns the Ready session."""
        creds = session.credentials
        if not creds.username or not creds.password:
            session.mark_failed()
            raise AuthenticationError(f"Credenciales no definidas para el local {creds.site_key}")

        try:
            await self._login(session)
            await self._activate(session)
        except ScraperError:
            session.mark_failed()
            raise

        session.transition(SessionState.READY)
        session.log.info(f"Authenticated as {creds.username}")
        return session

    async def _login(self, session: Session) -> None:
        driver = session.driver
        creds = session.credentials
        t = self.timeouts

        session.transition(SessionState.LOGGING_IN)
        session.log.info(f"Navigating to login page: {self.login_url}")
        await driver.navigate(self.login_url, timeout_ms=t.navigation_ms)
        await driver.wait_for_selector(USERNAME_SELECTOR, timeout_ms=t.selector_ms)
        await driver.fill(USERNAME_SELECTOR, creds.username, timeout_ms=t.selector_ms)
        await driver.fill(PASSWORD_SELECTOR, creds.password, timeout_ms=t.selector_ms)

        token = await driver.try_solve_challenge(self.challenge_site_key, "login", timeout_ms=t.challenge_ms)
        if token:
            await driver.evaluate(INJECT_TOKEN_JS, [CHALLENGE_FIELD, token], timeout_ms=t.selector_ms)
            session.log.debug("Challenge token injected")
        else:
            session.log.info("No challenge token, submitting without it")

        session.transition(SessionState.ACTIVATING)
        await driver.click_and_wait_for_navigation(SUBMIT_SELECTOR, timeout_ms=t.login_ms)

        if is_login_error_url(driver.url):
            code = login_error_code(driver.url)
            session.log.warning(f"Login rejected by portal (error={code})")
            raise AuthenticationError(f"Error de autenticación (login?error={code})")

    async def _activate(self, session: Session) -> None:
        """Wait for the menu script and open the order-query module."""
        driver = session.driver
        t = self.timeouts
        try:
            await driver.wait_for_predicate(ACTIVATION_PREDICATE, timeout_ms=t.activation_ms)
        except NavigationTimeoutError:
            if self.activation_required:
                raise
            session.log.warning("Activation function not found, continuing without module activation")
            return

        try:
            await driver.evaluate(
                f"muestraPagina('{self.activation_module}','NO','NO')", timeout_ms=t.activation_ms
            )
        except (DriverError, NavigationTimeoutError) as e:
            if self.activation_required:
                raise
            session.log.warning(f"Module activation failed, continuing: {e.message}")
            return

        if self.activation_settle_seconds:
            await asyncio.sleep(self.activation_settle_seconds)
        session.log.debug(f"Module {self.activation_module} activated")
