"""Authenticated portal session: one browser page bound to one credential set."""
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from src.browser.driver import AutomationDriver
from src.logging_conf import session_logger
from src.parse.models import Credentials

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    LOGGING_IN = "logging_in"
    ACTIVATING = "activating"
    READY = "ready"
    BUSY = "busy"
    CLOSING = "closing"
    FAILED = "failed"


@dataclass(eq=False)
class Session:
    """
    Pool-owned session. Only the pool and the authenticator change `state`;
    callers get the session between checkout and release.
    """

    credentials: Credentials
    driver: Optional[AutomationDriver] = None
    state: SessionState = SessionState.UNAUTHENTICATED
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    created_at: float = field(default_factory=time.time)
    last_used_at: float = field(default_factory=time.time)
    uses: int = 0

    def __post_init__(self):
        self.log = session_logger(logger, self.id)

    @property
    def identity(self) -> str:
        return self.credentials.identity

    @property
    def is_idle(self) -> bool:
        return self.state is SessionState.READY

    def transition(self, state: SessionState) -> None:
        if state is not self.state:
            self.log.debug(f"{self.state.value} -> {state.value}")
            self.state = state

    def mark_busy(self) -> None:
        self.transition(SessionState.BUSY)
        self.uses += 1
        self.last_used_at = time.time()

    def mark_failed(self) -> None:
        self.transition(SessionState.FAILED)

    async def close(self) -> None:
        """Close the underlying driver. Safe to call more than once."""
        self.transition(SessionState.CLOSING)
        driver, self.driver = self.driver, None
        if driver is not None:
            await driver.close()
