"""
Bounded pool of authenticated sessions over the shared browser process.

All pool state is touched from the event loop only. Capacity counts every
session from the moment it is reserved (before login) until its driver is
closed, so the number of live browser contexts never exceeds max_sessions.
Callers that find the pool full queue in FIFO order; each release hands
capacity to at most one waiter.
"""
import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

from src.auth.authenticator import Authenticator
from src.auth.session import Session, SessionState
from src.browser.process import BrowserProcessManager
from src.config import config
from src.parse.models import Credentials

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class PoolWaiter:
    credentials: Credentials
    future: asyncio.Future

    @property
    def identity(self) -> str:
        return self.credentials.identity


class SessionPool:
    """
    checkout() returns a Busy, authenticated session; release() returns it.

    With reuse disabled (the default) every released session is closed. With
    reuse enabled an idle session goes to the next waiter with the same
    identity, and idle sessions of other identities are evicted when a waiter
    needs capacity.
    """

    def __init__(
        self,
        process: BrowserProcessManager,
        authenticator: Optional[Authenticator] = None,
        max_sessions: Optional[int] = None,
        reuse_sessions: Optional[bool] = None,
    ):
        self.process = process
        self.authenticator = authenticator or Authenticator()
        self.max_sessions = config.MAX_SESSIONS if max_sessions is None else max_sessions
        self.reuse_sessions = config.REUSE_SESSIONS if reuse_sessions is None else reuse_sessions
        if self.max_sessions < 1:
            raise ValueError("max_sessions must be >= 1")

        self._sessions: list[Session] = []
        self._waiters: deque[PoolWaiter] = deque()
        self._tasks: set[asyncio.Task] = set()
        self._open_gate = asyncio.Event()
        self._open_gate.set()
        self._restart_lock = asyncio.Lock()
        self._changed = asyncio.Condition()
        self.restarts = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def checkout(self, credentials: Credentials) -> Session:
        """
        Get an authenticated session for *credentials*, waiting for capacity
        if the pool is full. Authentication errors propagate to the caller.
        """
        await self._open_gate.wait()

        if not self._waiters:
            if self.reuse_sessions:
                idle = self._find_idle(credentials.identity)
                if idle is not None:
                    idle.mark_busy()
                    idle.log.debug("Reused idle session")
                    return idle
            if len(self._sessions) < self.max_sessions:
                return await self._open(self._reserve(credentials))

        waiter = PoolWaiter(credentials, asyncio.get_running_loop().create_future())
        self._waiters.append(waiter)
        logger.info(f"Pool full ({len(self._sessions)}/{self.max_sessions}), queued; {len(self._waiters)} waiting")
        self._promote()
        try:
            return await waiter.future
        except asyncio.CancelledError:
            if waiter in self._waiters:
                self._waiters.remove(waiter)
                self._spawn(self._notify())
            elif waiter.future.done() and not waiter.future.cancelled() and waiter.future.exception() is None:
                # Session was handed over just before the cancel landed
                self._spawn(self.release(waiter.future.result()))
            raise

    async def release(self, session: Session) -> None:
        """Return a session. Repeated releases are ignored."""
        if session not in self._sessions or session.state in (SessionState.CLOSING, SessionState.READY):
            return
        if self.reuse_sessions and session.state is SessionState.BUSY and session.driver is not None:
            session.transition(SessionState.READY)
            self._promote()
            await self._notify()
            return
        await self._discard(session)

    @asynccontextmanager
    async def session(self, credentials: Credentials) -> AsyncIterator[Session]:
        """Checkout/release around a block. A session whose block raised is closed."""
        session = await self.checkout(credentials)
        try:
            yield session
        except (Exception, asyncio.CancelledError):
            session.mark_failed()
            raise
        finally:
            await self.release(session)

    async def scheduled_restart(self) -> None:
        """
        Restart the browser process once no session is busy and no caller is
        queued. Queued callers are still served while draining; new checkouts
        wait at the gate until the relaunch finishes.
        """
        async with self._restart_lock:
            self._open_gate.clear()
            logger.info("Scheduled restart: waiting for active sessions to finish")
            try:
                async with self._changed:
                    await self._changed.wait_for(self._drained)
                for session in list(self._sessions):
                    await self._discard(session)
                await self.process.restart()
                self.restarts += 1
                logger.info("Scheduled restart complete")
            finally:
                self._open_gate.set()

    async def close(self) -> None:
        """Fail queued waiters and close every session."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.future.done():
                waiter.future.cancel()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        for session in list(self._sessions):
            await self._discard(session)

    def stats(self) -> dict[str, Any]:
        """Snapshot of pool occupancy."""
        by_state: dict[str, int] = {}
        for session in self._sessions:
            by_state[session.state.value] = by_state.get(session.state.value, 0) + 1
        return {
            "max_sessions": self.max_sessions,
            "size": len(self._sessions),
            "busy": by_state.get(SessionState.BUSY.value, 0),
            "idle": by_state.get(SessionState.READY.value, 0),
            "by_state": by_state,
            "waiting": len(self._waiters),
            "restarting": not self._open_gate.is_set(),
            "restarts": self.restarts,
            "reuse_sessions": self.reuse_sessions,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _reserve(self, credentials: Credentials) -> Session:
        session = Session(credentials=credentials)
        self._sessions.append(session)
        session.log.debug(f"Reserved slot {len(self._sessions)}/{self.max_sessions}")
        return session

    async def _open(self, session: Session) -> Session:
        """Create the driver and authenticate a reserved session."""
        try:
            session.driver = await self.process.new_driver()
            await self.authenticator.authenticate(session)
        except (Exception, asyncio.CancelledError):
            session.mark_failed()
            await self._discard(session)
            raise
        session.mark_busy()
        return session

    async def _discard(self, session: Session) -> None:
        """Close a session and free its slot."""
        if session.state is not SessionState.CLOSING:
            session.transition(SessionState.CLOSING)
        try:
            await session.close()
        finally:
            if session in self._sessions:
                self._sessions.remove(session)
            self._promote()
            await self._notify()

    def _find_idle(self, identity: Optional[str] = None) -> Optional[Session]:
        for session in self._sessions:
            if session.is_idle and (identity is None or session.identity == identity):
                return session
        return None

    def _promote(self) -> None:
        """Hand free capacity to queued waiters, strictly in arrival order."""
        while self._waiters:
            waiter = self._waiters[0]
            if waiter.future.done():
                self._waiters.popleft()
                continue

            if self.reuse_sessions:
                idle = self._find_idle(waiter.identity)
                if idle is not None:
                    self._waiters.popleft()
                    idle.mark_busy()
                    waiter.future.set_result(idle)
                    continue

            if len(self._sessions) < self.max_sessions:
                self._waiters.popleft()
                self._spawn(self._serve(waiter, self._reserve(waiter.credentials)))
                continue

            if self.reuse_sessions:
                victim = self._find_idle()
                if victim is not None:
                    self._waiters.popleft()
                    victim.transition(SessionState.CLOSING)
                    self._sessions.remove(victim)
                    victim.log.info(f"Evicted for {waiter.identity}")
                    replacement = self._reserve(waiter.credentials)
                    self._spawn(self._serve(waiter, replacement, evicted=victim))
                    continue
            break

    async def _serve(self, waiter: PoolWaiter, session: Session, evicted: Optional[Session] = None) -> None:
        """Open *session* for a promoted waiter and resolve its future."""
        if evicted is not None:
            await evicted.close()
        try:
            await self._open(session)
        except asyncio.CancelledError:
            if not waiter.future.done():
                waiter.future.cancel()
            raise
        except Exception as e:
            if not waiter.future.done():
                waiter.future.set_exception(e)
            return
        if waiter.future.done():
            # Caller gave up while we were logging in
            await self.release(session)
        else:
            waiter.future.set_result(session)

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _drained(self) -> bool:
        return not self._waiters and all(session.is_idle for session in self._sessions)

    async def _notify(self) -> None:
        async with self._changed:
            self._changed.notify_all()
