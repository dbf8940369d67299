"""Logging setup: console plus optional append-mode log file."""
import logging
import sys
from typing import Optional

from src.config import config

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

_configured = False


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Configure the root logger once. Later calls only adjust the level."""
    global _configured

    root = logging.getLogger()
    root.setLevel((level or config.LOG_LEVEL).upper())
    if _configured:
        return

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    root.addHandler(console)

    log_file = log_file if log_file is not None else config.LOG_FILE
    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Playwright/asyncio are chatty at DEBUG
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    _configured = True


class SessionLogger(logging.LoggerAdapter):
    """Prefix every message with the owning session id."""

    def process(self, msg, kwargs):
        return f"[session {self.extra['session_id']}] {msg}", kwargs


def session_logger(logger: logging.Logger, session_id: str) -> SessionLogger:
    """Wrap *logger* so each record names the session it belongs to."""
    return SessionLogger(logger, {"session_id": session_id})
