"""Configuration management from environment variables."""
import os
import re
from pathlib import Path
from dotenv import load_dotenv

# Load .env file
load_dotenv()

# Project root
PROJECT_ROOT = Path(__file__).parent.parent


def _flag(name: str, default: str = "false") -> bool:
    """Read a boolean env var ("1", "true", "yes" are truthy)."""
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration."""

    # Portal
    BASE_URL: str = os.getenv("BASE_URL", "https://pvo.osinergmin.gob.pe")
    LOGIN_URL: str = os.getenv("LOGIN_URL", f"{BASE_URL}/seguridad/login")
    QUERY_PAGE_URL: str = os.getenv(
        "QUERY_PAGE_URL", f"{BASE_URL}/scopglp3/jsp/consultas/consulta_orden_pedido.jsp"
    )
    QUERY_ACTION_PATH: str = os.getenv(
        "QUERY_ACTION_PATH", "/scopglp3/servlet/com.osinerg.scopglp.servlets.ConsultaOrdenPedidoServlet"
    )
    DETAIL_ENDPOINT: str = os.getenv("DETAIL_ENDPOINT", f"{BASE_URL}{QUERY_ACTION_PATH}")
    RECAPTCHA_SITE_KEY: str = os.getenv("RECAPTCHA_SITE_KEY", "6LeAU68UAAAAACp0Ci8TvE5lTITDDRQcqnp4lHuD")
    ACTIVATION_MODULE: str = os.getenv("ACTIVATION_MODULE", "163")
    ACTIVATION_REQUIRED: bool = _flag("ACTIVATION_REQUIRED")
    CREDENTIALS_FILE: str = os.getenv("CREDENTIALS_FILE", str(PROJECT_ROOT / "pass.json"))

    # Query
    START_DATE: str | None = os.getenv("START_DATE")

    # Pool / scraper
    MAX_SESSIONS: int = int(os.getenv("MAX_SESSIONS", "20"))
    MAX_DETAILS: int = int(os.getenv("MAX_DETALLES", "999999"))
    SHOW_FULL_DETAILS: bool = _flag("SHOW_FULL_DETAILS")
    SAVE_SCREENSHOTS: bool = _flag("SAVE_SCREENSHOTS")
    RESTART_INTERVAL_MINUTES: int = int(os.getenv("RESTART_INTERVAL_MINUTES", "0"))
    FIXTURE_MODE: bool = _flag("CAMPOS_SOLICITADO")
    REUSE_SESSIONS: bool = _flag("REUSE_SESSIONS")

    # Retries
    MAX_ATTEMPTS: int = int(os.getenv("MAX_ATTEMPTS", "2"))
    FIRST_RUN_EXTRA_ATTEMPTS: int = int(os.getenv("FIRST_RUN_EXTRA_ATTEMPTS", "1"))
    RETRY_WAIT_SECONDS: float = float(os.getenv("RETRY_WAIT_SECONDS", "1.0"))

    # Browser
    SHOW_BROWSER: bool = _flag("SHOW_BROWSER")
    SLOWMO: int = int(os.getenv("SLOWMO", "0"))
    BROWSER_EXECUTABLE_PATH: str | None = os.getenv("BROWSER_EXECUTABLE_PATH") or None
    SAVE_LIGHT: bool = _flag("SAVE_LIGHT")
    USER_AGENT: str = os.getenv(
        "USER_AGENT",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    )

    # Timeouts (milliseconds)
    NAVIGATION_TIMEOUT_MS: int = int(os.getenv("NAVIGATION_TIMEOUT_MS", "10000"))
    SELECTOR_TIMEOUT_MS: int = int(os.getenv("SELECTOR_TIMEOUT_MS", "8000"))
    ACTIVATION_TIMEOUT_MS: int = int(os.getenv("ACTIVATION_TIMEOUT_MS", "8000"))
    RESULTS_TIMEOUT_MS: int = int(os.getenv("RESULTS_TIMEOUT_MS", "8000"))
    CHALLENGE_TIMEOUT_MS: int = int(os.getenv("CHALLENGE_TIMEOUT_MS", "15000"))
    LOGIN_TIMEOUT_MS: int = int(os.getenv("LOGIN_TIMEOUT_MS", "60000"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str | None = os.getenv("LOG_FILE", "logs.txt") or None

    # API
    API_KEY: str | None = os.getenv("API_KEY")
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "3000"))

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        errors = []
        if cls.MAX_SESSIONS < 1:
            errors.append("MAX_SESSIONS must be >= 1")
        if cls.MAX_ATTEMPTS < 1:
            errors.append("MAX_ATTEMPTS must be >= 1")
        if not cls.START_DATE:
            errors.append("START_DATE is required")
        elif not re.fullmatch(r"\d{2}/\d{2}/\d{4}", cls.START_DATE):
            errors.append("START_DATE must be DD/MM/YYYY")
        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")


config = Config()
