"""Error taxonomy shared by the pool, authenticator and orchestrator."""


class ScraperError(Exception):
    """Base error carrying a kind, an HTTP status and a retry hint."""

    kind = "scraper_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind


class ValidationError(ScraperError):
    """Bad or missing request fields. Never retried, never touches the pool."""

    kind = "validation_error"
    status_code = 400


class CredentialLookupError(ValidationError):
    """Unknown site key."""

    kind = "credential_lookup_error"


class BrowserInitError(ScraperError):
    """The browser process failed to launch."""

    kind = "browser_init_error"
    status_code = 500


class AuthenticationError(ScraperError):
    """Bad credentials or failed login challenge."""

    kind = "authentication_error"
    status_code = 502
    # Not retried inside the authenticator; a whole new run may be attempted.
    retryable = True


class NavigationTimeoutError(ScraperError):
    """A navigation, selector or predicate wait exceeded its budget."""

    kind = "navigation_timeout"
    status_code = 504
    retryable = True

    def __init__(self, step: str, timeout_ms: int | None = None, message: str = ""):
        self.step = step
        self.timeout_ms = timeout_ms
        if not message:
            message = f"Timeout waiting for {step}"
            if timeout_ms is not None:
                message += f" ({timeout_ms} ms)"
        super().__init__(message)


class DriverError(ScraperError):
    """Any other failure reported by the browser engine."""

    kind = "driver_error"
    status_code = 502
    retryable = True


class ParseError(ScraperError):
    """Expected table or selector absent from a page."""

    kind = "parse_error"
    status_code = 502


def is_retryable_error(error: BaseException) -> bool:
    """Check if an error should trigger another orchestrator attempt."""
    return isinstance(error, ScraperError) and error.retryable
