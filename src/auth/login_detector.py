"""Detect login pages and authentication failures."""
import re
import logging

logger = logging.getLogger(__name__)


def is_login_error_url(url: str | None) -> bool:
    """
    Detect the portal's post-submit failure redirect.
    The portal sends bad credentials or a failed challenge to login?error=<code>.
    """
    if not url:
        return False
    return bool(re.search(r"login\?(?:.*&)?error=", url, re.IGNORECASE))


def login_error_code(url: str | None) -> str | None:
    """Extract the error code from a login error URL (e.g. 'UP')."""
    if not url:
        return None
    match = re.search(r"[?&]error=([^&#]*)", url, re.IGNORECASE)
    return match.group(1) if match else None


def is_login_page(response_html: str | None, final_url: str = "") -> bool:
    """
    Detect if a page is the login form (session lost or never established).
    Returns True if the URL points to the login route or the HTML contains
    the portal's credential fields.
    """
    url_lower = (final_url or "").lower()
    if "/seguridad/login" in url_lower:
        return True

    if not response_html:
        return False

    html_lower = response_html.lower()
    login_indicators = [
        r'name=["\']j_username["\']',
        r'name=["\']j_password["\']',
        r'action=["\'][^"\']*j_spring_security_check',
    ]
    matches = sum(1 for pattern in login_indicators if re.search(pattern, html_lower))
    return matches >= 2
