"""Tests for login page and login error detection."""
from src.auth.login_detector import is_login_error_url, is_login_page, login_error_code

LOGIN_FORM = """
<form action="/seguridad/j_spring_security_check" method="post">
  <input type="text" name="j_username">
  <input type="password" name="j_password">
  <button type="submit">Ingresar</button>
</form>
"""


def test_login_error_url():
    """The portal redirects failed logins to login?error=..."""
    assert is_login_error_url("https://pvo.osinergmin.gob.pe/seguridad/login?error=UP")
    assert is_login_error_url("https://pvo.osinergmin.gob.pe/seguridad/login?lang=es&error=CAPTCHA")
    assert not is_login_error_url("https://pvo.osinergmin.gob.pe/seguridad/menu")
    assert not is_login_error_url("")
    assert not is_login_error_url(None)


def test_login_error_code():
    """Error code is read from the query string."""
    assert login_error_code("https://x/seguridad/login?error=UP") == "UP"
    assert login_error_code("https://x/seguridad/menu") is None


def test_login_page_by_url():
    """The login route is a login page regardless of content."""
    assert is_login_page("", "https://pvo.osinergmin.gob.pe/seguridad/login")


def test_login_page_by_form():
    """Credential fields identify the login form."""
    assert is_login_page(LOGIN_FORM)


def test_not_login_page():
    """Ordinary pages are not login pages."""
    assert not is_login_page('<table class="TblResultado"></table>', "https://x/scopglp3/servlet")
    assert not is_login_page(None)
    assert not is_login_page('<input name="j_username">')
