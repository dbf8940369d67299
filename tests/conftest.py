"""Shared fixtures."""
import pytest

from src.parse.models import Credentials


@pytest.fixture
def creds() -> Credentials:
    return Credentials(site_key="058", username="user058", password="secret")


@pytest.fixture
def other_creds() -> Credentials:
    return Credentials(site_key="077", username="user077", password="secret")
