"""Tests for the site-key credential store."""
import json

import pytest

from src.auth.credentials import CredentialStore, normalize_site_key
from src.errors import CredentialLookupError, ValidationError

DATA = {
    "locales": {
        "058": {"OSINERGMIN_USERNAME": "user058", "OSINERGMIN_PASSWORD": "pw058"},
        "7": {"OSINERGMIN_USERNAME": "user007", "OSINERGMIN_PASSWORD": "pw007"},
        "abc": {"OSINERGMIN_USERNAME": "bad", "OSINERGMIN_PASSWORD": "bad"},
        "090": {"OSINERGMIN_USERNAME": "", "OSINERGMIN_PASSWORD": ""},
    }
}


def test_normalize_site_key_pads():
    """Keys are zero-padded to three digits."""
    assert normalize_site_key("58") == "058"
    assert normalize_site_key(7) == "007"
    assert normalize_site_key(" 058 ") == "058"


@pytest.mark.parametrize("key", ["", None, "abc", "1234", "5a"])
def test_normalize_site_key_rejects(key):
    """Non-numeric or too long keys are lookup errors."""
    with pytest.raises(CredentialLookupError):
        normalize_site_key(key)


def test_lookup_pads_request_key():
    """A short request key finds the padded entry."""
    store = CredentialStore.from_mapping(DATA)
    creds = store.lookup("58")
    assert creds.username == "user058"
    assert creds.password == "pw058"
    assert creds.identity == "058:user058"
    assert store.lookup("007").username == "user007"


def test_lookup_unknown_key():
    """Unknown keys raise a validation-class error."""
    store = CredentialStore.from_mapping(DATA)
    with pytest.raises(CredentialLookupError) as exc:
        store.lookup("999")
    assert isinstance(exc.value, ValidationError)
    assert "999" in exc.value.message


def test_invalid_entries_skipped():
    """Entries with non-numeric keys are not loaded."""
    store = CredentialStore.from_mapping(DATA)
    assert len(store) == 3
    assert "058" in store
    assert "abc" not in store


def test_empty_credentials_still_load():
    """Blank credentials load and fail later at login."""
    creds = CredentialStore.from_mapping(DATA).lookup("090")
    assert creds.username == ""


def test_password_not_in_repr():
    """Passwords stay out of reprs and logs."""
    creds = CredentialStore.from_mapping(DATA).lookup("058")
    assert "pw058" not in repr(creds)


def test_from_file(tmp_path):
    """Load from a pass.json file."""
    path = tmp_path / "pass.json"
    path.write_text(json.dumps(DATA), encoding="utf-8")
    store = CredentialStore.from_file(path)
    assert store.lookup("058").username == "user058"


def test_from_missing_file(tmp_path):
    """A missing file gives an empty store."""
    store = CredentialStore.from_file(tmp_path / "missing.json")
    assert len(store) == 0
