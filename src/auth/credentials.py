"""Credential lookup by site key (pass.json)."""
import json
import logging
from pathlib import Path
from typing import Any

from src.config import config
from src.errors import CredentialLookupError
from src.parse.models import Credentials

logger = logging.getLogger(__name__)

USERNAME_KEY = "OSINERGMIN_USERNAME"
PASSWORD_KEY = "OSINERGMIN_PASSWORD"


def normalize_site_key(site_key: Any) -> str:
    """Zero-pad a site key to 3 digits ("58" -> "058")."""
    key = str(site_key if site_key is not None else "").strip()
    if not key.isdigit() or len(key) > 3:
        raise CredentialLookupError(f"Invalid site key: {site_key!r}")
    return key.zfill(3)


class CredentialStore:
    """Immutable map of site key -> Credentials, loaded once per process."""

    def __init__(self, entries: dict[str, Credentials]):
        self._entries = dict(entries)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "CredentialStore":
        """Build from the {"locales": {"058": {...}}} structure."""
        locales = data.get("locales", {}) if isinstance(data, dict) else {}
        entries: dict[str, Credentials] = {}
        for raw_key, values in locales.items():
            try:
                key = normalize_site_key(raw_key)
            except CredentialLookupError:
                logger.warning(f"Skipping credential entry with invalid key: {raw_key!r}")
                continue
            values = values or {}
            entries[key] = Credentials(
                site_key=key,
                username=str(values.get(USERNAME_KEY) or ""),
                password=str(values.get(PASSWORD_KEY) or ""),
            )
        return cls(entries)

    @classmethod
    def from_file(cls, path: str | Path | None = None) -> "CredentialStore":
        """Load from a JSON file (defaults to CREDENTIALS_FILE)."""
        path = Path(path or config.CREDENTIALS_FILE)
        if not path.exists():
            logger.warning(f"Credentials file not found: {path}")
            return cls({})
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        store = cls.from_mapping(data)
        logger.info(f"Loaded {len(store)} credential sets from {path}")
        return store

    def lookup(self, site_key: Any) -> Credentials:
        """Resolve credentials for a site key or raise CredentialLookupError."""
        key = normalize_site_key(site_key)
        credentials = self._entries.get(key)
        if credentials is None:
            raise CredentialLookupError(f"No se encontraron credenciales para U_RS_Local: {site_key}")
        return credentials

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, site_key: Any) -> bool:
        try:
            return normalize_site_key(site_key) in self._entries
        except CredentialLookupError:
            return False
