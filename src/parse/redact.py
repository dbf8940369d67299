"""Redaction module to mask secrets in outputs and logs."""
import re
from typing import Any, Dict

REDACTED = "[REDACTED]"

SECRET_KEYS = {
    "password",
    "j_password",
    "osinergmin_password",
    "g-recaptcha-response",
    "token",
    "cookie",
    "jsessionid",
    "x-api-key",
}


def redact_string(text: str) -> str:
    """Redact secrets from a string."""
    if not text:
        return text

    patterns = [
        (r'(j_password|password)(["\']?\s*[:=]\s*["\']?)([^"\'&\s,}]+)', rf'\1\2{REDACTED}'),
        (r'(g-recaptcha-response)(["\']?\s*[:=]\s*["\']?)([^"\'&\s,}]+)', rf'\1\2{REDACTED}'),
        (r'JSESSIONID=([^;,\s]+)', f'JSESSIONID={REDACTED}'),
    ]

    result = text
    for pattern, replacement in patterns:
        result = re.sub(pattern, replacement, result, flags=re.IGNORECASE)

    return result


def redact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively redact secrets from a dictionary."""
    if not isinstance(data, dict):
        return data

    redacted = {}
    for key, value in data.items():
        if str(key).lower() in SECRET_KEYS:
            redacted[key] = REDACTED
        elif isinstance(value, dict):
            redacted[key] = redact_dict(value)
        elif isinstance(value, list):
            redacted[key] = [redact_json(item) for item in value]
        elif isinstance(value, str):
            redacted[key] = redact_string(value)
        else:
            redacted[key] = value

    return redacted


def redact_json(data: Any) -> Any:
    """Redact secrets from JSON-serializable data."""
    if isinstance(data, dict):
        return redact_dict(data)
    elif isinstance(data, list):
        return [redact_json(item) for item in data]
    elif isinstance(data, str):
        return redact_string(data)
    else:
        return data


def redact_cookies(cookies: list[dict]) -> list[dict]:
    """Cookie list with every value masked (names kept for debugging)."""
    return [{**cookie, "value": REDACTED} for cookie in cookies]
