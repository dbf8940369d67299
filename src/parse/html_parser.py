"""Shared HTML helpers plus text, number and date normalization."""
import logging
import re
import unicodedata
from datetime import date
from typing import Optional

from selectolax.parser import Node

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^\d{2}/\d{2}/\d{4}$")
_NUMBER_PREFIX_RE = re.compile(r"^[-+]?\d[\d.,\s]*")
_UNIT_RE = re.compile(r"^\(?\s*[A-Za-z%°³²/.]{1,10}\s*\)?$")


def node_text(node: Optional[Node]) -> str:
    """Normalized text content of a node ('' for None)."""
    if node is None:
        return ""
    return normalize_text(node.text(deep=True))


def normalize_text(text: Optional[str]) -> str:
    """Collapse whitespace (including NBSP) and trim."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text.replace("\xa0", " ")).strip()


def fold(text: Optional[str]) -> str:
    """Lowercase and strip accents, for label matching."""
    decomposed = unicodedata.normalize("NFKD", normalize_text(text).lower())
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def split_unit(text: Optional[str]) -> tuple[str, str]:
    """
    Split "12,000 (KG)" into ("12,000", "KG").
    The unit is upper-cased with parentheses removed; missing parts are ''.
    """
    cleaned = normalize_text(text)
    if not cleaned:
        return "", ""
    match = _NUMBER_PREFIX_RE.match(cleaned)
    if not match:
        return cleaned, ""
    number = match.group(0).strip()
    rest = cleaned[match.end():].strip()
    unit = re.sub(r"[()]", "", rest).strip().upper()
    return number, unit


def normalize_number(text: Optional[str]) -> str:
    """
    Normalize a numeric cell to a plain decimal string.

    Trims whitespace, strips a trailing unit suffix, removes thousands
    separators and converts decimal comma to decimal point. Returns '' when
    the text holds no number.
    """
    number, _unit = split_unit(text)
    if not number or not re.search(r"\d", number):
        return ""
    number = number.replace(" ", "")
    sign = ""
    if number[0] in "+-":
        sign, number = ("-" if number[0] == "-" else ""), number[1:]

    has_comma = "," in number
    has_dot = "." in number
    if has_comma and has_dot:
        if number.rfind(",") > number.rfind("."):
            # 1.234,56
            number = number.replace(".", "").replace(",", ".")
        else:
            # 1,234.56
            number = number.replace(",", "")
    elif has_comma:
        if re.fullmatch(r"\d{1,3}(,\d{3})+", number):
            number = number.replace(",", "")
        else:
            head, _, tail = number.rpartition(",")
            number = head.replace(",", "") + "." + tail
    elif number.count(".") > 1:
        number = number.replace(".", "")

    number = number.strip(".")
    if not re.fullmatch(r"\d+(\.\d+)?", number):
        return ""
    return sign + number


def is_numeric_token(text: Optional[str]) -> bool:
    """True if the whole cell is a number, optionally followed by a unit."""
    number, unit = split_unit(text)
    if not normalize_number(number):
        return False
    return not unit or bool(_UNIT_RE.match(unit))


def is_valid_date_format(date_str: Optional[str]) -> bool:
    """Check DD/MM/YYYY (two-digit day and month, four-digit year)."""
    if not isinstance(date_str, str):
        return False
    return bool(_DATE_RE.match(date_str))


def current_date(today: Optional[date] = None) -> str:
    """Today's date as DD/MM/YYYY."""
    today = today or date.today()
    return today.strftime("%d/%m/%Y")
