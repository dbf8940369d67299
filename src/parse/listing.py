"""Parse the query-results (listing) table."""
import logging
from dataclasses import dataclass, field
from typing import Optional

from selectolax.parser import HTMLParser

from src.parse.html_parser import node_text
from src.parse.models import ListingRow

logger = logging.getLogger(__name__)

RESULTS_TABLE_SELECTOR = "table.TblResultado"
ROW_SELECTOR = "tr.Fila"
CELL_SELECTOR = "td.Celda1"

LISTING_FIELDS = (
    "authorization_code",
    "reference_code",
    "buyer",
    "seller",
    "order_type",
    "channel",
    "order_date",
    "delivery_date",
    "status",
)

NO_TABLE_MESSAGE = "No se encontró la tabla TblResultado"
NO_ROWS_MESSAGE = "No se encontraron filas con datos en la tabla"
NO_VALID_ROWS_MESSAGE = "No se encontraron filas válidas"


@dataclass
class ListingParseResult:
    """Parsed rows, per-row errors and an optional no-data message."""

    rows: list[ListingRow] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    message: Optional[str] = None


def parse_listing(html_content: str) -> ListingParseResult:
    """
    Extract listing rows from the results table.

    Each data row must have at least nine Celda1 cells; shorter rows are
    recorded as errors for their 1-based index and dropped. When nothing valid
    remains, ``message`` explains why.
    """
    result = ListingParseResult()
    if not html_content:
        result.message = NO_TABLE_MESSAGE
        return result

    parser = HTMLParser(html_content)
    table = parser.css_first(RESULTS_TABLE_SELECTOR)
    if table is None:
        result.message = NO_TABLE_MESSAGE
        return result

    rows = table.css(ROW_SELECTOR)
    if not rows:
        result.message = NO_ROWS_MESSAGE
        return result

    for index, row in enumerate(rows, start=1):
        cells = row.css(CELL_SELECTOR)
        if len(cells) < len(LISTING_FIELDS):
            result.errors.append(f"Fila {index}: Número insuficiente de celdas ({len(cells)})")
            continue
        values = {name: node_text(cell) for name, cell in zip(LISTING_FIELDS, cells)}
        result.rows.append(ListingRow(**values))

    if result.errors:
        logger.info(f"Listing row errors: {result.errors}")
    if not result.rows:
        result.message = NO_VALID_ROWS_MESSAGE
    return result
