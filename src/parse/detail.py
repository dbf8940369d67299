"""
Parse an order detail page into a DetailRecord.

Detail pages carry three blocks: a header key/value table (TblFiltros), a
truck table marked by "Placa del Camión", and a product table (TblResultado)
whose columns depend on the product category. The product table is
classified into a LayoutVariant from its header text and mapped with the
matching row mapper.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

from selectolax.parser import HTMLParser, Node

from src.errors import ParseError
from src.parse.html_parser import (
    fold,
    is_numeric_token,
    node_text,
    normalize_number,
    split_unit,
)
from src.parse.models import DetailRecord, LayoutVariant, ProductLine, Totals, Truck

logger = logging.getLogger(__name__)

# Folded (lowercase, accent-free) label substrings -> DetailRecord field.
# Order matters: first match wins, so the bare "estado" goes last.
HEADER_LABELS: list[tuple[str, str]] = [
    ("agente vendedor", "seller_agent"),
    ("tipo vendedor", "seller_type"),
    ("codigo autorizacion", "authorization_code"),
    ("codigo referencia", "reference_code"),
    ("fecha pedido", "order_date"),
    ("tipo de pedido", "order_type"),
    ("numero factura", "invoice_number"),
    ("fecha emision de factura", "invoice_date"),
    ("numero guia de remision", "shipment_guide_number"),
    ("agente comprador", "buyer_agent"),
    ("estado", "status"),
]

TRUCK_MARKER = "placa del camion"
TOTAL_MARKER = "total"
# Placeholder the portal renders for an empty reference code.
_EMPTY_PLACEHOLDERS = {"&", "&amp;"}


def _cell(texts: list[str], index: int) -> str:
    return texts[index] if index < len(texts) else ""


def _match_label(label: str) -> Optional[str]:
    folded = fold(label).rstrip(":").strip()
    if not folded:
        return None
    for needle, field_name in HEADER_LABELS:
        if needle in folded:
            return field_name
    return None


def parse_header(parser: HTMLParser) -> dict[str, str]:
    """Extract the header title and recognized key/value pairs."""
    header: dict[str, str] = {}
    table = parser.css_first("table.TblFiltros")
    if table is None:
        return header

    title = table.css_first(".Celda3")
    if title is not None:
        header["header_title"] = node_text(title)

    for row in table.css("tr.Fila"):
        cells = [node_text(td) for td in row.css(".Celda2")]
        # Rows may hold one or more label/value pairs side by side
        for i in range(0, len(cells) - 1, 2):
            field_name = _match_label(cells[i])
            if field_name is None or field_name in header:
                continue
            value = cells[i + 1]
            if field_name == "reference_code" and value in _EMPTY_PLACEHOLDERS:
                value = ""
            header[field_name] = value
    return header


def _find_truck_table(parser: HTMLParser) -> Optional[Node]:
    candidates = [t for t in parser.css("table") if TRUCK_MARKER in fold(t.text())]
    if not candidates:
        return None
    # Layout tables nest; the innermost match holds the least text.
    return min(candidates, key=lambda t: len(t.text()))


def parse_truck(parser: HTMLParser) -> Truck:
    """Extract plate and capacity from the truck sub-table."""
    table = _find_truck_table(parser)
    if table is None:
        return Truck()

    plate = ""
    capacity_raw = ""
    cells = [node_text(td) for td in table.css("td.Celda2")]
    if len(cells) >= 4:
        plate, capacity_raw = cells[1], cells[3]
    else:
        # Unlabelled layout: scan label/value neighbours
        all_cells = [node_text(td) for td in table.css("td")]
        for i, text in enumerate(all_cells[:-1]):
            label = fold(text)
            if "placa" in label and not plate:
                plate = all_cells[i + 1]
            elif "capacidad" in label and not capacity_raw:
                capacity_raw = all_cells[i + 1]

    number, unit = split_unit(capacity_raw)
    return Truck(plate=plate, capacity=normalize_number(number), unit=unit)


def classify_layout(header_rows: list[list[str]]) -> LayoutVariant:
    """
    Classify a product table from the text of its first one or two rows.

    GranelCompuesto: "transporte" and "cantidad" (two header rows).
    GranelSimple: "solicitada" or "aceptada".
    Envasado: "producto" and "marca", without a transport column.
    """
    cells = [fold(text) for row in header_rows[:2] for text in row]

    def has(word: str) -> bool:
        return any(word in cell for cell in cells)

    if has("transporte") and has("cantidad"):
        return LayoutVariant.GRANEL_COMPUESTO
    if has("solicitada") or has("aceptada"):
        return LayoutVariant.GRANEL_SIMPLE
    if has("producto") and has("marca") and not has("transporte"):
        return LayoutVariant.ENVASADO
    return LayoutVariant.UNKNOWN


def map_envasado(texts: list[str]) -> ProductLine:
    """product | brand | ordered | subtotal | status"""
    return ProductLine(
        product=_cell(texts, 0),
        brand=_cell(texts, 1),
        ordered_qty=normalize_number(_cell(texts, 2)),
        subtotal_weight=normalize_number(_cell(texts, 3)),
        status=_cell(texts, 4),
    )


def map_granel_simple(texts: list[str]) -> ProductLine:
    """product | brand | ordered | accepted | sold | received | subtotal | status"""
    return ProductLine(
        product=_cell(texts, 0),
        brand=_cell(texts, 1),
        ordered_qty=normalize_number(_cell(texts, 2)),
        accepted_qty=normalize_number(_cell(texts, 3)),
        sold_qty=normalize_number(_cell(texts, 4)),
        received_qty=normalize_number(_cell(texts, 5)),
        subtotal_weight=normalize_number(_cell(texts, 6)),
        status=_cell(texts, 7),
    )


def map_granel_compuesto(texts: list[str]) -> ProductLine:
    """
    product | brand | plate | capacity | ordered | accepted | sold | received | subtotal | ...status

    Transport columns (2, 3) are skipped. The status column has been seen
    both in place of the subtotal and after extra trailing columns.
    """
    subtotal_cell = _cell(texts, 8)
    status = ""
    if subtotal_cell and not is_numeric_token(subtotal_cell):
        status, subtotal_cell = subtotal_cell, ""
    trailing = [t for t in texts[9:] if t and not is_numeric_token(t)]
    if trailing:
        status = trailing[-1]
    return ProductLine(
        product=_cell(texts, 0),
        brand=_cell(texts, 1),
        ordered_qty=normalize_number(_cell(texts, 4)),
        accepted_qty=normalize_number(_cell(texts, 5)),
        sold_qty=normalize_number(_cell(texts, 6)),
        received_qty=normalize_number(_cell(texts, 7)),
        subtotal_weight=normalize_number(subtotal_cell),
        status=status,
    )


ROW_MAPPERS: dict[LayoutVariant, Callable[[list[str]], ProductLine]] = {
    LayoutVariant.ENVASADO: map_envasado,
    LayoutVariant.GRANEL_SIMPLE: map_granel_simple,
    LayoutVariant.GRANEL_COMPUESTO: map_granel_compuesto,
}

HEADER_ROW_COUNT = {
    LayoutVariant.ENVASADO: 1,
    LayoutVariant.GRANEL_SIMPLE: 1,
    LayoutVariant.GRANEL_COMPUESTO: 2,
    LayoutVariant.UNKNOWN: 1,
}


def _format_decimal(value: Decimal) -> str:
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _sum_quantity(products: list[ProductLine], attr: str) -> Optional[str]:
    """Decimal sum of one quantity column, or None when any line lacks a number."""
    try:
        values = [Decimal(getattr(p, attr)) for p in products]
    except InvalidOperation:
        return None
    return _format_decimal(sum(values, Decimal(0)))


def compute_totals(products: list[ProductLine]) -> Totals:
    """
    Sum ordered quantity and subtotal weight over parsed product lines.
    Each total is computed on its own; a column with a blank or
    unparseable cell on any line is left as None.
    """
    if not products:
        return Totals()
    ordered = _sum_quantity(products, "ordered_qty")
    subtotal = _sum_quantity(products, "subtotal_weight")
    if ordered is None and subtotal is None:
        return Totals()
    return Totals(ordered_qty=ordered, subtotal_weight=subtotal, confidence="computed")


def fallback_totals_from_row(texts: list[str]) -> Totals:
    """
    Lower-confidence totals: the last two numeric-looking cells of a total row,
    read as (ordered, subtotal). Can mis-map when the row has an unexpected
    cell count, so the result is flagged confidence="low".
    """
    numbers = [normalize_number(t) for t in texts if is_numeric_token(t)]
    if not numbers:
        return Totals()
    logger.warning(f"Using total-row heuristic for totals: {texts}")
    return Totals(
        ordered_qty=numbers[-2] if len(numbers) >= 2 else None,
        subtotal_weight=numbers[-1],
        confidence="low",
    )


def _table_rows(table: Node) -> list[Node]:
    rows = table.css("tr.Fila")
    return rows or table.css("tr")


def _row_texts(row: Node) -> list[str]:
    return [node_text(cell) for cell in row.css("td, th")]


def _find_product_table(parser: HTMLParser) -> tuple[Optional[Node], LayoutVariant]:
    fallback: Optional[Node] = None
    for table in parser.css("table.TblResultado"):
        header_rows = [_row_texts(row) for row in _table_rows(table)[:2]]
        layout = classify_layout(header_rows)
        if layout is not LayoutVariant.UNKNOWN:
            return table, layout
        if fallback is None and any("producto" in fold(t) for row in header_rows for t in row):
            fallback = table
    return fallback, LayoutVariant.UNKNOWN


def parse_products(table: Node, layout: LayoutVariant) -> tuple[list[ProductLine], Totals]:
    """Map product rows of *table* and derive totals."""
    rows = _table_rows(table)[HEADER_ROW_COUNT[layout]:]
    mapper = ROW_MAPPERS.get(layout)
    products: list[ProductLine] = []
    total_rows: list[list[str]] = []

    for row in rows:
        texts = _row_texts(row)
        if not any(texts):
            continue
        if TOTAL_MARKER in fold(" ".join(texts)):
            total_rows.append(texts)
            continue
        if mapper is None:
            continue
        product = mapper(texts)
        if any(product.model_dump().values()):
            products.append(product)

    if mapper is None:
        if total_rows:
            return products, fallback_totals_from_row(total_rows[-1])
        return products, Totals()

    totals = compute_totals(products)
    if products and total_rows and None in (totals.ordered_qty, totals.subtotal_weight):
        # Only the column that could not be summed comes from the total row
        estimate = fallback_totals_from_row(total_rows[-1])
        totals = Totals(
            ordered_qty=totals.ordered_qty if totals.ordered_qty is not None else estimate.ordered_qty,
            subtotal_weight=(
                totals.subtotal_weight if totals.subtotal_weight is not None else estimate.subtotal_weight
            ),
            confidence="low" if estimate.confidence else totals.confidence,
        )
    return products, totals


def parse_detail(html_content: str) -> DetailRecord:
    """Parse a detail page. Raises ParseError when no known block is present."""
    if not html_content:
        raise ParseError("Empty detail page")

    parser = HTMLParser(html_content)
    header = parse_header(parser)
    truck = parse_truck(parser)
    table, layout = _find_product_table(parser)

    if not header and table is None and truck == Truck():
        raise ParseError("Detail page has no header, truck or product table")

    products: list[ProductLine] = []
    totals = Totals()
    if table is not None:
        products, totals = parse_products(table, layout)

    logger.debug(f"Detail parsed: layout={layout.value}, products={len(products)}")
    return DetailRecord(**header, truck=truck, products=products, totals=totals, layout=layout)
