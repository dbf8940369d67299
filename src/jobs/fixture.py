"""Deterministic canned result for integration testing without the portal."""
from src.parse.models import (
    DetailRecord,
    LayoutVariant,
    ListingRow,
    ProductLine,
    ScrapeResult,
    Totals,
    Truck,
)

DEFAULT_CODE = "AUT999999"
REFERENCE_CODE = "REF123456"
BUYER = "EMPRESA PRUEBA S.A.C."
SELLER = "PLANTA GLP CENTRAL"
STATUS = "SOLICITADO"


def fixture_result(authorization_code: str, date_from: str, date_to: str) -> ScrapeResult:
    """One SOLICITADO bulk order with a single product line and its totals."""
    code = authorization_code or DEFAULT_CODE
    detail = DetailRecord(
        header_title="DETALLE DE ORDEN DE PEDIDO",
        seller_agent=SELLER,
        seller_type="PLANTA",
        authorization_code=code,
        reference_code=REFERENCE_CODE,
        status=STATUS,
        order_date=date_from,
        order_type="NORMAL",
        buyer_agent=BUYER,
        truck=Truck(plate="XYZ-789", capacity="12000", unit="KG"),
        products=[
            ProductLine(
                product="GLP GRANEL",
                brand="NINGUNA",
                ordered_qty="8000",
                accepted_qty="8000",
                sold_qty="0",
                received_qty="0",
                subtotal_weight="8000",
                status=STATUS,
            )
        ],
        totals=Totals(ordered_qty="8000", subtotal_weight="8000", confidence="computed"),
        layout=LayoutVariant.GRANEL_SIMPLE,
    )
    row = ListingRow(
        authorization_code=code,
        reference_code=REFERENCE_CODE,
        buyer=BUYER,
        seller=SELLER,
        order_type="NORMAL",
        channel="DISTRIBUIDOR",
        order_date=date_from,
        delivery_date=date_to,
        status=STATUS,
        detail=detail,
    )
    return ScrapeResult(rows=[row])
