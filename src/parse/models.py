"""Data models for scraped order records."""
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.errors import ValidationError
from src.parse.html_parser import is_valid_date_format


class PortalModel(BaseModel):
    """Base model: English attributes, portal (Spanish camelCase) output keys."""

    model_config = ConfigDict(populate_by_name=True, frozen=False)

    def to_output(self) -> dict[str, Any]:
        """Serialize with portal keys, dropping absent optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Credentials(BaseModel):
    """Stored credential set for one site key."""

    model_config = ConfigDict(frozen=True)

    site_key: str = Field(..., description="3-digit zero-padded site code")
    username: str = ""
    password: str = Field(default="", repr=False)

    @property
    def identity(self) -> str:
        """Pool key for this credential set."""
        return f"{self.site_key}:{self.username}"


class QueryRequest(BaseModel):
    """One listing query."""

    authorization_code: str
    site_key: str
    date_from: str
    date_to: str

    @field_validator("date_from", "date_to")
    @classmethod
    def _check_date(cls, value: str) -> str:
        if not is_valid_date_format(value):
            raise ValueError(f"invalid date (expected DD/MM/YYYY): {value!r}")
        return value

    @classmethod
    def build(cls, authorization_code: str, site_key: str, date_from: str, date_to: str) -> "QueryRequest":
        """Construct, raising the project's ValidationError on bad input."""
        try:
            return cls(
                authorization_code=authorization_code,
                site_key=site_key,
                date_from=date_from,
                date_to=date_to,
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e


class LayoutVariant(str, Enum):
    """Product-table schemas seen on detail pages."""

    ENVASADO = "envasado"
    GRANEL_SIMPLE = "granel_simple"
    GRANEL_COMPUESTO = "granel_compuesto"
    UNKNOWN = "unknown"


class Truck(PortalModel):
    plate: str = Field(default="", serialization_alias="placa")
    capacity: str = Field(default="", serialization_alias="capacidadKg")
    unit: str = Field(default="", serialization_alias="un")


class ProductLine(PortalModel):
    product: str = Field(default="", serialization_alias="producto")
    brand: str = Field(default="", serialization_alias="marca")
    ordered_qty: str = Field(default="", serialization_alias="cantidadPedida")
    accepted_qty: str = Field(default="", serialization_alias="cantidadAceptada")
    sold_qty: str = Field(default="", serialization_alias="cantidadVendida")
    received_qty: str = Field(default="", serialization_alias="cantidadRecibida")
    subtotal_weight: str = Field(default="", serialization_alias="subtotalKg")
    status: str = Field(default="", serialization_alias="estado")


class Totals(PortalModel):
    """
    Derived totals. Empty ({}) when the layout gives no basis for them.
    confidence is "computed" (sum of product lines) or "low" (total-row heuristic).
    """

    ordered_qty: Optional[str] = Field(default=None, serialization_alias="cantidadPedida")
    subtotal_weight: Optional[str] = Field(default=None, serialization_alias="subtotalKg")
    confidence: Optional[str] = Field(default=None, serialization_alias="confianza")


class DetailRecord(PortalModel):
    header_title: str = Field(default="", serialization_alias="cabeceraTitulo")
    seller_agent: str = Field(default="", serialization_alias="agenteVendedor")
    seller_type: str = Field(default="", serialization_alias="tipoVendedor")
    authorization_code: str = Field(default="", serialization_alias="codigoAutorizacion")
    reference_code: str = Field(default="", serialization_alias="codigoReferencia")
    status: str = Field(default="", serialization_alias="estado")
    order_date: str = Field(default="", serialization_alias="fechaPedido")
    order_type: str = Field(default="", serialization_alias="tipoPedido")
    invoice_number: str = Field(default="", serialization_alias="numeroFactura")
    invoice_date: str = Field(default="", serialization_alias="fechaEmisionFactura")
    shipment_guide_number: str = Field(default="", serialization_alias="numeroGuiaRemision")
    buyer_agent: str = Field(default="", serialization_alias="agenteComprador")
    truck: Truck = Field(default_factory=Truck, serialization_alias="camion")
    products: list[ProductLine] = Field(default_factory=list, serialization_alias="productos")
    totals: Totals = Field(default_factory=Totals, serialization_alias="totales")
    layout: LayoutVariant = Field(default=LayoutVariant.UNKNOWN, serialization_alias="formato")


class DetailError(PortalModel):
    """Per-row detail failure marker."""

    error: str


class ListingRow(PortalModel):
    authorization_code: str = Field(default="", serialization_alias="codigoAutorizacion")
    reference_code: str = Field(default="", serialization_alias="codigoReferencia")
    buyer: str = Field(default="", serialization_alias="comprador")
    seller: str = Field(default="", serialization_alias="vendedor")
    order_type: str = Field(default="", serialization_alias="tipoPedido")
    channel: str = Field(default="", serialization_alias="canal")
    order_date: str = Field(default="", serialization_alias="fechaPedido")
    delivery_date: str = Field(default="", serialization_alias="fechaEntrega")
    status: str = Field(default="", serialization_alias="estado")
    detail: Optional[Union[DetailRecord, DetailError]] = Field(default=None, serialization_alias="detalle")


class ScrapeResult(BaseModel):
    """Outcome of one orchestrator run."""

    rows: list[ListingRow] = Field(default_factory=list)
    message: Optional[str] = None

    def to_response(self) -> dict[str, Any]:
        """Shape consumed by the HTTP layer: {results: [...], message?}."""
        body: dict[str, Any] = {"results": [row.to_output() for row in self.rows]}
        if self.message:
            body["message"] = self.message
        return body
