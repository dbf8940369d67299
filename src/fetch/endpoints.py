"""URL and form-payload builders for the order query endpoints."""
from urllib.parse import quote, urljoin

from src.config import config
from src.parse.models import QueryRequest


def query_action_url() -> str:
    """Absolute URL the listing form posts to."""
    return urljoin(config.BASE_URL, config.QUERY_ACTION_PATH)


def build_query_payload(request: QueryRequest) -> dict[str, str]:
    """Form fields for a listing query by authorization code and date range."""
    return {
        "ind": "",
        "opc": "1",
        "codvendope": "",
        "codigoAgente": "",
        "tipoUsuario": "C",
        "codigo_referencia": "",
        "codigo_autorizacion": request.authorization_code,
        "tipoOperacion": "",
        "tipoAgente": "",
        "nombreAgente": "",
        "tipoDocumento": "",
        "numeroDocumento": "",
        "estadoOrdenPedido": "",
        "canalOrdenPedido": "",
        "tipoOrdenPedido": "",
        "txt_placa": "",
        "tipoFecha": "",
        "txt_fecini": request.date_from,
        "txt_fecfin": request.date_to,
    }


def detail_url(authorization_code: str) -> str:
    """Detail page for one order."""
    return f"{config.DETAIL_ENDPOINT}?codigoAutorizacion={quote(authorization_code, safe='')}&opc=2"
