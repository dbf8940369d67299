"""Request handling: validation, credential lookup, fixture mode and scraping."""
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from src.auth.credentials import CredentialStore
from src.browser.process import BrowserProcessManager
from src.config import config
from src.errors import ScraperError, ValidationError
from src.jobs.fixture import fixture_result
from src.jobs.metrics import Metrics
from src.jobs.orchestrator import QueryOrchestrator
from src.parse.html_parser import current_date, is_valid_date_format
from src.parse.models import QueryRequest
from src.pool.session_pool import SessionPool

logger = logging.getLogger(__name__)

MISSING_CODE_MESSAGE = "Falta parámetro requerido: codigo_autorizacion"
MISSING_SITE_MESSAGE = "Falta parámetro requerido: U_RS_Local"
BAD_START_DATE_MESSAGE = "START_DATE no definida en .env o formato inválido (debe ser DD/MM/YYYY)"


@dataclass
class ServiceResponse:
    """HTTP-ready outcome: a status code and a JSON body."""

    status_code: int
    body: dict[str, Any]


def error_response(error: ScraperError) -> ServiceResponse:
    return ServiceResponse(error.status_code, {"error": error.message, "kind": error.kind})


class ScrapeService:
    """
    Entry point for one inbound query. Always returns a ServiceResponse;
    errors become {"error", "kind"} bodies with the error's status code.
    """

    def __init__(
        self,
        process: BrowserProcessManager,
        orchestrator: QueryOrchestrator,
        credentials: CredentialStore,
        metrics: Optional[Metrics] = None,
        start_date: Optional[str] = None,
        fixture_mode: Optional[bool] = None,
    ):
        self.process = process
        self.orchestrator = orchestrator
        self.credentials = credentials
        self.metrics = metrics or Metrics()
        self.start_date = config.START_DATE if start_date is None else start_date
        self.fixture_mode = config.FIXTURE_MODE if fixture_mode is None else fixture_mode

    def build_request(self, authorization_code: Optional[str], site_key: Optional[str]) -> QueryRequest:
        """Validate inputs before any browser or pool work."""
        if not authorization_code:
            raise ValidationError(MISSING_CODE_MESSAGE)
        if not site_key:
            raise ValidationError(MISSING_SITE_MESSAGE)
        if not self.start_date or not is_valid_date_format(self.start_date):
            raise ValidationError(BAD_START_DATE_MESSAGE)
        return QueryRequest.build(
            authorization_code=str(authorization_code).strip(),
            site_key=str(site_key).strip(),
            date_from=self.start_date,
            date_to=current_date(),
        )

    async def handle(self, authorization_code: Optional[str], site_key: Optional[str]) -> ServiceResponse:
        started = time.time()
        self.metrics.increment("requests")
        logger.info(f"Request: codigo_autorizacion={authorization_code}, U_RS_Local={site_key}")
        try:
            request = self.build_request(authorization_code, site_key)
            creds = self.credentials.lookup(request.site_key)

            if self.fixture_mode:
                logger.info("Fixture mode enabled, returning canned result")
                result = fixture_result(request.authorization_code, request.date_from, request.date_to)
            else:
                await self.process.ensure_started()
                result = await self.orchestrator.execute(creds, request)
        except ValidationError as e:
            logger.warning(f"Rejected request: {e.message}")
            self.metrics.increment("rejected")
            self.metrics.record_error(e.kind)
            return error_response(e)
        except ScraperError as e:
            logger.error(f"Request failed ({e.kind}): {e.message}")
            self.metrics.increment("failed")
            self.metrics.record_error(e.kind)
            return error_response(e)
        except Exception as e:
            logger.error(f"Unexpected error handling request: {e}", exc_info=True)
            self.metrics.increment("failed")
            self.metrics.record_error("internal_error")
            return ServiceResponse(500, {"error": f"Error en la solicitud: {e}", "kind": "internal_error"})

        self.metrics.increment("empty" if result.message else "ok")
        logger.info(f"Request done in {int((time.time() - started) * 1000)} ms, {len(result.rows)} rows")
        return ServiceResponse(200, result.to_response())


def build_service() -> ScrapeService:
    """Wire the production components from config."""
    process = BrowserProcessManager()
    pool = SessionPool(process)
    orchestrator = QueryOrchestrator(pool)
    return ScrapeService(process, orchestrator, CredentialStore.from_file())
