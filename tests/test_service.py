"""Tests for request validation and service-level error mapping."""
from src.auth.credentials import CredentialStore
from src.errors import BrowserInitError
from src.jobs.orchestrator import QueryOrchestrator
from src.jobs.service import (
    BAD_START_DATE_MESSAGE,
    MISSING_CODE_MESSAGE,
    MISSING_SITE_MESSAGE,
    ScrapeService,
)
from src.parse.listing import NO_TABLE_MESSAGE
from src.pool.session_pool import SessionPool
from tests.fakes import FakeDriver, FakeProcess, StubAuthenticator

CREDENTIALS = {"locales": {"058": {"OSINERGMIN_USERNAME": "user058", "OSINERGMIN_PASSWORD": "secret"}}}


class FailingProcess(FakeProcess):
    async def ensure_started(self):
        self.started += 1
        raise BrowserInitError("Error al inicializar el navegador: chromium not found")


def _service(process=None, auth=None, **kwargs) -> ScrapeService:
    process = process or FakeProcess()
    pool = SessionPool(process, auth or StubAuthenticator(), max_sessions=1, reuse_sessions=False)
    orchestrator = QueryOrchestrator(pool, max_attempts=1, first_run_extra_attempts=0, retry_wait_seconds=0)
    kwargs.setdefault("start_date", "01/01/2020")
    kwargs.setdefault("fixture_mode", False)
    return ScrapeService(process, orchestrator, CredentialStore.from_mapping(CREDENTIALS), **kwargs)


async def test_missing_code_rejected():
    """No authorization code: 400 before any browser work."""
    service = _service()
    response = await service.handle(None, "058")
    assert response.status_code == 400
    assert response.body == {"error": MISSING_CODE_MESSAGE, "kind": "validation_error"}
    assert service.process.started == 0


async def test_missing_site_rejected():
    """No site key: 400."""
    response = await _service().handle("AUT1", "")
    assert response.status_code == 400
    assert response.body["error"] == MISSING_SITE_MESSAGE


async def test_unmapped_site_rejected_without_browser():
    """Unknown site keys fail lookup and never start the browser."""
    service = _service()
    response = await service.handle("AUT1", "999")
    assert response.status_code == 400
    assert response.body["kind"] == "credential_lookup_error"
    assert service.process.started == 0
    assert service.orchestrator.pool.stats()["size"] == 0


async def test_bad_start_date_rejected():
    """A missing or malformed START_DATE is a 400."""
    for start_date in ("", "2020-01-01", "1/1/2020"):
        response = await _service(start_date=start_date).handle("AUT1", "058")
        assert response.status_code == 400
        assert response.body["error"] == BAD_START_DATE_MESSAGE


async def test_fixture_mode_returns_canned_row():
    """Fixture mode answers without the browser."""
    service = _service(fixture_mode=True)
    response = await service.handle("AUT555", "58")
    assert response.status_code == 200
    row = response.body["results"][0]
    assert row["codigoAutorizacion"] == "AUT555"
    assert row["detalle"]["camion"]["placa"] == "XYZ-789"
    assert service.process.started == 0


async def test_fixture_mode_still_checks_credentials():
    """Fixture mode keeps the site-key lookup."""
    response = await _service(fixture_mode=True).handle("AUT555", "123")
    assert response.status_code == 400


async def test_browser_init_failure_is_500():
    """A launch failure is reported with its kind."""
    service = _service(process=FailingProcess())
    response = await service.handle("AUT1", "058")
    assert response.status_code == 500
    assert response.body["kind"] == "browser_init_error"
    assert service.metrics.errors_by_kind["browser_init_error"] == 1


async def test_authentication_failure_is_502():
    """A rejected login surfaces as authentication_error."""
    service = _service(auth=StubAuthenticator(reject={"058:user058"}))
    response = await service.handle("AUT1", "058")
    assert response.status_code == 502
    assert response.body["kind"] == "authentication_error"


async def test_successful_query_returns_results():
    """An empty listing is a 200 with the portal message."""
    process = FakeProcess(driver_factory=lambda: FakeDriver(listing_html="<html><body></body></html>"))
    service = _service(process=process)
    response = await service.handle("AUT1", "058")
    assert response.status_code == 200
    assert response.body == {"results": [], "message": NO_TABLE_MESSAGE}
    assert process.started == 1
    assert process.drivers[0].closed


async def test_metrics_counters():
    """Outcomes are counted per kind."""
    service = _service(fixture_mode=True)
    await service.handle("AUT1", "058")
    await service.handle(None, "058")
    summary = service.metrics.get_summary()
    assert summary["requests"] == 2
    assert summary["ok"] == 1
    assert summary["rejected"] == 1
    assert summary["errors_by_kind"] == {"validation_error": 1}
