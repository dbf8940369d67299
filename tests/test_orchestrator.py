"""Tests for query orchestration over a session."""
import pytest

from src.auth.session import Session, SessionState
from src.errors import AuthenticationError, NavigationTimeoutError, ValidationError
from src.fetch.endpoints import build_query_payload, detail_url, query_action_url
from src.jobs.orchestrator import MISSING_CODE_ERROR, SESSION_EXPIRED_ERROR, QueryOrchestrator
from src.parse.listing import NO_ROWS_MESSAGE
from src.parse.models import DetailError, DetailRecord, QueryRequest
from src.pool.session_pool import SessionPool
from tests.fakes import FakeDriver, FakeProcess, StubAuthenticator
from tests.test_detail_parser import COMPUESTO_TABLE, HEADER_BLOCK, TRUCK_BLOCK

REQUEST = QueryRequest(
    authorization_code="AUT123", site_key="058", date_from="01/01/2020", date_to="27/01/2020"
)


def _row(code, status):
    cells = [code, "REF", "EMPRESA", "PLANTA", "NORMAL", "DISTRIBUIDOR", "27/01/2020", "28/01/2020", status]
    return '<tr class="Fila">' + "".join(f'<td class="Celda1">{c}</td>' for c in cells) + "</tr>"


def _listing(*rows):
    return '<html><body><table class="TblResultado">' + "".join(rows) + "</table></body></html>"


DETAIL_PAGE = "<html><body>" + HEADER_BLOCK + TRUCK_BLOCK + COMPUESTO_TABLE + "</body></html>"


def _orchestrator(pool=None, **kwargs) -> QueryOrchestrator:
    defaults = dict(
        max_details=999999,
        show_full_details=False,
        save_screenshots=False,
        max_attempts=2,
        first_run_extra_attempts=0,
        retry_wait_seconds=0,
    )
    defaults.update(kwargs)
    pool = pool or SessionPool(FakeProcess(), StubAuthenticator(), max_sessions=2, reuse_sessions=False)
    return QueryOrchestrator(pool, **defaults)


def _session(creds, driver) -> Session:
    return Session(credentials=creds, driver=driver, state=SessionState.BUSY)


def test_query_payload_fields():
    """The listing form carries the code and both dates."""
    payload = build_query_payload(REQUEST)
    assert payload["codigo_autorizacion"] == "AUT123"
    assert payload["txt_fecini"] == "01/01/2020"
    assert payload["txt_fecfin"] == "27/01/2020"
    assert payload["opc"] == "1"
    assert payload["tipoUsuario"] == "C"


def test_detail_url_encodes_code():
    """Detail URLs quote the authorization code."""
    assert detail_url("AUT 1/2").endswith("?codigoAutorizacion=AUT%201%2F2&opc=2")


async def test_empty_listing_returns_message_without_details(creds):
    """No data rows: empty results with a message, no detail fetch."""
    driver = FakeDriver(listing_html=_listing())
    result = await _orchestrator().run(_session(creds, driver), REQUEST)
    assert result.rows == []
    assert result.message == NO_ROWS_MESSAGE
    assert result.to_response() == {"results": [], "message": NO_ROWS_MESSAGE}
    assert all("codigoAutorizacion=" not in url for url in driver.calls_to("navigate"))


async def test_listing_query_posts_form(creds):
    """The query is posted to the servlet with the request fields."""
    driver = FakeDriver(listing_html=_listing())
    await _orchestrator().run(_session(creds, driver), REQUEST)
    assert driver.calls_to("submit_form") == [query_action_url()]
    fields = driver.calls_to("form_fields")[0]
    assert fields["codigo_autorizacion"] == "AUT123"


async def test_qualifying_row_gets_detail(creds):
    """SOLICITADO rows are enriched with their parsed detail."""
    driver = FakeDriver(
        listing_html=_listing(_row("AUT123", "SOLICITADO")),
        pages={detail_url("AUT123"): DETAIL_PAGE},
    )
    result = await _orchestrator().run(_session(creds, driver), REQUEST)
    detail = result.rows[0].detail
    assert isinstance(detail, DetailRecord)
    assert len(detail.products) == 2
    output = result.to_response()["results"][0]
    assert output["detalle"]["totales"]["cantidadPedida"] == "8000.5"


async def test_non_qualifying_row_has_no_detail(creds):
    """Rows with another status never carry detalle."""
    driver = FakeDriver(
        listing_html=_listing(_row("AUT200", "ATENDIDO")),
        pages={detail_url("AUT200"): DETAIL_PAGE},
    )
    result = await _orchestrator().run(_session(creds, driver), REQUEST)
    assert "detalle" not in result.to_response()["results"][0]
    assert detail_url("AUT200") not in driver.calls_to("navigate")


async def test_full_details_flag_fetches_every_row(creds):
    """The override flag fetches details regardless of status."""
    driver = FakeDriver(
        listing_html=_listing(_row("AUT200", "ATENDIDO")),
        pages={detail_url("AUT200"): DETAIL_PAGE},
    )
    result = await _orchestrator(show_full_details=True).run(_session(creds, driver), REQUEST)
    assert isinstance(result.rows[0].detail, DetailRecord)


async def test_detail_failure_stays_with_row(creds):
    """A failing detail page marks its row and the run continues."""
    driver = FakeDriver(
        listing_html=_listing(_row("AUT1", "SOLICITADO"), _row("AUT2", "SOLICITADO")),
        pages={detail_url("AUT1"): "<html><body>Error</body></html>", detail_url("AUT2"): DETAIL_PAGE},
    )
    result = await _orchestrator().run(_session(creds, driver), REQUEST)
    assert isinstance(result.rows[0].detail, DetailError)
    assert isinstance(result.rows[1].detail, DetailRecord)


async def test_detail_timeout_stays_with_row(creds):
    """Navigation timeouts on a detail page are per-row errors."""
    driver = FakeDriver(
        listing_html=_listing(_row("AUT1", "SOLICITADO")),
        failures={f"navigate:{detail_url('AUT1')}": NavigationTimeoutError("detail", 10000)},
    )
    result = await _orchestrator().run(_session(creds, driver), REQUEST)
    assert "Timeout" in result.rows[0].detail.error


async def test_missing_code_is_row_error(creds):
    """A qualifying row without a code gets an error marker."""
    driver = FakeDriver(listing_html=_listing(_row("", "SOLICITADO")))
    result = await _orchestrator().run(_session(creds, driver), REQUEST)
    assert result.rows[0].detail.error == MISSING_CODE_ERROR


async def test_returns_to_listing_after_each_detail(creds):
    """Each detail fetch is followed by navigation back to the listing."""
    driver = FakeDriver(
        listing_html=_listing(_row("AUT1", "SOLICITADO")),
        pages={detail_url("AUT1"): DETAIL_PAGE},
    )
    await _orchestrator().run(_session(creds, driver), REQUEST)
    assert driver.calls_to("navigate")[-1] == query_action_url()


async def test_max_details_limits_fetches(creds):
    """Rows beyond the limit keep no detalle."""
    driver = FakeDriver(
        listing_html=_listing(*(_row(f"AUT{i}", "SOLICITADO") for i in range(3))),
        pages={detail_url(f"AUT{i}"): DETAIL_PAGE for i in range(3)},
    )
    result = await _orchestrator(max_details=1).run(_session(creds, driver), REQUEST)
    assert result.rows[0].detail is not None
    assert result.rows[1].detail is None and result.rows[2].detail is None


async def test_max_details_counts_only_qualifying_rows(creds):
    """A leading non-qualifying row does not use up the detail limit."""
    driver = FakeDriver(
        listing_html=_listing(_row("AUT0", "ATENDIDO"), _row("AUT1", "SOLICITADO"), _row("AUT2", "SOLICITADO")),
        pages={detail_url(f"AUT{i}"): DETAIL_PAGE for i in range(3)},
    )
    result = await _orchestrator(max_details=1).run(_session(creds, driver), REQUEST)
    assert [row.detail is not None for row in result.rows] == [False, True, False]
    assert detail_url("AUT2") not in driver.calls_to("navigate")


async def test_screenshots_go_to_sink(creds):
    """With screenshots on, each detail page is captured."""
    captured = []

    async def sink(code, image):
        captured.append((code, len(image)))

    driver = FakeDriver(
        listing_html=_listing(_row("AUT1", "SOLICITADO")),
        pages={detail_url("AUT1"): DETAIL_PAGE},
    )
    orchestrator = _orchestrator(save_screenshots=True, screenshot_sink=sink)
    await orchestrator.run(_session(creds, driver), REQUEST)
    assert captured == [("AUT1", len(b"\x89PNG fake"))]


async def test_results_wait_timeout_is_not_fatal(creds):
    """A missing results table is reported as an empty listing."""
    driver = FakeDriver(
        listing_html="<html><body>Sin datos</body></html>",
        failures={"wait_for_selector": NavigationTimeoutError("results", 8000)},
    )
    result = await _orchestrator().run(_session(creds, driver), REQUEST)
    assert result.rows == [] and result.message


async def test_execute_retries_on_fresh_session(creds):
    """A timed-out attempt is retried with a new session."""
    drivers = [
        FakeDriver(failures={"submit_form": NavigationTimeoutError("form post", 10000)}),
        FakeDriver(listing_html=_listing()),
    ]
    process = FakeProcess(driver_factory=lambda: drivers[len(process.drivers)])
    pool = SessionPool(process, StubAuthenticator(), max_sessions=1, reuse_sessions=False)
    result = await _orchestrator(pool).execute(creds, REQUEST)
    assert result.message == NO_ROWS_MESSAGE
    assert len(process.drivers) == 2
    assert drivers[0].closed and drivers[1].closed
    assert pool.stats()["size"] == 0


async def test_execute_gives_up_after_max_attempts(creds):
    """The last retryable error surfaces once attempts run out."""
    process = FakeProcess(
        driver_factory=lambda: FakeDriver(failures={"submit_form": NavigationTimeoutError("form post", 10000)})
    )
    pool = SessionPool(process, StubAuthenticator(), max_sessions=1, reuse_sessions=False)
    with pytest.raises(NavigationTimeoutError):
        await _orchestrator(pool, max_attempts=2).execute(creds, REQUEST)
    assert len(process.drivers) == 2


async def test_execute_first_run_gets_extra_attempt(creds):
    """The first execution allows one more attempt than later ones."""
    process = FakeProcess(
        driver_factory=lambda: FakeDriver(failures={"submit_form": NavigationTimeoutError("form post", 10000)})
    )
    pool = SessionPool(process, StubAuthenticator(), max_sessions=1, reuse_sessions=False)
    orchestrator = _orchestrator(pool, max_attempts=2, first_run_extra_attempts=1)
    with pytest.raises(NavigationTimeoutError):
        await orchestrator.execute(creds, REQUEST)
    assert len(process.drivers) == 3
    with pytest.raises(NavigationTimeoutError):
        await orchestrator.execute(creds, REQUEST)
    assert len(process.drivers) == 5


async def test_execute_does_not_retry_non_retryable(creds):
    """Non-retryable errors fail on the first attempt."""
    process = FakeProcess(driver_factory=lambda: FakeDriver(failures={"submit_form": ValidationError("bad")}))
    pool = SessionPool(process, StubAuthenticator(), max_sessions=1, reuse_sessions=False)
    with pytest.raises(ValidationError):
        await _orchestrator(pool).execute(creds, REQUEST)
    assert len(process.drivers) == 1


async def test_login_page_after_query_is_auth_error(creds):
    """Landing on the login form means the session expired."""
    login_form = (
        '<form action="j_spring_security_check"><input name="j_username">'
        '<input name="j_password"></form>'
    )
    driver = FakeDriver(listing_html=login_form)
    with pytest.raises(AuthenticationError) as exc:
        await _orchestrator().run(_session(creds, driver), REQUEST)
    assert exc.value.message == SESSION_EXPIRED_ERROR
    assert exc.value.retryable
