"""FastAPI main application."""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, ConfigDict, Field

from src.config import config
from src.jobs.service import ScrapeService, build_service
from src.logging_conf import setup_logging
from src.pool.scheduler import setup_scheduler

logger = logging.getLogger(__name__)

# API Key security (if configured)
API_KEY_HEADER = APIKeyHeader(name="X-API-KEY", auto_error=False)


def verify_api_key(api_key: str = Depends(API_KEY_HEADER)) -> bool:
    """Verify API key if configured."""
    expected_key = config.API_KEY
    if expected_key:
        if not api_key or api_key != expected_key:
            raise HTTPException(status_code=403, detail="Invalid API key")
    return True


class ScoopRequest(BaseModel):
    """Request body for an order query."""

    model_config = ConfigDict(populate_by_name=True)

    codigo_autorizacion: Optional[str] = None
    site_key: Optional[str] = Field(default=None, alias="U_RS_Local")


def create_app(service: Optional[ScrapeService] = None) -> FastAPI:
    """Build the app. A prebuilt service can be passed in (tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        scrape_service = service or build_service()
        app.state.service = scrape_service
        pool = scrape_service.orchestrator.pool
        scheduler = setup_scheduler(pool)
        if scheduler is not None:
            scheduler.start()
        logger.info(f"API ready (max sessions: {pool.max_sessions})")
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown(wait=False)
            await pool.close()
            await scrape_service.process.shutdown()
            scrape_service.metrics.report()
            logger.info("API stopped")

    app = FastAPI(title="SCOP Order Scraper API", version="0.1.0", lifespan=lifespan)

    @app.get("/health")
    async def health():
        """Health check endpoint (no auth required)."""
        scrape_service: ScrapeService = app.state.service
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "browser_running": scrape_service.process.is_running,
        }

    @app.get("/metrics")
    async def get_metrics(_: bool = Depends(verify_api_key)):
        """Get current metrics (requires API key if configured)."""
        scrape_service: ScrapeService = app.state.service
        return scrape_service.metrics.get_summary(scrape_service.orchestrator.pool.stats())

    @app.post("/api/osigermin-Scoop")
    async def scoop(request: ScoopRequest, _: bool = Depends(verify_api_key)):
        """Query orders by authorization code for one site."""
        scrape_service: ScrapeService = app.state.service
        response = await scrape_service.handle(request.codigo_autorizacion, request.site_key)
        return JSONResponse(status_code=response.status_code, content=response.body)

    return app


app = create_app()
