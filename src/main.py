"""Main entry point with CLI."""
import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import orjson

from src.config import config, Config
from src.logging_conf import setup_logging
from src.jobs.service import build_service

import logging

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="SCOP Order Scraper")
    parser.add_argument(
        "--log-level",
        default=None,
        help=f"Log level (default: {config.LOG_LEVEL})",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=config.HOST, help=f"Bind address (default: {config.HOST})")
    serve.add_argument("--port", type=int, default=config.PORT, help=f"Port (default: {config.PORT})")

    query = subparsers.add_parser("query", help="Run one query and print the JSON result")
    query.add_argument("--code", required=True, help="Authorization code (codigo_autorizacion)")
    query.add_argument("--site", required=True, help="Site key (U_RS_Local), e.g. 058")
    query.add_argument(
        "--full-details",
        action="store_true",
        help="Fetch details for every row, not only SOLICITADO",
    )
    query.add_argument(
        "--max-details",
        type=int,
        default=None,
        help=f"Maximum detail pages per run (default: {config.MAX_DETAILS})",
    )

    return parser.parse_args(argv)


async def run_query(code: str, site: str, full_details: bool = False, max_details: int | None = None) -> int:
    """Run one query through the full service stack. Returns an exit code."""
    service = build_service()
    if full_details:
        service.orchestrator.show_full_details = True
    if max_details is not None:
        service.orchestrator.max_details = max_details
    try:
        response = await service.handle(code, site)
    finally:
        await service.orchestrator.pool.close()
        await service.process.shutdown()

    sys.stdout.buffer.write(orjson.dumps(response.body, option=orjson.OPT_INDENT_2) + b"\n")
    sys.stdout.flush()
    return 0 if response.status_code == 200 else 1


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    if args.command == "serve":
        import uvicorn

        logger.info("=" * 60)
        logger.info("SCOP Order Scraper API Starting")
        logger.info(f"Listening on {args.host}:{args.port}")
        logger.info(f"Max sessions: {config.MAX_SESSIONS}")
        logger.info(f"Restart interval: {config.RESTART_INTERVAL_MINUTES} min")
        logger.info("=" * 60)
        uvicorn.run("src.api.main:app", host=args.host, port=args.port)
        return

    try:
        exit_code = asyncio.run(run_query(args.code, args.site, args.full_details, args.max_details))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
