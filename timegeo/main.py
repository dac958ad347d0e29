"""TimeGeometry — application entry point.

Boots the FastAPI server and provides the CLI entry point for serve and
one-shot backtest modes.
"""

import logging

from fastapi import FastAPI

from timegeo.api.routers import router

app = FastAPI(title="TimeGeometry API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("timegeo")


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


def build_service(config):
    """Wire the Binance client, override table and query service together."""
    from timegeo.analysis.pivots import load_pivot_overrides
    from timegeo.market.binance_client import BinanceClient
    from timegeo.service import TimeGeometryService

    overrides = load_pivot_overrides(config.major_pivots_path)
    return TimeGeometryService(BinanceClient(config), config, overrides)


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse

    from timegeo.api.routers import configure_routers
    from timegeo.config import load_config

    parser = argparse.ArgumentParser(description="TimeGeometry time-projection engine")
    parser.add_argument(
        "--mode",
        choices=["serve", "backtest"],
        default="serve",
        help="Run the HTTP API or a one-shot backtest (default: serve)",
    )
    parser.add_argument("--symbol", default="BTC", help="Base asset, e.g. BTC")
    parser.add_argument(
        "--kind",
        choices=["fibonacci", "gann", "confluence"],
        default="fibonacci",
        help="Backtest to run in backtest mode (default: fibonacci)",
    )
    parser.add_argument("--env-file", default=None, help="Path to a .env file")
    args = parser.parse_args()

    config = load_config(args.env_file)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    service = build_service(config)

    if args.mode == "backtest":
        _run_backtest(service, args.symbol, args.kind)
        return

    configure_routers(service)
    _serve(config.http_port)


def _serve(port: int) -> None:
    """Start the API server."""
    import uvicorn

    logger.info("Starting TimeGeometry API on port %d", port)
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")


def _run_backtest(service, symbol: str, kind: str) -> None:
    """Fetch history for *symbol* and log one summary line per parameter."""
    import asyncio

    async def _fetch_and_run():
        if kind == "confluence":
            report = await service.backtest_confluence(symbol)
        else:
            report = await service.backtest(symbol, kind)

        if report.insufficient_data:
            logger.warning("%s: insufficient data for a %s backtest", symbol, kind)
            return

        for parameter, perf in report.stats.items():
            logger.info(
                "%s %s %s: %d samples, %d hits, success %.1f%%, avg move %.2f%%",
                symbol, kind, parameter, perf.sample_size, perf.success_count,
                perf.success_rate * 100, perf.average_move_pct,
            )
        if kind == "confluence":
            logger.info(
                "%s confluence: %d windows, overall success %.1f%%",
                symbol, report.total_windows, report.overall_success_rate * 100,
            )

    asyncio.run(_fetch_and_run())


if __name__ == "__main__":
    _run_cli()
