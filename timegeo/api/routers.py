"""HTTP routers — Gann dates, time-geometry analysis and backtest endpoints.

No business logic. Delegates to the query service and shapes its results
into JSON-ready dicts (dates as ISO strings).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from timegeo.analysis import gann
from timegeo.analysis.models import ConfluenceWindow, FibonacciMeta, Pivot, PivotRef, Projection
from timegeo.backtest.engine import ConfluenceReport, HitResult, PerformanceReport
from timegeo.backtest.events import MarketEvent
from timegeo.backtest.stats import SignalPerformance
from timegeo.errors import (
    ComputationError,
    InsufficientDataError,
    SymbolNotFoundError,
    TimeGeometryError,
    UpstreamUnavailableError,
)
from timegeo.service import Analysis, TimeGeometryService

logger = logging.getLogger("timegeo")
router = APIRouter()

_service: Optional[TimeGeometryService] = None  # Set via configure_routers()

_INSUFFICIENT_DATA = "Insufficient data"


def configure_routers(service: Optional[TimeGeometryService]) -> None:
    """Inject the query service from application startup (or tests)."""
    global _service  # noqa: PLW0603
    _service = service


def _error_response(exc: Exception) -> JSONResponse:
    """Map an application error to its HTTP status and error body."""
    if isinstance(exc, SymbolNotFoundError):
        status, error = 404, "Symbol not found"
    elif isinstance(exc, UpstreamUnavailableError):
        status, error = 502, "Market data unavailable"
    elif isinstance(exc, ComputationError):
        status, error = 500, "Computation failed"
    else:
        status, error = 500, "Internal error"
    logger.warning("%s: %s", error, exc)
    return JSONResponse(status_code=status, content={"error": error, "message": str(exc)})


def _unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"error": "Service unavailable", "message": "Service not configured"},
    )


# ── Serialisers ──────────────────────────────────────────────────────────


def _pivot_dict(pivot: Optional[Pivot]) -> Optional[dict]:
    if pivot is None:
        return None
    return {
        "id": pivot.pivot_id,
        "date": pivot.date.isoformat(),
        "price": pivot.price,
        "type": pivot.kind.value,
        "confidence": pivot.confidence,
    }


def _origin_dict(ref: PivotRef) -> dict:
    return {
        "id": ref.pivot_id,
        "date": ref.date.isoformat(),
        "price": ref.price,
        "type": ref.kind.value,
    }


def _projection_dict(projection: Projection) -> dict:
    data = {
        "date": projection.target_date.isoformat(),
        "signal": projection.signal_label,
        "signal_type": projection.signal_kind.value,
        "source_pivot": _origin_dict(projection.origin),
    }
    meta = projection.metadata
    if isinstance(meta, FibonacciMeta):
        data.update({
            "ratio": meta.ratio,
            "days": meta.day_count,
            "description": meta.description,
            "intensity": meta.intensity,
            "major": projection.major,
        })
    else:
        data.update({
            "period": meta.period_days,
            "type": meta.anniversary_label,
        })
    return data


def _window_dict(window: ConfluenceWindow) -> dict:
    return {
        "date": window.date.isoformat(),
        "count": window.count,
        "intensity": window.intensity,
        "type": window.kind,
        "description": window.description,
        "signals": list(window.signals),
        "projections": [_projection_dict(p) for p in window.projections],
    }


def _performance_dict(perf: SignalPerformance) -> dict:
    return {
        "category": perf.signal_category,
        "parameter": perf.parameter,
        "sample_size": perf.sample_size,
        "success_count": perf.success_count,
        "success_rate": perf.success_rate,
        "average_move_pct": perf.average_move_pct,
        "max_move_pct": perf.max_move_pct,
        "min_move_pct": perf.min_move_pct,
        "std_dev_pct": perf.std_dev_pct,
    }


def _hit_dict(hit: HitResult) -> dict:
    return {
        "pivot_date": hit.pivot_date.isoformat(),
        "pivot_price": hit.pivot_price,
        "pivot_type": hit.pivot_kind,
        "parameter": hit.parameter,
        "target_date": hit.target_date.isoformat(),
        "actual_move_date": hit.actual_move_date.isoformat(),
        "move_pct": hit.move_pct,
        "direction": hit.direction,
        "hit": hit.hit,
        "reversal": hit.reversal,
        "days_from_projection": hit.days_from_projection,
    }


def _report_dict(report: PerformanceReport) -> dict:
    data = {
        "symbol": report.symbol,
        "generator": report.generator,
        "insufficient_data": report.insufficient_data,
        "stats": [_performance_dict(s) for s in report.stats.values()],
        "hits": [_hit_dict(h) for h in report.hits],
    }
    if report.insufficient_data:
        data["message"] = _INSUFFICIENT_DATA
    return data


def _confluence_report_dict(report: ConfluenceReport) -> dict:
    data = {
        "symbol": report.symbol,
        "insufficient_data": report.insufficient_data,
        "total_windows": report.total_windows,
        "overall_success_rate": report.overall_success_rate,
        "stats": [_performance_dict(s) for s in report.stats.values()],
    }
    if report.insufficient_data:
        data["message"] = _INSUFFICIENT_DATA
    return data


def _event_dict(event: MarketEvent) -> dict:
    return {
        "date": event.date.isoformat(),
        "signal_type": event.signal_type,
        "details": event.details,
        "price": event.price,
        "daily_change_pct": event.daily_change_pct,
        "direction": event.direction,
        "three_day_change_pct": event.three_day_change_pct,
        "week_high": event.week_high,
        "week_low": event.week_low,
        "week_range_pct": event.week_range_pct,
    }


def _analysis_dict(analysis: Analysis) -> dict:
    data = {
        "symbol": analysis.symbol,
        "major_pivots": [_pivot_dict(p) for p in analysis.major_pivots],
        "cycle_high": _pivot_dict(analysis.cycle_high),
        "cycle_low": _pivot_dict(analysis.cycle_low),
        "fibonacci_time_projections": [_projection_dict(p) for p in analysis.time_projections],
        "fibonacci_price_levels": [
            {
                "price": lvl.price,
                "ratio": lvl.ratio,
                "label": lvl.label,
                "type": lvl.level_type,
                "distance": lvl.distance,
            }
            for lvl in analysis.price_levels
        ],
        "gann_dates": [_projection_dict(g) for g in analysis.gann_dates],
        "vortex_windows": [_window_dict(w) for w in analysis.vortex_windows],
        "compression_score": analysis.compression_score,
        "confidence_score": analysis.confidence_score,
    }
    if not analysis.major_pivots:
        data["message"] = _INSUFFICIENT_DATA
    return data


# ── Time geometry ────────────────────────────────────────────────────────


@router.get("/api/timeGeometry/analysis/{symbol}")
async def get_analysis(symbol: str):
    """Major-cycle analysis: pivots, projections, levels and vortex windows."""
    if _service is None:
        return _unavailable()
    try:
        analysis = await _service.analyze(symbol)
    except TimeGeometryError as exc:
        return _error_response(exc)
    return _analysis_dict(analysis)


# ── Gann ─────────────────────────────────────────────────────────────────


@router.get("/api/gann/dates/{symbol}")
async def get_gann_dates(symbol: str):
    """Next 15 Gann anniversaries of the symbol's major pivots."""
    if _service is None:
        return _unavailable()
    try:
        dates = await _service.gann_dates(symbol)
    except TimeGeometryError as exc:
        return _error_response(exc)
    data = {"symbol": symbol, "dates": [_projection_dict(d) for d in dates]}
    if not dates:
        data["message"] = "No upcoming Gann dates"
    return data


@router.get("/api/gann/dates/{symbol}/filtered")
async def get_filtered_gann_dates(
    symbol: str,
    level: str = Query(default="STANDARD"),
    limit: int = Query(default=50, ge=1, le=500),
):
    """Gann anniversaries using the requested period tier."""
    if _service is None:
        return _unavailable()
    level = gann.resolve_level(level)
    try:
        dates = await _service.gann_dates(symbol, level=level, limit=limit)
    except TimeGeometryError as exc:
        return _error_response(exc)
    data = {
        "symbol": symbol,
        "level": level,
        "dates": [_projection_dict(d) for d in dates],
    }
    if not dates:
        data["message"] = "No upcoming Gann dates"
    return data


@router.get("/api/gann/confluence/{symbol}")
async def get_gann_confluence(symbol: str):
    """Upcoming dates where several daily-pivot Gann anniversaries meet."""
    if _service is None:
        return _unavailable()
    try:
        windows = await _service.gann_confluence(symbol)
    except TimeGeometryError as exc:
        return _error_response(exc)
    data = {"symbol": symbol, "windows": [_window_dict(w) for w in windows]}
    if not windows:
        data["message"] = "No upcoming Gann confluence"
    return data


# ── Backtests ────────────────────────────────────────────────────────────


@router.get("/api/backtest/fibonacci/{symbol}")
async def backtest_fibonacci(symbol: str):
    """Per-ratio hit rates of historical Fibonacci projections."""
    if _service is None:
        return _unavailable()
    try:
        report = await _service.backtest(symbol, "fibonacci")
    except TimeGeometryError as exc:
        return _error_response(exc)
    return _report_dict(report)


@router.get("/api/backtest/gann/{symbol}")
async def backtest_gann(symbol: str):
    """Per-period hit rates of historical Gann anniversaries."""
    if _service is None:
        return _unavailable()
    try:
        report = await _service.backtest(symbol, "gann")
    except TimeGeometryError as exc:
        return _error_response(exc)
    return _report_dict(report)


@router.get("/api/backtest/confluence/{symbol}")
async def backtest_confluence(symbol: str):
    """Forward returns after historical confluence windows."""
    if _service is None:
        return _unavailable()
    try:
        report = await _service.backtest_confluence(symbol)
    except TimeGeometryError as exc:
        return _error_response(exc)
    return _confluence_report_dict(report)


@router.get("/api/backtest/comprehensive/{symbol}")
async def backtest_comprehensive(symbol: str):
    """Fibonacci, Gann and confluence backtests in one response."""
    if _service is None:
        return _unavailable()
    try:
        results = await _service.comprehensive(symbol)
    except TimeGeometryError as exc:
        return _error_response(exc)
    return {
        "symbol": symbol,
        "fibonacci": _report_dict(results["fibonacci"]),
        "gann": _report_dict(results["gann"]),
        "confluence": _confluence_report_dict(results["confluence"]),
    }


@router.get("/api/backtest/actual-events/{symbol}")
async def get_actual_events(
    symbol: str,
    lookback_days: int = Query(default=60, ge=1, le=3650, alias="lookbackDays"),
):
    """What price did on each projection date of the recent past."""
    if _service is None:
        return _unavailable()
    try:
        found = await _service.actual_events(symbol, lookback_days=lookback_days)
    except InsufficientDataError:
        return {"symbol": symbol, "total_events": 0, "events": [], "message": _INSUFFICIENT_DATA}
    except TimeGeometryError as exc:
        return _error_response(exc)
    return {
        "symbol": symbol,
        "total_events": len(found),
        "events": [_event_dict(e) for e in found],
    }
