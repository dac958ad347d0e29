"""Query service — the one orchestration path behind every route and the CLI.

Fetches bars from the market data source, then runs the pure analysis and
backtest functions over them.  Nothing is cached between calls.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional, Protocol, Sequence

from timegeo.analysis import confluence, fibonacci, gann
from timegeo.analysis.models import ConfluenceWindow, Pivot, PriceLevel, Projection
from timegeo.analysis.pivots import find_pivots, resolve_major_pivots
from timegeo.analysis.price_levels import price_levels
from timegeo.backtest import events
from timegeo.backtest.engine import BacktestEngine, ConfluenceReport, PerformanceReport
from timegeo.config import Config
from timegeo.errors import InsufficientDataError
from timegeo.market.models import Bar, validate_series

logger = logging.getLogger("timegeo")

_COMPRESSION_WINDOW = 20
_VORTEX_LIMIT = 10


class MarketDataSource(Protocol):
    async def get_historical_bars(self, symbol: str) -> list[Bar]: ...

    async def get_monthly_bars(self, symbol: str) -> list[Bar]: ...


@dataclass
class Analysis:
    """Major-cycle view of a symbol: where it pivoted and what comes next."""

    symbol: str
    major_pivots: list[Pivot] = field(default_factory=list)
    cycle_high: Optional[Pivot] = None
    cycle_low: Optional[Pivot] = None
    time_projections: list[Projection] = field(default_factory=list)
    price_levels: list[PriceLevel] = field(default_factory=list)
    gann_dates: list[Projection] = field(default_factory=list)
    vortex_windows: list[ConfluenceWindow] = field(default_factory=list)
    compression_score: float = 0.0
    confidence_score: float = 0.0


class TimeGeometryService:
    """Fetch-then-compute façade over the analysis and backtest modules.

    Args:
        source: Any object with async ``get_historical_bars(symbol)`` and
            ``get_monthly_bars(symbol)``.
        config: Application configuration.
        overrides: Per-symbol major pivot table (see ``load_pivot_overrides``).
    """

    def __init__(
        self,
        source: MarketDataSource,
        config: Config,
        overrides: Optional[dict[str, list[Pivot]]] = None,
    ) -> None:
        self._source = source
        self._config = config
        self._overrides = overrides or {}
        self._engine = BacktestEngine(config.backtest_settings)

    # ── Data access ──────────────────────────────────────────────────────

    async def _daily_bars(self, symbol: str) -> list[Bar]:
        bars = await self._source.get_historical_bars(symbol) or []
        validate_series(bars)
        return bars

    async def _major_pivots(self, symbol: str) -> list[Pivot]:
        monthly = await self._source.get_monthly_bars(symbol) or []
        validate_series(monthly)
        return resolve_major_pivots(symbol, monthly, self._overrides)

    # ── Analysis ─────────────────────────────────────────────────────────

    async def analyze(self, symbol: str, today: Optional[date] = None) -> Analysis:
        """Major pivots, future projections, price levels and vortex windows."""
        today = today or _utc_today()
        analysis = Analysis(symbol=symbol)

        daily = await self._daily_bars(symbol)
        if not daily:
            logger.warning("%s: no daily data", symbol)
            return analysis

        pivots = await self._major_pivots(symbol)
        analysis.major_pivots = pivots
        analysis.cycle_high = _latest(p for p in pivots if p.kind.is_high)
        analysis.cycle_low = _latest(p for p in pivots if not p.kind.is_high)

        if analysis.cycle_high is not None:
            analysis.time_projections = [
                p for p in fibonacci.project(
                    analysis.cycle_high, base_cycle=self._config.fib_base_cycle_days,
                )
                if p.target_date >= today
            ]
            if analysis.cycle_low is not None:
                analysis.price_levels = price_levels(
                    analysis.cycle_high.price, analysis.cycle_low.price,
                )

        analysis.gann_dates = gann.project_major(pivots, gann.STANDARD, today)
        windows = confluence.aggregate_signals(
            [g for g in analysis.gann_dates if g.target_date >= today],
            analysis.time_projections,
        )
        analysis.vortex_windows = confluence.upcoming(windows, today, _VORTEX_LIMIT)
        analysis.compression_score = compression_score(daily)
        analysis.confidence_score = confidence_score(pivots)

        logger.info(
            "%s: %d time projections, %d price levels, %d Gann dates, %d vortex windows",
            symbol, len(analysis.time_projections), len(analysis.price_levels),
            len(analysis.gann_dates), len(analysis.vortex_windows),
        )
        return analysis

    async def gann_dates(
        self,
        symbol: str,
        level: str = "STANDARD",
        limit: int = 15,
        today: Optional[date] = None,
    ) -> list[Projection]:
        """Upcoming Gann anniversaries of the symbol's major pivots.

        An unknown *level* falls back to the STANDARD tier.
        """
        level = gann.resolve_level(level)
        periods = gann.periods_for(level)
        today = today or _utc_today()
        pivots = await self._major_pivots(symbol)
        if not pivots:
            return []

        future = [
            p for p in gann.project_major(pivots, periods, today)
            if p.target_date >= today
        ]
        logger.info("%s: %d upcoming Gann dates at %s level",
                    symbol, len(future), level)
        return future[:limit]

    async def gann_confluence(
        self,
        symbol: str,
        limit: int = 10,
        today: Optional[date] = None,
    ) -> list[ConfluenceWindow]:
        """Upcoming dates where two or more daily-pivot Gann anniversaries meet."""
        today = today or _utc_today()
        daily = await self._daily_bars(symbol)

        projections: list[Projection] = []
        for pivot in find_pivots(daily, self._config.pivot_lookback):
            projections.extend(gann.project(pivot, self._config.gann_periods))

        windows = confluence.upcoming(confluence.aggregate(projections), today, limit)
        logger.info("%s: %d Gann confluence windows", symbol, len(windows))
        return windows

    # ── Backtests ────────────────────────────────────────────────────────

    async def backtest(
        self,
        symbol: str,
        kind: str,
        today: Optional[date] = None,
    ) -> PerformanceReport:
        daily = await self._daily_bars(symbol)
        return self._engine.run(daily, kind, symbol=symbol, today=today)

    async def backtest_confluence(
        self,
        symbol: str,
        today: Optional[date] = None,
    ) -> ConfluenceReport:
        daily = await self._daily_bars(symbol)
        return self._engine.run_confluence(daily, symbol=symbol, today=today)

    async def comprehensive(self, symbol: str, today: Optional[date] = None) -> dict:
        """All three backtests over one fetch of the daily series."""
        daily = await self._daily_bars(symbol)
        return {
            "fibonacci": self._engine.run(daily, "fibonacci", symbol=symbol, today=today),
            "gann": self._engine.run(daily, "gann", symbol=symbol, today=today),
            "confluence": self._engine.run_confluence(daily, symbol=symbol, today=today),
        }

    async def actual_events(
        self,
        symbol: str,
        lookback_days: int = 60,
        today: Optional[date] = None,
    ) -> list[events.MarketEvent]:
        """Price action on recent Gann and Fibonacci projection dates.

        Raises ``InsufficientDataError`` when the daily series is shorter
        than *lookback_days*.
        """
        today = today or _utc_today()
        daily = await self._daily_bars(symbol)
        if len(daily) < lookback_days:
            raise InsufficientDataError(
                f"{symbol}: {len(daily)} daily bars, need {lookback_days}"
            )

        pivots = await self._major_pivots(symbol)
        projections: list[Projection] = list(
            gann.project_major(pivots, gann.STANDARD, today)
        )
        cycle_high = _latest(p for p in pivots if p.kind.is_high)
        if cycle_high is not None:
            projections.extend(fibonacci.project(
                cycle_high, base_cycle=self._config.fib_base_cycle_days,
            ))

        found = events.actual_events(daily, projections, today, lookback_days)
        logger.info("%s: %d market events in the last %d days",
                    symbol, len(found), lookback_days)
        return found


# ── Scores ───────────────────────────────────────────────────────────────


def compression_score(bars: Sequence[Bar]) -> float:
    """Inverse of the mean relative daily range over the last 20 bars.

    Capped at 1.0; 0.5 for shorter series.
    """
    if len(bars) < _COMPRESSION_WINDOW:
        return 0.5
    recent = bars[-_COMPRESSION_WINDOW:]
    avg_range = sum((b.high - b.low) / b.close for b in recent) / len(recent)
    return min(1.0, 1.0 / (avg_range + 0.01))


def confidence_score(pivots: Sequence[Pivot]) -> float:
    """Coarse quality score from how many major pivots were found."""
    if len(pivots) >= 4:
        return 0.9
    if len(pivots) >= 2:
        return 0.7
    return 0.5


# ── Helpers ──────────────────────────────────────────────────────────────


def _latest(pivots) -> Optional[Pivot]:
    return max(pivots, key=lambda p: p.date, default=None)


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()
