"""Backtest engine — replays historical projections against realised moves.

Every pivot in the history is expanded through a projection generator;
each projected date that already has a bar is scored against the closes
around it.  Nothing is traded, this only measures how often a projected
date coincided with a material price move.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional, Sequence, Union

from timegeo.analysis import confluence, fibonacci, gann
from timegeo.analysis.models import Projection, SignalKind
from timegeo.analysis.pivots import DEFAULT_LOOKBACK, find_pivots
from timegeo.backtest.stats import SignalPerformance, calculate_stats
from timegeo.market.models import Bar, index_by_date, validate_series

logger = logging.getLogger("timegeo")

GENERATOR_KINDS = ("fibonacci", "gann")

# Forward horizons (in bars) used to score historical confluence windows
CONFLUENCE_HORIZONS: tuple[int, ...] = (1, 3, 7, 14, 30)
_BENCHMARK_HORIZON = 7


@dataclass(frozen=True)
class BacktestSettings:
    """Tunable parameters of the hit test."""

    lookback: int = DEFAULT_LOOKBACK
    base_cycle: int = fibonacci.DEFAULT_BASE_CYCLE
    gann_periods: tuple[int, ...] = gann.STANDARD
    margin_pct: float = 1.5     # minimum |move| counted as a hit
    tolerance_days: int = 2     # bars either side of the target


@dataclass(frozen=True)
class HitResult:
    """One evaluated projection instance."""

    pivot_date: date
    pivot_price: float
    pivot_kind: str
    parameter: Union[float, int]
    target_date: date
    actual_move_date: date
    move_pct: float
    direction: str  # "UP", "DOWN" or "NONE"
    hit: bool
    reversal: bool
    days_from_projection: int


@dataclass
class PerformanceReport:
    symbol: str
    generator: str
    stats: dict[Union[float, int], SignalPerformance] = field(default_factory=dict)
    hits: list[HitResult] = field(default_factory=list)
    insufficient_data: bool = False


@dataclass
class ConfluenceReport:
    """Forward-return performance of historical confluence windows.

    ``stats`` is keyed by horizon in bars; ``overall_success_rate`` is the
    7-bar horizon's rate.
    """

    symbol: str
    stats: dict[int, SignalPerformance] = field(default_factory=dict)
    total_windows: int = 0
    overall_success_rate: float = 0.0
    insufficient_data: bool = False


class BacktestEngine:
    """Scores Fibonacci and Gann projections on historical bars.

    Args:
        settings: Hit-test parameters; defaults to ``BacktestSettings()``.
    """

    def __init__(self, settings: Optional[BacktestSettings] = None) -> None:
        self._settings = settings or BacktestSettings()

    @property
    def settings(self) -> BacktestSettings:
        return self._settings

    # ── Public API ───────────────────────────────────────────────────────

    def run(
        self,
        bars: Sequence[Bar],
        generator_kind: str,
        symbol: str = "",
        today: Optional[date] = None,
    ) -> PerformanceReport:
        """Backtest one projection generator over *bars*.

        Args:
            bars: Daily bars, oldest first.
            generator_kind: ``"fibonacci"`` or ``"gann"``.
            symbol: Label carried into the report.
            today: Cut-off date; targets after it are not scored.

        Returns:
            A ``PerformanceReport`` with one ``SignalPerformance`` per table
            entry (zero-sample entries included).  A series too short for
            pivot detection yields ``insufficient_data=True`` and no stats.

        Raises:
            ValueError: *generator_kind* is not recognised.
        """
        if generator_kind not in GENERATOR_KINDS:
            raise ValueError(
                f"Unknown generator {generator_kind!r}; expected one of "
                f"{', '.join(GENERATOR_KINDS)}"
            )

        report = PerformanceReport(symbol=symbol, generator=generator_kind)
        if self._insufficient(bars):
            logger.info(
                "%s: %d bars, need %d to backtest %s",
                symbol, len(bars), 2 * self._settings.lookback, generator_kind,
            )
            report.insufficient_data = True
            return report

        validate_series(bars)
        today = today or _utc_today()
        last_date = bars[-1].date
        index = index_by_date(bars)

        pivots = find_pivots(bars, self._settings.lookback)
        samples: dict[Union[float, int], list[tuple[bool, float]]] = {
            p: [] for p in self._parameters(generator_kind)
        }

        for pivot in pivots:
            for projection in self._project(pivot, generator_kind):
                target = projection.target_date
                if target > today or target > last_date:
                    continue
                position = index.get(target)
                if position is None:
                    logger.debug("%s: no bar on %s, skipping %s",
                                 symbol, target, projection.signal_label)
                    continue

                result = self._evaluate(bars, position, projection)
                report.hits.append(result)
                samples.setdefault(projection.parameter, []).append(
                    (result.hit, result.move_pct)
                )

        category = _category(generator_kind)
        report.stats = {
            parameter: calculate_stats(category, parameter, entries)
            for parameter, entries in samples.items()
        }
        logger.info(
            "%s %s backtest: %d pivots, %d instances scored",
            symbol, generator_kind, len(pivots), len(report.hits),
        )
        return report

    def run_confluence(
        self,
        bars: Sequence[Bar],
        symbol: str = "",
        today: Optional[date] = None,
    ) -> ConfluenceReport:
        """Score historical confluence windows by forward close returns.

        Windows are built from every Fibonacci and Gann projection of every
        historical pivot.  For each window dated on a bar not after
        *today*, the close-to-close return over 1, 3, 7, 14 and 30 bars is
        recorded; a positive return counts as success.
        """
        report = ConfluenceReport(symbol=symbol)
        report.stats = {h: calculate_stats("CONFLUENCE", h, []) for h in CONFLUENCE_HORIZONS}
        if self._insufficient(bars):
            report.insufficient_data = True
            return report

        validate_series(bars)
        today = today or _utc_today()
        index = index_by_date(bars)

        projections: list[Projection] = []
        for pivot in find_pivots(bars, self._settings.lookback):
            projections.extend(self._project(pivot, "fibonacci"))
            projections.extend(self._project(pivot, "gann"))

        samples: dict[int, list[tuple[bool, float]]] = {h: [] for h in CONFLUENCE_HORIZONS}
        for window in confluence.aggregate(projections):
            if window.date > today:
                continue
            position = index.get(window.date)
            if position is None:
                logger.debug("%s: no bar on confluence date %s", symbol, window.date)
                continue

            report.total_windows += 1
            base = bars[position].close
            for horizon in CONFLUENCE_HORIZONS:
                ahead = position + horizon
                if ahead >= len(bars):
                    continue
                change = (bars[ahead].close - base) / base * 100
                samples[horizon].append((change > 0, change))

        report.stats = {
            h: calculate_stats("CONFLUENCE", h, entries)
            for h, entries in samples.items()
        }
        report.overall_success_rate = report.stats[_BENCHMARK_HORIZON].success_rate
        logger.info("%s confluence backtest: %d windows tested", symbol, report.total_windows)
        return report

    # ── Internals ────────────────────────────────────────────────────────

    def _insufficient(self, bars: Sequence[Bar]) -> bool:
        return not bars or len(bars) < 2 * self._settings.lookback

    def _parameters(self, generator_kind: str) -> list[Union[float, int]]:
        if generator_kind == "fibonacci":
            return sorted(set(fibonacci.FIBONACCI_TIME_RATIOS))
        return list(dict.fromkeys(self._settings.gann_periods))

    def _project(self, pivot, generator_kind: str) -> list[Projection]:
        if generator_kind == "fibonacci":
            return fibonacci.project(pivot, base_cycle=self._settings.base_cycle)
        return gann.project(pivot, self._settings.gann_periods)

    def _evaluate(
        self,
        bars: Sequence[Bar],
        position: int,
        projection: Projection,
    ) -> HitResult:
        """Compare the target close with closes within the tolerance window.

        The window is clipped at the series ends and excludes the target
        bar.  Any |move| at or above the margin makes the instance a hit;
        the largest |move| is reported.
        """
        settings = self._settings
        base = bars[position].close
        best_move = 0.0
        best_offset = 0
        hit = False

        for offset in range(-settings.tolerance_days, settings.tolerance_days + 1):
            j = position + offset
            if offset == 0 or j < 0 or j >= len(bars):
                continue
            move = (bars[j].close - base) / base * 100
            if abs(move) > abs(best_move):
                best_move = move
                best_offset = offset
            if abs(move) >= settings.margin_pct:
                hit = True

        if best_move > 0:
            direction = "UP"
        elif best_move < 0:
            direction = "DOWN"
        else:
            direction = "NONE"

        origin = projection.origin
        reversal = (
            (origin.kind.is_high and direction == "DOWN")
            or (not origin.kind.is_high and direction == "UP")
        )

        return HitResult(
            pivot_date=origin.date,
            pivot_price=origin.price,
            pivot_kind=origin.kind.value,
            parameter=projection.parameter,
            target_date=projection.target_date,
            actual_move_date=bars[position + best_offset].date,
            move_pct=round(best_move, 4),
            direction=direction,
            hit=hit,
            reversal=reversal,
            days_from_projection=best_offset,
        )


# ── Helpers ──────────────────────────────────────────────────────────────


def _category(generator_kind: str) -> str:
    if generator_kind == "fibonacci":
        return SignalKind.FIBONACCI.value
    return SignalKind.GANN.value


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()
