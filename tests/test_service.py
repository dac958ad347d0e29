"""Tests for timegeo.service — orchestration over a stubbed data source."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from timegeo.analysis.models import Pivot, PivotKind
from timegeo.config import Config
from timegeo.errors import InsufficientDataError, SymbolNotFoundError
from timegeo.market.models import Bar
from timegeo.service import TimeGeometryService, compression_score, confidence_score

_START = date(2024, 1, 1)

# Cycle low 80 days before the cycle high: the low's 180-day anniversary
# meets the high's 100-day Fibonacci projection on 2025-04-11.
_OVERRIDES = {
    "TST": [
        Pivot(date(2024, 10, 13), 100.0, PivotKind.MAJOR_LOW, 1.0),
        Pivot(date(2025, 1, 1), 300.0, PivotKind.MAJOR_HIGH, 1.0),
    ],
    "EVT": [
        Pivot(date(2024, 3, 1), 250.0, PivotKind.MAJOR_HIGH, 1.0),
    ],
}


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_config() -> Config:
    return Config(
        binance_base_url="https://api.binance.test",
        quote_asset="USDT",
        daily_history_limit=730,
        monthly_history_limit=84,
        pivot_lookback=10,
        fib_base_cycle_days=100,
        gann_level="STANDARD",
        backtest_margin_pct=1.5,
        backtest_tolerance_days=2,
        major_pivots_path="major_pivots.json",
        log_level="WARNING",
        http_port=8080,
    )


def _make_bar(day: date, h: float, l: float, c: float) -> Bar:
    ts = int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp() * 1000)
    return Bar(date=day, open=c, high=h, low=l, close=c, timestamp=ts)


def _daily_fixture(n=200) -> list[Bar]:
    """Flat series with HIGH pivots on index 20 and 35 (15 days apart)."""
    peaks = {20: 250.0, 35: 240.0}
    return [
        _make_bar(_START + timedelta(days=i), peaks.get(i, 200.0), 1.0, 100.0)
        for i in range(n)
    ]


def _make_source(daily=None, monthly=None) -> AsyncMock:
    source = AsyncMock()
    source.get_historical_bars.return_value = daily if daily is not None else _daily_fixture()
    source.get_monthly_bars.return_value = monthly if monthly is not None else []
    return source


def _make_service(source=None) -> TimeGeometryService:
    return TimeGeometryService(source or _make_source(), _make_config(), _OVERRIDES)


# ── Analysis ─────────────────────────────────────────────────────────────


class TestAnalyze:

    @pytest.mark.asyncio
    async def test_major_cycle_analysis(self):
        today = date(2025, 3, 1)
        analysis = await _make_service().analyze("TST", today=today)
        assert len(analysis.major_pivots) == 2
        assert analysis.cycle_high.date == date(2025, 1, 1)
        assert analysis.cycle_low.date == date(2024, 10, 13)
        assert len(analysis.time_projections) == 15
        assert all(p.target_date >= today for p in analysis.time_projections)
        assert len(analysis.price_levels) == 29
        assert analysis.gann_dates
        assert analysis.confidence_score == 0.7
        assert analysis.compression_score == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_vortex_window(self):
        analysis = await _make_service().analyze("TST", today=date(2025, 3, 1))
        assert len(analysis.vortex_windows) == 1
        window = analysis.vortex_windows[0]
        assert window.date == date(2025, 4, 11)
        assert set(window.signals) == {"FIB_MAJOR_1.000", "GANN_180D"}
        assert window.intensity == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_no_daily_data(self):
        source = _make_source(daily=[])
        analysis = await _make_service(source).analyze("TST")
        assert analysis.major_pivots == []
        assert analysis.vortex_windows == []
        source.get_monthly_bars.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_source_errors_propagate(self):
        source = _make_source()
        source.get_historical_bars.side_effect = SymbolNotFoundError("XXX", "Unknown symbol: XXX")
        with pytest.raises(SymbolNotFoundError):
            await _make_service(source).analyze("XXX")


# ── Gann dates ───────────────────────────────────────────────────────────


class TestGannDates:

    @pytest.mark.asyncio
    async def test_future_only_sorted_and_limited(self):
        dates = await _make_service().gann_dates(
            "TST", level="BASIC", limit=2, today=date(2025, 3, 1),
        )
        assert [d.target_date for d in dates] == [date(2025, 4, 1), date(2025, 4, 11)]

    @pytest.mark.asyncio
    async def test_no_major_pivots(self):
        assert await _make_service().gann_dates("ETH", today=date(2025, 3, 1)) == []

    @pytest.mark.asyncio
    async def test_unknown_level_uses_standard(self):
        today = date(2025, 3, 1)
        unknown = await _make_service().gann_dates("TST", level="EPIC", limit=50, today=today)
        standard = await _make_service().gann_dates("TST", level="STANDARD", limit=50, today=today)
        assert unknown
        assert unknown == standard

    @pytest.mark.asyncio
    async def test_confluence_from_daily_pivots(self):
        windows = await _make_service().gann_confluence("TST", today=_START)
        assert [w.date for w in windows] == [
            date(2024, 3, 6), date(2024, 3, 21), date(2024, 6, 4),
        ]
        assert all(w.kind == "GANN_VORTEX" for w in windows)

    @pytest.mark.asyncio
    async def test_confluence_limit(self):
        windows = await _make_service().gann_confluence("TST", limit=1, today=_START)
        assert len(windows) == 1


# ── Backtests and events ─────────────────────────────────────────────────


class TestBacktests:

    @pytest.mark.asyncio
    async def test_backtest(self):
        report = await _make_service().backtest("TST", "gann", today=date(2030, 1, 1))
        assert report.generator == "gann"
        assert report.symbol == "TST"
        assert len(report.stats) == 14

    @pytest.mark.asyncio
    async def test_short_history_is_insufficient(self):
        source = _make_source(daily=_daily_fixture(n=12))
        report = await _make_service(source).backtest("TST", "fibonacci")
        assert report.insufficient_data is True

    @pytest.mark.asyncio
    async def test_comprehensive(self):
        results = await _make_service().comprehensive("TST", today=date(2030, 1, 1))
        assert set(results) == {"fibonacci", "gann", "confluence"}
        # Three Gann/Gann windows plus a 1.5 Fibonacci / 135-day Gann one
        assert results["confluence"].total_windows == 4


class TestActualEvents:

    @pytest.mark.asyncio
    async def test_recent_projection_dates(self):
        today = date(2024, 7, 18)
        found = await _make_service().actual_events("EVT", lookback_days=60, today=today)
        assert len(found) == 7
        assert found[0].date == date(2024, 7, 14)
        assert found[-1].date == date(2024, 5, 19)
        dates = [e.date for e in found]
        assert dates == sorted(dates, reverse=True)

    @pytest.mark.asyncio
    async def test_insufficient_history(self):
        source = _make_source(daily=_daily_fixture(n=30))
        with pytest.raises(InsufficientDataError):
            await _make_service(source).actual_events("EVT", lookback_days=60)


# ── Scores ───────────────────────────────────────────────────────────────


class TestScores:

    def test_compression_short_series(self):
        assert compression_score(_daily_fixture(n=10)) == 0.5

    def test_compression_tight_ranges(self):
        bars = [_make_bar(_START + timedelta(days=i), 101.0, 99.0, 100.0) for i in range(30)]
        assert compression_score(bars) == 1.0

    def test_confidence(self):
        pivot = Pivot(_START, 1.0, PivotKind.MAJOR_LOW, 1.0)
        assert confidence_score([pivot] * 4) == 0.9
        assert confidence_score([pivot] * 2) == 0.7
        assert confidence_score([pivot]) == 0.5
