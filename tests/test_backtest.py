"""Tests for the backtest engine and its statistics.

The fixtures are flat daily series (close 100, high 200, low 1) with hand
placed peaks, so the only pivots are the ones a test puts there and every
projected date is known in advance.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from timegeo.backtest.engine import (
    CONFLUENCE_HORIZONS,
    BacktestEngine,
    BacktestSettings,
)
from timegeo.backtest.stats import calculate_stats, success_rate
from timegeo.errors import ComputationError
from timegeo.market.models import Bar

_START = date(2024, 1, 1)
_FAR_FUTURE = date(2030, 1, 1)


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_bar(day: date, h: float, l: float, c: float) -> Bar:
    ts = int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp() * 1000)
    return Bar(date=day, open=c, high=h, low=l, close=c, timestamp=ts)


def _series(n=200, peaks=None, closes=None) -> list[Bar]:
    """Flat series with optional peak highs and close overrides by index."""
    peaks = peaks if peaks is not None else {20: 250.0}
    closes = closes or {}
    return [
        _make_bar(_START + timedelta(days=i), peaks.get(i, 200.0), 1.0, closes.get(i, 100.0))
        for i in range(n)
    ]


def _moves_fixture() -> list[Bar]:
    """One HIGH pivot on 2024-01-21 and three nearby close moves.

    * +3 % one bar after the 30-day anniversary (index 51)
    * -2 % two bars before the 45-day anniversary (index 63)
    * +0.5 % one bar after the 60-day anniversary (index 81)
    """
    return _series(closes={51: 103.0, 63: 98.0, 81: 100.5})


def _hits_for(report, parameter):
    return [h for h in report.hits if h.parameter == parameter]


# ── Gann backtest ────────────────────────────────────────────────────────


class TestGannBacktest:

    def test_every_period_reported(self):
        report = BacktestEngine().run(_moves_fixture(), "gann", symbol="TST", today=_FAR_FUTURE)
        assert list(report.stats) == list(BacktestSettings().gann_periods)
        assert report.stats[720].sample_size == 0
        assert report.stats[720].success_rate == 0.0
        assert report.insufficient_data is False

    def test_hit_after_pivot(self):
        report = BacktestEngine().run(_moves_fixture(), "gann", today=_FAR_FUTURE)
        perf = report.stats[30]
        assert perf.sample_size == 1
        assert perf.success_count == 1
        assert perf.success_rate == 1.0
        hit = _hits_for(report, 30)[0]
        assert hit.target_date == date(2024, 2, 20)
        assert hit.actual_move_date == date(2024, 2, 21)
        assert hit.move_pct == pytest.approx(3.0)
        assert hit.direction == "UP"
        assert hit.days_from_projection == 1
        assert hit.reversal is False
        assert hit.pivot_kind == "HIGH"
        assert hit.pivot_date == date(2024, 1, 21)

    def test_reversal_before_target(self):
        report = BacktestEngine().run(_moves_fixture(), "gann", today=_FAR_FUTURE)
        hit = _hits_for(report, 45)[0]
        assert hit.hit is True
        assert hit.direction == "DOWN"
        assert hit.move_pct == pytest.approx(-2.0)
        assert hit.days_from_projection == -2
        assert hit.reversal is True

    def test_move_below_margin_is_miss(self):
        report = BacktestEngine().run(_moves_fixture(), "gann", today=_FAR_FUTURE)
        assert report.stats[60].sample_size == 1
        assert report.stats[60].success_count == 0
        assert _hits_for(report, 60)[0].move_pct == pytest.approx(0.5)

    def test_flat_target_has_no_direction(self):
        report = BacktestEngine().run(_moves_fixture(), "gann", today=_FAR_FUTURE)
        hit = _hits_for(report, 90)[0]
        assert hit.hit is False
        assert hit.direction == "NONE"
        assert hit.move_pct == 0.0

    def test_targets_beyond_series_skipped(self):
        report = BacktestEngine().run(_moves_fixture(), "gann", today=_FAR_FUTURE)
        assert report.stats[180].sample_size == 0
        assert len(report.hits) == 7

    def test_today_cuts_off_targets(self):
        report = BacktestEngine().run(_moves_fixture(), "gann", today=date(2024, 3, 15))
        assert report.stats[30].sample_size == 1
        assert report.stats[45].sample_size == 1
        assert report.stats[60].sample_size == 0
        assert len(report.hits) == 2

    def test_missing_bar_excluded_from_sample(self):
        bars = [b for b in _moves_fixture() if b.date != date(2024, 4, 20)]
        report = BacktestEngine().run(bars, "gann", today=_FAR_FUTURE)
        assert report.stats[90].sample_size == 0
        assert report.stats[120].sample_size == 1

    def test_margin_is_configurable(self):
        engine = BacktestEngine(BacktestSettings(margin_pct=0.4))
        report = engine.run(_moves_fixture(), "gann", today=_FAR_FUTURE)
        assert report.stats[60].success_count == 1

    def test_tolerance_is_configurable(self):
        engine = BacktestEngine(BacktestSettings(tolerance_days=1))
        report = engine.run(_moves_fixture(), "gann", today=_FAR_FUTURE)
        assert report.stats[45].success_count == 0
        assert report.stats[30].success_count == 1

    def test_success_rate_bounds(self):
        report = BacktestEngine().run(_moves_fixture(), "gann", today=_FAR_FUTURE)
        for perf in report.stats.values():
            assert 0.0 <= perf.success_rate <= 1.0
            if perf.sample_size == 0:
                assert perf.success_rate == 0.0


# ── Fibonacci backtest ───────────────────────────────────────────────────


class TestFibonacciBacktest:

    def test_every_ratio_reported(self):
        report = BacktestEngine().run(_moves_fixture(), "fibonacci", today=_FAR_FUTURE)
        assert len(report.stats) == 19
        assert report.stats[2.0].sample_size == 0
        assert len(report.hits) == 13

    def test_harmonic_hit(self):
        report = BacktestEngine().run(_moves_fixture(), "fibonacci", today=_FAR_FUTURE)
        perf = report.stats[0.333]
        assert perf.signal_category == "FIBONACCI"
        assert perf.success_count == 1
        hit = _hits_for(report, 0.333)[0]
        assert hit.direction == "UP"
        assert hit.days_from_projection == -2

    def test_golden_ratio_miss(self):
        report = BacktestEngine().run(_moves_fixture(), "fibonacci", today=_FAR_FUTURE)
        assert report.stats[0.618].sample_size == 1
        assert report.stats[0.618].success_count == 0


# ── Edge cases ───────────────────────────────────────────────────────────


class TestEngineEdgeCases:

    def test_short_series_is_insufficient(self):
        report = BacktestEngine().run(_series(n=15, peaks={}), "fibonacci")
        assert report.insufficient_data is True
        assert report.stats == {}
        assert report.hits == []

    def test_empty_series_is_insufficient(self):
        report = BacktestEngine().run([], "gann", symbol="TST")
        assert report.insufficient_data is True
        assert report.symbol == "TST"

    def test_unknown_generator_raises(self):
        with pytest.raises(ValueError, match="lunar"):
            BacktestEngine().run([], "lunar")

    def test_unordered_series_raises(self):
        bars = list(reversed(_moves_fixture()))
        with pytest.raises(ComputationError):
            BacktestEngine().run(bars, "gann")


# ── Confluence backtest ──────────────────────────────────────────────────


class TestConfluenceBacktest:

    def _fixture(self):
        # Pivots at index 20 and 40: windows land on index 70 and 140
        rising = {i: 100.0 + 0.1 * i for i in range(200)}
        return _series(peaks={20: 250.0, 40: 240.0}, closes=rising)

    def test_windows_scored_by_forward_returns(self):
        report = BacktestEngine().run_confluence(self._fixture(), symbol="TST", today=_FAR_FUTURE)
        assert report.total_windows == 2
        assert list(report.stats) == list(CONFLUENCE_HORIZONS)
        for horizon in CONFLUENCE_HORIZONS:
            assert report.stats[horizon].sample_size == 2
            assert report.stats[horizon].success_rate == 1.0
        assert report.overall_success_rate == 1.0

    def test_future_windows_ignored(self):
        report = BacktestEngine().run_confluence(self._fixture(), today=date(2024, 3, 31))
        assert report.total_windows == 1

    def test_insufficient(self):
        report = BacktestEngine().run_confluence([])
        assert report.insufficient_data is True
        assert report.total_windows == 0
        assert all(s.sample_size == 0 for s in report.stats.values())


# ── Stats ────────────────────────────────────────────────────────────────


class TestCalculateStats:

    def test_empty_sample(self):
        perf = calculate_stats("GANN", 90, [])
        assert perf.sample_size == 0
        assert perf.success_rate == 0.0
        assert perf.std_dev_pct == 0.0

    def test_move_statistics(self):
        perf = calculate_stats("GANN", 90, [(True, 3.0), (False, -1.0)])
        assert perf.sample_size == 2
        assert perf.success_count == 1
        assert perf.success_rate == 0.5
        assert perf.average_move_pct == pytest.approx(1.0)
        assert perf.max_move_pct == pytest.approx(3.0)
        assert perf.min_move_pct == pytest.approx(-1.0)
        assert perf.std_dev_pct == pytest.approx(2.0)

    def test_success_rate_zero_guard(self):
        assert success_rate(0, 0) == 0.0
        assert success_rate(3, 4) == 0.75
