"""Pivot detection from OHLC bars — pure functions.

Two modes:

* ``find_pivots`` scans a daily series for local highs/lows under a
  symmetric lookback window.
* ``find_major_pivots`` picks the handful of cycle-defining extremes of a
  long monthly series.  ``resolve_major_pivots`` lets a per-symbol override
  table take precedence over the extraction.
"""

import json
import logging
import pathlib
from datetime import date
from typing import Optional, Sequence

from timegeo.analysis.models import Pivot, PivotKind
from timegeo.market.models import Bar

logger = logging.getLogger("timegeo")

DEFAULT_LOOKBACK = 10

_STRENGTH_SPAN = 5
_SECONDARY_HIGH_MIN_PERIODS = 48
_SECONDARY_HIGH_RATIO = 0.7


def find_pivots(bars: Sequence[Bar], lookback: int = DEFAULT_LOOKBACK) -> list[Pivot]:
    """Detect local HIGH and LOW pivots.

    Bar *i* is a HIGH pivot when its high is strictly greater than the high
    of every other bar in ``[i - lookback, i + lookback]``; LOW likewise on
    lows.  A tie with any other bar disqualifies.  A bar qualifying as both
    is labelled HIGH, so there is at most one pivot per index.

    Returns an empty list when ``len(bars) < 2 * lookback``.
    """
    n = len(bars)
    if lookback <= 0 or n < 2 * lookback:
        return []

    pivots: list[Pivot] = []
    for i in range(lookback, n - lookback):
        high = bars[i].high
        low = bars[i].low
        is_high = True
        is_low = True
        for j in range(i - lookback, i + lookback + 1):
            if j == i:
                continue
            if bars[j].high >= high:
                is_high = False
            if bars[j].low <= low:
                is_low = False
            if not is_high and not is_low:
                break

        if is_high:
            pivots.append(Pivot(
                bars[i].date, high, PivotKind.HIGH,
                _pivot_strength(bars, i, is_high=True),
            ))
        elif is_low:
            pivots.append(Pivot(
                bars[i].date, low, PivotKind.LOW,
                _pivot_strength(bars, i, is_high=False),
            ))

    logger.debug("Found %d pivots in %d bars (lookback %d)", len(pivots), n, lookback)
    return pivots


def _pivot_strength(bars: Sequence[Bar], index: int, is_high: bool) -> float:
    """Heuristic confidence of the pivot at *index*.

    Compares the pivot value with the mid-range of the five bars before
    and after it.  Clamped to [0, 1]; 0.5 near the series edges.
    """
    if index < _STRENGTH_SPAN or index >= len(bars) - _STRENGTH_SPAN:
        return 0.5

    def value(k: int) -> float:
        return bars[k].high if is_high else bars[k].low

    before = [value(index - k) for k in range(1, _STRENGTH_SPAN + 1)]
    after = [value(index + k) for k in range(1, _STRENGTH_SPAN + 1)]
    mid_before = (min(before) + max(before)) / 2
    mid_after = (min(after) + max(after)) / 2
    surroundings = (mid_before + mid_after) / 2
    if surroundings <= 0:
        return 0.5

    current = value(index)
    if is_high:
        strength = (current - surroundings) / surroundings * 5
    else:
        strength = (surroundings - current) / surroundings * 5
    return max(0.0, min(1.0, strength))


# ── Major pivots ─────────────────────────────────────────────────────────


def find_major_pivots(bars: Sequence[Bar], min_periods: int = 24) -> list[Pivot]:
    """Extract cycle-defining pivots from a long (monthly) series.

    Emits the lowest low (MAJOR_LOW) and the highest high (MAJOR_HIGH),
    both with confidence 1.0.  With at least 48 periods, the highest high
    among the remaining bars is added as a secondary MAJOR_HIGH
    (confidence 0.8) when it exceeds 70 % of the top high.
    """
    if len(bars) < min_periods or not bars:
        return []

    lowest = min(bars, key=lambda b: b.low)
    highest = max(bars, key=lambda b: b.high)

    pivots = [
        Pivot(lowest.date, lowest.low, PivotKind.MAJOR_LOW, 1.0),
        Pivot(highest.date, highest.high, PivotKind.MAJOR_HIGH, 1.0),
    ]

    if len(bars) >= _SECONDARY_HIGH_MIN_PERIODS:
        others = [b for b in bars if b is not highest]
        second = max(others, key=lambda b: b.high)
        if second.high > highest.high * _SECONDARY_HIGH_RATIO:
            pivots.append(
                Pivot(second.date, second.high, PivotKind.MAJOR_HIGH, 0.8)
            )

    return pivots


def resolve_major_pivots(
    symbol: str,
    monthly_bars: Sequence[Bar],
    overrides: Optional[dict[str, list[Pivot]]] = None,
) -> list[Pivot]:
    """Return the override pivots for *symbol*, else extract them from bars."""
    if overrides and symbol in overrides:
        pivots = list(overrides[symbol])
        logger.info("%s: using %d major pivots from override table", symbol, len(pivots))
        return pivots

    pivots = find_major_pivots(monthly_bars)
    logger.info("%s: found %d major pivots in %d monthly bars",
                symbol, len(pivots), len(monthly_bars))
    return pivots


def load_pivot_overrides(path: str | pathlib.Path) -> dict[str, list[Pivot]]:
    """Load the per-symbol major pivot table from a JSON file.

    Expected shape::

        {"BTC": [{"date": "2023-01-01", "price": 15455.0,
                  "kind": "MAJOR_LOW", "confidence": 0.9}]}

    A missing file yields an empty table.  Malformed entries raise
    ``ValueError``.
    """
    path = pathlib.Path(path)
    if not path.exists():
        logger.info("No major pivot overrides at %s", path)
        return {}

    data = json.loads(path.read_text(encoding="utf-8"))
    overrides: dict[str, list[Pivot]] = {}
    for symbol, entries in data.items():
        try:
            overrides[symbol] = [
                Pivot(
                    date=date.fromisoformat(e["date"]),
                    price=float(e["price"]),
                    kind=PivotKind(e["kind"]),
                    confidence=float(e.get("confidence", 1.0)),
                )
                for e in entries
            ]
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed pivot override for {symbol}: {exc}") from exc
    return overrides
