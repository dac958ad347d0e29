"""Market event annotations for past projection dates."""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional, Sequence

from timegeo.analysis.models import Projection
from timegeo.market.models import Bar, index_by_date


@dataclass(frozen=True)
class MarketEvent:
    """What the market did around one projected date.

    Change fields are ``None`` when the bars needed to compute them do not
    exist (first bar of the series, or fewer than two bars after it).
    """

    date: date
    signal_type: str
    details: str
    price: float
    daily_change_pct: Optional[float]
    direction: Optional[str]
    three_day_change_pct: Optional[float]
    week_high: float
    week_low: float
    week_range_pct: float


def annotate(
    bars: Sequence[Bar],
    target_date: date,
    signal_type: str,
    details: str,
) -> Optional[MarketEvent]:
    """Annotate *target_date* with the price action around it.

    Returns ``None`` when no bar carries that calendar date.
    """
    position = index_by_date(bars).get(target_date)
    if position is None:
        return None
    return _annotate_at(bars, position, signal_type, details)


def actual_events(
    bars: Sequence[Bar],
    projections: Sequence[Projection],
    today: date,
    lookback_days: int = 60,
) -> list[MarketEvent]:
    """Annotate every projection dated in ``[today - lookback_days, today]``.

    Projections without a bar on their date are left out.  Events come back
    newest first.
    """
    start = today - timedelta(days=lookback_days)
    index = index_by_date(bars)

    events: list[MarketEvent] = []
    for projection in projections:
        if not start <= projection.target_date <= today:
            continue
        position = index.get(projection.target_date)
        if position is None:
            continue
        events.append(_annotate_at(
            bars, position, projection.signal_label, _details(projection),
        ))

    events.sort(key=lambda e: e.date, reverse=True)
    return events


# ── Helpers ──────────────────────────────────────────────────────────────


def _annotate_at(
    bars: Sequence[Bar],
    i: int,
    signal_type: str,
    details: str,
) -> MarketEvent:
    n = len(bars)
    close = bars[i].close

    daily_change = None
    direction = None
    if i > 0:
        prev = bars[i - 1].close
        daily_change = (close - prev) / prev * 100
        if daily_change > 0:
            direction = "UP"
        elif daily_change < 0:
            direction = "DOWN"
        else:
            direction = "FLAT"

    three_day = None
    if i + 2 < n:
        three_day = (bars[i + 2].close - close) / close * 100

    week = bars[max(0, i - 3):min(n - 1, i + 3) + 1]
    week_high = max(b.high for b in week)
    week_low = min(b.low for b in week)

    return MarketEvent(
        date=bars[i].date,
        signal_type=signal_type,
        details=details,
        price=close,
        daily_change_pct=daily_change,
        direction=direction,
        three_day_change_pct=three_day,
        week_high=week_high,
        week_low=week_low,
        week_range_pct=(week_high - week_low) / close * 100,
    )


def _details(projection: Projection) -> str:
    origin = projection.origin
    return (
        f"{projection.signal_label} from {origin.kind.value.lower()} "
        f"{origin.date.isoformat()} @ {origin.price:g}"
    )
