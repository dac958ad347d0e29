"""Market data models — typed OHLC bars as supplied by the data client."""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Sequence

from timegeo.errors import ComputationError


@dataclass(frozen=True)
class Bar:
    """A single OHLC bar for one trading period (day or month)."""

    date: date
    open: float
    high: float
    low: float
    close: float
    timestamp: int  # open time, epoch milliseconds
    volume: float = 0.0

    @classmethod
    def from_timestamp(
        cls,
        timestamp: int,
        open: float,
        high: float,
        low: float,
        close: float,
        volume: float = 0.0,
    ) -> "Bar":
        """Build a bar whose ``date`` is the UTC calendar date of *timestamp*."""
        day = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).date()
        return cls(day, open, high, low, close, timestamp, volume)


def validate_series(bars: Sequence[Bar]) -> None:
    """Check that *bars* is a well-formed ascending series.

    Raises ``ComputationError`` on ``high < low``, a non-positive close,
    out-of-order timestamps or a repeated calendar date.
    """
    previous: Bar | None = None
    for bar in bars:
        if bar.high < bar.low:
            raise ComputationError(f"Malformed bar on {bar.date}: high < low")
        if bar.close <= 0:
            raise ComputationError(f"Malformed bar on {bar.date}: close <= 0")
        if previous is not None:
            if bar.timestamp <= previous.timestamp:
                raise ComputationError(
                    f"Bars out of order at {bar.date} (after {previous.date})"
                )
            if bar.date == previous.date:
                raise ComputationError(f"Duplicate bar date {bar.date}")
        previous = bar


def index_by_date(bars: Sequence[Bar]) -> dict[date, int]:
    """Map each bar's calendar date to its position in *bars*."""
    return {bar.date: i for i, bar in enumerate(bars)}
