"""Gann anniversary projections — pure functions.

Period tiers are plain tuples; callers pass the tier they want explicitly.
"""

import logging
from datetime import date, timedelta
from typing import Iterable, Sequence

from timegeo.analysis.models import GannMeta, Pivot, Projection, SignalKind

logger = logging.getLogger("timegeo")

BASIC: tuple[int, ...] = (90, 180, 360)

STANDARD: tuple[int, ...] = (
    30, 45, 60, 90, 120, 135, 144, 180, 225, 270, 315, 360, 540, 720,
)

ADVANCED: tuple[int, ...] = (
    30, 45, 60, 90, 120, 135, 144, 180, 225, 270, 315, 360, 540, 720, 1080, 1440,
)

COMPREHENSIVE: tuple[int, ...] = (
    # Divisions of the 360° circle
    30, 45, 60, 72, 90, 120, 135, 144, 150, 180, 216, 225,
    240, 270, 288, 300, 315, 330, 360,
    # Square of seven
    49, 98, 147, 196,
    # Multiples of the year
    540, 720, 900, 1080, 1260, 1440,
)

GANN_TIERS: dict[str, tuple[int, ...]] = {
    "BASIC": BASIC,
    "STANDARD": STANDARD,
    "ADVANCED": ADVANCED,
    "COMPREHENSIVE": COMPREHENSIVE,
}

MAJOR_PIVOT_MAX_AGE_YEARS = 5
MAJOR_TARGET_HORIZON_YEARS = 3


def periods_for(level: str) -> tuple[int, ...]:
    """Resolve a tier name (case-insensitive) to its period tuple.

    Raises ``ValueError`` for an unknown tier.
    """
    try:
        return GANN_TIERS[level.upper()]
    except KeyError:
        raise ValueError(
            f"Unknown Gann level {level!r}; expected one of {', '.join(GANN_TIERS)}"
        ) from None


def resolve_level(level: str) -> str:
    """Normalise a tier name, falling back to STANDARD for unknown names."""
    name = level.upper()
    if name not in GANN_TIERS:
        logger.warning("Unknown Gann level %r, using STANDARD", level)
        return "STANDARD"
    return name


def anniversary_label(period: int) -> str:
    return f"{period}D_ANNIVERSARY"


def project(pivot: Pivot, periods: Iterable[int]) -> list[Projection]:
    """Expand *pivot* into one anniversary per period, sorted by date."""
    origin = pivot.ref()
    projections = [
        Projection(
            target_date=pivot.date + timedelta(days=period),
            origin=origin,
            signal_kind=SignalKind.GANN,
            metadata=GannMeta(period_days=period, anniversary_label=anniversary_label(period)),
        )
        for period in periods
    ]
    projections.sort(key=lambda p: p.target_date)
    return projections


def project_major(
    pivots: Sequence[Pivot],
    periods: Iterable[int],
    today: date,
) -> list[Projection]:
    """Anniversaries of major pivots, bounded in both directions.

    Only pivots dated within the last five years are expanded, and only
    targets falling no later than three years from *today* are kept.
    """
    oldest = shift_years(today, -MAJOR_PIVOT_MAX_AGE_YEARS)
    horizon = shift_years(today, MAJOR_TARGET_HORIZON_YEARS)
    periods = tuple(periods)

    projections: list[Projection] = []
    for pivot in pivots:
        if pivot.date <= oldest:
            continue
        projections.extend(
            p for p in project(pivot, periods) if p.target_date <= horizon
        )
    projections.sort(key=lambda p: p.target_date)
    return projections


def shift_years(d: date, years: int) -> date:
    """Move *d* by whole years; Feb 29 falls back to Feb 28."""
    try:
        return d.replace(year=d.year + years)
    except ValueError:
        return d.replace(year=d.year + years, day=28)
