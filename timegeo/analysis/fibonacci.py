"""Fibonacci time projections — pure functions.

A ratio *r* against a base cycle of *B* days projects a pivot forward by
``round(r × B)`` calendar days.
"""

import math
from datetime import timedelta
from typing import Iterable

from timegeo.analysis.models import FibonacciMeta, Pivot, Projection, SignalKind

DEFAULT_BASE_CYCLE = 100

# Classic Fibonacci ratios plus the harmonic (thirds) and geometric (halves)
# extensions.
FIBONACCI_TIME_RATIOS: tuple[float, ...] = (
    0.236, 0.333, 0.382, 0.5, 0.618, 0.667, 0.786, 1.0,
    1.272, 1.333, 1.5, 1.618, 1.667, 2.0, 2.333, 2.5,
    2.618, 2.667, 3.0,
)

MAJOR_FIB_RATIOS: frozenset[float] = frozenset(
    {0.382, 0.5, 0.618, 0.786, 1.0, 1.272, 1.618, 2.618}
)

_HARMONIC = (0.333, 0.667, 1.333, 1.667, 2.333, 2.667, 3.333, 3.667)
_GEOMETRIC = (1.5, 2.5, 3.5)

_INTENSITY = {
    0.618: 0.9, 1.618: 0.9,
    0.5: 0.8, 2.0: 0.8,
    0.333: 0.75, 0.667: 0.75,
    0.382: 0.7, 0.786: 0.7, 1.5: 0.7, 2.5: 0.7, 3.0: 0.7,
    1.333: 0.65, 1.667: 0.65,
    1.272: 0.6, 2.618: 0.6, 2.333: 0.6, 2.667: 0.6,
}


def _is_ratio(value: float, target: float) -> bool:
    return abs(value - target) < 0.001


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def day_count(ratio: float, base_cycle: int = DEFAULT_BASE_CYCLE) -> int:
    """Number of days a ratio projects over *base_cycle*."""
    return round_half_up(ratio * base_cycle)


def ratio_family(ratio: float) -> str:
    """Display family of a ratio: Fib, Harmonic, Geometric or an extension."""
    if any(_is_ratio(ratio, r) for r in _HARMONIC):
        return "Harmonic"
    if any(_is_ratio(ratio, r) for r in _GEOMETRIC):
        return "Geometric"
    if _is_ratio(ratio, 2.0):
        return "200% extension"
    if _is_ratio(ratio, 3.0):
        return "300% extension"
    return "Fib"


def is_major_ratio(ratio: float) -> bool:
    return any(_is_ratio(ratio, r) for r in MAJOR_FIB_RATIOS)


def fib_intensity(ratio: float) -> float:
    """Display weight of a ratio; 0.5 for anything outside the table."""
    for key, weight in _INTENSITY.items():
        if _is_ratio(ratio, key):
            return weight
    return 0.5


def project(
    pivot: Pivot,
    ratios: Iterable[float] = FIBONACCI_TIME_RATIOS,
    base_cycle: int = DEFAULT_BASE_CYCLE,
) -> list[Projection]:
    """Expand *pivot* into one projection per ratio.

    Ratios are taken in ascending order with duplicates removed, so the
    output is deterministic for any iterable (including sets) and ordered
    by target date.
    """
    origin = pivot.ref()
    pivot_label = _format_date(pivot)
    projections: list[Projection] = []
    for ratio in sorted(set(ratios)):
        days = day_count(ratio, base_cycle)
        description = (
            f"{ratio_family(ratio)}: {days} days from {pivot_label} "
            f"{pivot.kind.value.replace('_', ' ').lower()}"
        )
        projections.append(Projection(
            target_date=pivot.date + timedelta(days=days),
            origin=origin,
            signal_kind=SignalKind.FIBONACCI,
            metadata=FibonacciMeta(
                ratio=ratio,
                day_count=days,
                description=description,
                intensity=fib_intensity(ratio),
            ),
            major=is_major_ratio(ratio),
        ))
    return projections


def _format_date(pivot: Pivot) -> str:
    d = pivot.date
    return f"{d.strftime('%b')} {d.day}, {d.year}"
