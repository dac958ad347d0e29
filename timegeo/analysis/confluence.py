"""Confluence (vortex) windows — projections that coincide on one date."""

from datetime import date
from typing import Iterable, Sequence

from timegeo.analysis.models import ConfluenceWindow, Projection, SignalKind

MIN_MEMBERS = 2
INTENSITY_PER_MEMBER = 0.3
MAX_INTENSITY = 0.95


def window_intensity(count: int) -> float:
    """Intensity of a window with *count* members, capped at 0.95."""
    return min(MAX_INTENSITY, INTENSITY_PER_MEMBER * count)


def aggregate(projections: Iterable[Projection]) -> list[ConfluenceWindow]:
    """Group projections by exact target date into confluence windows.

    Dates with a single projection are dropped.  Windows come back sorted
    ascending by date; members keep their input order.
    """
    groups: dict[date, list[Projection]] = {}
    for projection in projections:
        groups.setdefault(projection.target_date, []).append(projection)

    windows: list[ConfluenceWindow] = []
    for day in sorted(groups):
        members = groups[day]
        if len(members) < MIN_MEMBERS:
            continue
        windows.append(ConfluenceWindow(
            date=day,
            projections=tuple(members),
            intensity=window_intensity(len(members)),
            kind=_window_kind(members),
            description=_describe(members),
            signals=tuple(p.signal_label for p in members),
        ))
    return windows


def aggregate_signals(
    gann: Iterable[Projection],
    fibonacci: Iterable[Projection],
) -> list[ConfluenceWindow]:
    """Confluence across Gann dates and Fibonacci projections together."""
    return aggregate([*gann, *fibonacci])


def upcoming(
    windows: Sequence[ConfluenceWindow],
    today: date,
    limit: int = 10,
) -> list[ConfluenceWindow]:
    """Future-only windows (``date >= today``), earliest first, capped."""
    future = sorted((w for w in windows if w.date >= today), key=lambda w: w.date)
    return future[:limit]


# ── Helpers ──────────────────────────────────────────────────────────────


def _counts(members: Sequence[Projection]) -> tuple[int, int]:
    fib = sum(1 for p in members if p.signal_kind is SignalKind.FIBONACCI)
    return fib, len(members) - fib


def _window_kind(members: Sequence[Projection]) -> str:
    fib, gann = _counts(members)
    if fib >= 2 and gann >= 1:
        return "MAJOR_RESONANCE"
    if fib >= 2:
        return "FIBONACCI_VORTEX"
    if gann >= 2:
        return "GANN_VORTEX"
    return "STANDARD_VORTEX"


def _describe(members: Sequence[Projection]) -> str:
    fib, gann = _counts(members)
    parts = []
    if fib:
        parts.append(f"{fib} Fibonacci")
    if gann:
        parts.append(f"{gann} Gann")
    return " • ".join(parts) + " confluence"
