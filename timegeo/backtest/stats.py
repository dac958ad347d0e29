"""Backtest statistics — pure functions for per-signal performance."""

import math
from dataclasses import dataclass
from typing import Sequence, Union


@dataclass(frozen=True)
class SignalPerformance:
    """Hit-rate and move statistics for one signal parameter.

    ``parameter`` is a Fibonacci ratio, a Gann period in days, or a forward
    horizon in bars for confluence windows.
    """

    signal_category: str
    parameter: Union[float, int]
    sample_size: int
    success_count: int
    success_rate: float
    average_move_pct: float = 0.0
    max_move_pct: float = 0.0
    min_move_pct: float = 0.0
    std_dev_pct: float = 0.0


def calculate_stats(
    signal_category: str,
    parameter: Union[float, int],
    samples: Sequence[tuple[bool, float]],
) -> SignalPerformance:
    """Summarise evaluated instances of one signal parameter.

    Each sample is ``(success, move_pct)``.  An empty sample yields a
    zeroed record with ``success_rate == 0.0``.
    """
    if not samples:
        return SignalPerformance(
            signal_category=signal_category,
            parameter=parameter,
            sample_size=0,
            success_count=0,
            success_rate=0.0,
        )

    moves = [move for _, move in samples]
    total = len(samples)
    successes = sum(1 for ok, _ in samples if ok)

    return SignalPerformance(
        signal_category=signal_category,
        parameter=parameter,
        sample_size=total,
        success_count=successes,
        success_rate=success_rate(successes, total),
        average_move_pct=round(sum(moves) / total, 4),
        max_move_pct=round(max(moves), 4),
        min_move_pct=round(min(moves), 4),
        std_dev_pct=round(_std_dev(moves), 4),
    )


def success_rate(success_count: int, sample_size: int) -> float:
    """Fraction of successful instances; exactly 0.0 on an empty sample."""
    if sample_size == 0:
        return 0.0
    return success_count / sample_size


# ── Helpers ──────────────────────────────────────────────────────────────


def _std_dev(values: Sequence[float]) -> float:
    """Population standard deviation (n).  0.0 for fewer than 2 values."""
    n = len(values)
    if n < 2:
        return 0.0
    mean = sum(values) / n
    variance = sum((v - mean) ** 2 for v in values) / n
    return math.sqrt(variance)
