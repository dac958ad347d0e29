"""Fibonacci price levels between a cycle high and a cycle low."""

from timegeo.analysis.models import PriceLevel

_RETRACEMENTS: tuple[tuple[float, str], ...] = (
    (0.000, "Cycle High (0%)"),
    (0.236, "Fib 0.236 (23.6%)"),
    (0.333, "Harmonic 0.333 (33.3%)"),
    (0.382, "Fib 0.382 (38.2%)"),
    (0.500, "Fib 0.500 (50.0%)"),
    (0.618, "Fib 0.618 (61.8%)"),
    (0.667, "Harmonic 0.667 (66.7%)"),
    (0.786, "Fib 0.786 (78.6%)"),
    (1.000, "Cycle Low (100%)"),
)

_EXTENSIONS: tuple[tuple[float, str], ...] = (
    (1.272, "Fib 1.272 (27.2% ext)"),
    (1.333, "Harmonic 1.333 (33.3% ext)"),
    (1.382, "Fib 1.382 (38.2% ext)"),
    (1.500, "Geometric 1.500 (50.0% ext)"),
    (1.618, "Fib 1.618 (61.8% ext)"),
    (1.667, "Harmonic 1.667 (66.7% ext)"),
    (2.000, "Double 2.000 (100% ext)"),
    (2.333, "Harmonic 2.333 (133% ext)"),
    (2.500, "Geometric 2.500 (150% ext)"),
    (2.618, "Fib 2.618 (161.8% ext)"),
    (2.667, "Harmonic 2.667 (167% ext)"),
    (3.000, "Triple 3.000 (200% ext)"),
    (3.333, "Harmonic 3.333 (233% ext)"),
    (3.500, "Geometric 3.500 (250% ext)"),
    (3.618, "Fib 3.618 (261.8% ext)"),
    (3.667, "Harmonic 3.667 (267% ext)"),
    (4.000, "Quadruple 4.000 (300% ext)"),
    (4.236, "Fib 4.236 (323.6% ext)"),
    (4.333, "Harmonic 4.333 (333% ext)"),
    (4.500, "Geometric 4.500 (350% ext)"),
)


def price_levels(high_price: float, low_price: float) -> list[PriceLevel]:
    """Retracement (support) and extension (resistance) levels.

    Returns levels sorted from highest to lowest price.
    """
    span = high_price - low_price
    levels: list[PriceLevel] = []

    for ratio, label in _RETRACEMENTS:
        levels.append(PriceLevel(
            price=high_price - span * ratio,
            ratio=ratio,
            label=label,
            level_type="SUPPORT",
            distance=f"{ratio * 100:.1f}% retracement",
        ))

    for ratio, label in _EXTENSIONS:
        levels.append(PriceLevel(
            price=high_price + span * (ratio - 1.0),
            ratio=ratio,
            label=label,
            level_type="RESISTANCE",
            distance=f"{(ratio - 1.0) * 100:.1f}% extension",
        ))

    levels.sort(key=lambda lvl: lvl.price, reverse=True)
    return levels
