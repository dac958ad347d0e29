"""Analysis data models — pivots, projections and confluence windows."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Union


class PivotKind(str, Enum):
    HIGH = "HIGH"
    LOW = "LOW"
    MAJOR_HIGH = "MAJOR_HIGH"
    MAJOR_LOW = "MAJOR_LOW"

    @property
    def is_high(self) -> bool:
        return self in (PivotKind.HIGH, PivotKind.MAJOR_HIGH)


class SignalKind(str, Enum):
    FIBONACCI = "FIBONACCI"
    GANN = "GANN"


@dataclass(frozen=True)
class Pivot:
    """A local (or major) price extremum.

    ``confidence`` is a heuristic weight in [0, 1], not a probability.
    """

    date: date
    price: float
    kind: PivotKind
    confidence: float

    @property
    def pivot_id(self) -> str:
        return f"{self.kind.value}@{self.date.isoformat()}"

    def ref(self) -> "PivotRef":
        return PivotRef(self.pivot_id, self.date, self.price, self.kind)


@dataclass(frozen=True)
class PivotRef:
    """Back-pointer from a projection to the pivot it came from.

    A copy of the identifying fields; the pivot itself stays owned by the
    detector's output list.
    """

    pivot_id: str
    date: date
    price: float
    kind: PivotKind


@dataclass(frozen=True)
class FibonacciMeta:
    ratio: float
    day_count: int
    description: str
    intensity: float = 0.5  # display weight of the ratio


@dataclass(frozen=True)
class GannMeta:
    period_days: int
    anniversary_label: str  # e.g. "90D_ANNIVERSARY"


@dataclass(frozen=True)
class Projection:
    """A candidate future date derived from one pivot."""

    target_date: date
    origin: PivotRef
    signal_kind: SignalKind
    metadata: Union[FibonacciMeta, GannMeta]
    major: bool = False  # Fibonacci only: ratio belongs to the major set

    @property
    def parameter(self) -> Union[float, int]:
        """The table entry that produced this projection (ratio or period)."""
        if isinstance(self.metadata, FibonacciMeta):
            return self.metadata.ratio
        return self.metadata.period_days

    @property
    def signal_label(self) -> str:
        if isinstance(self.metadata, FibonacciMeta):
            prefix = "FIB_MAJOR_" if self.major else "FIB_"
            return f"{prefix}{self.metadata.ratio:.3f}"
        return f"GANN_{self.metadata.period_days}D"


@dataclass(frozen=True)
class ConfluenceWindow:
    """Two or more projections landing on the same calendar date."""

    date: date
    projections: tuple[Projection, ...]
    intensity: float
    kind: str = "STANDARD_VORTEX"
    description: str = ""
    signals: tuple[str, ...] = field(default=())

    @property
    def count(self) -> int:
        return len(self.projections)


@dataclass(frozen=True)
class PriceLevel:
    """A Fibonacci retracement (support) or extension (resistance) price."""

    price: float
    ratio: float
    label: str
    level_type: str  # "SUPPORT" or "RESISTANCE"
    distance: str
