"""TimeGeometry — application configuration.

Loads .env variables into a typed config object.
Validates values on startup.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from timegeo.analysis.gann import GANN_TIERS
from timegeo.backtest.engine import BacktestSettings


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    binance_base_url: str
    quote_asset: str
    daily_history_limit: int
    monthly_history_limit: int
    pivot_lookback: int
    fib_base_cycle_days: int
    gann_level: str  # key of GANN_TIERS
    backtest_margin_pct: float
    backtest_tolerance_days: int
    major_pivots_path: str
    log_level: str
    http_port: int

    @property
    def gann_periods(self) -> tuple[int, ...]:
        """Return the Gann period tier selected by ``gann_level``."""
        return GANN_TIERS[self.gann_level]

    @property
    def backtest_settings(self) -> BacktestSettings:
        """Build the backtest engine settings from this config."""
        return BacktestSettings(
            lookback=self.pivot_lookback,
            base_cycle=self.fib_base_cycle_days,
            gann_periods=self.gann_periods,
            margin_pct=self.backtest_margin_pct,
            tolerance_days=self.backtest_tolerance_days,
        )


# Binance returns at most this many klines per request
MAX_KLINES_PER_REQUEST = 1000


def _positive_int(name: str, default: str, maximum: int | None = None) -> int:
    value = int(os.environ.get(name, default))
    if value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value}")
    if maximum is not None and value > maximum:
        raise ValueError(f"{name} must be at most {maximum}, got {value}")
    return value


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the offending variable when
    a value is out of range.
    """
    load_dotenv(dotenv_path=env_path)

    gann_level = os.environ.get("GANN_LEVEL", "STANDARD").upper()
    if gann_level not in GANN_TIERS:
        raise ValueError(
            f"GANN_LEVEL must be one of {', '.join(GANN_TIERS)}, got {gann_level!r}"
        )

    margin_pct = float(os.environ.get("BACKTEST_MARGIN_PCT", "1.5"))
    if margin_pct < 0:
        raise ValueError(f"BACKTEST_MARGIN_PCT must be >= 0, got {margin_pct}")

    return Config(
        binance_base_url=os.environ.get("BINANCE_BASE_URL", "https://api.binance.com"),
        quote_asset=os.environ.get("QUOTE_ASSET", "USDT"),
        daily_history_limit=_positive_int(
            "DAILY_HISTORY_LIMIT", "730", MAX_KLINES_PER_REQUEST,
        ),
        monthly_history_limit=_positive_int(
            "MONTHLY_HISTORY_LIMIT", "84", MAX_KLINES_PER_REQUEST,
        ),
        pivot_lookback=_positive_int("PIVOT_LOOKBACK", "10"),
        fib_base_cycle_days=_positive_int("FIB_BASE_CYCLE_DAYS", "100"),
        gann_level=gann_level,
        backtest_margin_pct=margin_pct,
        backtest_tolerance_days=_positive_int("BACKTEST_TOLERANCE_DAYS", "2"),
        major_pivots_path=os.environ.get("MAJOR_PIVOTS_PATH", "major_pivots.json"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        http_port=_positive_int("HTTP_PORT", "8080"),
    )
