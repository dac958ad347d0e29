"""Binance public REST API async client.

Supplies daily and monthly OHLC bars for a symbol.  This is the only
component that talks to the network; everything downstream is pure.
"""

import asyncio
import logging
from typing import Optional

import httpx

from timegeo.config import MAX_KLINES_PER_REQUEST, Config
from timegeo.errors import SymbolNotFoundError, UpstreamUnavailableError
from timegeo.market.models import Bar

logger = logging.getLogger("timegeo")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt
_RATE_LIMIT_STATUS_CODES = {429, 418}  # 418: IP banned after ignoring 429s
_SERVER_ERROR_STATUS_CODES = {502, 503, 504}

_INVALID_SYMBOL_CODE = -1121


class BinanceClient:
    """Async client wrapping the Binance ``/api/v3/klines`` endpoint.

    Implements the market data contract used by the query service:
    ``get_historical_bars(symbol)`` and ``get_monthly_bars(symbol)``.
    """

    def __init__(self, config: Config) -> None:
        self._config = config
        self._base_url = config.binance_base_url.rstrip("/")
        self._headers = {"Accept": "application/json"}

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _get_with_retry(self, url: str, params: dict) -> httpx.Response:
        """GET *url*, retrying rate limits, gateway errors and transport failures.

        Rate-limited responses wait for the ``Retry-After`` header when
        Binance sends one, otherwise the exponential backoff delay.  Any
        other 4xx is raised at once as ``httpx.HTTPStatusError``.
        """
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            backoff = _RETRY_BASE_DELAY * (2 ** attempt)
            try:
                async with httpx.AsyncClient() as client:
                    resp = await client.get(
                        url, headers=self._headers, params=params, timeout=30.0,
                    )
            except httpx.TransportError as exc:
                logger.warning(
                    "Binance %s %s unreachable (%s), retry %d/%d in %.1fs",
                    params["symbol"], params["interval"], exc,
                    attempt + 1, _MAX_RETRIES, backoff,
                )
                last_exc = exc
                await asyncio.sleep(backoff)
                continue

            status = resp.status_code
            if status in _RATE_LIMIT_STATUS_CODES or status in _SERVER_ERROR_STATUS_CODES:
                code, msg = _error_body(resp)
                delay = backoff
                if status in _RATE_LIMIT_STATUS_CODES:
                    delay = _retry_after(resp, backoff)
                logger.warning(
                    "Binance %s %s returned %d (code %s: %s), retry %d/%d in %.1fs",
                    params["symbol"], params["interval"], status, code, msg,
                    attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = httpx.HTTPStatusError(
                    f"Binance error {status}", request=resp.request, response=resp,
                )
                await asyncio.sleep(delay)
                continue

            resp.raise_for_status()
            return resp

        raise last_exc  # type: ignore[misc]

    # ── Klines ───────────────────────────────────────────────────────────

    def market_symbol(self, symbol: str) -> str:
        """Translate a base asset (``"BTC"``) into a Binance pair (``"BTCUSDT"``)."""
        return f"{symbol.upper()}{self._config.quote_asset}"

    async def fetch_klines(
        self,
        symbol: str,
        interval: str,
        limit: int,
    ) -> list[Bar]:
        """Fetch klines for *symbol* and parse them into bars.

        Args:
            symbol: base asset, e.g. ``"BTC"``
            interval: Binance interval, ``"1d"`` or ``"1M"``
            limit: number of bars to request (Binance serves at most 1000)

        Returns:
            List of ``Bar`` objects ordered oldest-first, one per date.

        Raises:
            SymbolNotFoundError: Binance rejected the symbol.
            UpstreamUnavailableError: any other HTTP or transport failure.
        """
        if limit > MAX_KLINES_PER_REQUEST:
            logger.warning(
                "%s %s: limit %d exceeds the Binance maximum, requesting %d bars",
                symbol, interval, limit, MAX_KLINES_PER_REQUEST,
            )
            limit = MAX_KLINES_PER_REQUEST

        url = f"{self._base_url}/api/v3/klines"
        params = {
            "symbol": self.market_symbol(symbol),
            "interval": interval,
            "limit": limit,
        }

        try:
            resp = await self._get_with_retry(url, params)
        except httpx.HTTPStatusError as exc:
            code, msg = _error_body(exc.response)
            if exc.response.status_code == 400 and code == _INVALID_SYMBOL_CODE:
                raise SymbolNotFoundError(
                    symbol, f"Unknown symbol: {symbol}"
                ) from exc
            raise UpstreamUnavailableError(
                symbol,
                f"Binance returned {exc.response.status_code} for {symbol} {interval}"
                + (f" (code {code}: {msg})" if code is not None else ""),
            ) from exc
        except httpx.TransportError as exc:
            raise UpstreamUnavailableError(
                symbol, f"Binance unreachable for {symbol} {interval}: {exc}"
            ) from exc

        bars = parse_klines(resp.json())
        logger.debug("Fetched %d %s bars for %s", len(bars), interval, symbol)
        return bars

    async def get_historical_bars(self, symbol: str) -> list[Bar]:
        """Daily bars covering ``daily_history_limit`` days."""
        return await self.fetch_klines(
            symbol, "1d", self._config.daily_history_limit,
        )

    async def get_monthly_bars(self, symbol: str) -> list[Bar]:
        """Monthly bars covering ``monthly_history_limit`` months."""
        return await self.fetch_klines(
            symbol, "1M", self._config.monthly_history_limit,
        )


# ── Helpers ──────────────────────────────────────────────────────────────


def parse_klines(payload: list) -> list[Bar]:
    """Parse a Binance klines payload into ascending, date-unique bars.

    Each kline is ``[open_time, open, high, low, close, volume, ...]`` with
    prices as strings.  When two klines share a calendar date the later one
    wins.
    """
    by_date: dict = {}
    for kline in payload:
        bar = Bar.from_timestamp(
            int(kline[0]),
            float(kline[1]),
            float(kline[2]),
            float(kline[3]),
            float(kline[4]),
            float(kline[5]),
        )
        by_date[bar.date] = bar
    return sorted(by_date.values(), key=lambda b: b.timestamp)


def _error_body(resp: httpx.Response) -> tuple[Optional[int], str]:
    """Binance error ``(code, msg)`` from a response body, if it carries one."""
    try:
        body = resp.json()
    except ValueError:
        return None, ""
    if not isinstance(body, dict):
        return None, ""
    return body.get("code"), body.get("msg", "")


def _retry_after(resp: httpx.Response, default: float) -> float:
    """Seconds to wait from a ``Retry-After`` header, else *default*."""
    try:
        return float(resp.headers["Retry-After"])
    except (KeyError, ValueError):
        return default
