"""
Binance REST API Client

This module provides an async HTTP client for the Binance spot REST API.
The same client serves Binance.com and Binance US; only the base URL differs.

It handles:
- HTTP requests with retry logic
- Rate limit handling (429, 418, 503 errors)
- Error handling and logging
- Validation of numeric fields (prices must be finite)

API Documentation:
    https://binance-docs.github.io/apidocs/spot/en/

Endpoints Used:
    - GET /api/v3/ticker/price?symbol={symbol}
    - GET /api/v3/klines?symbol={symbol}&interval=1m&limit=1
    - GET /api/v3/ping

Usage:
    async with BinanceAPIClient("https://api.binance.com") as client:
        price = await client.get_last_price("BTCUSDT")
"""

import aiohttp
import asyncio
import math
import time
from typing import Dict, Optional, Any
from core.logging import get_logger, log_api_request, log_api_response
from core.schemas import LastBar


def _to_finite(value: Any) -> Optional[float]:
    """Convert a Binance numeric string to float, or None if not a finite number."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class BinanceAPIClient:
    """
    Async HTTP client for the Binance spot REST API

    Attributes:
        base_url: REST base URL (e.g., "https://api.binance.com")
        name: Label used in logs and error messages (e.g., "binance_com")
        timeout: Per-request timeout in seconds
        session: aiohttp ClientSession for HTTP requests

    Example:
        >>> async with BinanceAPIClient("https://api.binance.us", name="binance_us") as client:
        ...     bar = await client.get_last_bar_1m("ETHUSDT")
        ...     print(bar.last, bar.high, bar.low)

    Notes:
        - Uses context manager for automatic session cleanup
        - Retries rate-limit responses and timeouts up to 3 times
        - No API key needed: all endpoints used are public
    """

    MAX_ATTEMPTS = 3

    def __init__(self, base_url: str, name: str = "binance", timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.name = name
        self.timeout = timeout
        self.logger = get_logger(__name__)
        self.session: Optional[aiohttp.ClientSession] = None

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        self.session = aiohttp.ClientSession()
        self.logger.debug(f"BinanceAPIClient session created ({self.name})")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.logger.debug(f"BinanceAPIClient session closed ({self.name})")

    # ============================================
    # HTTP Request Handler with Retry Logic
    # ============================================

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Make GET request to Binance API with retry logic.

        Args:
            path: API endpoint path (e.g., "/api/v3/ticker/price")
            params: Optional query parameters

        Returns:
            Decoded JSON response

        Raises:
            RuntimeError: On a non-retryable HTTP error, or after all retries fail

        Rate Limit Handling:
            - 429: Too many requests
            - 418: IP banned (temporary)
            - 503: Service unavailable

            Retry delay: 1.5s * (attempt + 1)
        """
        if not self.session:
            raise RuntimeError("Client session not initialized. Use 'async with' statement.")

        url = f"{self.base_url}{path}"
        log_api_request(self.name, path, params)

        for attempt in range(self.MAX_ATTEMPTS):
            started = time.monotonic()
            try:
                async with self.session.get(
                    url,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as resp:
                    log_api_response(self.name, path, resp.status, time.monotonic() - started)

                    if resp.status == 200:
                        return await resp.json()

                    elif resp.status in (429, 418, 503):
                        delay = 1.5 * (attempt + 1)
                        self.logger.warning(
                            f"Rate limited (HTTP {resp.status}) on {path}. "
                            f"Retrying in {delay:.1f}s... (attempt {attempt + 1}/{self.MAX_ATTEMPTS})"
                        )
                        await asyncio.sleep(delay)
                        continue

                    else:
                        text = await resp.text()
                        self.logger.error(f"HTTP {resp.status} on {path}: {text}")
                        raise RuntimeError(f"{self.name} error {resp.status}: {text}")

            except asyncio.TimeoutError:
                self.logger.error(f"Timeout on {path} (attempt {attempt + 1}/{self.MAX_ATTEMPTS})")
                await asyncio.sleep(1.0 * (attempt + 1))

            except aiohttp.ClientError as e:
                self.logger.error(f"Request failed on {path}: {e} (attempt {attempt + 1}/{self.MAX_ATTEMPTS})")
                await asyncio.sleep(1.0 * (attempt + 1))

        raise RuntimeError(f"Failed to fetch {url} after {self.MAX_ATTEMPTS} attempts")

    # ============================================
    # API Methods
    # ============================================

    async def get_last_price(self, symbol: str) -> float:
        """
        Fetch the latest traded price.

        Binance Response:
            {"symbol": "BTCUSDT", "price": "50000.50000000"}

        Raises:
            RuntimeError: If the price is missing or not a finite number
        """
        data = await self._get("/api/v3/ticker/price", {"symbol": symbol})

        price = _to_finite(data.get("price")) if isinstance(data, dict) else None
        if price is None:
            raise RuntimeError(f"Invalid price from {self.name} for {symbol}")

        return price

    async def get_last_bar_1m(self, symbol: str) -> LastBar:
        """
        Fetch the latest 1-minute kline and reduce it to last/high/low.

        Binance Response (one row):
            [openTime, open, high, low, close, volume, closeTime, ...]

        Raises:
            RuntimeError: If no row is returned or values are not finite numbers
        """
        sym = symbol.strip().upper()
        rows = await self._get("/api/v3/klines", {"symbol": sym, "interval": "1m", "limit": 1})

        if not isinstance(rows, list) or not rows:
            raise RuntimeError(f"Empty kline for {sym}")

        row = rows[0]
        if not isinstance(row, list) or len(row) < 5:
            raise RuntimeError(f"Invalid kline numbers for {sym}")

        high, low, last = _to_finite(row[2]), _to_finite(row[3]), _to_finite(row[4])
        if None in (high, low, last):
            raise RuntimeError(f"Invalid kline numbers for {sym}")

        return LastBar(last=last, high=high, low=low)

    async def ping(self) -> bool:
        """Return True if GET /api/v3/ping succeeds."""
        try:
            await self._get("/api/v3/ping")
            return True
        except RuntimeError as e:
            self.logger.error(f"{self.name} ping failed: {e}")
            return False
