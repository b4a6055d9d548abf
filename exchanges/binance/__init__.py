"""
Binance Connector

Implements PriceProvider for the Binance spot REST API and exposes the
kline feed used by the shared price stream relay.

Binance.com and Binance US expose the same public endpoints, so a single
BinanceProvider class serves both; only the base URL differs.

Endpoints Used:
    REST:
        - GET /api/v3/ticker/price - Last traded price
        - GET /api/v3/klines - Latest 1m bar
        - GET /api/v3/ping - Health check

    WebSocket:
        - wss://stream.binance.com:9443/ws/<symbol>@kline_<interval>
"""

from typing import Optional
from core.provider_interface import PriceProvider
from core.schemas import LastBar
from core.logging import logger
from .api_client import BinanceAPIClient
from .ws_client import BinanceKlineFeed, FeedState, create_kline_feed, parse_kline_message


class BinanceProvider(PriceProvider):
    """
    Binance price provider (Binance.com or Binance US).

    Attributes:
        name: Provider identifier ("binance_com" or "binance_us")
        base_url: REST base URL
        client: BinanceAPIClient, created in initialize()

    Example:
        >>> provider = BinanceProvider("binance_us", "https://api.binance.us")
        >>> await provider.initialize()
        >>> price = await provider.get_last_price("BTCUSDT")
        >>> await provider.shutdown()
    """

    def __init__(self, name: str, base_url: str, timeout: Optional[float] = None):
        if timeout is None:
            from core.config import settings
            timeout = settings.request_timeout

        self.name = name
        self.base_url = base_url
        self.timeout = timeout
        self.client: Optional[BinanceAPIClient] = None

    async def initialize(self) -> None:
        if self.client is not None:
            return
        self.client = BinanceAPIClient(self.base_url, name=self.name, timeout=self.timeout)
        await self.client.__aenter__()
        logger.debug(f"BinanceProvider ready ({self.name} -> {self.base_url})")

    async def shutdown(self) -> None:
        if self.client:
            await self.client.__aexit__(None, None, None)
            self.client = None

    async def health_check(self) -> bool:
        if self.client is None:
            return False
        return await self.client.ping()

    def _require_client(self) -> BinanceAPIClient:
        if self.client is None:
            raise RuntimeError(f"Provider {self.name} is not initialized")
        return self.client

    async def get_last_price(self, symbol: str) -> float:
        return await self._require_client().get_last_price(symbol)

    async def get_last_bar_1m(self, symbol: str) -> LastBar:
        return await self._require_client().get_last_bar_1m(symbol)


__all__ = [
    "BinanceProvider",
    "BinanceAPIClient",
    "BinanceKlineFeed",
    "FeedState",
    "create_kline_feed",
    "parse_kline_message",
]
