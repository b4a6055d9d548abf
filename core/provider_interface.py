"""
Price Provider Interface: Abstract Contract for Price Sources

This module defines the abstract base class that every price provider must implement.
Tournament orders are filled at the price a provider reports, so all providers
must answer the same two questions the same way:

    - What is the last traded price of a symbol?
    - What did the latest 1-minute bar look like (last/high/low)?

Example:
    class BinanceProvider(PriceProvider):
        async def get_last_price(self, symbol):
            ...

    provider = manager.get_provider("binance_com")  # or "binance_us"
    price = await provider.get_last_price("BTCUSDT")
"""

from abc import ABC, abstractmethod
from core.schemas import LastBar


class PriceProvider(ABC):
    """
    Abstract Base Class for Price Providers

    Class/Instance Attributes:
        name: Unique provider identifier used in requests (e.g., "binance_com")

    Abstract Methods:
        - get_last_price: Latest traded price
        - get_last_bar_1m: Latest 1m bar (last, high, low)

    Optional Methods:
        - initialize: Setup sessions
        - shutdown: Release sessions
        - health_check: Verify the upstream API is reachable
    """

    name: str

    @abstractmethod
    async def get_last_price(self, symbol: str) -> float:
        """
        Get the latest traded price for a symbol.

        Args:
            symbol: Trading pair (e.g., "BTCUSDT")

        Returns:
            float: Last price (always finite)

        Raises:
            RuntimeError: If the upstream request fails or returns an invalid price
        """
        pass

    @abstractmethod
    async def get_last_bar_1m(self, symbol: str) -> LastBar:
        """
        Get the most recent 1-minute bar for a symbol.

        Used for stop-loss and liquidation checks, which need the bar's
        extremes as well as its close.

        Raises:
            RuntimeError: If the upstream returns no bar or non-numeric values
        """
        pass

    # ============================================
    # Optional Lifecycle Methods
    # ============================================

    async def initialize(self) -> None:
        """
        Initialize the provider (open HTTP sessions).

        Notes:
            - Default implementation does nothing
            - Called automatically by ProviderManager
        """
        pass

    async def shutdown(self) -> None:
        """
        Shutdown the provider and release resources.

        Notes:
            - Default implementation does nothing
            - Should not raise
        """
        pass

    async def health_check(self) -> bool:
        """Return True if the provider's API is reachable. Never raises."""
        return True

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name='{self.name}')>"
