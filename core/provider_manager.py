"""
Provider Manager: Central Registry for Price Providers

This module provides a centralized manager for all price providers.
Routes ask for a provider by the name the client sent ("binance_com",
"binance_us") and get back an object implementing PriceProvider.

Example Usage:
    manager = ProviderManager()
    await manager.initialize_all()

    provider = manager.get_provider("binance_com")
    price = await provider.get_last_price("BTCUSDT")

    # Adding a new provider:
    # 1. Implement PriceProvider
    # 2. Register it in ProviderManager.__init__ (or pass it in)
"""

from typing import Dict, List, Optional
from core.provider_interface import PriceProvider
from core.logging import logger


class ProviderManager:
    """
    Central Manager for Price Providers

    Attributes:
        providers: Dictionary mapping provider names to provider instances
                   Example: {"binance_com": BinanceProvider(...), "binance_us": BinanceProvider(...)}

    Example:
        >>> manager = ProviderManager()
        >>> await manager.initialize_all()
        >>> manager.list_providers()
        ['binance_com', 'binance_us']
        >>> await manager.shutdown_all()
    """

    def __init__(self, providers: Optional[Dict[str, PriceProvider]] = None):
        """
        Initialize the manager and register providers.

        Args:
            providers: Explicit provider registry. When omitted, the Binance.com
                       and Binance US providers are built from settings.

        Note:
            Providers are created but not initialized here.
            Call initialize_all() to open their sessions.
        """
        if providers is None:
            # Import here to avoid circular imports (exchanges imports core)
            from core.config import settings
            from exchanges.binance import BinanceProvider

            providers = {
                "binance_com": BinanceProvider("binance_com", settings.binance_com_base_url),
                "binance_us": BinanceProvider("binance_us", settings.binance_us_base_url),
            }

        self.providers: Dict[str, PriceProvider] = dict(providers)

        logger.info(
            f"ProviderManager initialized with {len(self.providers)} provider(s): "
            f"{', '.join(self.providers.keys())}"
        )

    # ============================================
    # Provider Retrieval
    # ============================================

    def get_provider(self, name: str) -> PriceProvider:
        """
        Get a provider by name.

        Args:
            name: Provider name (e.g., "binance_com"). Exact match, as sent by clients.

        Raises:
            ValueError: If the provider is not registered
        """
        if name not in self.providers:
            available = ", ".join(self.providers.keys())
            logger.warning(f"Provider '{name}' not found. Available: {available}")
            raise ValueError(f"Unknown provider: {name}")

        return self.providers[name]

    def has_provider(self, name: str) -> bool:
        return name in self.providers

    def list_providers(self) -> List[str]:
        return list(self.providers.keys())

    # ============================================
    # Lifecycle Management
    # ============================================

    async def initialize_all(self) -> None:
        """
        Initialize all registered providers.

        A provider that fails to initialize is logged and skipped so the
        others stay usable.
        """
        logger.info("Initializing all price providers...")

        for name, provider in self.providers.items():
            try:
                await provider.initialize()
                logger.info(f"✓ {name} initialized successfully")
            except Exception as e:
                logger.error(f"✗ Failed to initialize {name}: {e}")

        logger.info("All price providers initialized")

    async def shutdown_all(self) -> None:
        """Shutdown all providers gracefully."""
        logger.info("Shutting down all price providers...")

        for name, provider in self.providers.items():
            try:
                await provider.shutdown()
                logger.info(f"✓ {name} shut down successfully")
            except Exception as e:
                logger.error(f"✗ Error shutting down {name}: {e}")

        logger.info("All price providers shut down")

    # ============================================
    # Health Check
    # ============================================

    async def health_check_all(self) -> Dict[str, bool]:
        """
        Check health status of all providers.

        Returns:
            Dict[str, bool]: provider name -> reachable
        """
        health_status = {}

        for name, provider in self.providers.items():
            try:
                health_status[name] = await provider.health_check()
            except Exception as e:
                logger.error(f"Health check failed for {name}: {e}")
                health_status[name] = False

        return health_status
