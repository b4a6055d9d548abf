"""
Unit Tests for ProviderManager

Run with:
    pytest tests/unit/test_provider_manager.py -v
"""

import pytest

from core.provider_interface import PriceProvider
from core.provider_manager import ProviderManager
from core.schemas import LastBar
from exchanges.binance import BinanceProvider


class StubProvider(PriceProvider):
    """Provider with scripted behaviour"""

    def __init__(self, name, price=100.0, fail_init=False, healthy=True):
        self.name = name
        self.price = price
        self.fail_init = fail_init
        self.healthy = healthy
        self.initialized = False
        self.shut_down = False

    async def initialize(self):
        if self.fail_init:
            raise RuntimeError("boom")
        self.initialized = True

    async def shutdown(self):
        self.shut_down = True

    async def health_check(self):
        if self.healthy is None:
            raise RuntimeError("unreachable")
        return self.healthy

    async def get_last_price(self, symbol):
        return self.price

    async def get_last_bar_1m(self, symbol):
        return LastBar(last=self.price, high=self.price, low=self.price)


class TestRegistry:
    """Tests for provider lookup"""

    def test_default_providers(self):
        """Verify binance_com and binance_us are registered by default"""
        manager = ProviderManager()

        assert manager.list_providers() == ["binance_com", "binance_us"]
        assert isinstance(manager.get_provider("binance_us"), BinanceProvider)
        assert manager.get_provider("binance_us").base_url == "https://api.binance.us"

    def test_unknown_provider_raises(self):
        """Verify an unknown name raises ValueError"""
        manager = ProviderManager({"stub": StubProvider("stub")})

        with pytest.raises(ValueError, match="Unknown provider: kraken"):
            manager.get_provider("kraken")

    def test_has_provider(self):
        """Verify has_provider is an exact-name check"""
        manager = ProviderManager({"stub": StubProvider("stub")})

        assert manager.has_provider("stub") is True
        assert manager.has_provider("STUB") is False


class TestLifecycle:
    """Tests for initialize_all/shutdown_all/health_check_all"""

    @pytest.mark.asyncio
    async def test_initialize_continues_after_failure(self):
        """Verify one failing provider does not block the others"""
        good = StubProvider("good")
        bad = StubProvider("bad", fail_init=True)
        manager = ProviderManager({"bad": bad, "good": good})

        await manager.initialize_all()

        assert good.initialized is True
        assert bad.initialized is False

    @pytest.mark.asyncio
    async def test_shutdown_all(self):
        """Verify every provider is shut down"""
        providers = {"a": StubProvider("a"), "b": StubProvider("b")}
        manager = ProviderManager(providers)

        await manager.shutdown_all()

        assert all(p.shut_down for p in providers.values())

    @pytest.mark.asyncio
    async def test_health_check_all(self):
        """Verify health results, with raising checks reported as False"""
        manager = ProviderManager({
            "up": StubProvider("up"),
            "down": StubProvider("down", healthy=False),
            "broken": StubProvider("broken", healthy=None),
        })

        assert await manager.health_check_all() == {"up": True, "down": False, "broken": False}
