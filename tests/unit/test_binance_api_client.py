"""
Unit Tests for Binance API Client and Provider

These tests verify that BinanceAPIClient and BinanceProvider:
- Call the right endpoints with the right parameters
- Convert Binance numeric strings and reject non-finite values
- Refuse to work without an initialized session

Run with:
    pytest tests/unit/test_binance_api_client.py -v
"""

import pytest
import pytest_asyncio

from core.schemas import LastBar
from exchanges.binance import BinanceProvider
from exchanges.binance.api_client import BinanceAPIClient


# ============================================
# Fixtures
# ============================================

@pytest_asyncio.fixture
async def api_client():
    """Create a BinanceAPIClient instance for testing"""
    async with BinanceAPIClient("https://api.binance.com", name="binance_com") as client:
        yield client


def stub_get(monkeypatch, client, response):
    calls = []

    async def mock_get(path, params=None):
        calls.append((path, params))
        return response

    monkeypatch.setattr(client, "_get", mock_get)
    return calls


# ============================================
# Tests for Last Price
# ============================================

class TestGetLastPrice:
    """Tests for get_last_price method"""

    @pytest.mark.asyncio
    async def test_returns_float_price(self, api_client, monkeypatch):
        """Verify the ticker price string is converted to float"""
        calls = stub_get(monkeypatch, api_client, {"symbol": "BTCUSDT", "price": "50000.50000000"})

        price = await api_client.get_last_price("BTCUSDT")

        assert price == 50000.5
        assert calls == [("/api/v3/ticker/price", {"symbol": "BTCUSDT"})]

    @pytest.mark.asyncio
    async def test_rejects_non_numeric_price(self, api_client, monkeypatch):
        """Verify an invalid price raises RuntimeError"""
        stub_get(monkeypatch, api_client, {"symbol": "BTCUSDT", "price": "abc"})

        with pytest.raises(RuntimeError, match="Invalid price"):
            await api_client.get_last_price("BTCUSDT")

    @pytest.mark.asyncio
    async def test_rejects_infinite_price(self, api_client, monkeypatch):
        """Verify a non-finite price raises RuntimeError"""
        stub_get(monkeypatch, api_client, {"price": "inf"})

        with pytest.raises(RuntimeError):
            await api_client.get_last_price("BTCUSDT")

    @pytest.mark.asyncio
    async def test_rejects_missing_price(self, api_client, monkeypatch):
        """Verify a response without price raises RuntimeError"""
        stub_get(monkeypatch, api_client, {"code": -1121, "msg": "Invalid symbol."})

        with pytest.raises(RuntimeError):
            await api_client.get_last_price("NOPE")


# ============================================
# Tests for Last 1m Bar
# ============================================

class TestGetLastBar:
    """Tests for get_last_bar_1m method"""

    @pytest.mark.asyncio
    async def test_returns_last_high_low(self, api_client, monkeypatch):
        """Verify the kline row is reduced to last/high/low"""
        calls = stub_get(monkeypatch, api_client, [
            [
                1700000000000,  # Open time
                "50000.00",     # Open
                "50100.00",     # High
                "49900.00",     # Low
                "50050.00",     # Close
                "10.5",         # Volume
                1700000059999,  # Close time
            ]
        ])

        bar = await api_client.get_last_bar_1m(" btcusdt ")

        assert bar == LastBar(last=50050.0, high=50100.0, low=49900.0)
        assert calls == [("/api/v3/klines", {"symbol": "BTCUSDT", "interval": "1m", "limit": 1})]

    @pytest.mark.asyncio
    async def test_empty_response_raises(self, api_client, monkeypatch):
        """Verify an empty kline list raises RuntimeError"""
        stub_get(monkeypatch, api_client, [])

        with pytest.raises(RuntimeError, match="Empty kline"):
            await api_client.get_last_bar_1m("BTCUSDT")

    @pytest.mark.asyncio
    async def test_invalid_numbers_raise(self, api_client, monkeypatch):
        """Verify non-numeric kline values raise RuntimeError"""
        stub_get(monkeypatch, api_client, [[1700000000000, "1", "x", "1", "1", "1"]])

        with pytest.raises(RuntimeError, match="Invalid kline numbers"):
            await api_client.get_last_bar_1m("BTCUSDT")


# ============================================
# Tests for Session Handling
# ============================================

class TestSession:
    """Tests for session lifecycle"""

    @pytest.mark.asyncio
    async def test_get_requires_session(self):
        """Verify _get raises without an open session"""
        client = BinanceAPIClient("https://api.binance.com")

        with pytest.raises(RuntimeError, match="not initialized"):
            await client._get("/api/v3/ping")

    def test_base_url_trailing_slash_stripped(self):
        """Verify base URL normalization"""
        client = BinanceAPIClient("https://api.binance.us/")
        assert client.base_url == "https://api.binance.us"


# ============================================
# Tests for BinanceProvider
# ============================================

class TestBinanceProvider:
    """Tests for the PriceProvider wrapper"""

    @pytest.mark.asyncio
    async def test_requires_initialize(self):
        """Verify calls before initialize() raise RuntimeError"""
        provider = BinanceProvider("binance_us", "https://api.binance.us", timeout=5)

        with pytest.raises(RuntimeError, match="not initialized"):
            await provider.get_last_price("BTCUSDT")

    @pytest.mark.asyncio
    async def test_delegates_to_client(self, monkeypatch):
        """Verify the provider forwards to its API client"""
        provider = BinanceProvider("binance_us", "https://api.binance.us", timeout=5)
        await provider.initialize()
        try:
            assert provider.client.base_url == "https://api.binance.us"
            assert provider.client.name == "binance_us"
            stub_get(monkeypatch, provider.client, {"price": "3000.25"})

            assert await provider.get_last_price("ETHUSDT") == 3000.25
        finally:
            await provider.shutdown()

        assert provider.client is None

    @pytest.mark.asyncio
    async def test_health_check_false_when_not_initialized(self):
        """Verify health_check reports False before initialize()"""
        provider = BinanceProvider("binance_com", "https://api.binance.com", timeout=5)
        assert await provider.health_check() is False
