"""
Shared test doubles for the price stream relay.

- FakeClient: ClientHandle that records decoded frames and lets tests trigger its close
- FakeFeed: upstream feed stand-in; tests push klines and parse errors through it
- FeedRecorder: feed factory that keeps every FakeFeed it built
"""

import json
from typing import Any, Callable, Dict, List

import pytest

from core.schemas import Kline
from services.client_session import ClientHandle
from services.price_stream import PriceStreamRegistry


class FakeClient(ClientHandle):
    """In-memory subscriber"""

    def __init__(self, name: str = "client", fail_sends: bool = False):
        self.name = name
        self.fail_sends = fail_sends
        self.frames: List[Dict[str, Any]] = []
        self._callbacks: List[Callable[[], None]] = []
        self.closed = False

    def send_text(self, data: str) -> None:
        if self.fail_sends:
            raise ConnectionError("socket not writable")
        if not self.closed:
            self.frames.append(json.loads(data))

    def on_close(self, callback: Callable[[], None]) -> None:
        self._callbacks.append(callback)

    def disconnect(self) -> None:
        if self.closed:
            return
        self.closed = True
        for callback in self._callbacks:
            callback()

    @property
    def types(self) -> List[str]:
        return [frame["type"] for frame in self.frames]

    def __repr__(self) -> str:
        return f"<FakeClient {self.name}>"


class FakeFeed:
    """Upstream feed stand-in with the same open()/close() surface as BinanceKlineFeed"""

    def __init__(self, symbol, interval, on_update, on_parse_error=None, should_reconnect=None):
        self.symbol = symbol
        self.interval = interval
        self.on_update = on_update
        self.on_parse_error = on_parse_error
        self.should_reconnect = should_reconnect
        self.opened = False
        self.closed = False

    def open(self) -> None:
        self.opened = True

    def close(self) -> None:
        self.closed = True

    def emit(self, kline: Kline) -> None:
        self.on_update(kline)

    def fail_parse(self, message: str = "Expecting value") -> None:
        self.on_parse_error(ValueError(message))


class FeedRecorder:
    """Feed factory recording every feed it creates"""

    def __init__(self):
        self.created: List[FakeFeed] = []

    def __call__(self, symbol, interval, **kwargs) -> FakeFeed:
        feed = FakeFeed(symbol, interval, **kwargs)
        self.created.append(feed)
        return feed


def build_kline(close: float = 50000.5, symbol: str = "BTCUSDT", interval: str = "1m",
                is_final: bool = False) -> Kline:
    return Kline(
        symbol=symbol,
        interval=interval,
        openTime=1700000000000,
        closeTime=1700000059999,
        open=50000.0,
        high=max(50010.0, close),
        low=min(49990.0, close),
        close=close,
        volume=12.5,
        isFinal=is_final,
    )


# ============================================
# Fixtures
# ============================================

@pytest.fixture
def feeds():
    return FeedRecorder()


@pytest.fixture
def registry(feeds):
    return PriceStreamRegistry(feed_factory=feeds)


@pytest.fixture
def make_client():
    return FakeClient


@pytest.fixture
def make_kline():
    return build_kline
