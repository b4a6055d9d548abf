"""
Shared Price Stream Relay

Many downstream clients ask for the same (symbol, interval) market data.
This module multiplexes them onto a single upstream kline feed per distinct
key and keeps that feed alive only while someone is listening.

    PriceStreamRegistry   key -> PriceStream, one per active key
    PriceStream           one upstream feed + its subscribers + last kline
    ClientHandle          the subscriber contract (see services.client_session)

Lifecycle:
    - First subscribe(key) creates the PriceStream and opens its feed
    - Each new subscriber gets hello, then snapshot (if a kline was seen)
    - Each upstream kline is stored and broadcast to every subscriber
    - The subscriber that empties a stream closes its feed and evicts it,
      synchronously, inside the close callback

Concurrency:
    Everything here runs on the event loop thread. No method awaits, so every
    mutation of a registry or subscriber set completes before the next event
    is handled and no locks are needed.

Usage:
    registry = PriceStreamRegistry()
    registry.subscribe(client, "BTCUSDT", "1m")
    ...
    await registry.close_all()
"""

from typing import Any, Callable, Dict, List, Optional, Set

from pydantic import BaseModel

from core.logging import get_logger
from core.schemas import HelloFrame, Kline, SnapshotFrame, StreamErrorFrame, frame_json
from services.client_session import ClientHandle


logger = get_logger(__name__)

FeedFactory = Callable[..., Any]


def stream_key(symbol: str, interval: str) -> str:
    """
    Normalize (symbol, interval) into a registry key.

    Example:
        >>> stream_key(" BTCUSDT ", "1m ")
        'btcusdt@1m'
    """
    return f"{str(symbol).strip().lower()}@{str(interval).strip()}"


def _safe_send(client: ClientHandle, data: str) -> None:
    try:
        client.send_text(data)
    except Exception as e:
        logger.error(f"safe send error: {e}")


# ============================================
# Stream
# ============================================

class PriceStream:
    """
    One upstream feed fanned out to N subscribers.

    Attributes:
        key: Normalized key, fixed for the stream's lifetime
        subscribers: Set of ClientHandle (identity-hashed)
        last_payload: Most recent Kline, or None before the first update
        feed: The upstream feed, exclusively owned by this stream
        closed: True once the stream has been torn down

    Upstream feeds are built by `feed_factory(symbol, interval, on_update=...,
    on_parse_error=..., should_reconnect=...)`, so anything matching
    BinanceKlineFeed's open()/close() surface can be plugged in.
    """

    def __init__(
        self,
        key: str,
        symbol: str,
        interval: str,
        feed_factory: FeedFactory,
        is_registered: Callable[["PriceStream"], bool],
    ) -> None:
        self.key = key
        self.symbol = str(symbol).strip().lower()
        self.interval = str(interval).strip()
        self.subscribers: Set[ClientHandle] = set()
        self.last_payload: Optional[Kline] = None
        self.closed = False
        self._is_registered = is_registered

        self.feed = feed_factory(
            self.symbol,
            self.interval,
            on_update=self.on_update,
            on_parse_error=self.on_parse_error,
            should_reconnect=self.should_reconnect,
        )

    @property
    def has_subscribers(self) -> bool:
        return bool(self.subscribers)

    def start(self) -> None:
        logger.info(f"Creating Binance stream for {self.key}")
        self.feed.open()

    def should_reconnect(self) -> bool:
        """Reconnect only a live, still-registered stream that has subscribers."""
        return not self.closed and self.has_subscribers and self._is_registered(self)

    # ============================================
    # Subscribers
    # ============================================

    def add(self, client: ClientHandle, symbol: str, interval: str) -> None:
        """Attach a client, then greet it and replay the snapshot if any."""
        self.subscribers.add(client)
        logger.info(f"Client subscribed: {self.key} clients={len(self.subscribers)}")

        _safe_send(client, frame_json(HelloFrame(symbol=symbol, interval=interval)))

        if self.last_payload is not None:
            _safe_send(client, frame_json(SnapshotFrame(data=self.last_payload)))

    def remove(self, client: ClientHandle) -> bool:
        """
        Detach a client. Removing an unknown client is a no-op.

        Returns:
            True if this call removed the last subscriber
        """
        if client not in self.subscribers:
            return False

        self.subscribers.discard(client)
        logger.info(f"Client disconnected: {self.key} clients left={len(self.subscribers)}")
        return not self.subscribers

    # ============================================
    # Upstream Events
    # ============================================

    def on_update(self, kline: Kline) -> None:
        if self.closed or not self.subscribers:
            return
        self.last_payload = kline
        self.broadcast(frame_json(kline))

    def on_parse_error(self, exc: Exception) -> None:
        if self.closed:
            return
        frame = StreamErrorFrame(source="binance_parse", message=str(exc))
        self.broadcast(frame_json(frame))

    def broadcast(self, data: str) -> None:
        for client in list(self.subscribers):
            _safe_send(client, data)

    def close(self) -> None:
        """Stop the upstream feed. Idempotent."""
        if self.closed:
            return
        self.closed = True
        logger.info(f"No clients left, closing Binance stream for {self.key}")
        try:
            self.feed.close()
        except Exception as e:
            logger.error(f"Error closing feed for {self.key}: {e}")


class StreamStats(BaseModel):
    """Per-key view used by the health endpoint."""

    subscribers: int
    has_snapshot: bool


# ============================================
# Registry
# ============================================

class PriceStreamRegistry:
    """
    Process-wide mapping from stream key to PriceStream.

    Construct one at service start and inject it where clients are accepted;
    tests build as many independent registries as they need.

    Invariant:
        A key is present if and only if its stream has at least one subscriber.

    Example:
        >>> registry = PriceStreamRegistry(feed_factory=FakeFeed)
        >>> registry.subscribe(client, "BTCUSDT", "1m")
        >>> "btcusdt@1m" in registry
        True
    """

    def __init__(self, feed_factory: Optional[FeedFactory] = None) -> None:
        if feed_factory is None:
            from exchanges.binance.ws_client import create_kline_feed
            feed_factory = create_kline_feed

        self._feed_factory = feed_factory
        self._streams: Dict[str, PriceStream] = {}

    def __len__(self) -> int:
        return len(self._streams)

    def __contains__(self, key: str) -> bool:
        return key in self._streams

    def get(self, key: str) -> Optional[PriceStream]:
        return self._streams.get(key)

    def keys(self) -> List[str]:
        return list(self._streams.keys())

    def is_registered(self, stream: PriceStream) -> bool:
        return self._streams.get(stream.key) is stream

    def stats(self) -> Dict[str, StreamStats]:
        return {
            key: StreamStats(
                subscribers=len(stream.subscribers),
                has_snapshot=stream.last_payload is not None,
            )
            for key, stream in self._streams.items()
        }

    # ============================================
    # Subscription
    # ============================================

    def subscribe(self, client: ClientHandle, symbol: str, interval: str) -> PriceStream:
        """
        Attach a client to the stream for (symbol, interval).

        Creates the stream and opens its upstream feed when the key is new.
        The caller must have validated that symbol and interval are non-empty.

        Returns:
            The PriceStream the client joined
        """
        key = stream_key(symbol, interval)
        stream = self._streams.get(key)

        if stream is None:
            stream = PriceStream(key, symbol, interval, self._feed_factory, self.is_registered)
            self._streams[key] = stream
            try:
                stream.start()
            except Exception:
                del self._streams[key]
                stream.close()
                raise

        stream.add(client, symbol, interval)
        client.on_close(lambda: self._detach(stream, client))
        return stream

    def _detach(self, stream: PriceStream, client: ClientHandle) -> None:
        if not stream.remove(client):
            return

        stream.close()
        if self.is_registered(stream):
            del self._streams[stream.key]

    # ============================================
    # Shutdown
    # ============================================

    async def close_all(self) -> None:
        """Close every upstream feed and empty the registry."""
        streams = list(self._streams.values())
        self._streams.clear()

        for stream in streams:
            stream.close()
            aclose = getattr(stream.feed, "aclose", None)
            if aclose is not None:
                await aclose()

        if streams:
            logger.info(f"Closed {len(streams)} price stream(s)")
