"""
Binance Kline Feed

This module owns the single upstream WebSocket connection used for one
(symbol, interval) price stream. It handles:
- Connecting to {symbol}@kline_{interval} on the Binance spot stream
- Parsing frames into normalized Kline records
- Reconnecting after a fixed delay while the owner still wants data
- Synchronous teardown that also abandons any pending reconnect

State Machine:
    IDLE -> CONNECTING -> OPEN -> CLOSED_CLEAN | CLOSED_ERROR
    CLOSED_* -> (after reconnect_delay, if should_reconnect()) -> CONNECTING
    any state -> STOPPED (close() was called; terminal)

Each connection attempt runs as its own asyncio task. The wait between
attempts is a loop.call_later() handle, so close() can cancel it directly.
Every reconnect re-checks both STOPPED and the owner's should_reconnect()
predicate when the timer fires.

WebSocket Documentation:
    https://binance-docs.github.io/apidocs/spot/en/#kline-candlestick-streams

Usage:
    feed = BinanceKlineFeed("BTCUSDT", "1m", on_update=handle_kline)
    feed.open()     # must be called with a running event loop
    ...
    feed.close()    # or: await feed.aclose()
"""

import aiohttp
import asyncio
import json
from enum import Enum
from typing import Any, Callable, Optional

from core.logging import get_logger, log_websocket_event
from core.schemas import Kline


# ============================================
# Frame Parsing
# ============================================

def parse_kline_message(raw: str) -> Optional[Kline]:
    """
    Parse one upstream text frame into a Kline.

    The kline object is read from `k` at the top level (single stream) or from
    `data.k` (combined stream envelope).

    Binance Frame:
        {
          "e": "kline", "s": "BTCUSDT",
          "k": {"t": 1700000000000, "T": 1700000059999, "s": "BTCUSDT", "i": "1m",
                "o": "50000.0", "h": "50010.0", "l": "49990.0", "c": "50000.5",
                "v": "12.5", "x": false}
        }

    Returns:
        Kline, or None if the frame is valid JSON but carries no kline
        (subscription acks, pings relayed as text, other event types)

    Raises:
        ValueError: If the frame is not JSON or the kline fields are missing/invalid
    """
    try:
        msg = json.loads(raw)
    except RecursionError as e:
        raise ValueError("Frame nested too deeply") from e
    if not isinstance(msg, dict):
        return None

    k = msg.get("k")
    if k is None and isinstance(msg.get("data"), dict):
        k = msg["data"].get("k")
    if not isinstance(k, dict):
        return None

    try:
        return Kline(
            symbol=k["s"],
            interval=k["i"],
            openTime=int(k["t"]),
            closeTime=int(k["T"]),
            open=float(k["o"]),
            high=float(k["h"]),
            low=float(k["l"]),
            close=float(k["c"]),
            volume=float(k["v"]),
            isFinal=bool(k.get("x", False)),
        )
    except (KeyError, TypeError, OverflowError) as e:
        raise ValueError(f"Malformed kline payload: {e!r}") from e


# ============================================
# Upstream Feed Connection
# ============================================

class FeedState(str, Enum):
    """Lifecycle states of a BinanceKlineFeed."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED_CLEAN = "closed_clean"
    CLOSED_ERROR = "closed_error"
    STOPPED = "stopped"


class BinanceKlineFeed:
    """
    Upstream kline connection for one (symbol, interval) key.

    Attributes:
        BASE_URL: Binance spot WebSocket base URL (default when none is given)
        symbol: Trading pair (lowercase, trimmed, e.g., "btcusdt")
        interval: Kline interval (trimmed, e.g., "1m")
        state: Current FeedState
        attempts: Number of connection attempts started so far
        reconnect_delay: Fixed seconds between attempts (no cap on attempts)

    Callbacks (run inside the event loop, must not block):
        on_update(kline): Every successfully parsed kline, in arrival order
        on_parse_error(exc): A frame failed to parse; the connection stays open
        should_reconnect(): Asked after every close and again when the reconnect
                            timer fires; returning False leaves the feed idle

    Example:
        >>> feed = BinanceKlineFeed(
        ...     "BTCUSDT", "1m",
        ...     on_update=stream.on_update,
        ...     should_reconnect=lambda: stream.has_subscribers,
        ... )
        >>> feed.open()

    Notes:
        - A shared aiohttp session can be injected; the feed never closes it
        - Without one, each attempt opens and closes its own session
    """

    BASE_URL = "wss://stream.binance.com:9443/ws"

    def __init__(
        self,
        symbol: str,
        interval: str,
        on_update: Callable[[Kline], Any],
        on_parse_error: Optional[Callable[[Exception], Any]] = None,
        should_reconnect: Optional[Callable[[], bool]] = None,
        reconnect_delay: float = 3.0,
        base_url: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        heartbeat: float = 30,
    ):
        self.symbol = str(symbol).strip().lower()
        self.interval = str(interval).strip()
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.reconnect_delay = reconnect_delay
        self.heartbeat = heartbeat

        self._on_update = on_update
        self._on_parse_error = on_parse_error
        self._should_reconnect = should_reconnect or (lambda: True)

        self.session = session
        self.ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self.state = FeedState.IDLE
        self.attempts = 0

        self._task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None

        self.logger = get_logger(__name__)

    @property
    def key(self) -> str:
        return f"{self.symbol}@{self.interval}"

    @property
    def url(self) -> str:
        return f"{self.base_url}/{self.symbol}@kline_{self.interval}"

    @property
    def stopped(self) -> bool:
        return self.state is FeedState.STOPPED

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    # ============================================
    # Lifecycle
    # ============================================

    def open(self) -> None:
        """
        Start the first connection attempt. Returns immediately.

        Raises:
            RuntimeError: If the feed was already opened or closed, or if
                          there is no running event loop
        """
        if self.state is not FeedState.IDLE or self.attempts:
            raise RuntimeError(f"Feed {self.key} cannot be opened from state {self.state.value}")
        self._connect()

    def close(self) -> None:
        """
        Tear the feed down. Safe to call multiple times.

        Cancels a pending reconnect timer and the running connection task.
        The socket itself is released by the cancelled task; use aclose()
        to wait for that.
        """
        if self.stopped:
            return

        self.state = FeedState.STOPPED

        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        if self._task is not None and not self._task.done():
            self._task.cancel()

        log_websocket_event("binance", "stopped", self.key)

    async def aclose(self) -> None:
        """Close the feed and wait until the upstream socket is released."""
        self.close()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    # ============================================
    # Connection Attempts
    # ============================================

    def _connect(self) -> None:
        loop = asyncio.get_running_loop()
        self.attempts += 1
        self.state = FeedState.CONNECTING
        self._task = loop.create_task(self._run(), name=f"binance-feed:{self.key}")

    def _schedule_reconnect(self) -> None:
        if self.stopped:
            return

        if not self._should_reconnect():
            self.logger.info(f"No subscribers left for {self.key}; not reconnecting")
            return

        self.logger.warning(
            f"Reconnecting {self.key} in {self.reconnect_delay}s... (attempt {self.attempts + 1})"
        )
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._reconnect)

    def _reconnect(self) -> None:
        self._reconnect_handle = None

        # Owner may have been torn down or emptied while the timer was pending
        if self.stopped or not self._should_reconnect():
            self.logger.debug(f"Abandoning stale reconnect for {self.key}")
            return

        self._connect()

    async def _run(self) -> None:
        """One connection attempt: connect, consume until closed, release."""
        own_session = self.session is None
        session = aiohttp.ClientSession() if own_session else self.session

        try:
            self.logger.info(f"Connecting to {self.url}")
            self.ws = await session.ws_connect(self.url, heartbeat=self.heartbeat)

            if self.stopped:
                return

            self.state = FeedState.OPEN
            log_websocket_event("binance", "connected", self.key)

            await self._consume(self.ws)

        except asyncio.CancelledError:
            self.logger.debug(f"Feed task cancelled for {self.key}")
            raise

        except Exception as e:
            if not self.stopped:
                self.state = FeedState.CLOSED_ERROR
            log_websocket_event("binance", "error", self.key, str(e))

        finally:
            await self._release(session, own_session)

        self._schedule_reconnect()

    async def _consume(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                self._handle_text(msg.data)

            elif msg.type == aiohttp.WSMsgType.ERROR:
                if not self.stopped:
                    self.state = FeedState.CLOSED_ERROR
                log_websocket_event("binance", "error", self.key, str(ws.exception()))
                await ws.close()
                return

            elif msg.type == aiohttp.WSMsgType.CLOSED:
                break

            else:
                self.logger.debug(f"Received message type: {msg.type}")

            if self.stopped:
                return

        if not self.stopped:
            self.state = FeedState.CLOSED_CLEAN
        log_websocket_event("binance", "closed", self.key, f"code={ws.close_code}")

    async def _release(self, session: aiohttp.ClientSession, own_session: bool) -> None:
        ws, self.ws = self.ws, None
        if ws is not None and not ws.closed:
            await ws.close()
        if own_session and not session.closed:
            await session.close()

    def _handle_text(self, raw: str) -> None:
        if self.stopped:
            return

        try:
            kline = parse_kline_message(raw)
        except ValueError as e:
            self.logger.error(f"Failed to parse frame for {self.key}: {str(raw)[:100]}... Error: {e}")
            if self._on_parse_error is not None:
                self._on_parse_error(e)
            return

        if kline is None:
            self.logger.debug(f"Ignoring non-kline frame for {self.key}")
            return

        self._on_update(kline)


# ============================================
# Convenience Builder
# ============================================

def create_kline_feed(symbol: str, interval: str, **kwargs) -> BinanceKlineFeed:
    """
    Create a kline feed using the configured Binance WebSocket base URL.

    Example:
        >>> feed = create_kline_feed("BTCUSDT", "5m", on_update=print)
        >>> feed.url
        'wss://stream.binance.com:9443/ws/btcusdt@kline_5m'
    """
    from core.config import settings

    kwargs.setdefault("base_url", settings.binance_ws_base_url)
    kwargs.setdefault("reconnect_delay", settings.price_stream_reconnect_delay)
    kwargs.setdefault("heartbeat", settings.price_stream_heartbeat)
    return BinanceKlineFeed(symbol, interval, **kwargs)
