"""
Client Sessions for the Shared Price Stream

A client session is the downstream end of a price stream: one subscriber
socket. The relay only needs two things from it:

    - send_text(data): never blocks, never raises, silently does nothing
      when the socket can no longer be written to
    - on_close(callback): the callback fires exactly once, when the socket
      closes or errors

WebSocketClientSession adapts a FastAPI WebSocket to that contract. Each
session gets its own bounded asyncio.Queue; a writer task drains it in order,
so a slow client delays only itself. Frames that do not fit are dropped.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from core.logging import get_logger


class ClientHandle(ABC):
    """Downstream subscriber as seen by a PriceStream."""

    @abstractmethod
    def send_text(self, data: str) -> None:
        """Queue one text frame. No-op if the client is not writable."""

    @abstractmethod
    def on_close(self, callback: Callable[[], None]) -> None:
        """Register a callback fired once when the client closes or errors."""


class WebSocketClientSession(ClientHandle):
    """
    FastAPI WebSocket subscriber.

    Usage (inside a WebSocket route, after accept()):
        session = WebSocketClientSession(websocket)
        registry.subscribe(session, symbol, interval)
        await session.run()   # returns once the client is gone
    """

    def __init__(self, websocket: WebSocket, max_queue_size: int = 1000) -> None:
        self.websocket = websocket
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._callbacks: List[Callable[[], None]] = []
        self._closed = False
        self._writer: Optional[asyncio.Task] = None
        self._logger = get_logger(__name__)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def writable(self) -> bool:
        return (
            not self._closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def send_text(self, data: str) -> None:
        if not self.writable:
            return
        try:
            self._queue.put_nowait(data)
        except asyncio.QueueFull:
            self._logger.warning("Dropping frame for slow client: outbound queue full")

    def on_close(self, callback: Callable[[], None]) -> None:
        if self._closed:
            callback()
            return
        self._callbacks.append(callback)

    async def run(self) -> None:
        """
        Pump queued frames to the socket until the client disconnects.

        Incoming client messages are read and ignored; reading is how the
        disconnect is detected.
        """
        self._writer = asyncio.create_task(self._write_loop(), name="client-writer")
        try:
            while True:
                message = await self.websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        except WebSocketDisconnect:
            pass
        except Exception as e:
            self._logger.error(f"Client socket error: {e}")
        finally:
            # Detach before awaiting so cancellation cannot skip it
            self._notify_closed()
            self._writer.cancel()
            await asyncio.gather(self._writer, return_exceptions=True)

    async def _write_loop(self) -> None:
        while True:
            data = await self._queue.get()
            try:
                await self.websocket.send_text(data)
            except Exception as e:
                # Removal happens only through the close notification
                self._logger.debug(f"Send to client failed: {e}")

    def _notify_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                self._logger.error(f"Close callback failed: {e}")
