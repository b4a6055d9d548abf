"""
Wire Schemas

This module defines Pydantic models for every record the service sends or receives.

Key Principle:
    Upstream Binance frames are normalized into a single Kline model before they
    reach any subscriber. Subscribers only ever see the frames defined here, all
    discriminated by a `type` field.

Models:
    Price stream frames (WebSocket /ws):
        - Kline: Normalized candlestick update ({type: "kline", ...})
        - HelloFrame: Greeting sent once on subscribe
        - SnapshotFrame: Last known Kline replayed to a new subscriber
        - StreamErrorFrame: Upstream parse errors and request validation errors

    REST bodies:
        - PriceResponse, LastBar, LastBarResponse
        - TournamentOrderRequest, ClosePositionRequest, OrderResponse, ClosePositionResponse

Serialization:
    Stream frames use camelCase on the wire (openTime, closeTime, isFinal).
    Always dump them with `frame_json()` so aliases and omitted fields are handled
    the same way everywhere.
"""

from typing import Any, Literal, Optional, Union
from pydantic import BaseModel, Field, ConfigDict


# ============================================
# Price Stream Frames
# ============================================

class Kline(BaseModel):
    """
    Normalized Candlestick Update

    One live update of the current candle for a (symbol, interval) pair, as
    received from the upstream feed. Also stored as a stream's snapshot.

    Attributes:
        symbol: Trading pair echoed by the upstream (e.g., "BTCUSDT")
        interval: Candle interval echoed by the upstream (e.g., "1m")
        open_time: Candle open time, ms since epoch (wire: openTime)
        close_time: Candle close time, ms since epoch (wire: closeTime)
        open/high/low/close: Prices
        volume: Base asset volume
        is_final: True once the candle is closed (wire: isFinal)

    Example:
        >>> Kline(symbol="BTCUSDT", interval="1m", openTime=1700000000000,
        ...       closeTime=1700000059999, open=50000.0, high=50010.0,
        ...       low=49990.0, close=50000.5, volume=12.5, isFinal=False)
    """

    type: Literal["kline"] = "kline"

    symbol: str = Field(..., description="Trading pair", examples=["BTCUSDT"])

    interval: str = Field(..., description="Candle interval", examples=["1m", "5m", "1h"])

    open_time: int = Field(..., alias="openTime", description="Candle open time (ms)")

    close_time: int = Field(..., alias="closeTime", description="Candle close time (ms)")

    open: float = Field(..., ge=0, description="Opening price")

    high: float = Field(..., ge=0, description="Highest price")

    low: float = Field(..., ge=0, description="Lowest price")

    close: float = Field(..., ge=0, description="Latest/closing price")

    volume: float = Field(..., ge=0, description="Base asset volume")

    is_final: bool = Field(..., alias="isFinal", description="True if the candle is closed")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "type": "kline",
                "symbol": "BTCUSDT",
                "interval": "1m",
                "openTime": 1700000000000,
                "closeTime": 1700000059999,
                "open": 50000.0,
                "high": 50010.0,
                "low": 49990.0,
                "close": 50000.5,
                "volume": 12.5,
                "isFinal": False
            }
        }
    )


class HelloFrame(BaseModel):
    """Greeting sent once, immediately after a client subscribes."""

    type: Literal["hello"] = "hello"
    symbol: str
    interval: str
    message: str = "Charty shared price stream connected"


class SnapshotFrame(BaseModel):
    """Last known Kline for the stream, sent to a new subscriber if one exists."""

    type: Literal["snapshot"] = "snapshot"
    data: Kline


class StreamErrorFrame(BaseModel):
    """
    Error frame sent over the price stream socket.

    `source` is set for upstream errors ("binance_parse") and left out for
    request validation errors.
    """

    type: Literal["error"] = "error"
    source: Optional[str] = None
    message: str


def frame_json(frame: BaseModel) -> str:
    """Serialize a stream frame to its wire JSON (camelCase, no null fields)."""
    return frame.model_dump_json(by_alias=True, exclude_none=True)


# ============================================
# REST Schemas
# ============================================

class PriceResponse(BaseModel):
    """Response for GET /price."""

    symbol: str
    provider: str
    price: float


class LastBar(BaseModel):
    """Latest 1m bar reduced to what stop-loss / liquidation checks need."""

    last: float = Field(..., description="Close price of the latest 1m bar")
    high: float
    low: float


class LastBarResponse(LastBar):
    """Response for GET /price/last-bar."""

    symbol: str
    provider: str


class TournamentOrderRequest(BaseModel):
    """
    Body for POST /tournament/order.

    Every field is optional at the schema level so that the route can answer
    a missing field with its own 400 error body instead of a 422.
    """

    entry_id: Optional[Union[int, str]] = None
    symbol: Optional[str] = None
    provider: Optional[str] = None
    side: Optional[str] = None
    size_usd: Optional[float] = None

    def is_complete(self) -> bool:
        return all([self.entry_id, self.symbol, self.provider, self.side, self.size_usd])


class ClosePositionRequest(BaseModel):
    """Body for POST /tournament/close."""

    entry_id: Optional[Union[int, str]] = None
    symbol: Optional[str] = None
    provider: Optional[str] = None

    def is_complete(self) -> bool:
        return all([self.entry_id, self.symbol, self.provider])


class OrderResponse(BaseModel):
    """Response for POST /tournament/order."""

    status: Literal["filled"] = "filled"
    symbol: str
    provider: str
    executed_price: float
    order: Optional[Any] = None


class ClosePositionResponse(BaseModel):
    """Response for POST /tournament/close."""

    status: Literal["closed"] = "closed"
    symbol: str
    provider: str
    executed_price: float
    position: Optional[Any] = None
