"""
FastAPI Application - Charty Tournament Backend

Provides price lookup and simulated tournament orders over HTTP, and a shared
live kline feed over WebSocket.

Features:
    - Last price / last 1m bar from Binance.com or Binance US
    - Tournament order placement and position close via Supabase RPC
    - Shared price stream: one upstream Binance connection per (symbol, interval),
      fanned out to every subscribed client

Usage:
    uvicorn app.main:app --reload --host 0.0.0.0 --port 3000

WebSocket:
    ws://{host}/ws?symbol=btcusdt&interval=1m

    Frames (JSON, discriminated by "type"):
        hello     once, right after connecting
        snapshot  once, if the stream already has a kline
        kline     every upstream update
        error     upstream parse failure, or missing query params (then closed)
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, Query, Request, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import settings, validate_configuration
from core.logging import logger
from core.provider_manager import ProviderManager
from core.schemas import (
    ClosePositionRequest,
    ClosePositionResponse,
    LastBarResponse,
    OrderResponse,
    PriceResponse,
    StreamErrorFrame,
    TournamentOrderRequest,
    frame_json,
)
from services.client_session import WebSocketClientSession
from services.price_stream import PriceStreamRegistry
from services.supabase_client import SupabaseClient


router = APIRouter()


def _error(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    content = {"error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _rpc_field(result, field: str):
    """Pull one field out of an RPC result; null results carry nothing."""
    if result is None:
        return None
    if not isinstance(result, dict):
        raise TypeError(f"Unexpected RPC result: {type(result).__name__}")
    return result.get(field)


# ============================================
# System Endpoints
# ============================================

@router.get("/health", tags=["System"])
async def health_check(request: Request):
    """Liveness check plus a view of the active price streams."""
    registry: PriceStreamRegistry = request.app.state.price_streams
    return {
        "status": "ok",
        "streams": {key: stats.model_dump() for key, stats in registry.stats().items()},
    }


# ============================================
# Price Endpoints
# ============================================

@router.get("/price", response_model=PriceResponse, tags=["Price"])
async def get_price(
    request: Request,
    symbol: str = Query("BTCUSDT", description="Trading pair"),
    provider: str = Query("binance_com", description="Price provider (binance_com, binance_us)"),
):
    """
    Last traded price from a provider.

    Example:
        GET /price?symbol=ETHUSDT&provider=binance_us
    """
    providers: ProviderManager = request.app.state.providers
    if not providers.has_provider(provider):
        return _error(400, "Unknown provider")

    try:
        price = await providers.get_provider(provider).get_last_price(symbol)
    except Exception as e:
        logger.error(f"Price lookup failed ({provider} {symbol}): {e}")
        return _error(500, str(e))

    return PriceResponse(symbol=symbol, provider=provider, price=price)


@router.get("/price/last-bar", response_model=LastBarResponse, tags=["Price"])
async def get_last_bar(
    request: Request,
    symbol: str = Query("BTCUSDT", description="Trading pair"),
    provider: str = Query("binance_com", description="Price provider (binance_com, binance_us)"),
):
    """Latest 1m bar (last/high/low), as used for stop-loss and liquidation checks."""
    providers: ProviderManager = request.app.state.providers
    if not providers.has_provider(provider):
        return _error(400, "Unknown provider")

    try:
        bar = await providers.get_provider(provider).get_last_bar_1m(symbol)
    except Exception as e:
        logger.error(f"Last bar lookup failed ({provider} {symbol}): {e}")
        return _error(500, str(e))

    return LastBarResponse(symbol=symbol, provider=provider, **bar.model_dump())


# ============================================
# Tournament Endpoints
# ============================================

@router.post("/tournament/order", response_model=OrderResponse, tags=["Tournament"])
async def place_tournament_order(body: TournamentOrderRequest, request: Request):
    """
    Fill a simulated tournament order at the provider's current price.

    Steps:
        1) validate the body
        2) fetch the market price from the provider
        3) record the order through the place_tournament_order RPC
    """
    if not body.is_complete():
        return _error(400, "Missing required fields")

    providers: ProviderManager = request.app.state.providers
    if not providers.has_provider(body.provider):
        return _error(400, f"Unknown provider: {body.provider}")

    try:
        executed_price = await providers.get_provider(body.provider).get_last_price(body.symbol)
        result = await request.app.state.rpc.place_tournament_order(
            entry_id=body.entry_id,
            symbol=body.symbol,
            side=body.side,
            size_usd=body.size_usd,
            executed_price=executed_price,
        )
        order = _rpc_field(result, "order")
    except Exception as e:
        logger.error(f"Tournament order failed: {e}")
        return _error(500, "Internal error", str(e))

    return OrderResponse(
        symbol=body.symbol,
        provider=body.provider,
        executed_price=executed_price,
        order=order,
    )


@router.post("/tournament/close", response_model=ClosePositionResponse, tags=["Tournament"])
async def close_tournament_position(body: ClosePositionRequest, request: Request):
    """Close a tournament position at the provider's current price."""
    if not body.is_complete():
        return _error(400, "Missing required fields")

    providers: ProviderManager = request.app.state.providers
    if not providers.has_provider(body.provider):
        return _error(400, f"Unknown provider: {body.provider}")

    try:
        executed_price = await providers.get_provider(body.provider).get_last_price(body.symbol)
        result = await request.app.state.rpc.close_tournament_position(
            entry_id=body.entry_id,
            symbol=body.symbol,
            executed_price=executed_price,
        )
        position = _rpc_field(result, "position")
    except Exception as e:
        logger.error(f"Tournament close failed: {e}")
        return _error(500, "Internal error", str(e))

    return ClosePositionResponse(
        symbol=body.symbol,
        provider=body.provider,
        executed_price=executed_price,
        position=position,
    )


# ============================================
# WebSocket Price Stream
# ============================================

@router.websocket("/ws")
async def price_stream_ws(
    websocket: WebSocket,
    symbol: Optional[str] = Query(None),
    interval: Optional[str] = Query(None),
):
    """
    Shared live kline stream.

    Example:
        ws://localhost:3000/ws?symbol=btcusdt&interval=1m
    """
    await websocket.accept()

    if not (symbol or "").strip() or not (interval or "").strip():
        error = StreamErrorFrame(message="symbol and interval query params are required")
        await websocket.send_text(frame_json(error))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    logger.info(f"WS new client: symbol={symbol} interval={interval}")

    registry: PriceStreamRegistry = websocket.app.state.price_streams
    session = WebSocketClientSession(websocket, max_queue_size=settings.client_queue_size)
    registry.subscribe(session, symbol, interval)

    await session.run()
    logger.info(f"WS ended: symbol={symbol} interval={interval}")


# ============================================
# Application Factory
# ============================================

def create_app(
    registry: Optional[PriceStreamRegistry] = None,
    providers: Optional[ProviderManager] = None,
    rpc: Optional[SupabaseClient] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Collaborators that are not passed in are constructed at startup from
    settings and shut down at exit.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=== Application Starting ===")
        validate_configuration()

        app.state.price_streams = registry if registry is not None else PriceStreamRegistry()
        app.state.providers = providers if providers is not None else ProviderManager()
        app.state.rpc = rpc if rpc is not None else SupabaseClient(
            settings.supabase_url,
            settings.supabase_service_key,
            timeout=settings.request_timeout,
        )
        await app.state.providers.initialize_all()
        logger.info("=== Started Successfully ===")

        yield

        logger.info("=== Shutting Down ===")
        try:
            await app.state.price_streams.close_all()
        except Exception as e:
            logger.error(f"Error closing price streams: {e}")
        await app.state.providers.shutdown_all()
        try:
            await app.state.rpc.aclose()
        except Exception as e:
            logger.error(f"Error closing Supabase client: {e}")
        logger.info("=== Shutdown Complete ===")

    application = FastAPI(
        title="Charty Tournament Backend",
        description=(
            "Price lookup, simulated tournament orders, and a shared live price stream.\n\n"
            "## REST Endpoints\n"
            "- `GET /health` - Health check and active streams\n"
            "- `GET /price` - Last price (`?symbol=BTCUSDT&provider=binance_com`)\n"
            "- `GET /price/last-bar` - Latest 1m bar (last/high/low)\n"
            "- `POST /tournament/order` - Place a tournament order\n"
            "- `POST /tournament/close` - Close a tournament position\n\n"
            "## WebSocket\n"
            "- `ws://{host}/ws?symbol=btcusdt&interval=1m` - Shared kline stream"
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)

    @application.exception_handler(404)
    async def not_found_handler(request, exc):
        return JSONResponse(status_code=404, content={"detail": "Not found", "path": str(request.url)})

    @application.exception_handler(500)
    async def internal_error_handler(request, exc):
        logger.error(f"Internal error: {exc}")
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return application


app = create_app()
