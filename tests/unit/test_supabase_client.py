"""
Unit Tests for the Supabase RPC Client

Requests are answered by httpx.MockTransport, so no network is used.

Run with:
    pytest tests/unit/test_supabase_client.py -v
"""

import json

import httpx
import pytest

from services.supabase_client import SupabaseClient, SupabaseRPCError


def make_client(handler, url="https://project.supabase.co", key="service-key"):
    transport = httpx.MockTransport(handler)
    return SupabaseClient(url, key, client=httpx.AsyncClient(transport=transport))


class TestPlaceTournamentOrder:
    """Tests for place_tournament_order"""

    @pytest.mark.asyncio
    async def test_posts_prefixed_params_with_auth_headers(self):
        """Verify endpoint, headers and p_-prefixed body"""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"order": {"id": 7, "status": "filled"}})

        rpc = make_client(handler)
        result = await rpc.place_tournament_order(
            entry_id="entry-1",
            symbol="BTCUSDT",
            side="buy",
            size_usd=250.0,
            executed_price=50000.5,
        )
        await rpc.aclose()

        assert result == {"order": {"id": 7, "status": "filled"}}
        assert seen["url"] == "https://project.supabase.co/rest/v1/rpc/place_tournament_order"
        assert seen["headers"]["apikey"] == "service-key"
        assert seen["headers"]["authorization"] == "Bearer service-key"
        assert seen["body"] == {
            "p_entry_id": "entry-1",
            "p_symbol": "BTCUSDT",
            "p_side": "buy",
            "p_size_usd": 250.0,
            "p_executed_price": 50000.5,
        }

    @pytest.mark.asyncio
    async def test_error_status_raises_with_body(self):
        """Verify non-2xx responses raise SupabaseRPCError"""

        def handler(request):
            return httpx.Response(400, text='{"message":"entry not found"}')

        rpc = make_client(handler)
        with pytest.raises(SupabaseRPCError) as exc_info:
            await rpc.place_tournament_order("x", "BTCUSDT", "buy", 10, 1.0)
        await rpc.aclose()

        assert exc_info.value.status_code == 400
        assert "entry not found" in exc_info.value.body
        assert "Supabase RPC error: 400" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        """Verify connection failures raise SupabaseRPCError"""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        rpc = make_client(handler)
        with pytest.raises(SupabaseRPCError, match="Failed to reach Supabase"):
            await rpc.place_tournament_order("x", "BTCUSDT", "buy", 10, 1.0)
        await rpc.aclose()

    @pytest.mark.asyncio
    async def test_missing_credentials_raise(self):
        """Verify calls without URL/key fail before any request"""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        rpc = make_client(handler, url="", key="")
        with pytest.raises(SupabaseRPCError, match="not configured"):
            await rpc.place_tournament_order("x", "BTCUSDT", "buy", 10, 1.0)
        await rpc.aclose()

        assert calls == []
        assert rpc.configured is False


class TestCloseTournamentPosition:
    """Tests for close_tournament_position"""

    @pytest.mark.asyncio
    async def test_posts_close_function(self):
        """Verify the close RPC endpoint and params"""
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"position": {"pnl": 12.5}})

        rpc = make_client(handler, url="https://project.supabase.co/")
        result = await rpc.close_tournament_position("entry-1", "ETHUSDT", 3000.0)
        await rpc.aclose()

        assert result == {"position": {"pnl": 12.5}}
        assert seen["path"] == "/rest/v1/rpc/close_tournament_position"
        assert seen["body"] == {
            "p_entry_id": "entry-1",
            "p_symbol": "ETHUSDT",
            "p_executed_price": 3000.0,
        }
