"""
Supabase Remote Procedures

Tournament orders and position closes are executed inside Postgres by
Supabase RPC functions. This module is a thin httpx wrapper around
POST {SUPABASE_URL}/rest/v1/rpc/{function}.

Functions:
    - place_tournament_order(p_entry_id, p_symbol, p_side, p_size_usd, p_executed_price)
      returns jsonb {"order": {...}}
    - close_tournament_position(p_entry_id, p_symbol, p_executed_price)
      returns jsonb {"position": {...}}

Usage:
    rpc = SupabaseClient(settings.supabase_url, settings.supabase_service_key)
    result = await rpc.place_tournament_order(entry_id=..., symbol="BTCUSDT", ...)
    await rpc.aclose()
"""

from typing import Any, Dict, Optional, Union

import httpx

from core.logging import get_logger


class SupabaseRPCError(RuntimeError):
    """An RPC call failed (missing credentials, transport error, or non-2xx response)."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class SupabaseClient:
    """
    Async client for Supabase RPC functions.

    Attributes:
        url: Supabase project URL
        service_key: Service role key (sent as apikey and Bearer token)
        client: httpx.AsyncClient (injectable for tests)
    """

    PLACE_ORDER_FUNCTION = "place_tournament_order"
    CLOSE_POSITION_FUNCTION = "close_tournament_position"

    def __init__(
        self,
        url: str,
        service_key: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url.rstrip("/") if url else ""
        self.service_key = service_key
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self._logger = get_logger(__name__)

    @property
    def configured(self) -> bool:
        return bool(self.url and self.service_key)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def call(self, function: str, params: Dict[str, Any]) -> Any:
        """
        Call an RPC function and return its decoded JSON result.

        Raises:
            SupabaseRPCError: If credentials are missing, the request fails,
                              or Supabase answers with a non-2xx status
        """
        if not self.configured:
            raise SupabaseRPCError("SUPABASE_URL or SUPABASE_SERVICE_KEY is not configured")

        endpoint = f"{self.url}/rest/v1/rpc/{function}"
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }

        try:
            response = await self.client.post(endpoint, json=params, headers=headers)
        except httpx.RequestError as e:
            self._logger.error(f"Supabase RPC {function} connection error: {e}")
            raise SupabaseRPCError(f"Failed to reach Supabase: {e}") from e

        if response.is_error:
            self._logger.error(f"Supabase RPC {function} failed: {response.status_code} {response.text}")
            raise SupabaseRPCError(
                f"Supabase RPC error: {response.status_code} {response.reason_phrase} - {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        return response.json()

    async def place_tournament_order(
        self,
        entry_id: Union[int, str],
        symbol: str,
        side: str,
        size_usd: float,
        executed_price: float,
    ) -> Dict[str, Any]:
        return await self.call(
            self.PLACE_ORDER_FUNCTION,
            {
                "p_entry_id": entry_id,
                "p_symbol": symbol,
                "p_side": side,
                "p_size_usd": size_usd,
                "p_executed_price": executed_price,
            },
        )

    async def close_tournament_position(
        self,
        entry_id: Union[int, str],
        symbol: str,
        executed_price: float,
    ) -> Dict[str, Any]:
        return await self.call(
            self.CLOSE_POSITION_FUNCTION,
            {
                "p_entry_id": entry_id,
                "p_symbol": symbol,
                "p_executed_price": executed_price,
            },
        )
