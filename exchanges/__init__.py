"""
Exchange Connectors Package

This package contains individual exchange connector modules.
Each exchange has its own subfolder with:
- api_client.py: REST API logic (price lookups)
- ws_client.py: WebSocket streaming logic (upstream market-data feed)
- __init__.py: PriceProvider implementation built on the REST client

Only Binance is implemented; it backs both the "binance_com" and
"binance_us" providers.
"""
