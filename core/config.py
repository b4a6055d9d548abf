"""
Configuration Management Module

This module handles loading, validating, and providing access to application configuration
from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Provides type-safe access to configuration values
- Converts comma-separated strings to lists (CORS origins)
- Handles optional settings (Supabase credentials) with sensible defaults

Usage:
    from core.config import settings

    print(settings.binance_ws_base_url)
    print(settings.price_stream_reconnect_delay)
"""

from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """
    Application Settings

    Values are automatically loaded from environment variables or .env file.

    Attributes:
        binance_ws_base_url: Binance market-data WebSocket base URL
        binance_com_base_url: REST base URL for the binance_com price provider
        binance_us_base_url: REST base URL for the binance_us price provider
        price_stream_reconnect_delay: Fixed delay between upstream reconnect attempts
        price_stream_heartbeat: Upstream WebSocket ping interval
        client_queue_size: Outbound frame buffer per downstream subscriber
        supabase_url: Supabase project URL (remote procedures)
        supabase_service_key: Supabase service role key
        request_timeout: Timeout for outbound HTTP requests in seconds
        app_host: Host address for the server
        app_port: Port number for the server
        environment: Current environment (development, production)
        debug: Enable debug mode
        log_level: Logging level
        cors_origins: Comma-separated allowed CORS origins
    """

    # ============================================
    # Binance Configuration
    # ============================================

    binance_ws_base_url: str = Field(
        default="wss://stream.binance.com:9443/ws",
        description="Binance spot market-data WebSocket base URL"
    )

    binance_com_base_url: str = Field(
        default="https://api.binance.com",
        description="Binance.com REST API base URL"
    )

    binance_us_base_url: str = Field(
        default="https://api.binance.us",
        description="Binance US REST API base URL"
    )

    # ============================================
    # Price Stream Relay
    # ============================================

    price_stream_reconnect_delay: float = Field(
        default=3.0,
        description="Delay between upstream reconnection attempts (seconds)"
    )

    price_stream_heartbeat: int = Field(
        default=30,
        description="Upstream WebSocket ping interval (seconds)"
    )

    client_queue_size: int = Field(
        default=1000,
        description="Maximum buffered outbound frames per subscriber"
    )

    # ============================================
    # Supabase (tournament remote procedures)
    # ============================================

    supabase_url: str = Field(
        default="",
        description="Supabase project URL"
    )

    supabase_service_key: str = Field(
        default="",
        description="Supabase service role key"
    )

    request_timeout: int = Field(
        default=10,
        description="HTTP request timeout in seconds"
    )

    # ============================================
    # Application Configuration
    # ============================================

    app_host: str = Field(
        default="0.0.0.0",
        description="Server host address"
    )

    app_port: int = Field(
        default=3000,
        description="Server port"
    )

    environment: str = Field(
        default="development",
        description="Application environment (development, production)"
    )

    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins"
    )

    # ============================================
    # Pydantic Settings Configuration
    # ============================================

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Convert comma-separated CORS origins string to a list.

        Example:
            >>> settings.cors_origins_list
            ['*']
        """
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def has_supabase(self) -> bool:
        """True when both Supabase URL and service key are configured."""
        return bool(self.supabase_url and self.supabase_service_key)


# ============================================
# Global Settings Instance
# ============================================

settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration() -> None:
    """
    Validate critical configuration settings on application startup.

    Raises:
        ValueError: If configuration is invalid

    Missing Supabase credentials only produce a warning: the price stream
    and price lookup endpoints work without them.
    """
    # logging.py imports config.py, so we can't import at module level
    from core.logging import logger

    if not (1 <= settings.app_port <= 65535):
        raise ValueError(f"Invalid port number: {settings.app_port}. Must be between 1 and 65535")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if settings.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{settings.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    if settings.price_stream_reconnect_delay <= 0:
        raise ValueError(
            f"PRICE_STREAM_RECONNECT_DELAY must be positive, got {settings.price_stream_reconnect_delay}"
        )

    if settings.client_queue_size < 1:
        raise ValueError(f"CLIENT_QUEUE_SIZE must be at least 1, got {settings.client_queue_size}")

    if not settings.has_supabase:
        logger.warning("SUPABASE_URL or SUPABASE_SERVICE_KEY not set; tournament endpoints will fail")

    logger.info("Configuration validated successfully")
    logger.info(f"Binance stream: {settings.binance_ws_base_url}")
    logger.info(f"Upstream reconnect delay: {settings.price_stream_reconnect_delay}s")
    logger.info(f"Server: {settings.app_host}:{settings.app_port}")
    logger.info(f"Log level: {settings.log_level.upper()}")
