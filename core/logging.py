"""
Unified Logging Configuration

This module sets up a centralized logging system for the entire application.
All modules should import and use the logger from this module instead of
using print() statements.

Usage:
    from core.logging import logger, get_logger

    logger.info("Server started")

    log = get_logger(__name__)
    log.debug("Detailed debugging information")

Configuration:
    Log level is controlled by the LOG_LEVEL setting in .env file (default INFO).
"""

import logging
import sys
from typing import Optional


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    include_timestamp: bool = True,
    include_module: bool = True
) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string (uses default if None)
        include_timestamp: Include timestamp in log messages
        include_module: Include module name in log messages

    Returns:
        logging.Logger: Configured logger instance

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Application started")
        2024-01-01 12:00:00 [INFO] charty: Application started
    """
    if log_format is None:
        format_parts = []

        if include_timestamp:
            format_parts.append("%(asctime)s")

        format_parts.append("[%(levelname)s]")

        if include_module:
            format_parts.append("%(name)s")

        format_parts.append("%(message)s")

        log_format = " ".join(format_parts)

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True
    )

    logger = logging.getLogger("charty")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    return logger


# ============================================
# Initialize Logger with Settings
# ============================================

try:
    from core.config import settings
    log_level = settings.log_level if hasattr(settings, 'log_level') else "INFO"
except ImportError:
    log_level = "INFO"

logger = setup_logging(log_level=log_level)


# ============================================
# Convenience Functions
# ============================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a child of the application logger for a specific module.

    Args:
        name: Name for the logger (typically __name__)

    Example:
        # In services/price_stream.py:
        logger = get_logger(__name__)  # "charty.services.price_stream"
    """
    return logging.getLogger(f"charty.{name}")


# ============================================
# Log Helper Functions
# ============================================

def log_api_request(provider: str, endpoint: str, params: dict = None) -> None:
    """
    Log an outbound API request with consistent formatting.

    Example:
        >>> log_api_request("binance_com", "/api/v3/ticker/price", {"symbol": "BTCUSDT"})
        [DEBUG] API Request: binance_com /api/v3/ticker/price | Params: {'symbol': 'BTCUSDT'}
    """
    if params:
        logger.debug(f"API Request: {provider} {endpoint} | Params: {params}")
    else:
        logger.debug(f"API Request: {provider} {endpoint}")


def log_api_response(provider: str, endpoint: str, status: int, response_time: float = None) -> None:
    """
    Log an API response with status and timing information.

    Example:
        >>> log_api_response("binance_com", "/api/v3/ticker/price", 200, 0.042)
        [DEBUG] API Response: binance_com /api/v3/ticker/price | Status: 200 | Time: 0.042s
    """
    time_str = f" | Time: {response_time:.3f}s" if response_time else ""
    logger.debug(f"API Response: {provider} {endpoint} | Status: {status}{time_str}")


def log_websocket_event(source: str, event: str, key: str = None, details: str = None) -> None:
    """
    Log a WebSocket event with consistent formatting.

    Args:
        source: Connection origin (e.g., "binance", "client")
        event: Event type (e.g., "connected", "closed", "error")
        key: Stream key (optional, e.g., "btcusdt@1m")
        details: Additional details (optional)

    Example:
        >>> log_websocket_event("binance", "connected", "btcusdt@1m")
        [INFO] WebSocket: binance connected | Stream: btcusdt@1m

        >>> log_websocket_event("binance", "error", details="Connection timeout")
        [ERROR] WebSocket: binance error | Connection timeout
    """
    key_str = f" | Stream: {key}" if key else ""
    details_str = f" | {details}" if details else ""

    level = logging.ERROR if event == "error" else logging.INFO
    logger.log(level, f"WebSocket: {source} {event}{key_str}{details_str}")


logger.debug("Logging system initialized")
