"""
Main entry point for the MyGo MCP server.

This module sets up the FastMCP server with the hotel search, catalogue and
booking tools backed by the MyGo supplier API.
"""

import asyncio
import json
import logging
import sys
from typing import Any

from fastmcp import FastMCP

from mygo_mcp import __version__ as VERSION
from mygo_mcp.config.settings import Settings, get_settings
from mygo_mcp.resources.health_check import (
    collect_health_status,
    register_health_resources,
)
from mygo_mcp.tools.booking_tools import register_booking_tools
from mygo_mcp.tools.search_tools import register_search_tools
from mygo_mcp.tools.static_tools import register_static_tools
from mygo_mcp.utils.client_factory import close_clients, get_cache_manager
from mygo_mcp.utils.exceptions import ConfigurationError

# LogRecord attributes that are not user supplied ``extra`` fields
_RESERVED_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys() | {"message", "asctime"}
)


class JSONFormatter(logging.Formatter):
    """Render log records, including their ``extra`` fields, as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for key, value in vars(record).items():
            if key not in _RESERVED_RECORD_ATTRS and not key.startswith("_"):
                log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(settings: Settings) -> None:
    """Setup logging configuration."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.enable_structured_logging:
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        logging.root.handlers = [handler]
    else:
        logging.basicConfig(level=level, format=settings.log_format)

    logging.getLogger().setLevel(level)
    # httpx logs every request URL at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)

# Initialize FastMCP app
app = FastMCP(
    name="mygo-mcp",
    version=VERSION,
)


async def health_check() -> dict[str, Any]:
    """
    Perform a health check of the MCP server and its MyGo connection.

    Returns:
        Dictionary containing configuration, supplier client and cache status
    """
    return await collect_health_status()


async def get_server_info() -> dict[str, Any]:
    """
    Get server information and configuration details.

    Returns:
        Dictionary containing server information
    """
    current_settings = get_settings()
    return {
        "name": app.name,
        "version": VERSION,
        "description": "MCP server for the MyGo hotel supplier API",
        "mygo_base_url": current_settings.base_url,
        "mygo_environment": current_settings.environment,
        "request_timeout": current_settings.request_timeout,
        "max_attempts": current_settings.max_attempts,
        "cache_enabled": current_settings.enable_cache,
    }


def register_tools(server: FastMCP) -> None:
    """Register every MyGo tool and resource on the server."""
    server.tool()(health_check)
    server.tool()(get_server_info)

    register_search_tools(server)
    logger.info("Hotel search tools registered successfully")

    register_static_tools(server)
    logger.info("Catalogue tools registered successfully")

    register_booking_tools(server)
    logger.info("Booking tools registered successfully")

    register_health_resources(server)
    logger.info("Health check resources registered successfully")


async def initialize_server() -> None:
    """Initialize server components."""
    current_settings = get_settings()
    logger.info("Initializing MyGo MCP server...")
    logger.info(f"Version: {VERSION}")
    logger.info(f"Environment: {current_settings.environment}")

    missing_settings = current_settings.validate_required_settings()
    if missing_settings:
        error_msg = (
            f"Missing required environment variables: {', '.join(missing_settings)}"
        )
        logger.error(error_msg)
        raise ConfigurationError(error_msg)

    logger.info("Configuration validated successfully")

    logger.info("Registering MCP tools...")
    register_tools(app)

    cache = get_cache_manager(current_settings)
    if cache:
        await cache.start_background_tasks()

    logger.info("Server initialization completed successfully")


async def main() -> None:
    """Main entry point for the MCP server."""
    try:
        setup_logging(get_settings())

        await initialize_server()

        logger.info("Starting FastMCP server...")
        await app.run_async()

    except KeyboardInterrupt:
        logger.info("Server shutdown requested")

    except ConfigurationError as e:
        logger.error(f"Server startup failed: {e}")
        sys.exit(1)

    except Exception as e:
        logger.error(f"Unexpected server error: {e}", exc_info=True)
        sys.exit(1)

    finally:
        await close_clients()
        logger.info("Server shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
