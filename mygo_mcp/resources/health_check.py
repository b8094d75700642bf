"""
Health check resources for the MyGo MCP server.

Provides resources for monitoring the MCP server, its configuration and the
MyGo supplier connection.
"""

import asyncio
import logging
from typing import Any

from fastmcp import FastMCP

from mygo_mcp import __version__ as VERSION
from mygo_mcp.config.settings import get_settings
from mygo_mcp.utils.client_factory import create_mygo_client, get_cache_manager

logger = logging.getLogger(__name__)


async def collect_health_status() -> dict[str, Any]:
    """
    Gather configuration, supplier client and cache health.

    Returns:
        Dictionary containing health status and detailed checks
    """
    current_settings = get_settings()
    missing = current_settings.validate_required_settings()

    client_status = create_mygo_client().get_health_status()
    cache = get_cache_manager()
    cache_status = await cache.health_check() if cache else {"status": "disabled"}

    checks = {
        "mcp_server": True,
        "configuration": not missing,
        "missing_settings": missing,
        "mygo_client": client_status,
        "cache": cache_status,
        "version": VERSION,
    }

    status = "healthy"
    if missing:
        status = "unhealthy"
    elif client_status.get("status") in ("degraded", "warning"):
        status = client_status["status"]

    return {
        "status": status,
        "checks": checks,
        "timestamp": asyncio.get_running_loop().time(),
    }


async def health_status() -> dict[str, Any]:
    """Health check resource that provides detailed status information."""
    return await collect_health_status()


async def readiness_check() -> dict[str, Any]:
    """
    Readiness check resource that indicates if the service is ready to serve requests.

    Returns:
        Dictionary indicating readiness status
    """
    missing = get_settings().validate_required_settings()
    if missing:
        return {
            "status": "not_ready",
            "reason": f"Missing required configuration: {', '.join(missing)}",
        }

    client_status = create_mygo_client().get_health_status()
    if client_status.get("status") == "degraded":
        return {"status": "not_ready", "reason": "MyGo error rate too high"}

    return {
        "status": "ready",
        "details": {
            "mygo_base_url": client_status["base_url"],
            "version": VERSION,
        },
    }


async def liveness_check() -> dict[str, Any]:
    """Liveness check resource that indicates if the service is alive."""
    return {
        "status": "alive",
        "timestamp": asyncio.get_running_loop().time(),
        "version": VERSION,
    }


def register_health_resources(app: FastMCP):
    """
    Register all health check resources with the FastMCP app.

    Args:
        app: FastMCP application instance
    """
    app.resource("health://status")(health_status)
    app.resource("health://ready")(readiness_check)
    app.resource("health://live")(liveness_check)
