"""
Catalogue tools for the MyGo MCP server.

Provides MCP tools for cities, hotels per city, static reference lists and
the agency credit balance.
"""

import logging
import time
from typing import Any

from fastmcp import FastMCP

from mygo_mcp.clients.mygo_client import STATIC_LIST_SERVICES
from mygo_mcp.data.default_cities import default_cities
from mygo_mcp.utils.client_factory import create_mygo_client, get_cache_manager
from mygo_mcp.utils.exceptions import AppError, ValidationError, error_response
from mygo_mcp.utils.validators import validate_city_id

logger = logging.getLogger(__name__)


async def list_cities() -> dict[str, Any]:
    """
    List MyGo destination cities.

    Served from a fresh cache entry when possible; otherwise fetched from
    MyGo. When MyGo fails, a stale cached list and then a built-in list of
    Tunisian cities are returned instead of an error.

    Returns:
        Dictionary containing cities and where they came from
    """
    cache = get_cache_manager()

    if cache:
        cities = await cache.get("cities", "all")
        if cities is not None:
            logger.info("Serving cities from fresh cache", extra={"count": len(cities)})
            return {"success": True, "cities": cities, "source": "cache"}

    started = time.time()
    try:
        client = create_mygo_client()
        cities = [city.model_dump() for city in await client.list_cities()]
    except AppError as e:
        logger.warning(
            f"Failed to fetch cities from MyGo: {e.message}",
            extra={"error_code": e.code},
        )

        stale = await cache.get_stale("cities", "all") if cache else None
        if stale is not None:
            logger.warning(
                "Serving stale cached cities as fallback", extra={"count": len(stale)}
            )
            return {"success": True, "cities": stale, "source": "stale_cache"}

        fallback = default_cities()
        logger.warning(
            "No cache available, serving default Tunisian cities",
            extra={"count": len(fallback)},
        )
        return {"success": True, "cities": fallback, "source": "default"}

    logger.info(
        "Cities fetched from MyGo",
        extra={"count": len(cities), "duration_ms": (time.time() - started) * 1000},
    )
    if cache:
        await cache.set("cities", "all", cities)

    return {"success": True, "cities": cities, "source": "mygo"}


async def list_hotels(city_id: int) -> dict[str, Any]:
    """
    List MyGo hotels located in a city.

    Args:
        city_id: MyGo city identifier (positive integer)

    Returns:
        Dictionary containing hotels of the city
    """
    try:
        city_id = validate_city_id(city_id)
        cache = get_cache_manager()
        identifier = f"city-{city_id}"

        hotels = await cache.get("hotels", identifier) if cache else None
        if hotels is None:
            client = create_mygo_client()
            hotels = [hotel.model_dump() for hotel in await client.list_hotels(city_id)]
            if cache:
                await cache.set("hotels", identifier, hotels)
    except AppError as e:
        return error_response(e, city_id=city_id)

    return {"success": True, "hotels": hotels, "count": len(hotels), "city_id": city_id}


async def list_static_data(kind: str) -> dict[str, Any]:
    """
    List MyGo static reference data.

    Args:
        kind: One of countries, categories, boardings, tags, languages, currencies

    Returns:
        Dictionary containing the requested list
    """
    try:
        if kind not in STATIC_LIST_SERVICES:
            raise ValidationError(
                f"kind must be one of: {', '.join(STATIC_LIST_SERVICES)}"
            )

        cache = get_cache_manager()
        items = await cache.get("static_lists", kind) if cache else None
        if items is None:
            client = create_mygo_client()
            items = await client.list_static(kind)
            if cache:
                await cache.set("static_lists", kind, items)
    except AppError as e:
        return error_response(e, kind=kind)

    return {"success": True, "kind": kind, "items": items, "count": len(items)}


async def check_credit() -> dict[str, Any]:
    """
    Get the remaining agency deposit at MyGo.

    Returns:
        Dictionary containing the remaining deposit and its currency
    """
    try:
        client = create_mygo_client()
        credit = await client.credit_check()
    except AppError as e:
        return error_response(e)

    return {
        "success": True,
        "remaining_deposit": credit.get("RemainingDeposit"),
        "currency": credit.get("Currency"),
    }


def register_static_tools(app: FastMCP):
    """Register all catalogue MCP tools."""
    app.tool()(list_cities)
    app.tool()(list_hotels)
    app.tool()(list_static_data)
    app.tool()(check_credit)
