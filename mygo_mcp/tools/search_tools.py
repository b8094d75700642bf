"""
Hotel search tools for the MyGo MCP server.

Provides MCP tools for availability search, hotel details and cancellation
policies. Search results never include the supplier search token.
"""

import logging
from typing import Any

from fastmcp import FastMCP

from mygo_mcp.clients.mygo_client import filter_bookable_hotels, filter_visible_hotels
from mygo_mcp.models.search import HotelSearchResult
from mygo_mcp.utils.client_factory import create_mygo_client, get_cache_manager
from mygo_mcp.utils.exceptions import AppError, ValidationError, error_response
from mygo_mcp.utils.validators import (
    is_positive_integer,
    validate_date_string,
    validate_search_params,
)

logger = logging.getLogger(__name__)


def build_search_request(
    city_id: int,
    check_in: str,
    check_out: str,
    rooms: list[dict[str, Any]],
    hotel_ids: list[int] | None = None,
    only_available: bool | None = None,
    currency: str | None = None,
    keywords: str | None = None,
    categories: list[str] | None = None,
    tags: list[str] | None = None,
) -> dict[str, Any]:
    """Assemble the camelCase search request understood by the validator."""
    raw: dict[str, Any] = {
        "cityId": city_id,
        "checkIn": check_in,
        "checkOut": check_out,
        "rooms": rooms,
    }
    optional = {
        "hotelIds": hotel_ids,
        "onlyAvailable": only_available,
        "currency": currency,
        "keywords": keywords,
        "categories": categories,
        "tags": tags,
    }
    raw.update({key: value for key, value in optional.items() if value is not None})
    return raw


async def search_hotels(
    city_id: int,
    check_in: str,
    check_out: str,
    rooms: list[dict[str, Any]],
    hotel_ids: list[int] | None = None,
    only_available: bool | None = None,
    currency: str | None = None,
    keywords: str | None = None,
    categories: list[str] | None = None,
    tags: list[str] | None = None,
    bookable_only: bool = False,
) -> dict[str, Any]:
    """
    Search MyGo hotel availability for a city and stay.

    Args:
        city_id: MyGo city identifier (positive integer)
        check_in: Check-in date in YYYY-MM-DD format
        check_out: Check-out date in YYYY-MM-DD format
        rooms: Requested rooms, e.g. [{"adults": 2, "childrenAges": [5]}]
        hotel_ids: Restrict the search to these hotels
        only_available: Ask MyGo for available hotels only
        currency: TND, EUR or USD
        keywords: Free-text hotel filter
        categories: Category filters
        tags: Tag filters
        bookable_only: Keep only instantly confirmable rooms

    Returns:
        Dictionary containing hotels with priced rooms
    """
    try:
        params = validate_search_params(
            build_search_request(
                city_id,
                check_in,
                check_out,
                rooms,
                hotel_ids=hotel_ids,
                only_available=only_available,
                currency=currency,
                keywords=keywords,
                categories=categories,
                tags=tags,
            )
        )
        cache = get_cache_manager()
        cache_params = params.model_dump(by_alias=True, mode="json")

        hotels = None
        if cache:
            hotels = await cache.get("hotel_search", "search", cache_params)
        cached = hotels is not None

        if cached:
            logger.info(
                "Serving hotel search from cache",
                extra={"city_id": params.city_id, "count": len(hotels)},
            )
        else:
            client = create_mygo_client()
            results = filter_visible_hotels(await client.search_hotels(params))
            hotels = [hotel.model_dump(mode="json") for hotel in results]
            if cache:
                await cache.set("hotel_search", "search", hotels, cache_params)

        if bookable_only:
            hotels = [
                hotel.model_dump(mode="json")
                for hotel in filter_bookable_hotels(
                    [HotelSearchResult(**hotel) for hotel in hotels]
                )
            ]
    except AppError as e:
        return error_response(e, city_id=city_id)

    return {
        "success": True,
        "hotels": hotels,
        "count": len(hotels),
        "city_id": params.city_id,
        "check_in": params.check_in,
        "check_out": params.check_out,
        "cached": cached,
    }


async def get_hotel_detail(hotel_id: int, currency: str | None = None) -> dict[str, Any]:
    """
    Get descriptive details for one hotel.

    Args:
        hotel_id: MyGo hotel identifier
        currency: Optional price currency (TND, EUR, USD)

    Returns:
        Dictionary containing hotel details
    """
    try:
        if not is_positive_integer(hotel_id):
            raise ValidationError("hotel_id must be a positive integer")

        request: dict[str, Any] = {"hotelId": int(hotel_id)}
        if currency:
            request["currency"] = currency

        client = create_mygo_client()
        hotel = await client.hotel_detail(request)
    except AppError as e:
        return error_response(e, hotel_id=hotel_id)

    return {"success": True, "hotel": hotel, "hotel_id": hotel_id}


async def get_cancellation_policy(
    hotel_id: int,
    check_in: str,
    check_out: str,
    currency: str | None = None,
) -> dict[str, Any]:
    """
    Get the cancellation policy of a hotel for a stay.

    Args:
        hotel_id: MyGo hotel identifier
        check_in: Check-in date in YYYY-MM-DD format
        check_out: Check-out date in YYYY-MM-DD format
        currency: Optional fee currency

    Returns:
        Dictionary containing cancellation policies
    """
    try:
        if not is_positive_integer(hotel_id):
            raise ValidationError("hotel_id must be a positive integer")
        if validate_date_string(check_out, "checkOut") <= validate_date_string(
            check_in, "checkIn"
        ):
            raise ValidationError("checkOut must be after checkIn")

        request: dict[str, Any] = {
            "hotelId": int(hotel_id),
            "checkIn": check_in,
            "checkOut": check_out,
        }
        if currency:
            request["currency"] = currency

        client = create_mygo_client()
        policy = await client.hotel_cancellation_policy(request)
    except AppError as e:
        return error_response(e, hotel_id=hotel_id)

    return {"success": True, "cancellation_policy": policy, "hotel_id": hotel_id}


def register_search_tools(app: FastMCP):
    """Register all hotel search MCP tools."""
    app.tool()(search_hotels)
    app.tool()(get_hotel_detail)
    app.tool()(get_cancellation_policy)
