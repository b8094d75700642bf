"""
Booking tools for the MyGo MCP server.

Booking creation searches and books within a single call, so the supplier
search token is never handed to the MCP client.
"""

import logging
from typing import Any

import pydantic
from fastmcp import FastMCP

from mygo_mcp.models.search import BookingRequest
from mygo_mcp.tools.search_tools import build_search_request
from mygo_mcp.utils.client_factory import create_mygo_client, get_cache_manager
from mygo_mcp.utils.exceptions import AppError, ValidationError, error_response
from mygo_mcp.utils.validators import (
    is_positive_integer,
    validate_date_string,
    validate_required_fields,
)

logger = logging.getLogger(__name__)


async def invalidate_cached_availability() -> None:
    """Drop cached searches once a booking or cancellation changes inventory."""
    cache = get_cache_manager()
    if cache:
        await cache.invalidate("hotel_search")


def build_booking_request(
    customer_name: str,
    customer_email: str,
    customer_phone: str,
    room_selections: list[dict[str, Any]],
    pre_booking: bool = True,
) -> BookingRequest:
    """
    Validate booking details into a BookingRequest.

    Raises:
        ValidationError: If customer fields are empty or selections malformed
    """
    validate_required_fields(
        {
            "customer_name": customer_name.strip(),
            "customer_email": customer_email.strip(),
            "customer_phone": customer_phone.strip(),
        },
        ["customer_name", "customer_email", "customer_phone"],
    )

    if not room_selections:
        raise ValidationError("room_selections must contain at least one room")

    for selection in room_selections:
        if not isinstance(selection, dict) or not all(
            is_positive_integer(selection.get(key)) for key in ("hotelId", "roomId")
        ):
            raise ValidationError(
                "Each room selection needs positive integer hotelId and roomId"
            )

    try:
        return BookingRequest(
            preBooking=pre_booking,
            customerName=customer_name.strip(),
            customerEmail=customer_email.strip(),
            customerPhone=customer_phone.strip(),
            roomSelections=room_selections,
        )
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid booking request: {e.errors()[0]['msg']}") from e


async def book_hotel(
    city_id: int,
    check_in: str,
    check_out: str,
    rooms: list[dict[str, Any]],
    customer_name: str,
    customer_email: str,
    customer_phone: str,
    room_selections: list[dict[str, Any]],
    pre_booking: bool = True,
    currency: str | None = None,
) -> dict[str, Any]:
    """
    Book rooms at MyGo.

    Availability is searched again for the given stay and the selected
    rooms are booked from that fresh result.

    Args:
        city_id: MyGo city identifier
        check_in: Check-in date in YYYY-MM-DD format
        check_out: Check-out date in YYYY-MM-DD format
        rooms: Room occupancy, in the same order as the original search
        customer_name: Lead customer full name
        customer_email: Lead customer email
        customer_phone: Lead customer phone number
        room_selections: Rooms to book, e.g. [{"hotelId": 12, "roomId": 345}]
        pre_booking: Hold the booking without confirming it
        currency: TND, EUR or USD

    Returns:
        Dictionary containing the booking id, state and total price
    """
    try:
        request = build_booking_request(
            customer_name,
            customer_email,
            customer_phone,
            room_selections,
            pre_booking=pre_booking,
        )

        client = create_mygo_client()
        session = await client.start_search(
            build_search_request(
                city_id,
                check_in,
                check_out,
                rooms,
                hotel_ids=sorted({s.hotel_id for s in request.room_selections}),
                currency=currency,
            )
        )

        offered = {
            (hotel.id, room.room_id)
            for hotel in session.hotels
            for room in hotel.rooms
            if not room.on_request
        }
        missing = [
            s for s in request.room_selections if (s.hotel_id, s.room_id) not in offered
        ]
        if missing:
            raise ValidationError(
                "Selected rooms are no longer available: "
                + ", ".join(f"hotel {s.hotel_id} room {s.room_id}" for s in missing)
            )

        booking = await client.create_booking(session, request)
    except AppError as e:
        return error_response(e)

    await invalidate_cached_availability()

    logger.info(
        "MyGo booking created",
        extra={"booking_id": booking.booking_id, "state": booking.state},
    )
    return {"success": True, "booking": booking.model_dump(mode="json")}


async def list_bookings(
    from_check_in: str | None = None,
    to_check_in: str | None = None,
    from_check_out: str | None = None,
    to_check_out: str | None = None,
    page: int = 1,
    count_per_page: int = 20,
) -> dict[str, Any]:
    """
    List bookings made with the agency account.

    Args:
        from_check_in: Earliest check-in date (YYYY-MM-DD)
        to_check_in: Latest check-in date (YYYY-MM-DD)
        from_check_out: Earliest check-out date (YYYY-MM-DD)
        to_check_out: Latest check-out date (YYYY-MM-DD)
        page: Page number starting at 1
        count_per_page: Results per page (1-100)

    Returns:
        Dictionary containing the MyGo booking list
    """
    try:
        if page < 1:
            raise ValidationError("page must be a positive integer")
        if count_per_page < 1 or count_per_page > 100:
            raise ValidationError("count_per_page must be between 1 and 100")

        filters: dict[str, Any] = {"page": page, "countPerPage": count_per_page}
        dates = {
            "fromCheckIn": from_check_in,
            "toCheckIn": to_check_in,
            "fromCheckOut": from_check_out,
            "toCheckOut": to_check_out,
        }
        for key, value in dates.items():
            if value is not None:
                validate_date_string(value, key)
                filters[key] = value

        client = create_mygo_client()
        bookings = await client.booking_list(filters)
    except AppError as e:
        return error_response(e)

    return {"success": True, "bookings": bookings, "filters": filters}


async def get_booking(booking_id: int) -> dict[str, Any]:
    """
    Get MyGo details of a booking.

    Args:
        booking_id: MyGo booking identifier

    Returns:
        Dictionary containing booking details
    """
    try:
        if not is_positive_integer(booking_id):
            raise ValidationError("booking_id must be a positive integer")

        client = create_mygo_client()
        booking = await client.booking_details({"booking": int(booking_id)})
    except AppError as e:
        return error_response(e, booking_id=booking_id)

    return {"success": True, "booking": booking, "booking_id": booking_id}


async def cancel_booking(
    booking_id: int,
    pre_cancelled: bool = True,
    currency: str = "TND",
) -> dict[str, Any]:
    """
    Cancel a MyGo booking.

    With pre_cancelled=True MyGo only quotes the cancellation fee. The call
    is attempted once and never retried.

    Args:
        booking_id: MyGo booking identifier
        pre_cancelled: Quote only instead of cancelling
        currency: Currency of the fee quote

    Returns:
        Dictionary containing the cancellation outcome
    """
    try:
        if not is_positive_integer(booking_id):
            raise ValidationError("booking_id must be a positive integer")

        client = create_mygo_client()
        result = await client.booking_cancellation(
            {
                "booking": int(booking_id),
                "preCancelled": pre_cancelled,
                "currency": currency,
            }
        )
    except AppError as e:
        return error_response(e, booking_id=booking_id)

    if not pre_cancelled:
        await invalidate_cached_availability()

    logger.info(
        "MyGo booking cancellation submitted",
        extra={"booking_id": booking_id, "pre_cancelled": pre_cancelled},
    )
    return {"success": True, "cancellation": result, "booking_id": booking_id}


def register_booking_tools(app: FastMCP):
    """Register all booking MCP tools."""
    app.tool()(book_hotel)
    app.tool()(list_bookings)
    app.tool()(get_booking)
    app.tool()(cancel_booking)
