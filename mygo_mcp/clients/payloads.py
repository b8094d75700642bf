"""
Request payload builders for the MyGo hotel API.

Each builder returns a freshly allocated JSON-ready dict. Builders are pure:
no I/O, no shared mutable state, and no list in the output aliases a value
from the input.
"""

from collections.abc import Mapping
from typing import Any

from mygo_mcp.models.search import BookingRequest, Credential, SearchParams
from mygo_mcp.utils.exceptions import ValidationError
from mygo_mcp.utils.validators import is_positive_integer


def _require_city(city_id: Any, service_name: str) -> int:
    # A request without City is accepted upstream and fails ambiguously.
    if not is_positive_integer(city_id):
        raise ValidationError(
            f"Invalid cityId for MyGo {service_name}: {city_id!r} "
            "(City must be a positive integer)"
        )
    return int(city_id)


def build_credential_payload(credential: Credential) -> dict[str, Any]:
    return {
        "Credential": {
            "Login": credential.login,
            "Password": credential.password.get_secret_value(),
        }
    }


def build_request_payload(
    credential: Credential, params: Mapping[str, Any] | None = None
) -> dict[str, Any]:
    """
    Merge caller parameters with the credential block.

    Raises:
        ValidationError: If params already carry a Credential
    """
    params = dict(params or {})
    if "Credential" in params:
        raise ValidationError("MyGo request params must not include Credential")
    return {**build_credential_payload(credential), **params}


def build_list_city_payload(credential: Credential) -> dict[str, Any]:
    return build_credential_payload(credential)


def build_list_hotel_payload(credential: Credential, city_id: int) -> dict[str, Any]:
    return {
        **build_credential_payload(credential),
        "CityId": _require_city(city_id, "ListHotel"),
    }


def build_hotel_search_payload(
    credential: Credential, params: SearchParams
) -> dict[str, Any]:
    """
    Build the HotelSearch request body.

    Room order is preserved; the room index is used later to assign
    passengers at booking time.

    Args:
        credential: Supplier credential, embedded verbatim
        params: Validated search parameters

    Returns:
        Payload with Credential and SearchDetails blocks

    Raises:
        ValidationError: If params.city_id is not a positive integer
    """
    city = _require_city(params.city_id, "HotelSearch")

    return {
        **build_credential_payload(credential),
        "SearchDetails": {
            "City": city,
            "BookingDetails": {
                "CheckIn": params.check_in,
                "CheckOut": params.check_out,
                "Hotels": list(params.hotel_ids or ()),
            },
            "Filters": {
                "Keywords": params.keywords or "",
                "Category": list(params.categories or ()),
                "OnlyAvailable": bool(params.only_available),
                "Tags": list(params.tags or ()),
            },
            "Rooms": [
                {"Adult": room.adults, "Child": list(room.children_ages)}
                for room in params.rooms
            ],
        },
    }


def build_booking_creation_payload(
    credential: Credential, token: str, request: BookingRequest
) -> dict[str, Any]:
    if not token:
        raise ValidationError("A search token is required to create a booking")

    return {
        **build_credential_payload(credential),
        "Token": token,
        "PreBooking": request.pre_booking,
        "CustomerName": request.customer_name,
        "CustomerEmail": request.customer_email,
        "CustomerPhone": request.customer_phone,
        "RoomSelections": [
            {"HotelId": selection.hotel_id, "RoomId": selection.room_id}
            for selection in request.room_selections
        ],
    }
