"""
MyGo supplier client.

Composes validation, payload building and the resilient transport into
named supplier operations. Every value returned from this module has had
its search-token fields removed; the token needed for booking travels only
inside a SearchSession.
"""

import logging
import math
from collections.abc import Mapping
from typing import Any

from mygo_mcp.clients.base_client import BaseAPIClient
from mygo_mcp.clients.payloads import (
    build_booking_creation_payload,
    build_credential_payload,
    build_hotel_search_payload,
    build_list_city_payload,
    build_list_hotel_payload,
    build_request_payload,
)
from mygo_mcp.config.settings import Settings
from mygo_mcp.models.common import MyGoBaseModel
from mygo_mcp.models.search import (
    BookingRequest,
    BookingResult,
    City,
    Credential,
    Hotel,
    HotelSearchResult,
    RoomResult,
    SearchParams,
)
from mygo_mcp.utils.exceptions import ExternalServiceError, ValidationError
from mygo_mcp.utils.validators import validate_city_id, validate_search_params

logger = logging.getLogger(__name__)

# Any key containing "token" (Token, SearchToken, bookingToken...) plus SearchId
SEARCH_TOKEN_MARKER = "token"
SEARCH_ID_KEY = "searchid"

# static list kind -> MyGo service (also the response list key)
STATIC_LIST_SERVICES = {
    "countries": "ListCountry",
    "categories": "ListCategorie",
    "boardings": "ListBoarding",
    "tags": "ListTag",
    "languages": "ListLanguage",
    "currencies": "ListCurrency",
}


def is_search_token_key(key: Any) -> bool:
    key_lower = str(key).lower()
    return SEARCH_TOKEN_MARKER in key_lower or key_lower == SEARCH_ID_KEY


def strip_search_tokens(value: Any) -> Any:
    """Return a copy of value with every search-token key removed, at any depth."""
    if isinstance(value, Mapping):
        return {
            key: strip_search_tokens(item)
            for key, item in value.items()
            if not is_search_token_key(key)
        }
    if isinstance(value, (list, tuple)):
        return [strip_search_tokens(item) for item in value]
    return value


def contains_search_token(value: Any) -> bool:
    if isinstance(value, Mapping):
        return any(
            is_search_token_key(key) or contains_search_token(item)
            for key, item in value.items()
        )
    if isinstance(value, (list, tuple)):
        return any(contains_search_token(item) for item in value)
    return False


def _to_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _to_int(value: Any) -> int | None:
    number = _to_number(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1")
    return False


def _text(value: Any) -> str | None:
    return str(value) if value is not None else None


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _upstream_extras(
    raw: Mapping[str, Any],
    model: type[MyGoBaseModel],
    consumed: frozenset[str] = frozenset(),
) -> dict[str, Any]:
    """
    Token-free upstream fields to keep on a result model.

    Keys named like a declared model field are dropped; the declared field
    is always filled from the normalized value.
    """
    return {
        key: value
        for key, value in strip_search_tokens(raw).items()
        if key not in model.model_fields and key not in consumed
    }


def _room_result(raw: dict[str, Any], **fields: Any) -> RoomResult:
    return RoomResult(**_upstream_extras(raw, RoomResult), **fields)


class SearchSession:
    """
    Hotels from one HotelSearch call plus the supplier token needed to book them.

    The token is only readable by MyGoClient.create_booking and is left out
    of repr() and to_dict().
    """

    __slots__ = ("hotels", "_token")

    def __init__(self, hotels: list[HotelSearchResult], token: str | None) -> None:
        self.hotels = hotels
        self._token = token or None

    @property
    def bookable(self) -> bool:
        return self._token is not None

    def to_dict(self) -> dict[str, Any]:
        return {"hotels": [hotel.model_dump() for hotel in self.hotels]}

    def __repr__(self) -> str:
        return f"SearchSession(hotels={len(self.hotels)}, bookable={self.bookable})"


def parse_hotel_search_response(
    data: Any,
) -> tuple[list[HotelSearchResult], str | None]:
    """
    Parse a HotelSearch body in either known upstream shape.

    Nested items carry ``Hotel`` and ``Price.Boarding[].Pax[].Rooms[]`` with a
    ``Token`` per item; flat items carry ``Id``/``Name``/``Available``/``Rooms``
    with an optional top-level ``SearchId`` or ``token``. Rooms of the same
    hotel are merged in order of appearance.

    Returns:
        Token-free hotel results and the first search token found, if any

    Raises:
        ExternalServiceError: If the body is not an object or carries an
            upstream ErrorMessage code
    """
    if not isinstance(data, dict):
        raise ExternalServiceError("Invalid HotelSearch response")

    error_message = _dict(data.get("ErrorMessage"))
    if error_message.get("Code"):
        raise ExternalServiceError(
            f"MyGo HotelSearch error {error_message.get('Code')}: "
            f"{error_message.get('Description')}"
        )

    items = _list(_first(data, "HotelSearch", "hotels", "Hotels"))
    token = _first(data, "SearchId", "Token", "token")
    token = str(token) if token else None

    hotels: dict[int, dict[str, Any]] = {}
    for item in items:
        if not isinstance(item, dict):
            continue

        item_token = item.get("Token")
        if not token and isinstance(item_token, str) and item_token:
            token = item_token

        if isinstance(item.get("Hotel"), dict):
            _merge_nested_item(hotels, item)
        else:
            _merge_flat_item(hotels, item)

    results = []
    for hotel in hotels.values():
        instant = any(not room.on_request for room in hotel["rooms"])
        hotel["available"] = hotel["available"] or instant
        hotel["has_instant_confirmation"] = instant
        results.append(HotelSearchResult(**hotel))

    return results, token


def _merge_nested_item(hotels: dict[int, dict[str, Any]], item: dict) -> None:
    hotel_data = item["Hotel"]
    hotel_id = _to_int(hotel_data.get("Id"))
    name = hotel_data.get("Name")
    if not hotel_id or not isinstance(name, str) or not name:
        return

    hotel = hotels.get(hotel_id)
    if hotel is None:
        category = _dict(hotel_data.get("Category"))
        city = _dict(hotel_data.get("City"))
        themes = hotel_data.get("Theme")
        hotel = {
            "id": hotel_id,
            "name": name,
            "available": False,
            "rooms": [],
            "city_id": _to_int(city.get("Id")),
            "city_name": city.get("Name") if isinstance(city.get("Name"), str) else None,
            "category_title": category.get("Title")
            if isinstance(category.get("Title"), str)
            else None,
            "star": _to_number(category.get("Star")),
            "address": hotel_data.get("Adress")
            if isinstance(hotel_data.get("Adress"), str)
            else None,
            "image": hotel_data.get("Image")
            if isinstance(hotel_data.get("Image"), str)
            else None,
            "themes": [str(theme) for theme in themes]
            if isinstance(themes, list)
            else None,
            "facilities": strip_search_tokens(hotel_data["Facilities"])
            if isinstance(hotel_data.get("Facilities"), list)
            else None,
            "note": strip_search_tokens(hotel_data.get("Note")),
        }
        hotels[hotel_id] = hotel

    price = _dict(item.get("Price"))
    for boarding in _list(price.get("Boarding")):
        if not isinstance(boarding, dict):
            continue
        for pax in _list(boarding.get("Pax")):
            if not isinstance(pax, dict):
                continue
            children = [
                age for age in (_to_int(child) for child in _list(pax.get("Child")))
                if age is not None
            ]
            for room in _list(pax.get("Rooms")):
                if not isinstance(room, dict):
                    continue
                hotel["rooms"].append(
                    _room_result(
                        room,
                        on_request=_to_bool(room.get("StopReservation")),
                        price=_to_number(room.get("Price")),
                        room_id=_to_int(room.get("Id")),
                        room_name=_text(room.get("Name")),
                        base_price=_to_number(room.get("BasePrice")),
                        price_with_markup=_to_number(
                            room.get("PriceWithAffiliateMarkup")
                        ),
                        board_code=_text(boarding.get("Code")),
                        board_name=_text(boarding.get("Name")),
                        adults=_to_int(pax.get("Adult")),
                        children_ages=children or None,
                        cancellation_policy=strip_search_tokens(
                            room["CancellationPolicy"]
                        )
                        if isinstance(room.get("CancellationPolicy"), list)
                        else None,
                    )
                )


_FLAT_HOTEL_KEYS = frozenset(
    {"Id", "id", "Name", "name", "Available", "available", "Rooms", "rooms"}
)


def _merge_flat_item(hotels: dict[int, dict[str, Any]], item: dict) -> None:
    hotel_id = _to_int(_first(item, "Id", "id"))
    name = _first(item, "Name", "name")
    if not hotel_id or not isinstance(name, str) or not name:
        return

    extra = _upstream_extras(item, HotelSearchResult, _FLAT_HOTEL_KEYS)
    hotel = hotels.setdefault(
        hotel_id,
        {**extra, "id": hotel_id, "name": name, "available": False, "rooms": []},
    )
    hotel["available"] = hotel["available"] or _to_bool(
        _first(item, "Available", "available")
    )

    for room in _list(_first(item, "Rooms", "rooms")):
        if not isinstance(room, dict):
            continue
        on_request = _first(room, "OnRequest", "onRequest", "StopReservation")
        hotel["rooms"].append(
            _room_result(
                room,
                on_request=_to_bool(on_request) if on_request is not None else False,
                price=_to_number(_first(room, "Price", "price")),
                room_id=_to_int(_first(room, "Id", "RoomId", "id")),
                room_name=_text(_first(room, "Name", "name")),
            )
        )


def parse_list_city_response(data: Any) -> list[City]:
    entries = _list(_dict(data).get("ListCity"))
    if not entries:
        raise ExternalServiceError("No ListCity elements found in ListCity response")

    cities = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        city_id = _to_int(entry.get("Id"))
        name = _text(entry.get("Name"))
        if city_id and name:
            cities.append(City(id=city_id, name=name, region=entry.get("Region") or None))
    return cities


def parse_list_hotel_response(data: Any, city_id: int) -> list[Hotel]:
    entries = _list(_dict(data).get("ListHotel"))
    if not entries:
        raise ExternalServiceError(f"ListHotel returned no hotels for cityId {city_id}")

    hotels = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        hotel_id = _to_int(entry.get("Id"))
        name = _text(entry.get("Name"))
        if not hotel_id or not name:
            continue
        # MyGo omits, nulls or zeroes CityId on some hotels
        resolved_city = _to_int(entry.get("CityId"))
        hotels.append(
            Hotel(
                id=hotel_id,
                name=name,
                city_id=resolved_city if resolved_city and resolved_city > 0 else city_id,
                star=_text(entry.get("Star")),
                category_title=_text(entry.get("CategoryTitle")),
                address=_text(entry.get("Address")),
                longitude=_text(entry.get("Longitude")),
                latitude=_text(entry.get("Latitude")),
                image=_text(entry.get("Image")),
                note=_text(entry.get("Note")),
            )
        )
    return hotels


def parse_booking_response(data: Any) -> BookingResult:
    if not isinstance(data, dict):
        raise ExternalServiceError("Invalid BookingCreation response")

    return BookingResult(
        **_upstream_extras(
            data, BookingResult, frozenset({"BookingId", "State", "TotalPrice"})
        ),
        booking_id=_to_int(data.get("BookingId")),
        state=_text(data.get("State")),
        total_price=_to_number(data.get("TotalPrice")),
    )


def filter_bookable_hotels(
    hotels: list[HotelSearchResult],
) -> list[HotelSearchResult]:
    """Keep available hotels with their instant-confirmation rooms only."""
    removed_hotels = 0
    removed_rooms = 0
    result = []
    for hotel in hotels:
        if not hotel.available:
            removed_hotels += 1
            continue
        rooms = [room for room in hotel.rooms if not room.on_request]
        removed_rooms += len(hotel.rooms) - len(rooms)
        if rooms:
            result.append(hotel.model_copy(update={"rooms": rooms}))

    logger.debug(
        "Filtered bookable hotels",
        extra={
            "total_hotels": len(hotels),
            "removed_unavailable_hotels": removed_hotels,
            "removed_on_request_rooms": removed_rooms,
        },
    )
    return result


def filter_visible_hotels(
    hotels: list[HotelSearchResult],
) -> list[HotelSearchResult]:
    """Drop rooms without a price and recompute instant confirmation."""
    result = []
    for hotel in hotels:
        rooms = [room for room in hotel.rooms if room.price is not None]
        result.append(
            hotel.model_copy(
                update={
                    "rooms": rooms,
                    "has_instant_confirmation": any(
                        not room.on_request for room in rooms
                    ),
                }
            )
        )
    return result


class MyGoClient(BaseAPIClient):
    """
    Client for the MyGo hotel supplier API.

    Provides hotel search, catalogue lookups and booking operations.
    Validation and transport errors propagate unchanged; nothing is
    returned partially.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        credential: Credential | None = None,
        enable_monitoring: bool = True,
    ) -> None:
        super().__init__(settings=settings, enable_monitoring=enable_monitoring)
        self.credential = credential or self.settings.get_credential()

    async def start_search(
        self, params: Mapping[str, Any] | SearchParams
    ) -> SearchSession:
        """
        Search hotels and keep the supplier token for a later booking.

        Args:
            params: Raw camelCase search parameters or SearchParams

        Returns:
            SearchSession holding token-free results
        """
        search_params = validate_search_params(params)
        payload = build_hotel_search_payload(self.credential, search_params)
        logger.debug(
            "Submitting hotel search",
            extra={"city": payload["SearchDetails"]["City"]},
        )
        data = await self.post("HotelSearch", payload)
        hotels, token = parse_hotel_search_response(data)
        return SearchSession(hotels, token)

    async def search_hotels(
        self, params: Mapping[str, Any] | SearchParams
    ) -> list[HotelSearchResult]:
        session = await self.start_search(params)
        return session.hotels

    async def create_booking(
        self, session: SearchSession, request: BookingRequest
    ) -> BookingResult:
        """
        Create a booking from rooms found in a search session.

        Booking creation is not idempotent and is attempted exactly once.

        Raises:
            ValidationError: If the session carries no search token
        """
        if not session.bookable:
            raise ValidationError("Search session has no token; search again to book")

        payload = build_booking_creation_payload(
            self.credential, session._token, request
        )
        data = await self.post("BookingCreation", payload, idempotent=False)
        return parse_booking_response(data)

    async def list_cities(self) -> list[City]:
        data = await self.post("ListCity", build_list_city_payload(self.credential))
        return parse_list_city_response(data)

    async def list_hotels(self, city_id: Any) -> list[Hotel]:
        city_id = validate_city_id(city_id)
        data = await self.post(
            "ListHotel", build_list_hotel_payload(self.credential, city_id)
        )
        return parse_list_hotel_response(data, city_id)

    async def _list_static(self, service_name: str) -> list[dict[str, Any]]:
        data = await self.post(service_name, build_credential_payload(self.credential))
        entries = _dict(data).get(service_name)
        if not isinstance(entries, list):
            raise ExternalServiceError(f"Missing {service_name} in response")
        return strip_search_tokens(entries)

    async def list_static(self, kind: str) -> list[dict[str, Any]]:
        """
        Fetch one static reference list.

        Args:
            kind: One of countries, categories, boardings, tags, languages, currencies
        """
        service_name = STATIC_LIST_SERVICES.get(kind)
        if service_name is None:
            raise ValidationError(
                f"Unknown static list '{kind}'. "
                f"Expected one of: {', '.join(STATIC_LIST_SERVICES)}"
            )
        return await self._list_static(service_name)

    async def list_countries(self) -> list[dict[str, Any]]:
        return await self._list_static("ListCountry")

    async def list_categories(self) -> list[dict[str, Any]]:
        return await self._list_static("ListCategorie")

    async def list_boardings(self) -> list[dict[str, Any]]:
        return await self._list_static("ListBoarding")

    async def list_tags(self) -> list[dict[str, Any]]:
        return await self._list_static("ListTag")

    async def list_languages(self) -> list[dict[str, Any]]:
        return await self._list_static("ListLanguage")

    async def list_currencies(self) -> list[dict[str, Any]]:
        return await self._list_static("ListCurrency")

    async def credit_check(self) -> dict[str, Any]:
        """Remaining agency deposit, e.g. {"RemainingDeposit": 1200.0, "Currency": "TND"}."""
        data = await self.post("CreditCheck", build_credential_payload(self.credential))
        return strip_search_tokens(_dict(data))

    async def _call(
        self,
        service_name: str,
        params: Mapping[str, Any] | None,
        idempotent: bool = True,
    ) -> dict[str, Any]:
        payload = build_request_payload(self.credential, params)
        data = await self.post(service_name, payload, idempotent=idempotent)
        return strip_search_tokens(_dict(data))

    async def hotel_detail(self, params: Mapping[str, Any]) -> dict[str, Any]:
        return await self._call("HotelDetail", params)

    async def hotel_cancellation_policy(
        self, params: Mapping[str, Any]
    ) -> dict[str, Any]:
        return await self._call("HotelCancellationPolicy", params)

    async def booking_cancellation(self, params: Mapping[str, Any]) -> dict[str, Any]:
        return await self._call("BookingCancellation", params, idempotent=False)

    async def booking_list(self, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        return await self._call("BookingList", params)

    async def booking_details(self, params: Mapping[str, Any]) -> dict[str, Any]:
        return await self._call("BookingDetails", params)
