"""
Input validation utilities for the MyGo supplier client.

Search parameters are normalized and rejected here, before any request is
built. The supplier API silently drops a missing City and answers with an
ambiguous error, so the cityId rule is the one check that must never be
skipped.
"""

import math
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from typing import Any

from mygo_mcp.models.search import Currency, Room, SearchParams
from mygo_mcp.utils.exceptions import ValidationError

MAX_ROOMS = 10
MAX_ADULTS_PER_ROOM = 10
MAX_CHILDREN_PER_ROOM = 10
MAX_CHILD_AGE = 17

CITY_ID_MESSAGE = "cityId is required (positive integer)"


def is_positive_integer(value: Any) -> bool:
    """True for integers >= 1. Booleans, strings and fractional floats are rejected."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return value > 0
    if isinstance(value, float):
        return math.isfinite(value) and value.is_integer() and value > 0
    return False


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def validate_city_id(city_id: Any) -> int:
    """
    Validate a supplier city identifier.

    Args:
        city_id: Raw value from the caller

    Returns:
        The city id as an int

    Raises:
        ValidationError: If the value is missing or not a positive integer
    """
    if not is_positive_integer(city_id):
        raise ValidationError(CITY_ID_MESSAGE, details={"cityId": repr(city_id)})
    return int(city_id)


def validate_date_string(date_str: Any, field_name: str = "date") -> date:
    """
    Validate and parse date string in YYYY-MM-DD format.

    Args:
        date_str: Date string to validate
        field_name: Name used in the error message

    Returns:
        Parsed date object

    Raises:
        ValidationError: If date format is invalid
    """
    if not isinstance(date_str, str) or not date_str:
        raise ValidationError(f"{field_name} is required (YYYY-MM-DD format)")

    try:
        return datetime.strptime(date_str, "%Y-%m-%d").date()
    except ValueError as e:
        raise ValidationError(
            f"{field_name} must be a valid date in YYYY-MM-DD format"
        ) from e


def validate_room(room: Any, index: int) -> Room:
    """
    Validate one room occupancy.

    Raises:
        ValidationError: If adults or children ages are out of range
    """
    label = f"Room {index + 1}"

    if not isinstance(room, Mapping):
        raise ValidationError(f"{label} must be an object")

    adults = room.get("adults")
    if not is_positive_integer(adults) or adults > MAX_ADULTS_PER_ROOM:
        raise ValidationError(f"{label}: adults must be 1-{MAX_ADULTS_PER_ROOM}")

    children_ages = room.get("childrenAges")
    if children_ages is None:
        children_ages = ()
    if not _is_sequence(children_ages):
        raise ValidationError(f"{label}: childrenAges must be an array")

    if len(children_ages) > MAX_CHILDREN_PER_ROOM:
        raise ValidationError(
            f"{label}: maximum {MAX_CHILDREN_PER_ROOM} children per room"
        )

    for age in children_ages:
        if (
            isinstance(age, bool)
            or not isinstance(age, int)
            or age < 0
            or age > MAX_CHILD_AGE
        ):
            raise ValidationError(f"{label}: child ages must be 0-{MAX_CHILD_AGE}")

    return Room(adults=int(adults), children_ages=tuple(children_ages))


def validate_rooms(rooms: Any) -> tuple[Room, ...]:
    if not _is_sequence(rooms) or len(rooms) == 0:
        raise ValidationError("rooms array is required (at least 1 room)")

    if len(rooms) > MAX_ROOMS:
        raise ValidationError(f"Maximum {MAX_ROOMS} rooms allowed")

    return tuple(validate_room(room, index) for index, room in enumerate(rooms))


def _validate_string_list(value: Any, field_name: str) -> tuple[str, ...]:
    if not _is_sequence(value) or not all(isinstance(item, str) for item in value):
        raise ValidationError(f"{field_name} must be an array of strings")
    return tuple(value)


def validate_search_params(raw: Mapping[str, Any] | SearchParams) -> SearchParams:
    """
    Normalize and validate raw hotel search parameters.

    Args:
        raw: Storefront payload using camelCase keys, or an existing SearchParams

    Returns:
        Immutable SearchParams

    Raises:
        ValidationError: On the first invalid field
    """
    if isinstance(raw, SearchParams):
        raw = raw.model_dump(by_alias=True)

    if not isinstance(raw, Mapping):
        raise ValidationError("Search parameters must be an object")

    city_id = validate_city_id(raw.get("cityId"))

    check_in = raw.get("checkIn")
    check_out = raw.get("checkOut")
    check_in_date = validate_date_string(check_in, "checkIn")
    check_out_date = validate_date_string(check_out, "checkOut")
    if check_out_date <= check_in_date:
        raise ValidationError("checkOut must be after checkIn")

    rooms = validate_rooms(raw.get("rooms"))

    hotel_ids = raw.get("hotelIds")
    if hotel_ids is not None:
        if not _is_sequence(hotel_ids) or not all(
            is_positive_integer(hotel_id) for hotel_id in hotel_ids
        ):
            raise ValidationError("hotelIds must be an array of positive integers")
        hotel_ids = tuple(int(hotel_id) for hotel_id in hotel_ids)

    only_available = raw.get("onlyAvailable")
    if only_available is not None and not isinstance(only_available, bool):
        raise ValidationError("onlyAvailable must be a boolean")

    currency = raw.get("currency")
    if currency is not None:
        allowed = [c.value for c in Currency]
        if currency not in allowed:
            raise ValidationError(f"currency must be one of {', '.join(allowed)}")

    keywords = raw.get("keywords")
    if keywords is not None and not isinstance(keywords, str):
        raise ValidationError("keywords must be a string")

    categories = raw.get("categories")
    if categories is not None:
        categories = _validate_string_list(categories, "categories")

    tags = raw.get("tags")
    if tags is not None:
        tags = _validate_string_list(tags, "tags")

    return SearchParams(
        city_id=city_id,
        check_in=check_in,
        check_out=check_out,
        rooms=rooms,
        hotel_ids=hotel_ids,
        only_available=only_available,
        currency=currency,
        keywords=keywords,
        categories=categories,
        tags=tags,
    )


def validate_required_fields(data: Mapping[str, Any], required_fields: list[str]) -> None:
    """
    Validate that required fields are present in data.

    Args:
        data: Data dictionary to validate
        required_fields: List of required field names

    Raises:
        ValidationError: If any required fields are missing
    """
    missing_fields = [field for field in required_fields if field not in data]

    if missing_fields:
        raise ValidationError(f"Missing required fields: {', '.join(missing_fields)}")

    # Check for empty values
    empty_fields = [
        field
        for field in required_fields
        if not data.get(field) and data.get(field) != 0
    ]

    if empty_fields:
        raise ValidationError(f"Empty required fields: {', '.join(empty_fields)}")
