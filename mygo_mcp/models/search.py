"""
Search, catalogue and booking models for the MyGo hotel API.

Request models are immutable snapshots produced by the validators. Result
models tolerate unknown fields because the supplier has shipped at least two
incompatible result shapes.
"""

from enum import Enum
from typing import Any

from pydantic import Field, SecretStr

from mygo_mcp.models.common import MyGoBaseModel, MyGoRequestModel


class Currency(str, Enum):
    """Currencies accepted by HotelSearch."""

    TND = "TND"
    EUR = "EUR"
    USD = "USD"


class Credential(MyGoRequestModel):
    """Supplier login pair. The password never appears in repr or logs."""

    login: str
    password: SecretStr


class Room(MyGoRequestModel):
    """Occupancy of one requested room."""

    adults: int
    children_ages: tuple[int, ...] = Field(default=(), alias="childrenAges")


class SearchParams(MyGoRequestModel):
    """Normalized hotel search parameters."""

    city_id: int = Field(alias="cityId")
    check_in: str = Field(alias="checkIn")
    check_out: str = Field(alias="checkOut")
    rooms: tuple[Room, ...]
    hotel_ids: tuple[int, ...] | None = Field(None, alias="hotelIds")
    only_available: bool | None = Field(None, alias="onlyAvailable")
    currency: Currency | None = None
    keywords: str | None = None
    categories: tuple[str, ...] | None = None
    tags: tuple[str, ...] | None = None


class RoomSelection(MyGoRequestModel):
    hotel_id: int = Field(alias="hotelId")
    room_id: int = Field(alias="roomId")


class BookingRequest(MyGoRequestModel):
    """
    Booking details supplied by the caller.

    The search token is deliberately absent: it comes from the SearchSession
    that produced the selected rooms.
    """

    pre_booking: bool = Field(True, alias="preBooking")
    customer_name: str = Field(alias="customerName")
    customer_email: str = Field(alias="customerEmail")
    customer_phone: str = Field(alias="customerPhone")
    room_selections: tuple[RoomSelection, ...] = Field(alias="roomSelections")


class City(MyGoBaseModel):
    id: int
    name: str
    region: str | None = None


class Hotel(MyGoBaseModel):
    id: int
    name: str
    city_id: int
    star: str | None = None
    category_title: str | None = None
    address: str | None = None
    longitude: str | None = None
    latitude: str | None = None
    image: str | None = None
    note: str | None = None


class RoomResult(MyGoBaseModel):
    """One bookable room offer. Unknown upstream fields are preserved."""

    on_request: bool = True
    price: float | None = None
    room_id: int | None = None
    room_name: str | None = None
    base_price: float | None = None
    price_with_markup: float | None = None
    board_code: str | None = None
    board_name: str | None = None
    adults: int | None = None
    children_ages: list[int] | None = None
    cancellation_policy: list[Any] | None = None


class HotelSearchResult(MyGoBaseModel):
    """A hotel returned by HotelSearch with its room offers."""

    id: int
    name: str
    available: bool = False
    rooms: list[RoomResult] = Field(default_factory=list)
    has_instant_confirmation: bool = False
    city_id: int | None = None
    city_name: str | None = None
    category_title: str | None = None
    star: float | None = None
    address: str | None = None
    image: str | None = None
    themes: list[str] | None = None
    facilities: list[Any] | None = None
    note: Any = None


class BookingResult(MyGoBaseModel):
    booking_id: int | None = None
    state: str | None = None
    total_price: float | None = None
