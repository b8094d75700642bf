"""
Unit tests for MyGoClient.

Tests search in both upstream response shapes, token confinement,
catalogue parsing, booking and the filtering helpers.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from mygo_mcp.clients.mygo_client import (
    MyGoClient,
    SearchSession,
    contains_search_token,
    filter_bookable_hotels,
    filter_visible_hotels,
    parse_hotel_search_response,
    strip_search_tokens,
)
from mygo_mcp.config.settings import Settings
from mygo_mcp.models.search import BookingRequest, HotelSearchResult, RoomResult
from mygo_mcp.utils.exceptions import ExternalServiceError, ValidationError


@pytest.fixture
def settings() -> Settings:
    return Settings(login=" agency ", password="pw-secret\n")


@pytest.fixture
def mygo_client(settings: Settings) -> MyGoClient:
    client = MyGoClient(settings=settings)
    client._session = AsyncMock()
    return client


@pytest.fixture
def search_request() -> dict:
    return {
        "cityId": 3,
        "checkIn": "2025-09-01",
        "checkOut": "2025-09-03",
        "rooms": [{"adults": 2}],
    }


@pytest.fixture
def nested_response() -> dict:
    """HotelSearch body in the nested Hotel/Price/Boarding/Pax/Rooms shape."""
    return {
        "HotelSearch": [
            {
                "Token": "tok-nested-1",
                "Hotel": {
                    "Id": 101,
                    "Name": "Movenpick Sousse",
                    "Category": {"Title": "5 etoiles", "Star": 5},
                    "City": {"Id": 3, "Name": "Sousse"},
                    "Adress": "Boulevard du 14 Janvier",
                    "Image": "https://img.example/101.jpg",
                    "Theme": ["Beach", "Spa"],
                    "Facilities": [{"Title": "Pool"}],
                },
                "Price": {
                    "Boarding": [
                        {
                            "Code": "DP",
                            "Name": "Demi pension",
                            "Pax": [
                                {
                                    "Adult": 2,
                                    "Child": [],
                                    "Rooms": [
                                        {
                                            "Id": 9001,
                                            "Name": "Double Sea View",
                                            "Price": "240.500",
                                            "BasePrice": 220,
                                            "PriceWithAffiliateMarkup": 250,
                                            "StopReservation": False,
                                            "Quantity": 4,
                                            "CancellationPolicy": [
                                                {"FromDate": "2025-08-25", "Fee": 50}
                                            ],
                                        },
                                        {
                                            "Id": 9002,
                                            "Name": "Double Garden",
                                            "Price": None,
                                            "StopReservation": "true",
                                            "Token": "tok-room",
                                        },
                                    ],
                                }
                            ],
                        }
                    ]
                },
            },
            {
                "Token": "tok-nested-2",
                "Hotel": {"Id": 202, "Name": "Hotel On Request"},
                "Price": {
                    "Boarding": [
                        {
                            "Code": "LPD",
                            "Pax": [
                                {
                                    "Adult": 2,
                                    "Rooms": [
                                        {"Id": 1, "Price": 90, "StopReservation": 1}
                                    ],
                                }
                            ],
                        }
                    ]
                },
            },
            {"Token": "tok-skipped", "Hotel": {"Id": 0, "Name": "Ghost"}},
        ]
    }


@pytest.fixture
def flat_response() -> dict:
    """HotelSearch body in the flat Id/Name/Available/Rooms shape."""
    return {
        "SearchId": "search-abc",
        "HotelSearch": [
            {
                "Id": 55,
                "Name": "Dar Djerba",
                "Available": True,
                "Stars": 4,
                "Rooms": [
                    {"Id": 7, "Name": "Single", "Price": 80, "OnRequest": False},
                    {"Id": 8, "Name": "Suite", "Price": 300, "OnRequest": True},
                ],
            }
        ],
    }


class TestSearchHotels:
    """Hotel search through the facade."""

    @pytest.mark.asyncio
    async def test_nested_shape_parsed(self, mygo_client, search_request, nested_response):
        with patch.object(
            mygo_client, "post", AsyncMock(return_value=nested_response)
        ) as mock_post:
            hotels = await mygo_client.search_hotels(search_request)

        assert [hotel.id for hotel in hotels] == [101, 202]
        movenpick = hotels[0]
        assert movenpick.available is True
        assert movenpick.has_instant_confirmation is True
        assert movenpick.city_id == 3
        assert movenpick.city_name == "Sousse"
        assert movenpick.star == 5
        assert movenpick.address == "Boulevard du 14 Janvier"
        assert movenpick.themes == ["Beach", "Spa"]

        first_room = movenpick.rooms[0]
        assert first_room.room_id == 9001
        assert first_room.price == 240.5
        assert first_room.on_request is False
        assert first_room.board_code == "DP"
        assert first_room.adults == 2
        assert first_room.model_dump()["Quantity"] == 4
        assert movenpick.rooms[1].on_request is True

        on_request_hotel = hotels[1]
        assert on_request_hotel.available is False
        assert on_request_hotel.has_instant_confirmation is False

        service_name, payload = mock_post.await_args.args
        assert service_name == "HotelSearch"
        assert payload["SearchDetails"]["City"] == 3
        assert payload["Credential"] == {"Login": "agency", "Password": "pw-secret"}

    @pytest.mark.asyncio
    async def test_flat_shape_parsed(self, mygo_client, search_request, flat_response):
        with patch.object(mygo_client, "post", AsyncMock(return_value=flat_response)):
            session = await mygo_client.start_search(search_request)

        hotel = session.hotels[0]
        assert hotel.id == 55
        assert hotel.name == "Dar Djerba"
        assert hotel.available is True
        assert hotel.model_dump()["Stars"] == 4
        assert [room.on_request for room in hotel.rooms] == [False, True]
        assert session.bookable

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response_name", ["nested_response", "flat_response"])
    async def test_no_token_in_results(
        self, mygo_client, search_request, response_name, request
    ):
        body = request.getfixturevalue(response_name)

        with patch.object(mygo_client, "post", AsyncMock(return_value=body)):
            hotels = await mygo_client.search_hotels(search_request)
            session = await mygo_client.start_search(search_request)

        dumped = [hotel.model_dump() for hotel in hotels]
        assert not contains_search_token(dumped)
        assert "tok-" not in json.dumps(dumped)
        assert "search-abc" not in json.dumps(dumped)
        assert "tok-" not in json.dumps(session.to_dict())
        assert "tok-" not in repr(session)

    @pytest.mark.asyncio
    async def test_invalid_city_fails_before_request(self, mygo_client, search_request):
        search_request["cityId"] = 0

        with patch.object(mygo_client, "post", AsyncMock()) as mock_post:
            with pytest.raises(ValidationError, match="cityId is required"):
                await mygo_client.search_hotels(search_request)

        mock_post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upstream_error_message(self, mygo_client, search_request):
        body = {"ErrorMessage": {"Code": 401, "Description": "Bad credential"}}

        with patch.object(mygo_client, "post", AsyncMock(return_value=body)):
            with pytest.raises(ExternalServiceError, match="Bad credential"):
                await mygo_client.search_hotels(search_request)

    @pytest.mark.asyncio
    async def test_transport_errors_propagate(self, mygo_client, search_request):
        error = ExternalServiceError("MyGo error 500: boom", upstream_status=500)

        with patch.object(mygo_client, "post", AsyncMock(side_effect=error)):
            with pytest.raises(ExternalServiceError) as exc_info:
                await mygo_client.search_hotels(search_request)

        assert exc_info.value is error

    def test_first_token_wins(self, nested_response):
        _, token = parse_hotel_search_response(nested_response)

        assert token == "tok-nested-1"

    def test_empty_search(self):
        hotels, token = parse_hotel_search_response({"HotelSearch": []})

        assert hotels == []
        assert token is None

    def test_non_object_body_rejected(self):
        with pytest.raises(ExternalServiceError):
            parse_hotel_search_response(["not", "an", "object"])

    @pytest.mark.asyncio
    async def test_token_variants_removed(self, mygo_client, search_request):
        body = {
            "hotels": [
                {
                    "Id": 1,
                    "Name": "Hotel Africa",
                    "Available": True,
                    "SearchToken": "sekret-1",
                    "bookingToken": "sekret-2",
                    "Rooms": [
                        {
                            "Id": 5,
                            "Price": 10,
                            "searchToken": "sekret-3",
                            "BookingToken": "sekret-4",
                        }
                    ],
                }
            ]
        }

        with patch.object(mygo_client, "post", AsyncMock(return_value=body)):
            hotels = await mygo_client.search_hotels(search_request)

        dumped = [hotel.model_dump() for hotel in hotels]
        assert hotels[0].rooms[0].room_id == 5
        assert "sekret" not in json.dumps(dumped)
        assert not contains_search_token(dumped)

    def test_colliding_upstream_fields_do_not_break_parsing(self):
        body = {
            "hotels": [
                {
                    "Id": 1,
                    "Name": "Hotel Africa",
                    "star": "4 stars",
                    "city_id": "Tunis",
                    "Rooms": [{"Id": 5, "Price": 10, "adults": "two"}],
                }
            ]
        }

        hotels, _ = parse_hotel_search_response(body)

        assert hotels[0].star is None
        assert hotels[0].city_id is None
        assert hotels[0].rooms[0].adults is None
        assert hotels[0].rooms[0].price == 10


class TestBooking:
    @pytest.fixture
    def booking_request(self) -> BookingRequest:
        return BookingRequest(
            customerName="Leila Haddad",
            customerEmail="leila@example.com",
            customerPhone="+21655000000",
            roomSelections=[{"hotelId": 101, "roomId": 9001}],
        )

    @pytest.mark.asyncio
    async def test_create_booking_uses_session_token(
        self, mygo_client, search_request, nested_response, booking_request
    ):
        booking_body = {
            "BookingId": 778,
            "State": "OnRequest",
            "TotalPrice": "481.0",
            "Token": "tok-echo",
            "Voucher": "V-1",
        }
        mock_post = AsyncMock(side_effect=[nested_response, booking_body])

        with patch.object(mygo_client, "post", mock_post):
            session = await mygo_client.start_search(search_request)
            booking = await mygo_client.create_booking(session, booking_request)

        service_name, payload = mock_post.await_args.args
        assert service_name == "BookingCreation"
        assert payload["Token"] == "tok-nested-1"
        assert mock_post.await_args.kwargs == {"idempotent": False}

        assert booking.booking_id == 778
        assert booking.total_price == 481.0
        assert booking.model_dump()["Voucher"] == "V-1"
        assert not contains_search_token(booking.model_dump())

    @pytest.mark.asyncio
    async def test_session_without_token_refused(self, mygo_client, booking_request):
        session = SearchSession([], None)

        with patch.object(mygo_client, "post", AsyncMock()) as mock_post:
            with pytest.raises(ValidationError, match="no token"):
                await mygo_client.create_booking(session, booking_request)

        mock_post.assert_not_awaited()


class TestCatalogue:
    @pytest.mark.asyncio
    async def test_list_cities_skips_unusable(self, mygo_client):
        body = {
            "ListCity": [
                {"Id": 1, "Name": "Tunis", "Region": "Tunis"},
                {"Id": "2", "Name": "Sousse"},
                {"Id": None, "Name": "Nowhere"},
                {"Id": 4, "Name": ""},
            ]
        }

        with patch.object(mygo_client, "post", AsyncMock(return_value=body)):
            cities = await mygo_client.list_cities()

        assert [(c.id, c.name, c.region) for c in cities] == [
            (1, "Tunis", "Tunis"),
            (2, "Sousse", None),
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, {"ListCity": []}, {"ListCity": "x"}])
    async def test_list_cities_empty_is_error(self, mygo_client, body):
        with patch.object(mygo_client, "post", AsyncMock(return_value=body)):
            with pytest.raises(ExternalServiceError, match="No ListCity"):
                await mygo_client.list_cities()

    @pytest.mark.asyncio
    async def test_list_hotels_city_fallback(self, mygo_client):
        body = {
            "ListHotel": [
                {"Id": 1, "Name": "Iberostar", "CityId": 9, "Star": 4},
                {"Id": 2, "Name": "Royal Azur", "CityId": 0},
                {"Id": 3, "Name": "Sentido", "CityId": None},
                {"Id": 0, "Name": "Broken"},
            ]
        }

        with patch.object(
            mygo_client, "post", AsyncMock(return_value=body)
        ) as mock_post:
            hotels = await mygo_client.list_hotels(7)

        assert [(h.id, h.city_id) for h in hotels] == [(1, 9), (2, 7), (3, 7)]
        assert hotels[0].star == "4"
        assert mock_post.await_args.args[1]["CityId"] == 7

    @pytest.mark.asyncio
    async def test_list_hotels_invalid_city(self, mygo_client):
        with pytest.raises(ValidationError):
            await mygo_client.list_hotels(-4)

    @pytest.mark.asyncio
    async def test_static_lists(self, mygo_client):
        body = {"ListBoarding": [{"Code": "DP", "Name": "Demi pension"}]}

        with patch.object(
            mygo_client, "post", AsyncMock(return_value=body)
        ) as mock_post:
            boardings = await mygo_client.list_boardings()

        assert boardings == [{"Code": "DP", "Name": "Demi pension"}]
        assert mock_post.await_args.args[0] == "ListBoarding"

    @pytest.mark.asyncio
    async def test_static_list_missing_key(self, mygo_client):
        with patch.object(mygo_client, "post", AsyncMock(return_value={})):
            with pytest.raises(ExternalServiceError, match="Missing ListTag"):
                await mygo_client.list_tags()

    @pytest.mark.asyncio
    async def test_unknown_static_kind(self, mygo_client):
        with pytest.raises(ValidationError, match="Unknown static list"):
            await mygo_client.list_static("planets")

    @pytest.mark.asyncio
    async def test_booking_cancellation_not_retried(self, mygo_client):
        with patch.object(
            mygo_client, "post", AsyncMock(return_value={"Success": True})
        ) as mock_post:
            result = await mygo_client.booking_cancellation(
                {"booking": 5, "preCancelled": True}
            )

        assert result == {"Success": True}
        assert mock_post.await_args.kwargs == {"idempotent": False}
        assert mock_post.await_args.args[1]["booking"] == 5

    @pytest.mark.asyncio
    async def test_booking_details_strips_tokens(self, mygo_client):
        body = {"BookingId": 5, "Rooms": [{"Token": "tok-x", "Id": 1}]}

        with patch.object(mygo_client, "post", AsyncMock(return_value=body)):
            result = await mygo_client.booking_details({"booking": 5})

        assert result == {"BookingId": 5, "Rooms": [{"Id": 1}]}


class TestHelpers:
    def test_strip_search_tokens_deep(self):
        value = {"token": "a", "SearchId": "b", "items": [{"Token": "c", "x": 1}]}

        assert strip_search_tokens(value) == {"items": [{"x": 1}]}
        assert value["token"] == "a"

    @pytest.mark.parametrize(
        "key", ["SearchToken", "searchToken", "bookingToken", "BookingToken", "TOKEN"]
    )
    def test_token_key_variants_detected(self, key):
        value = {"rooms": [{"Id": 1, key: "abc"}]}

        assert contains_search_token(value)
        assert strip_search_tokens(value) == {"rooms": [{"Id": 1}]}

    def test_filter_bookable_hotels(self):
        hotels = [
            HotelSearchResult(
                id=1,
                name="A",
                available=True,
                rooms=[
                    RoomResult(on_request=False, price=10),
                    RoomResult(on_request=True, price=20),
                ],
            ),
            HotelSearchResult(id=2, name="B", available=False),
            HotelSearchResult(
                id=3, name="C", available=True, rooms=[RoomResult(on_request=True)]
            ),
        ]

        result = filter_bookable_hotels(hotels)

        assert [hotel.id for hotel in result] == [1]
        assert len(result[0].rooms) == 1
        assert len(hotels[0].rooms) == 2

    def test_filter_visible_hotels(self):
        hotels = [
            HotelSearchResult(
                id=1,
                name="A",
                has_instant_confirmation=True,
                rooms=[
                    RoomResult(on_request=False, price=None),
                    RoomResult(on_request=True, price=15),
                ],
            )
        ]

        result = filter_visible_hotels(hotels)

        assert [room.price for room in result[0].rooms] == [15]
        assert result[0].has_instant_confirmation is False
