"""
Unit tests for the resilient MyGo transport.

Covers retry/backoff, timeout handling, error classification, redacted
logging and the retry state machine.
"""

import asyncio
import logging
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from mygo_mcp.clients.base_client import (
    BaseAPIClient,
    DataTransformer,
    RetryPhase,
    RetryPolicy,
    RetryState,
)
from mygo_mcp.config.settings import Settings
from mygo_mcp.utils.exceptions import (
    ErrorKind,
    ExternalServiceError,
    TimeoutError,
    ValidationError,
)

URL = "https://admin.mygo.co/api/hotel/HotelSearch"


def make_response(status_code: int, json_body=None, text: str | None = None):
    request = httpx.Request("POST", URL)
    if json_body is not None:
        return httpx.Response(status_code, json=json_body, request=request)
    return httpx.Response(status_code, text=text or "", request=request)


@pytest.fixture
def settings() -> Settings:
    return Settings(login="agency", password="pw-secret", request_timeout=5)


@pytest.fixture
def client(settings: Settings) -> BaseAPIClient:
    """Client with a mocked HTTP session."""
    client = BaseAPIClient(settings=settings)
    client._session = AsyncMock()
    return client


@pytest.fixture
def payload() -> dict:
    return {
        "Credential": {"Login": "agency", "Password": "pw-secret"},
        "SearchDetails": {"City": 3},
    }


@pytest.fixture
def mock_sleep():
    with patch("mygo_mcp.clients.base_client.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


class TestRetryPolicy:
    def test_backoff_doubles_and_caps(self):
        policy = RetryPolicy(base_backoff=1.0, max_backoff=5.0)

        assert [policy.backoff_for(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]

    def test_from_settings(self, settings: Settings):
        policy = RetryPolicy.from_settings(settings)

        assert policy.max_attempts == 3
        assert policy.retryable_statuses == frozenset({429, 502, 503, 504})

    def test_single_attempt_keeps_other_fields(self):
        policy = RetryPolicy(base_backoff=2.0).single_attempt()

        assert policy.max_attempts == 1
        assert policy.base_backoff == 2.0


class TestRetryState:
    def test_success_path(self):
        state = RetryState(RetryPolicy())

        assert state.begin_attempt() == 1
        state.succeed()

        assert state.phase is RetryPhase.SUCCEEDED
        assert state.history == [RetryPhase.IDLE, RetryPhase.ATTEMPTING]

    def test_retry_then_fail(self):
        state = RetryState(RetryPolicy(max_attempts=2))

        state.begin_attempt()
        assert state.schedule_retry() == 1.0
        assert state.phase is RetryPhase.RETRYING
        state.begin_attempt()
        assert not state.can_retry
        state.fail()

        assert state.finished
        assert state.exhausted

    def test_cannot_retry_past_budget(self):
        state = RetryState(RetryPolicy(max_attempts=1))
        state.begin_attempt()

        with pytest.raises(RuntimeError):
            state.schedule_retry()

    def test_cannot_attempt_after_success(self):
        state = RetryState(RetryPolicy())
        state.begin_attempt()
        state.succeed()

        with pytest.raises(RuntimeError):
            state.begin_attempt()


class TestDataTransformer:
    def test_mask_does_not_mutate_input(self, payload: dict):
        masked = DataTransformer.mask_sensitive_data(payload)

        assert masked["Credential"]["Password"] == "***MASKED***"
        assert masked["Credential"]["Login"] == "***MASKED***"
        assert masked["SearchDetails"] == {"City": 3}
        assert payload["Credential"]["Password"] == "pw-secret"

    def test_mask_tokens_in_lists(self):
        masked = DataTransformer.mask_sensitive_data([{"Token": "abc", "Id": 1}])

        assert masked == [{"Token": "***MASKED***", "Id": 1}]

    def test_preview_bounded(self):
        assert DataTransformer.preview("x" * 500, 400) == "x" * 400 + "..."
        assert DataTransformer.preview("short", 400) == "short"


class TestPost:
    """Retry, classification and logging of BaseAPIClient.post."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, client, payload, mock_sleep):
        client._session.post.return_value = make_response(200, {"HotelSearch": []})

        result = await client.post("HotelSearch", payload)

        assert result == {"HotelSearch": []}
        assert client._session.post.await_count == 1
        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self, client, payload, mock_sleep):
        client._session.post.side_effect = [
            make_response(503, text="unavailable"),
            make_response(503, text="unavailable"),
            make_response(200, {"ok": True}),
        ]

        result = await client.post("HotelSearch", payload)

        assert result == {"ok": True}
        assert client._session.post.await_count == 3
        assert [c.args[0] for c in mock_sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_retry_budget_exhausted(self, client, payload, mock_sleep):
        client._session.post.side_effect = [make_response(503, text="down")] * 4

        with pytest.raises(ExternalServiceError) as exc_info:
            await client.post("HotelSearch", payload)

        assert client._session.post.await_count == 3
        assert exc_info.value.status_code == 502
        assert exc_info.value.service == "MyGo"
        assert exc_info.value.upstream_status == 503

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [429, 502, 504])
    async def test_each_retryable_status(self, client, payload, mock_sleep, status_code):
        client._session.post.side_effect = [
            make_response(status_code, text="busy"),
            make_response(200, {"ok": True}),
        ]

        assert await client.post("HotelSearch", payload) == {"ok": True}
        assert client._session.post.await_count == 2

    @pytest.mark.asyncio
    async def test_bad_request_is_validation_error(self, client, payload, mock_sleep):
        client._session.post.return_value = make_response(
            400, {"ErrorMessage": {"Code": 12, "Description": "City is missing"}}
        )

        with pytest.raises(ValidationError) as exc_info:
            await client.post("HotelSearch", payload)

        assert exc_info.value.status_code == 400
        assert "City is missing" in exc_info.value.message
        assert client._session.post.await_count == 1
        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 404, 500])
    async def test_other_errors_not_retried(self, client, payload, mock_sleep, status_code):
        client._session.post.return_value = make_response(status_code, text="nope")

        with pytest.raises(ExternalServiceError) as exc_info:
            await client.post("HotelSearch", payload)

        assert exc_info.value.kind is ErrorKind.EXTERNAL_SERVICE
        assert exc_info.value.upstream_status == status_code
        assert client._session.post.await_count == 1

    @pytest.mark.asyncio
    async def test_httpx_timeout_not_retried(self, client, payload, mock_sleep):
        client._session.post.side_effect = httpx.ReadTimeout("timed out")

        with pytest.raises(TimeoutError) as exc_info:
            await client.post("HotelSearch", payload)

        assert exc_info.value.status_code == 504
        assert client._session.post.await_count == 1
        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_wall_clock_timeout_cancels_attempt(self, client, payload):
        cancelled = asyncio.Event()

        async def hang(*args, **kwargs):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        client._session.post.side_effect = hang

        with pytest.raises(TimeoutError):
            await client.post("HotelSearch", payload, timeout=0.05)

        assert cancelled.is_set()
        assert client._session.post.await_count == 1

    @pytest.mark.asyncio
    async def test_connection_errors_retried(self, client, payload, mock_sleep):
        client._session.post.side_effect = [
            httpx.ConnectError("refused"),
            make_response(200, {"ok": True}),
        ]

        assert await client.post("HotelSearch", payload) == {"ok": True}
        mock_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_connection_errors_exhausted(self, client, payload, mock_sleep):
        client._session.post.side_effect = httpx.ConnectError("refused")

        with pytest.raises(ExternalServiceError):
            await client.post("HotelSearch", payload)

        assert client._session.post.await_count == 3

    @pytest.mark.asyncio
    async def test_non_idempotent_single_attempt(self, client, payload, mock_sleep):
        client._session.post.return_value = make_response(503, text="down")

        with pytest.raises(ExternalServiceError):
            await client.post("BookingCreation", payload, idempotent=False)

        assert client._session.post.await_count == 1
        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_json_success_rejected(self, client, payload):
        client._session.post.return_value = make_response(200, text="<html>oops</html>")

        with pytest.raises(ExternalServiceError, match="Unexpected MyGo response type"):
            await client.post("HotelSearch", payload)

    @pytest.mark.asyncio
    async def test_malformed_json_rejected(self, client, payload):
        client._session.post.return_value = httpx.Response(
            200,
            content=b"{not json",
            headers={"content-type": "application/json"},
            request=httpx.Request("POST", URL),
        )

        with pytest.raises(ExternalServiceError, match="Invalid JSON"):
            await client.post("HotelSearch", payload)

    @pytest.mark.asyncio
    async def test_posts_to_service_url(self, client, payload):
        client._session.post.return_value = make_response(200, {"ok": True})

        await client.post("ListCity", payload)

        args, kwargs = client._session.post.await_args
        assert args[0] == "https://admin.mygo.co/api/hotel/ListCity"
        assert kwargs["json"] is payload

    @pytest.mark.asyncio
    async def test_payload_not_mutated(self, client, payload, mock_sleep):
        client._session.post.return_value = make_response(200, {"ok": True})

        await client.post("HotelSearch", payload)

        assert payload["Credential"]["Password"] == "pw-secret"


class TestLogging:
    @pytest.mark.asyncio
    async def test_password_never_logged(self, client, payload, mock_sleep, caplog):
        client._session.post.side_effect = [
            make_response(503, text="down"),
            make_response(200, {"ok": True}),
        ]

        with caplog.at_level(logging.DEBUG, logger="mygo_mcp"):
            await client.post("HotelSearch", payload)

        assert caplog.records
        for record in caplog.records:
            assert "pw-secret" not in record.getMessage()
            assert "pw-secret" not in str(vars(record))

    @pytest.mark.asyncio
    async def test_error_preview_bounded(self, client, payload, mock_sleep, caplog):
        client._session.post.return_value = make_response(500, text="E" * 2000)

        with caplog.at_level(logging.WARNING, logger="mygo_mcp"):
            with pytest.raises(ExternalServiceError):
                await client.post("HotelSearch", payload)

        previews = [r for r in caplog.records if "error response preview" in r.getMessage()]
        assert len(previews) == 1
        assert "E" * 400 + "..." in previews[0].getMessage()
        assert "E" * 401 not in previews[0].getMessage()

    @pytest.mark.asyncio
    async def test_exhaustion_logged_at_error(self, client, payload, mock_sleep, caplog):
        client._session.post.return_value = make_response(502, text="bad gateway")

        with caplog.at_level(logging.INFO, logger="mygo_mcp"):
            with pytest.raises(ExternalServiceError):
                await client.post("HotelSearch", payload)

        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
        assert "retries exhausted after 3 attempts" in errors[0].getMessage()


class TestHealth:
    @pytest.mark.asyncio
    async def test_attempts_recorded(self, client, payload, mock_sleep):
        client._session.post.side_effect = [
            make_response(503, text="down"),
            make_response(200, {"ok": True}),
        ]

        await client.post("HotelSearch", payload)
        status = client.get_health_status()

        assert status["recent_attempts"] == 2
        assert status["status_code_counts"] == {503: 1, 200: 1}
        assert status["services"]["HotelSearch"]["attempts"] == 2
        assert status["services"]["HotelSearch"]["retried_attempts"] == 1
        assert status["services"]["HotelSearch"]["failures"] == 1
        assert status["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_timeouts_counted_per_service(self, client, payload):
        client._session.post.side_effect = httpx.ReadTimeout("slow")

        with pytest.raises(TimeoutError):
            await client.post("ListCity", payload)

        service = client.get_health_status()["services"]["ListCity"]
        assert service["timeouts"] == 1
        assert service["retried_attempts"] == 0

    @pytest.mark.asyncio
    async def test_explicit_zero_timeout_is_honoured(self, client, payload):
        async def never_answers(*args, **kwargs):
            await asyncio.sleep(10)

        client._session.post.side_effect = never_answers

        with pytest.raises(TimeoutError) as exc_info:
            await client.post("ListCity", payload, timeout=0)

        assert exc_info.value.timeout_seconds == 0

    @pytest.mark.asyncio
    async def test_close_resets_session(self, client):
        session = client._session

        await client.close()

        session.aclose.assert_awaited_once()
        assert client._session is None
