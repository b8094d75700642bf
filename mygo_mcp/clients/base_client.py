"""
Base API client for the MyGo hotel supplier.

Provides the resilient transport shared by all supplier operations: pooled
HTTP session, per-attempt wall-clock timeout, retry with exponential backoff,
error classification, redacted request logging and request metrics.
"""

import asyncio
import json
import logging
import time
import uuid
from collections import Counter, defaultdict, deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, Field

from mygo_mcp.config.settings import Settings
from mygo_mcp.utils.exceptions import (
    ExternalServiceError,
    TimeoutError,
    ValidationError,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "MyGo"


class RequestMetrics(BaseModel):
    """Metrics for a single supplier request attempt."""

    service: str
    endpoint: str
    status_code: int | None = None
    duration_ms: float
    request_size_bytes: int = 0
    response_size_bytes: int = 0
    attempt: int = 1
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    error_type: str | None = None


@dataclass
class ServiceStats:
    """Attempt counters for one MyGo service."""

    attempts: int = 0
    retried_attempts: int = 0
    timeouts: int = 0
    failures: int = 0
    total_duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempts": self.attempts,
            "retried_attempts": self.retried_attempts,
            "timeouts": self.timeouts,
            "failures": self.failures,
            "avg_duration_ms": self.total_duration_ms / self.attempts
            if self.attempts
            else 0.0,
        }


class HealthMonitor:
    """
    Per-attempt metrics for MyGo services.

    Status is derived from the failure rate of attempts in the recent window;
    per-service counters show how often calls needed a retry or timed out.
    """

    def __init__(
        self, max_history: int = 1000, window: timedelta = timedelta(minutes=5)
    ) -> None:
        self.window = window
        self._recent: deque[RequestMetrics] = deque(maxlen=max_history)
        self._services: dict[str, ServiceStats] = defaultdict(ServiceStats)
        self._status_codes: Counter[int] = Counter()
        self._lock = asyncio.Lock()

    async def record_request(self, metrics: RequestMetrics) -> None:
        async with self._lock:
            self._recent.append(metrics)

            stats = self._services[metrics.endpoint]
            stats.attempts += 1
            stats.total_duration_ms += metrics.duration_ms
            if metrics.attempt > 1:
                stats.retried_attempts += 1
            if metrics.error_type == "Timeout":
                stats.timeouts += 1
            if metrics.error_type:
                stats.failures += 1

            if metrics.status_code is not None:
                self._status_codes[metrics.status_code] += 1

    def get_health_status(self) -> dict[str, Any]:
        cutoff = datetime.utcnow() - self.window
        recent = [metrics for metrics in self._recent if metrics.timestamp >= cutoff]
        failed = sum(1 for metrics in recent if metrics.error_type)
        failure_rate = failed / len(recent) if recent else 0.0

        status = "healthy"
        if failure_rate > 0.1:
            status = "degraded"
        elif failure_rate > 0.05:
            status = "warning"

        return {
            "status": status,
            "recent_attempts": len(recent),
            "failure_rate": failure_rate,
            "status_code_counts": dict(self._status_codes),
            "services": {
                name: stats.to_dict() for name, stats in self._services.items()
            },
        }


class DataTransformer:
    """Utility class for request/response data transformation."""

    DEFAULT_SENSITIVE_FIELDS = frozenset(
        {
            "password",
            "login",
            "secret",
            "token",
            "searchid",
            "authorization",
            "email",
            "phone",
        }
    )

    @staticmethod
    def mask_sensitive_data(
        data: Any, sensitive_fields: frozenset[str] | set[str] | None = None
    ) -> Any:
        """
        Return a masked copy of data for logging.

        The input is never mutated; dicts and lists are rebuilt.
        """
        if sensitive_fields is None:
            sensitive_fields = DataTransformer.DEFAULT_SENSITIVE_FIELDS

        def _mask_recursive(obj: Any) -> Any:
            if isinstance(obj, dict):
                masked = {}
                for key, value in obj.items():
                    key_lower = str(key).lower()
                    if any(
                        sensitive_field in key_lower
                        for sensitive_field in sensitive_fields
                    ):
                        masked[key] = "***MASKED***"
                    else:
                        masked[key] = _mask_recursive(value)
                return masked
            elif isinstance(obj, (list, tuple)):
                return [_mask_recursive(item) for item in obj]
            else:
                return obj

        return _mask_recursive(data)

    @staticmethod
    def preview(text: str, limit: int) -> str:
        """Bounded preview of a response body."""
        if len(text) <= limit:
            return text
        return text[:limit] + "..."


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry configuration for one kind of call."""

    max_attempts: int = 3
    base_backoff: float = 1.0
    max_backoff: float = 5.0
    retryable_statuses: frozenset[int] = frozenset({429, 502, 503, 504})

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            base_backoff=settings.retry_backoff,
            max_backoff=settings.retry_backoff_max,
            retryable_statuses=frozenset(settings.retryable_status_codes),
        )

    def single_attempt(self) -> "RetryPolicy":
        """Policy for non-idempotent calls."""
        return replace(self, max_attempts=1)

    def backoff_for(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based): 1s, 2s, 4s... capped."""
        return min(self.base_backoff * (2 ** (attempt - 1)), self.max_backoff)

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in self.retryable_statuses


class RetryPhase(Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class RetryState:
    """
    Retry state machine owned by a single logical call.

    IDLE -> ATTEMPTING -> (SUCCEEDED | RETRYING -> ATTEMPTING ... | FAILED)
    """

    policy: RetryPolicy
    phase: RetryPhase = RetryPhase.IDLE
    attempt: int = 0
    next_backoff: float = 0.0
    history: list[RetryPhase] = field(default_factory=list)

    def _move(self, phase: RetryPhase) -> None:
        self.history.append(self.phase)
        self.phase = phase

    def begin_attempt(self) -> int:
        if self.phase not in (RetryPhase.IDLE, RetryPhase.RETRYING):
            raise RuntimeError(f"Cannot start an attempt from {self.phase.value}")
        self.attempt += 1
        self.next_backoff = 0.0
        self._move(RetryPhase.ATTEMPTING)
        return self.attempt

    @property
    def can_retry(self) -> bool:
        return (
            self.phase is RetryPhase.ATTEMPTING
            and self.attempt < self.policy.max_attempts
        )

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.policy.max_attempts

    @property
    def finished(self) -> bool:
        return self.phase in (RetryPhase.SUCCEEDED, RetryPhase.FAILED)

    def schedule_retry(self) -> float:
        if not self.can_retry:
            raise RuntimeError("Retry budget exhausted")
        self.next_backoff = self.policy.backoff_for(self.attempt)
        self._move(RetryPhase.RETRYING)
        return self.next_backoff

    def succeed(self) -> None:
        self._move(RetryPhase.SUCCEEDED)

    def fail(self) -> None:
        self._move(RetryPhase.FAILED)


class BaseAPIClient:
    """
    Resilient transport for MyGo supplier calls.

    Features:
    - JSON POST over a pooled httpx session
    - Wall-clock timeout per attempt; timeouts are never retried
    - Exponential backoff for 429/502/503/504 and connection failures
    - Error classification into the client error taxonomy
    - Credential-redacted request logging and per-attempt metrics
    - Async context management for proper resource cleanup

    No mutable state is shared between concurrent calls apart from the
    connection pool; each call owns its RetryState.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        enable_monitoring: bool = True,
        service_name: str = SERVICE_NAME,
    ) -> None:
        """
        Initialize base API client.

        Args:
            settings: Optional settings instance
            enable_monitoring: Enable health monitoring and metrics
            service_name: Name reported on ExternalServiceError
        """
        self.settings = settings or Settings()
        self.service_name = service_name
        self.retry_policy = RetryPolicy.from_settings(self.settings)
        self._session: httpx.AsyncClient | None = None
        self._session_lock = asyncio.Lock()

        self.enable_monitoring = enable_monitoring
        self._health_monitor = HealthMonitor() if enable_monitoring else None

        self._data_transformer = DataTransformer()

        self._connection_limits = httpx.Limits(
            max_connections=50,
            max_keepalive_connections=20,
            keepalive_expiry=30.0,
        )

        self._timeout_config = httpx.Timeout(
            connect=10.0,
            read=self.settings.request_timeout,
            write=10.0,
            pool=5.0,
        )

    async def __aenter__(self) -> "BaseAPIClient":
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def _ensure_session(self) -> None:
        """Ensure HTTP session is initialized with proper configuration."""
        if self._session is None:
            async with self._session_lock:
                if self._session is None:  # Double-check pattern
                    self._session = httpx.AsyncClient(
                        timeout=self._timeout_config,
                        limits=self._connection_limits,
                        http2=True,
                        verify=True,
                        follow_redirects=True,
                        headers={
                            "User-Agent": "mygo-mcp/0.1.0 (httpx)",
                            "Accept-Encoding": "gzip, deflate",
                        },
                    )
                    logger.debug(
                        "HTTP session initialized",
                        extra={
                            "timeout_connect": self._timeout_config.connect,
                            "timeout_read": self._timeout_config.read,
                            "max_connections": self._connection_limits.max_connections,
                        },
                    )

    async def close(self) -> None:
        """Close HTTP session and cleanup resources."""
        if self._session:
            try:
                await self._session.aclose()
                logger.debug("HTTP session closed successfully")
            except Exception as e:
                logger.warning(f"Error closing HTTP session: {e}")
            finally:
                self._session = None

    @property
    def base_url(self) -> str:
        """Get base API URL."""
        return self.settings.base_url.rstrip("/")

    def url_for(self, service_name: str) -> str:
        return f"{self.base_url}/{service_name.lstrip('/')}"

    def get_health_status(self) -> dict[str, Any]:
        """Get comprehensive client health status."""
        status = {
            "client_initialized": self._session is not None,
            "monitoring_enabled": self.enable_monitoring,
            "base_url": self.base_url,
            "retry_policy": {
                "max_attempts": self.retry_policy.max_attempts,
                "base_backoff": self.retry_policy.base_backoff,
                "max_backoff": self.retry_policy.max_backoff,
                "retryable_statuses": sorted(self.retry_policy.retryable_statuses),
            },
        }

        if self._health_monitor:
            status.update(self._health_monitor.get_health_status())

        return status

    async def _record(
        self,
        service_name: str,
        attempt: int,
        started: float,
        request_size: int,
        response: httpx.Response | None = None,
        error_type: str | None = None,
    ) -> None:
        if not self._health_monitor:
            return
        await self._health_monitor.record_request(
            RequestMetrics(
                service=self.service_name,
                endpoint=service_name,
                status_code=response.status_code if response is not None else None,
                duration_ms=(time.time() - started) * 1000,
                request_size_bytes=request_size,
                response_size_bytes=len(response.content)
                if response is not None and response.content
                else 0,
                attempt=attempt,
                error_type=error_type,
            )
        )

    async def post(
        self,
        service_name: str,
        payload: dict[str, Any],
        *,
        idempotent: bool = True,
        timeout: float | None = None,
    ) -> Any:
        """
        POST a JSON payload to a MyGo service with retry and classification.

        Args:
            service_name: MyGo service, e.g. "HotelSearch"
            payload: JSON-ready request body (never mutated)
            idempotent: Only idempotent calls are retried
            timeout: Override of the per-attempt wall-clock timeout

        Returns:
            Parsed JSON body of the successful response

        Raises:
            ValidationError: Supplier answered 400
            ExternalServiceError: Other non-2xx, exhausted retries, bad body
            TimeoutError: An attempt exceeded its deadline
        """
        await self._ensure_session()

        policy = self.retry_policy if idempotent else self.retry_policy.single_attempt()
        state = RetryState(policy)
        url = self.url_for(service_name)
        request_timeout = (
            timeout if timeout is not None else self.settings.request_timeout
        )
        safe_payload = self._data_transformer.mask_sensitive_data(payload)
        request_size = len(json.dumps(payload).encode("utf-8"))
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "x-request-id": str(uuid.uuid4()),
        }

        while True:
            attempt = state.begin_attempt()
            started = time.time()

            logger.info(
                f"MyGo request: POST {service_name} "
                f"(attempt {attempt}/{policy.max_attempts})",
                extra={
                    "mygo_service": service_name,
                    "attempt": attempt,
                    "payload": safe_payload,
                    "request_size_bytes": request_size,
                },
            )

            try:
                response = await asyncio.wait_for(
                    self._session.post(url, json=payload, headers=headers),
                    timeout=request_timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                state.fail()
                await self._record(
                    service_name, attempt, started, request_size, error_type="Timeout"
                )
                logger.error(
                    f"MyGo {service_name} timed out after {request_timeout}s "
                    f"(attempt {attempt}, not retried)",
                    extra={"mygo_service": service_name, "attempt": attempt},
                )
                raise TimeoutError(
                    f"MyGo API timeout after {request_timeout}s",
                    timeout_seconds=request_timeout,
                    details={"service": service_name},
                ) from e
            except httpx.TransportError as e:
                await self._record(
                    service_name,
                    attempt,
                    started,
                    request_size,
                    error_type=type(e).__name__,
                )
                if state.can_retry:
                    delay = state.schedule_retry()
                    logger.warning(
                        f"MyGo {service_name} transport error, retrying in {delay}s "
                        f"(attempt {attempt}): {e}",
                        extra={"mygo_service": service_name, "attempt": attempt},
                    )
                    await asyncio.sleep(delay)
                    continue
                state.fail()
                logger.error(
                    f"MyGo {service_name} failed after {attempt} attempts: {e}",
                    extra={
                        "mygo_service": service_name,
                        "total_attempts": attempt,
                        "final_error_type": type(e).__name__,
                    },
                )
                raise ExternalServiceError(
                    f"Failed to connect to MyGo {service_name}: {e}",
                    service=self.service_name,
                ) from e

            content_type = response.headers.get("content-type", "unknown")
            logger.info(
                f"MyGo response: {service_name} - {response.status_code}",
                extra={
                    "mygo_service": service_name,
                    "attempt": attempt,
                    "status_code": response.status_code,
                    "content_type": content_type,
                    "duration_ms": (time.time() - started) * 1000,
                },
            )

            if response.is_success:
                await self._record(
                    service_name, attempt, started, request_size, response
                )
                state.succeed()
                return self._parse_json_body(service_name, response, content_type)

            preview = self._data_transformer.preview(
                response.text, self.settings.error_preview_chars
            )
            logger.warning(
                f"MyGo {service_name} error response preview: {preview}",
                extra={
                    "mygo_service": service_name,
                    "attempt": attempt,
                    "status_code": response.status_code,
                },
            )
            await self._record(
                service_name,
                attempt,
                started,
                request_size,
                response,
                error_type=f"HTTP{response.status_code}",
            )

            retryable = policy.is_retryable_status(response.status_code)
            if retryable and state.can_retry:
                delay = state.schedule_retry()
                logger.warning(
                    f"MyGo {service_name} returned {response.status_code}, "
                    f"retrying in {delay}s (attempt {attempt})",
                    extra={"mygo_service": service_name, "attempt": attempt},
                )
                await asyncio.sleep(delay)
                continue

            state.fail()
            if retryable:
                logger.error(
                    f"MyGo {service_name} retries exhausted after {attempt} attempts "
                    f"(last status {response.status_code})",
                    extra={
                        "mygo_service": service_name,
                        "total_attempts": attempt,
                        "status_code": response.status_code,
                    },
                )
            raise self._classify_error(service_name, response, preview)

    def _classify_error(
        self, service_name: str, response: httpx.Response, preview: str
    ) -> ValidationError | ExternalServiceError:
        """Map a terminal non-2xx response to the error taxonomy."""
        status_code = response.status_code
        message = self._extract_error_message(response) or preview
        details = {"service": service_name, "upstream_status": status_code}

        if status_code == 400:
            return ValidationError(
                f"MyGo {service_name} rejected the request: {message}",
                details=details,
            )

        return ExternalServiceError(
            f"MyGo error {status_code}: {message}",
            service=self.service_name,
            upstream_status=status_code,
            details=details,
        )

    @staticmethod
    def _extract_error_message(response: httpx.Response) -> str | None:
        try:
            error_data = response.json()
        except ValueError:
            return None

        if not isinstance(error_data, dict):
            return None

        error_message = error_data.get("ErrorMessage")
        if isinstance(error_message, dict) and error_message.get("Description"):
            return str(error_message["Description"])

        for key in ("message", "error", "detail"):
            if error_data.get(key):
                return str(error_data[key])
        return None

    def _parse_json_body(
        self, service_name: str, response: httpx.Response, content_type: str
    ) -> Any:
        if "json" not in content_type.lower():
            raise ExternalServiceError(
                f"Unexpected MyGo response type for {service_name}: {content_type}",
                service=self.service_name,
                upstream_status=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            logger.error(
                f"Failed to parse MyGo {service_name} response JSON: {e}",
                extra={"mygo_service": service_name},
            )
            raise ExternalServiceError(
                f"Invalid JSON from MyGo {service_name}",
                service=self.service_name,
                upstream_status=response.status_code,
            ) from e
