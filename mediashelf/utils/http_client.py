"""HTTP client with retries, timeouts, and circuit breaker."""
import time
from typing import Any, Callable, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
    RetryCallState
)
import structlog

logger = structlog.get_logger(__name__)


class CircuitBreaker:
    """Coupe-circuit par catalogue.

    After ``failure_threshold`` consecutive transient failures the breaker
    opens and rejects calls for ``timeout`` seconds. It then lets a single
    trial call through (half open); a failed trial reopens it immediately.
    A trial with no outcome after another ``timeout`` is replaced by a new one.
    """

    def __init__(self, failure_threshold: int = 5, timeout: int = 60, clock: Callable[[], float] = time.monotonic):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.clock = clock
        self.failure_count = 0
        self.opened_at: Optional[float] = None
        self.state = "closed"

    def call_succeeded(self):
        self.failure_count = 0
        self.opened_at = None
        self.state = "closed"

    def call_failed(self):
        self.failure_count += 1
        if self.state == "half_open" or self.failure_count >= self.failure_threshold:
            if self.state != "open":
                logger.warning(
                    "circuit_breaker_opened",
                    failure_count=self.failure_count,
                    threshold=self.failure_threshold
                )
            self.state = "open"
            self.opened_at = self.clock()

    def can_attempt(self) -> bool:
        if self.state == "closed":
            return True
        now = self.clock()
        if now - self.opened_at < self.timeout:
            # Ouvert, ou tentative half_open en attente de son résultat
            return False
        # Open window elapsed, or a trial that never reported back (cancelled)
        self.state = "half_open"
        self.opened_at = now
        logger.info("circuit_breaker_half_open")
        return True


class CircuitOpenError(httpx.TransportError):
    """Raised instead of calling a service whose breaker is open."""


def is_transient(exc: BaseException) -> bool:
    """Transport errors and 5xx are worth retrying, 4xx are not."""
    if isinstance(exc, CircuitOpenError):
        return False
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


class RobustHTTPClient:
    """HTTP client with retries, timeouts, and circuit breaker."""

    def __init__(
        self,
        default_timeout: float = 30.0,
        max_retries: int = 3,
        retry_backoff_base: float = 2.0,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_timeout: int = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.default_timeout = default_timeout
        self.max_retries = max_retries
        self.retry_backoff_base = retry_backoff_base
        self.circuit_breakers: Dict[str, CircuitBreaker] = {}
        self.circuit_breaker_threshold = circuit_breaker_threshold
        self.circuit_breaker_timeout = circuit_breaker_timeout
        self.transport = transport

    def _get_circuit_breaker(self, service_name: str) -> CircuitBreaker:
        """Get or create circuit breaker for a service."""
        if service_name not in self.circuit_breakers:
            self.circuit_breakers[service_name] = CircuitBreaker(
                failure_threshold=self.circuit_breaker_threshold,
                timeout=self.circuit_breaker_timeout
            )
        return self.circuit_breakers[service_name]

    def _log_retry(self, retry_state: RetryCallState):
        """Log retry attempts."""
        logger.warning(
            "http_retry_attempt",
            attempt=retry_state.attempt_number,
            max_attempts=self.max_retries + 1,
            exception=str(retry_state.outcome.exception())
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=1, min=1, max=10, exp_base=self.retry_backoff_base),
            retry=retry_if_exception(is_transient),
            before_sleep=self._log_retry,
            reraise=True,
        )

    async def request_async(
        self,
        method: str,
        url: str,
        service_name: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        timeout: Optional[float] = None
    ) -> httpx.Response:
        """Request with retries and circuit breaker."""
        timeout = timeout or self.default_timeout
        cb = self._get_circuit_breaker(service_name)

        async for attempt in self._retrying():
            with attempt:
                if not cb.can_attempt():
                    raise CircuitOpenError(f"Circuit breaker open for {service_name}")

                try:
                    async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                        response = await client.request(
                            method, url, headers=headers, params=params, json=json
                        )
                        response.raise_for_status()
                        cb.call_succeeded()
                        return response
                except httpx.HTTPError as e:
                    if is_transient(e):
                        cb.call_failed()
                    else:
                        # Le service a répondu (4xx)
                        cb.call_succeeded()
                    logger.error(
                        "http_request_failed",
                        service=service_name,
                        method=method,
                        url=url,
                        error=str(e),
                        circuit_breaker_state=cb.state
                    )
                    raise

    async def get_async(
        self,
        url: str,
        service_name: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> httpx.Response:
        """GET request with retries and circuit breaker."""
        return await self.request_async(
            "GET", url, service_name, headers=headers, params=params, timeout=timeout
        )

    async def post_async(
        self,
        url: str,
        service_name: str,
        json: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None
    ) -> httpx.Response:
        """POST request with retries and circuit breaker."""
        return await self.request_async(
            "POST", url, service_name, headers=headers, json=json, timeout=timeout
        )
