"""
backend/app/providers/http_client.py

Purpose:
    Shared async HTTP client for upstream collaborators (odds provider,
    ledger). Wraps httpx.AsyncClient with a per-client circuit breaker and
    optional retry/backoff on transient statuses.

Notes:
    - ``max_retries=0`` means exactly one attempt. The placement path uses
      that everywhere so a failed upstream call fails the ticket closed
      instead of being retried implicitly.
    - Query strings are never logged; they carry the provider API key.
"""

import asyncio
import logging
import time
from typing import Mapping, Optional
from urllib.parse import urlparse

import httpx

logger = logging.getLogger("betslip.http_client")

_RETRYABLE_STATUSES = {429, 500, 502, 503, 504}
_NETWORK_ERRORS = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)


class CircuitOpenError(Exception):
    """Raised instead of a request while the client's circuit is open."""

    def __init__(self, name: str) -> None:
        super().__init__(f"{name} circuit open")
        self.name = name


class CircuitBreaker:
    """Counts consecutive upstream failures; opens at the threshold.

    After ``recovery_timeout`` seconds one trial request is let through (half-open);
    its outcome closes or re-opens the circuit.
    """

    def __init__(self, name: str, failure_threshold: int = 3, recovery_timeout: float = 300.0):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.is_open = False

    def record_success(self) -> None:
        if self.is_open:
            logger.info("[%s] Circuit closed", self.name)
        self.failure_count = 0
        self.is_open = False

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.monotonic()
        if self.failure_count >= self.failure_threshold and not self.is_open:
            self.is_open = True
            logger.warning("[%s] Circuit OPEN after %d failures", self.name, self.failure_count)

    def can_attempt(self) -> bool:
        if not self.is_open:
            return True
        return (
            self.last_failure_time is not None
            and time.monotonic() - self.last_failure_time > self.recovery_timeout
        )

    def snapshot(self) -> dict:
        return {"open": self.is_open, "failures": self.failure_count}


def _retry_after(response: httpx.Response) -> Optional[float]:
    for header in ("retry-after", "x-ratelimit-retry-after"):
        value = response.headers.get(header)
        if value is None:
            continue
        try:
            return float(value)
        except ValueError:
            continue
    return None


def safe_url(url: str) -> str:
    """Scheme, host and path only."""
    parsed = urlparse(str(url))
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


class ResilientClient:
    """httpx.AsyncClient with a circuit breaker and bounded retries.

    5xx responses and network errors count against the circuit; any
    response below 400 closes it. 4xx responses are the caller's business
    and leave the circuit untouched.
    """

    def __init__(
        self,
        name: str,
        timeout: float = 15.0,
        max_retries: int = 0,
        base_delay: float = 1.0,
        headers: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            timeout=timeout, headers=dict(headers or {}), transport=transport,
        )
        self._name = name
        self._max_retries = max(0, int(max_retries))
        self._base_delay = base_delay
        self.circuit = CircuitBreaker(name)

    @property
    def name(self) -> str:
        return self._name

    async def _backoff(self, attempt: int, resp: Optional[httpx.Response] = None) -> None:
        delay = _retry_after(resp) if resp is not None else None
        if delay is None:
            delay = self._base_delay * (2 ** attempt)
        await asyncio.sleep(min(delay, 60.0))

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send one request (plus up to ``max_retries`` retries on transient failures).

        Raises CircuitOpenError without touching the network while the
        circuit is open, and the last network error once attempts run out.
        """
        if not self.circuit.can_attempt():
            raise CircuitOpenError(self._name)

        attempts = self._max_retries + 1
        attempt = 0
        while True:
            last = attempt == attempts - 1
            try:
                resp = await self._client.request(method, url, **kwargs)
            except _NETWORK_ERRORS as exc:
                self.circuit.record_failure()
                logger.warning(
                    "[%s] %s on %s %s (attempt %d/%d): %s",
                    self._name, type(exc).__name__, method, safe_url(url), attempt + 1, attempts, exc,
                )
                if last:
                    raise
                await self._backoff(attempt)
                attempt += 1
                continue

            if resp.status_code >= 500:
                self.circuit.record_failure()
            elif resp.status_code < 400:
                self.circuit.record_success()

            if resp.status_code not in _RETRYABLE_STATUSES or last:
                return resp

            logger.warning(
                "[%s] Status %d on %s %s, retrying (attempt %d/%d)",
                self._name, resp.status_code, method, safe_url(url), attempt + 1, attempts,
            )
            await self._backoff(attempt, resp)
            attempt += 1

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()
