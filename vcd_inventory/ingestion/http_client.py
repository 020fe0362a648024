"""
HTTP client shared by all source adapters.

Wraps one authenticated requests.Session against a vCD endpoint and provides
rate limiting, retries with backoff, circuit breaking, and optional
lightweight response caching. Session acquisition (login, token renewal)
happens outside this module; the client is handed a ready bearer token.

One client serves every adapter, possibly from several worker threads, so
the limiter, breaker, and cache each guard their state with a lock.
"""
import logging
import random
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional, Tuple

import requests

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
DEFAULT_API_VERSION = "37.2"

CacheKey = Tuple[str, str, Tuple[Tuple[str, Any], ...]]


class CircuitOpenError(RuntimeError):
    """Raised when the endpoint's circuit breaker refuses a request."""


@dataclass
class RetryConfig:
    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    jitter_ratio: float = 0.3
    timeout_seconds: float = 30.0


class RateLimiter:
    """
    Token bucket shared by every caller of one endpoint.

    A caller that finds the bucket empty reserves its token up front and
    sleeps outside the lock, so concurrent callers queue in arrival order.
    """

    def __init__(self, rate_per_minute: Optional[int], burst: Optional[int]):
        self.rate_per_minute = rate_per_minute
        self.burst = burst
        self._tokens = float(burst or 0)
        self._stamp = time.monotonic()
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.rate_per_minute and self.burst)

    def acquire(self) -> None:
        if not self.enabled:
            return

        per_second = self.rate_per_minute / 60.0
        with self._lock:
            now = time.monotonic()
            self._tokens = min(float(self.burst), self._tokens + (now - self._stamp) * per_second)
            self._stamp = now
            self._tokens -= 1
            deficit = -self._tokens

        if deficit > 0:
            time.sleep(deficit / per_second)


class CircuitBreaker:
    """
    Closed -> open after ``failure_threshold`` consecutive endpoint failures.

    Once ``open_seconds`` have passed a single trial request is let through
    (half-open); its success closes the circuit, its failure reopens it.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, open_seconds: int = 300):
        self.failure_threshold = failure_threshold
        self.open_seconds = open_seconds
        self._state = self.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state != self.CLOSED

    def can_attempt(self) -> bool:
        with self._lock:
            if self._state == self.CLOSED:
                return True
            if self._state == self.OPEN and time.monotonic() - self._opened_at >= self.open_seconds:
                self._state = self.HALF_OPEN
                return True
            # Open, or the half-open trial request is already in flight
            return False

    def record_success(self) -> None:
        with self._lock:
            self._state = self.CLOSED
            self._failures = 0

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._state == self.HALF_OPEN or self._failures >= self.failure_threshold:
                if self._state != self.OPEN:
                    logger.warning("Circuit opened after %d consecutive failure(s)", self._failures)
                self._state = self.OPEN
                self._opened_at = time.monotonic()


def retry_after_seconds(response: requests.Response) -> Optional[float]:
    """Seconds requested by a Retry-After header (delta or HTTP date), if any."""
    value = response.headers.get("Retry-After")
    if not value:
        return None

    try:
        return max(0.0, float(value))
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug("Ignoring unparseable Retry-After header: %s", value)
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class HttpClient:
    """Authenticated vCD client with retries, rate limiting, circuit breaking, and caching."""

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        api_version: str = DEFAULT_API_VERSION,
        verify_tls: bool = True,
        rate_limit_per_minute: Optional[int] = None,
        rate_limit_burst: Optional[int] = None,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        cache_enabled: bool = False,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.session = session or requests.Session()
        self.session.verify = verify_tls
        if auth_token:
            self.session.headers["Authorization"] = f"Bearer {auth_token}"
        self.retry_config = retry_config or RetryConfig()
        self.rate_limiter = RateLimiter(rate_limit_per_minute, rate_limit_burst)
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self.cache_enabled = cache_enabled
        self._cache: Dict[CacheKey, Any] = {}
        self._cache_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Dict[str, Any], auth_token: Optional[str] = None) -> "HttpClient":
        """Build a client from the ``vcd`` section of the YAML config."""
        return cls(
            base_url=config["base_url"],
            auth_token=auth_token,
            api_version=str(config.get("api_version", DEFAULT_API_VERSION)),
            verify_tls=bool(config.get("verify_tls", True)),
            rate_limit_per_minute=config.get("rate_limit_per_minute"),
            rate_limit_burst=config.get("rate_limit_burst"),
            retry_config=RetryConfig(
                max_retries=config.get("max_retries", 3),
                base_delay_seconds=config.get("retry_base_seconds", 1.0),
                max_delay_seconds=config.get("retry_max_seconds", 30.0),
                jitter_ratio=config.get("retry_jitter_ratio", 0.3),
                timeout_seconds=config.get("timeout_seconds", 30.0),
            ),
            cache_enabled=bool(config.get("cache_enabled", False)),
        )

    def json_headers(self) -> Dict[str, str]:
        return {"Accept": f"application/json;version={self.api_version}"}

    def xml_headers(self) -> Dict[str, str]:
        return {"Accept": f"application/*+xml;version={self.api_version}"}

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET a CloudAPI resource and decode the JSON body."""
        return self._cached_get(
            ("json", path, _freeze(params)),
            lambda: self._request("GET", path, params, self.json_headers()).json(),
        )

    def get_text(self, path: str, params: Optional[Dict[str, Any]] = None) -> str:
        """GET a legacy API resource as XML text."""
        return self._cached_get(
            ("xml", path, _freeze(params)),
            lambda: self._request("GET", path, params, self.xml_headers()).text,
        )

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    def _cached_get(self, key: CacheKey, fetch) -> Any:
        if not self.cache_enabled:
            return fetch()

        with self._cache_lock:
            if key in self._cache:
                return self._cache[key]

        payload = fetch()
        with self._cache_lock:
            self._cache[key] = payload
        return payload

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        """
        Send one logical request, retrying transport errors and 429/5xx.

        Raises:
            CircuitOpenError: If the breaker refuses the request
            requests.HTTPError: For the final non-2xx response
            requests.RequestException: For the final transport error
        """
        if not self.circuit_breaker.can_attempt():
            raise CircuitOpenError(f"{self.base_url} circuit open")

        url = self._url(path)
        attempts = self.retry_config.max_retries + 1

        for attempt in range(attempts):
            final = attempt == attempts - 1
            self.rate_limiter.acquire()

            try:
                response = self.session.request(
                    method, url, params=params, headers=headers,
                    timeout=self.retry_config.timeout_seconds,
                )
            except requests.RequestException as exc:
                if final:
                    self.circuit_breaker.record_failure()
                    raise
                logger.debug("%s %s failed (%s); attempt %d of %d", method, url, exc, attempt + 1, attempts)
                self._sleep_with_backoff(attempt, None)
                continue

            status = response.status_code
            if status in RETRYABLE_STATUS_CODES and not final:
                logger.debug("%s %s returned %d; attempt %d of %d", method, url, status, attempt + 1, attempts)
                self._sleep_with_backoff(attempt, retry_after_seconds(response))
                continue

            # Any answer below 500 (4xx and 429 included) means the endpoint is up
            if status >= 500:
                self.circuit_breaker.record_failure()
            else:
                self.circuit_breaker.record_success()
            response.raise_for_status()
            return response

        raise RuntimeError("unreachable: retry loop exited without a response")

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _sleep_with_backoff(self, attempt: int, retry_after: Optional[float]) -> None:
        config = self.retry_config
        delay = min(config.max_delay_seconds, config.base_delay_seconds * (2 ** attempt))
        delay += delay * random.uniform(0, config.jitter_ratio)
        if retry_after is not None:
            delay = max(delay, retry_after)
        time.sleep(delay)


def _freeze(params: Optional[Dict[str, Any]]) -> Tuple[Tuple[str, Any], ...]:
    return tuple(sorted((params or {}).items()))
