"""Blocking HTTP client used for calls to other services."""

import logging
import time
from typing import Any

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (httpx.TimeoutException, httpx.ConnectError)


class HttpClient:
    """
    Thin wrapper over ``httpx.Client`` that retries transient failures.

    A request is retried on timeouts, refused connections and 5xx answers,
    sleeping ``backoff_factor * 2**attempt`` between attempts. Any other
    response goes back to the caller as is. Once retries run out the last
    error is raised, so a slow peer surfaces as a failure, never a hang.
    """

    DEFAULT_TIMEOUT = httpx.Timeout(connect=2.0, read=5.0, write=5.0, pool=2.0)

    def __init__(
        self,
        base_url: str | None = None,
        timeout: httpx.Timeout | None = None,
        max_retries: int = 1,
        backoff_factor: float = 0.2,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Args:
            base_url: Prefix for relative request URLs
            timeout: Per-request timeout
            max_retries: Extra attempts after the first one
            backoff_factor: Base delay in seconds
            headers: Headers sent with every request
            transport: Replacement transport, e.g. ``httpx.MockTransport``
        """
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self._client_options: dict[str, Any] = {
            "base_url": base_url or "",
            "timeout": timeout or self.DEFAULT_TIMEOUT,
            "headers": headers or {},
            "transport": transport,
        }
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(**self._client_options)
        return self._client

    def backoff_for(self, attempt: int) -> float:
        return self.backoff_factor * (2**attempt)

    def _wait_before_retry(self, attempt: int, method: str, url: str, cause: str) -> None:
        delay = self.backoff_for(attempt)
        logger.warning(
            f"{cause} on {method} {url}, retry {attempt + 1}/{self.max_retries} in {delay}s"
        )
        time.sleep(delay)

    def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request, retrying transient failures.

        Raises:
            httpx.HTTPStatusError: The peer kept answering with 5xx
            httpx.TimeoutException: Every attempt timed out
            httpx.ConnectError: The peer could not be reached
        """
        attempt = 0
        while True:
            can_retry = attempt < self.max_retries
            try:
                response = self.client.request(method, url, **kwargs)
            except RETRYABLE_ERRORS as e:
                if not can_retry:
                    raise
                self._wait_before_retry(attempt, method, url, type(e).__name__)
            else:
                if response.status_code < 500:
                    return response
                if not can_retry:
                    response.raise_for_status()
                self._wait_before_retry(attempt, method, url, f"HTTP {response.status_code}")
            attempt += 1

    def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return self.request("POST", url, **kwargs)

    def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            logger.debug("HTTP client closed")
        self._client = None

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
