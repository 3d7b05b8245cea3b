"""
Base Provider Client

Shared async HTTP plumbing for every upstream provider.

Features:
- Bounded request timeout
- Sliding-window request limiter
- Automatic retry with exponential backoff for retryable failures
- Typed error raising (see errors.py)
"""

import asyncio
import time
from typing import Optional, List, Dict, Any
import httpx
from loguru import logger

from conviction import __version__
from conviction.core.config import settings
from conviction.services.providers.errors import (
    UpstreamError, UpstreamUnavailable, AuthenticationError, RateLimitError,
    NetworkError, ProviderNotConfigured, ErrorCategory, categorize_error
)


class BaseProviderClient:
    """
    Async base client for an HTTP provider.

    Subclasses set ``name`` and ``base_url`` and build their endpoint
    methods on top of ``_request``.

    Example:
        ```python
        async with DexScreenerClient() as client:
            pair = await client.get_token_pairs("0x...")
        ```
    """

    name = "provider"
    base_url = ""

    # Rate limiting
    RATE_LIMIT_WINDOW = 60  # seconds

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        requests_per_minute: Optional[int] = None,
    ):
        self.api_key = api_key
        if base_url:
            self.base_url = base_url

        self.max_retries = (
            settings.PROVIDER_MAX_RETRIES if max_retries is None else max_retries
        )
        self.retry_initial_delay = settings.PROVIDER_RETRY_INITIAL_DELAY
        self.retry_backoff = settings.PROVIDER_RETRY_BACKOFF
        self.retry_max_delay = settings.PROVIDER_RETRY_MAX_DELAY
        self.rate_limit_requests = (
            requests_per_minute or settings.PROVIDER_REQUESTS_PER_MINUTE
        )

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.PROVIDER_TIMEOUT_SECONDS,
            headers=self._get_default_headers(),
        )

        self._request_timestamps: List[float] = []

    @property
    def is_configured(self) -> bool:
        """Whether the provider can be called (keyless providers always can)"""
        return True

    def _get_default_headers(self) -> Dict[str, str]:
        """Get default HTTP headers"""
        return {
            "Accept": "application/json",
            "User-Agent": f"ConvictionEngine/{__version__}",
        }

    def _require_configured(self):
        if not self.is_configured:
            raise ProviderNotConfigured(
                f"{self.name} API key not configured", provider=self.name
            )

    async def _check_rate_limit(self):
        """
        Check and enforce rate limiting.

        Raises:
            RateLimitError: If rate limit would be exceeded
        """
        now = time.monotonic()

        self._request_timestamps = [
            ts for ts in self._request_timestamps
            if now - ts < self.RATE_LIMIT_WINDOW
        ]

        if len(self._request_timestamps) >= self.rate_limit_requests:
            oldest = self._request_timestamps[0]
            retry_after = self.RATE_LIMIT_WINDOW - (now - oldest)

            raise RateLimitError(
                f"Local rate limit reached: {self.rate_limit_requests} "
                f"requests per {self.RATE_LIMIT_WINDOW}s",
                provider=self.name,
                retry_after=retry_after,
            )

        self._request_timestamps.append(now)

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Make HTTP request with retry logic and error handling.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path or absolute URL
            params: Query parameters
            data: JSON request body
            headers: Extra per-request headers

        Returns:
            Parsed JSON response

        Raises:
            UpstreamError: On provider error after retries are exhausted
        """
        retry_count = 0
        while True:
            try:
                return await self._send(method, endpoint, params, data, headers)
            except UpstreamError as error:
                if not error.is_retryable() or retry_count >= self.max_retries:
                    raise
                retry_count += 1
                delay = self._backoff_delay(retry_count, error)
                logger.warning(
                    f"{self.name}: retrying {endpoint} "
                    f"(attempt {retry_count}/{self.max_retries}) after {delay:.2f}s: {error}"
                )
                await asyncio.sleep(delay)

    def _backoff_delay(self, retry_count: int, error: UpstreamError) -> float:
        delay = self.retry_initial_delay * (self.retry_backoff ** (retry_count - 1))
        if error.retry_after:
            delay = max(delay, float(error.retry_after))
        return min(delay, self.retry_max_delay)

    async def _send(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]],
        data: Optional[Any],
        headers: Optional[Dict[str, str]],
    ) -> Any:
        await self._check_rate_limit()

        try:
            response = await self.client.request(
                method=method,
                url=endpoint,
                params=params,
                json=data,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timeout: {e}", provider=self.name)
        except httpx.TransportError as e:
            raise NetworkError(f"Network error: {e}", provider=self.name)

        try:
            response_data = response.json()
        except ValueError:
            response_data = None

        if response.status_code >= 400:
            self._handle_error_response(
                response.status_code,
                response_data if isinstance(response_data, dict) else {},
            )

        if response_data is None:
            raise UpstreamUnavailable(
                "Response body is not valid JSON",
                provider=self.name,
                category=ErrorCategory.INVALID_RESPONSE,
                status_code=response.status_code,
            )

        return response_data

    def _handle_error_response(self, status_code: int, response_data: Dict[str, Any]):
        """Map an error response onto a typed exception"""
        category = categorize_error(status_code, response_data)
        error_message = str(
            response_data.get("error")
            or response_data.get("message")
            or f"HTTP {status_code}"
        )

        if category == ErrorCategory.AUTHENTICATION:
            raise AuthenticationError(
                error_message, provider=self.name, status_code=status_code
            )

        if category == ErrorCategory.RATE_LIMIT:
            raise RateLimitError(
                error_message,
                provider=self.name,
                status_code=status_code,
                retry_after=response_data.get("retry_after"),
            )

        raise UpstreamUnavailable(
            error_message,
            provider=self.name,
            category=category,
            status_code=status_code,
            response_data=response_data,
        )

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
