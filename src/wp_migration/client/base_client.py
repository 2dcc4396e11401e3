"""Base HTTP client for WP Bridge.

This module provides a base async HTTP client with connection pooling,
rate limiting, and exception mapping for the source content API.
"""

import asyncio
import time
from typing import Any
from urllib.parse import urljoin

import httpx

from wp_migration import __version__
from wp_migration.client.exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
)
from wp_migration.utils.logging import get_logger, log_api_request

logger = get_logger(__name__)


class BaseAPIClient:
    """Base async HTTP client with rate limiting and error mapping.

    Responses are returned whole (not just their JSON body) because the
    source API carries pagination metadata in response headers.
    """

    def __init__(
        self,
        base_url: str,
        username: str | None = None,
        password: str | None = None,
        token: str | None = None,
        verify_ssl: bool = True,
        timeout: float = 30,
        rate_limit: float = 0,
        max_connections: int = 10,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize base API client.

        Args:
            base_url: Base URL for API requests
            username: Username for HTTP basic auth (application passwords)
            password: Password for HTTP basic auth
            token: Bearer token, used when no username is given
            verify_ssl: Whether to verify SSL certificates
            timeout: Request timeout in seconds
            rate_limit: Maximum requests per second (0 disables)
            max_connections: Maximum number of pooled connections
            user_agent: User-Agent header (defaults to wp-bridge/<version>)
            transport: Optional httpx transport (mainly for tests)
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.verify_ssl = verify_ssl
        self.user_agent = user_agent or f"wp-bridge/{__version__}"

        self._rate_limit_lock = asyncio.Lock()
        self._last_request_time: float = 0
        self._min_request_interval = 1.0 / rate_limit if rate_limit > 0 else 0

        auth = httpx.BasicAuth(username, password or "") if username else None

        self.client = httpx.AsyncClient(
            headers=self._build_headers(),
            auth=auth,
            timeout=httpx.Timeout(timeout, connect=10.0),
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_connections,
            ),
            verify=verify_ssl,
            follow_redirects=True,
            transport=transport,
        )

        logger.info("client_initialized", base_url=self.base_url, authenticated=bool(auth or token))

    def _build_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _build_url(self, endpoint: str) -> str:
        return urljoin(f"{self.base_url}/", endpoint.lstrip("/"))

    async def _rate_limit_wait(self) -> None:
        """Implement rate limiting by waiting if necessary."""
        if self._min_request_interval > 0:
            async with self._rate_limit_lock:
                time_since_last = time.monotonic() - self._last_request_time
                if time_since_last < self._min_request_interval:
                    await asyncio.sleep(self._min_request_interval - time_since_last)
                self._last_request_time = time.monotonic()

    @staticmethod
    def _error_body(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {"message": response.text[:500]}
        if isinstance(data, dict):
            return data
        return {"message": str(data)}

    def _handle_error_response(self, response: httpx.Response) -> None:
        """Handle error responses by raising appropriate exceptions.

        Args:
            response: HTTP response object

        Raises:
            AuthenticationError: For 401 responses
            AuthorizationError: For 403 responses
            NotFoundError: For 404 responses
            RateLimitError: For 429 responses
            ServerError: For 5xx responses
            APIError: For other error responses
        """
        status_code = response.status_code
        error_data = self._error_body(response)
        error_message = error_data.get("message", error_data.get("detail", "Unknown error"))

        if status_code == 401:
            raise AuthenticationError("Authentication failed", status_code, error_data)
        elif status_code == 403:
            raise AuthorizationError("Authorization failed", status_code, error_data)
        elif status_code == 404:
            raise NotFoundError("Resource not found", status_code, error_data)
        elif status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                message="Rate limit exceeded",
                status_code=status_code,
                response=error_data,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        elif 500 <= status_code < 600:
            raise ServerError(f"Server error: {error_message}", status_code, error_data)
        else:
            raise APIError(f"API error: {error_message}", status_code, error_data)

    async def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Make an HTTP request with rate limiting and error handling.

        Args:
            method: HTTP method
            endpoint: API endpoint path, relative to ``base_url``
            params: Query parameters
            **kwargs: Additional arguments passed to httpx

        Returns:
            The successful httpx response

        Raises:
            NetworkError: For network-related errors
            Various APIError subclasses: For API errors
        """
        url = self._build_url(endpoint)
        await self._rate_limit_wait()

        start_time = time.monotonic()
        try:
            response = await self.client.request(method=method, url=url, params=params, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("timeout_error", method=method, url=url, error=str(e))
            raise NetworkError(f"Request timeout: {e}") from e
        except httpx.TransportError as e:
            logger.error("network_error", method=method, url=url, error=str(e))
            raise NetworkError(f"Network error: {e}") from e

        log_api_request(
            logger,
            method=method,
            url=url,
            status_code=response.status_code,
            duration_ms=(time.monotonic() - start_time) * 1000,
            params=params,
        )

        if response.status_code >= 400:
            self._handle_error_response(response)

        return response

    async def get(
        self, endpoint: str, params: dict[str, Any] | None = None, **kwargs: Any
    ) -> httpx.Response:
        """Make a GET request."""
        return await self.request("GET", endpoint, params=params, **kwargs)

    async def close(self) -> None:
        """Close the HTTP client and release connections."""
        await self.client.aclose()
        logger.debug("client_closed", base_url=self.base_url)

    async def __aenter__(self) -> "BaseAPIClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
