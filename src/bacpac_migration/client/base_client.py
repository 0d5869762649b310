"""Base HTTP client for Azure Resource Manager.

This module provides a base async HTTP client with connection pooling,
rate limiting, bearer token handling, error mapping and payload logging.
"""

import asyncio
import time
from typing import Any

import httpx

from bacpac_migration.client.exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
)
from bacpac_migration.client.session import AzureSession
from bacpac_migration.utils.logging import (
    get_logger,
    log_arm_call,
    sanitize_payload,
    should_log_payloads,
    truncate_payload,
)

logger = get_logger(__name__)


class BaseAPIClient:
    """Base async HTTP client for ARM.

    This client provides:
    - Connection pooling
    - Rate limiting
    - A fresh bearer token from the session on every request
    - Request/response logging with secrets redacted
    - Mapping of error responses to exceptions
    """

    def __init__(
        self,
        session: AzureSession,
        timeout: int = 60,
        rate_limit: int = 20,
        log_payloads: bool = False,
        max_payload_size: int = 10000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize base API client.

        Args:
            session: Signed-in Azure session
            timeout: Request timeout in seconds
            rate_limit: Maximum requests per second
            log_payloads: Enable request/response payload logging at DEBUG level
            max_payload_size: Maximum payload size (chars) to log before truncation
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.session = session
        self.base_url = session.management_url.rstrip("/")

        self.log_payloads = log_payloads
        self.max_payload_size = max_payload_size

        # Rate limiting
        self.rate_limit = rate_limit
        self._rate_limit_lock = asyncio.Lock()
        self._last_request_time: float = 0
        self._min_request_interval = 1.0 / rate_limit if rate_limit > 0 else 0

        self.client = httpx.AsyncClient(
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            timeout=httpx.Timeout(timeout, connect=10.0),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            transport=transport,
        )

        logger.info("client_initialized", base_url=self.base_url, rate_limit=rate_limit)

    def _build_url(self, endpoint: str) -> str:
        """Build full URL from an ARM path, leaving absolute URLs untouched."""
        if endpoint.startswith(("https://", "http://")):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def _rate_limit_wait(self) -> None:
        """Implement rate limiting by waiting if necessary."""
        if self._min_request_interval > 0:
            async with self._rate_limit_lock:
                now = time.time()
                time_since_last = now - self._last_request_time

                if time_since_last < self._min_request_interval:
                    await asyncio.sleep(self._min_request_interval - time_since_last)

                self._last_request_time = time.time()

    def _handle_error_response(self, response: httpx.Response) -> None:
        """Raise the exception matching an ARM error response.

        ARM error bodies look like ``{"error": {"code": ..., "message": ...}}``.

        Raises:
            AuthenticationError: For 401 responses
            AuthorizationError: For 403 responses
            NotFoundError: For 404 responses
            ConflictError: For 409 responses
            RateLimitError: For 429 responses
            ServerError: For 5xx responses
            APIError: For other error responses
        """
        status_code = response.status_code

        try:
            error_data = response.json()
        except ValueError:
            error_data = {"detail": response.text}
        if not isinstance(error_data, dict):
            error_data = {"detail": str(error_data)}

        error = error_data.get("error")
        if isinstance(error, dict):
            error_message = error.get("message") or error.get("code") or "Unknown error"
        else:
            error_message = error_data.get("message", error_data.get("detail", "Unknown error"))

        if status_code == 401:
            raise AuthenticationError(f"Authentication failed: {error_message}")
        elif status_code == 403:
            raise AuthorizationError(
                message=f"Authorization failed: {error_message}",
                status_code=status_code,
                response=error_data,
            )
        elif status_code == 404:
            raise NotFoundError(
                message="Resource not found", status_code=status_code, response=error_data
            )
        elif status_code == 409:
            raise ConflictError(
                message=f"Resource conflict: {error_message}",
                status_code=status_code,
                response=error_data,
            )
        elif status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                message="Rate limit exceeded",
                status_code=status_code,
                response=error_data,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        elif 500 <= status_code < 600:
            raise ServerError(
                message=f"Server error: {error_message}",
                status_code=status_code,
                response=error_data,
            )
        else:
            raise APIError(
                message=f"API error: {error_message}",
                status_code=status_code,
                response=error_data,
            )

    async def request_raw(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Make an HTTP request and return the successful response.

        Args:
            method: HTTP method
            endpoint: ARM path or absolute URL
            params: Query parameters
            json_data: JSON request body

        Returns:
            Response with a status code below 400

        Raises:
            NetworkError: For network-related errors
            AuthenticationError: If no token can be acquired or ARM answers 401
            Various APIError subclasses: For API errors
        """
        url = self._build_url(endpoint)
        token = await self.session.bearer_token()

        await self._rate_limit_wait()

        if should_log_payloads(self.log_payloads) and json_data is not None:
            logger.debug(
                "api_request_payload",
                method=method,
                url=url,
                payload=truncate_payload(sanitize_payload(json_data), self.max_payload_size),
            )

        start_time = time.time()

        try:
            response = await self.client.request(
                method=method,
                url=url,
                params=params,
                json=json_data,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as e:
            logger.error("timeout_error", method=method, url=url, error=str(e))
            raise NetworkError(f"Request timeout: {e}") from e
        except httpx.TransportError as e:
            logger.error("network_error", method=method, url=url, error=str(e))
            raise NetworkError(f"Network error: {e}") from e

        log_arm_call(
            logger,
            method=method,
            url=url,
            status_code=response.status_code,
            duration_ms=(time.time() - start_time) * 1000,
            request_id=response.headers.get("x-ms-request-id"),
        )

        if should_log_payloads(self.log_payloads) and response.text:
            try:
                payload = truncate_payload(sanitize_payload(response.json()), self.max_payload_size)
            except ValueError:
                payload = response.text[: self.max_payload_size]
            logger.debug(
                "api_response_payload",
                method=method,
                url=url,
                status_code=response.status_code,
                payload=payload,
            )

        if response.status_code >= 400:
            self._handle_error_response(response)

        return response

    async def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an HTTP request and return the decoded JSON body ({} when empty)."""
        response = await self.request_raw(method, endpoint, params=params, json_data=json_data)
        return response.json() if response.text else {}

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Make a GET request."""
        return await self.request("GET", endpoint, params=params)

    async def post(
        self,
        endpoint: str,
        json_data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make a POST request."""
        return await self.request("POST", endpoint, params=params, json_data=json_data)

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self.client.aclose()
        logger.info("client_closed", base_url=self.base_url)

    async def __aenter__(self) -> "BaseAPIClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
