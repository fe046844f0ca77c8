"""
Client for the donor backend REST API.

This module provides an async HTTP client used by the home-screen services
to read donor statistics, appointments, campaigns and emergencies.
"""

import asyncio
import logging
from typing import Any

import httpx

from donor_home.core.config import settings

logger = logging.getLogger(__name__)


class DonorAPIError(Exception):
    """Base exception for donor backend API errors."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class DonorAuthError(DonorAPIError):
    """Raised when authentication fails (401/403)."""

    pass


class DonorNotFoundError(DonorAPIError):
    """Raised when a resource is not found (404)."""

    pass


class DonorFetchError(DonorAPIError):
    """Raised when a critical read exhausts every source without a result."""

    pass


class DonorAPIClient:
    """
    Async HTTP client for the donor backend.

    Usage:
        client = DonorAPIClient()
        stats = await client.get("/home/stats")

    Or with custom configuration:
        client = DonorAPIClient(
            api_url="http://10.0.2.2:5000/api",
            token="access-token"
        )
    """

    MAX_RETRIES = 3
    RETRY_BACKOFF_BASE = 2.0  # Exponential backoff base in seconds

    def __init__(
        self,
        api_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
    ):
        """
        Initialize the donor API client.

        Args:
            api_url: Base URL for the API. Defaults to settings.DONOR_API_URL.
            token: Bearer token. Defaults to settings.DONOR_API_TOKEN. Requests
                are sent without Authorization when no token is available.
            timeout: Request timeout in seconds. Defaults to settings.HTTP_TIMEOUT.
        """
        self.api_url = (api_url or settings.DONOR_API_URL).rstrip("/")
        self.token = token or settings.DONOR_API_TOKEN
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT

    def _get_headers(self) -> dict[str, str]:
        """Get headers for API requests."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _check_response(
        self, response: httpx.Response, endpoint: str
    ) -> DonorAPIError | None:
        """
        Classify a response by status code.

        Raises for errors that a retry cannot fix (auth, not found, other
        4xx). Returns the error for a server failure so the caller can retry,
        or None for a successful response.
        """
        status = response.status_code

        if status in (401, 403):
            logger.error(f"Authentication failed: {status}")
            raise DonorAuthError(
                f"Authentication failed: {response.text}", status_code=status
            )

        if status == 404:
            logger.info(f"Resource not found: {endpoint}")
            raise DonorNotFoundError(f"Resource not found: {endpoint}", status_code=404)

        if 400 <= status < 500:
            logger.error(f"Client error: {status} - {response.text}")
            raise DonorAPIError(f"API error: {response.text}", status_code=status)

        if status >= 500:
            return DonorAPIError(f"Server error: {response.text}", status_code=status)

        return None

    async def _wait_before_retry(self, attempt: int, error: DonorAPIError) -> bool:
        """Back off before the next attempt. False once attempts are used up."""
        logger.warning(f"{error.message}, attempt {attempt + 1}/{self.MAX_RETRIES}")
        if attempt >= self.MAX_RETRIES - 1:
            return False
        await asyncio.sleep(self.RETRY_BACKOFF_BASE**attempt)
        return True

    async def _request(
        self,
        method: str,
        endpoint: str,
        **kwargs: Any,
    ) -> Any:
        """
        Make an HTTP request, retrying server errors and transport failures.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path (e.g., "/home/stats")
            **kwargs: Additional arguments passed to httpx.request

        Returns:
            Parsed JSON response.

        Raises:
            DonorAuthError: If authentication fails.
            DonorNotFoundError: If the resource does not exist.
            DonorAPIError: For other API errors, or once retries run out.
        """
        url = f"{self.api_url}{endpoint}"
        headers = self._get_headers()

        last_error: DonorAPIError | None = None

        for attempt in range(self.MAX_RETRIES):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    logger.debug(f"API request: {method} {url} (attempt {attempt + 1})")
                    response = await client.request(
                        method=method,
                        url=url,
                        headers=headers,
                        **kwargs,
                    )
            except httpx.TimeoutException as e:
                last_error = DonorAPIError(f"Request timeout: {e}")
            except httpx.RequestError as e:
                last_error = DonorAPIError(f"Request failed: {e}")
            else:
                last_error = self._check_response(response, endpoint)
                if last_error is None:
                    logger.debug(f"API response: {response.status_code}")
                    try:
                        return response.json()
                    except ValueError as e:
                        raise DonorAPIError(
                            f"Invalid JSON in response from {endpoint}: {e}",
                            status_code=response.status_code,
                        ) from e

            if not await self._wait_before_retry(attempt, last_error):
                break

        raise last_error or DonorAPIError("Request failed after all retries")

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """
        GET an endpoint and return the parsed JSON body.

        Args:
            endpoint: API endpoint path.
            params: Optional query parameters.
        """
        return await self._request("GET", endpoint, params=params)

    async def health_check(self) -> bool:
        """
        Verify API connectivity and authentication.

        Returns:
            True if the API is reachable and authentication succeeds.

        Raises:
            DonorAuthError: If authentication fails.
            DonorAPIError: If the API is unreachable.
        """
        logger.info("Performing API health check")

        try:
            await self.get("/home/stats")
            logger.info("API health check passed")
            return True
        except DonorAPIError:
            logger.error("API health check failed")
            raise
