"""HTTP client forwarding requests to backend services."""

import logging
from typing import List, Optional, Tuple

import httpx

from gateway.errors import BackendTimeout, BackendUnavailable

logger = logging.getLogger(__name__)


class ServiceClient:
    """Shared HTTP client for backend communication."""

    def __init__(
        self,
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize service client.

        Args:
            timeout: Default request timeout in seconds
            transport: Optional httpx transport (e.g. a mock in tests)
        """
        self.timeout = timeout
        self.client = httpx.AsyncClient(
            timeout=timeout, follow_redirects=False, transport=transport
        )

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def forward_request(
        self,
        method: str,
        url: str,
        headers: Optional[List[Tuple[str, str]]] = None,
        content: Optional[bytes] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """Forward request to a backend service.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Full URL including the query string
            headers: Request headers as (name, value) pairs; repeats allowed
            content: Raw body
            timeout: Per-call timeout overriding the client default

        Returns:
            httpx.Response from the backend (any status)

        Raises:
            BackendTimeout: If the backend did not answer in time
            BackendUnavailable: If the backend could not be reached
        """
        try:
            logger.info(f"Forwarding {method} request to {url}")

            response = await self.client.request(
                method=method,
                url=url,
                headers=headers,
                content=content,
                timeout=timeout if timeout is not None else self.timeout,
            )

            logger.info(
                f"Received response from {url}: status={response.status_code}, "
                f"latency={response.elapsed.total_seconds() * 1000:.2f}ms"
            )

            return response

        except httpx.TimeoutException as e:
            logger.error(f"Request to {url} timed out")
            raise BackendTimeout(f"Request to backend timed out: {e}")
        except httpx.RequestError as e:
            logger.error(f"Request to {url} failed: {e}")
            raise BackendUnavailable(f"Failed to connect to backend: {e}")
