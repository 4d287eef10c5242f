"""Request dispatch: route matching, identity propagation, breaker gating."""

import asyncio
import logging
from typing import Awaitable, List, Optional, Sequence, Tuple

import httpx
from fastapi import Request
from fastapi.responses import Response
from starlette.requests import ClientDisconnect

from gateway.clients.service_client import ServiceClient
from gateway.errors import BackendError, BackendUnavailable
from gateway.models.request import IDENTITY_HEADERS, IdentityContext
from gateway.models.route import Route
from gateway.services.access_policy import AccessPolicy
from gateway.services.circuit_breaker_service import CallPermit, CircuitBreaker, CircuitBreakerRegistry
from gateway.services.fallback import fallback_response
from gateway.services.path_matcher import duplicate_patterns, match_route
from gateway.services.token_service import extract_claims, get_bearer_token

logger = logging.getLogger(__name__)

HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}
EXCLUDED_REQUEST_HEADERS = HOP_BY_HOP_HEADERS | {"host", "content-length"}
# httpx hands us the decoded body, so length and encoding are recomputed
EXCLUDED_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | {"content-length", "content-encoding"}
IDENTITY_HEADER_NAMES = {name.lower() for name in IDENTITY_HEADERS}

CLIENT_CLOSED_REQUEST = 499


class ClientDisconnected(Exception):
    """The caller went away before the backend answered."""


async def wait_for_disconnect(request: Request) -> None:
    """Block until the ASGI server reports that the client disconnected.

    Must only be awaited once the request body has been fully read.
    """
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


class GatewayRouter:
    """Dispatches inbound requests to backend routes."""

    def __init__(
        self,
        routes: Sequence[Route],
        breakers: CircuitBreakerRegistry,
        service_client: ServiceClient,
        access_policy: Optional[AccessPolicy] = None,
    ):
        """Initialize gateway router.

        Args:
            routes: Ordered route table
            breakers: Registry holding one breaker per route ``breaker_id``
            service_client: HTTP client used to reach backends
            access_policy: Public-path policy; public requests never carry
                identity headers
        """
        missing = [route.breaker_id for route in routes if route.breaker_id not in breakers]
        if missing:
            raise ValueError(f"No circuit breaker registered for: {', '.join(missing)}")

        for pattern in duplicate_patterns(routes):
            logger.warning(f"Route pattern {pattern} declared more than once")

        self.routes: Tuple[Route, ...] = tuple(routes)
        self.breakers = breakers
        self.service_client = service_client
        self.access_policy = access_policy

    def is_public(self, path: str) -> bool:
        return self.access_policy is not None and self.access_policy.is_public(path)

    def build_forward_headers(
        self, request: Request, route: Route
    ) -> List[Tuple[str, str]]:
        """Copy inbound headers and attach identity headers for the backend."""
        excluded = EXCLUDED_REQUEST_HEADERS | IDENTITY_HEADER_NAMES
        if route.strip_authorization:
            excluded = excluded | {"authorization"}

        headers = [
            (name, value)
            for name, value in request.headers.items()
            if name.lower() not in excluded
        ]

        correlation_id = getattr(request.state, "correlation_id", None)
        if correlation_id and "x-correlation-id" not in request.headers:
            headers.append(("X-Correlation-Id", correlation_id))

        if not route.propagate_identity or self.is_public(request.url.path):
            return headers

        token = get_bearer_token(request.headers.get("Authorization"))
        if token is None:
            logger.info(f"No bearer token to propagate for route {route.id}")
            return headers

        claims = extract_claims(token)
        if claims:
            identity = IdentityContext.from_claims(claims)
            headers.extend(identity.to_headers().items())
        return headers

    async def dispatch(self, request: Request) -> Response:
        """Forward a request to its backend, or serve the fallback.

        Raises:
            NoRouteMatched: If no route pattern matches the path
            BackendUnavailable: If the backend could not be reached or timed out
        """
        path = request.url.path
        route = match_route(self.routes, path)
        headers = self.build_forward_headers(request, route)

        try:
            body = await request.body()
        except ClientDisconnect:
            logger.info(f"Client disconnected while sending body for {path}")
            return Response(status_code=CLIENT_CLOSED_REQUEST)

        breaker = self.breakers.get_breaker(route.breaker_id)
        permit = await breaker.acquire()
        if permit is None:
            logger.warning(
                f"Circuit breaker {route.breaker_id} rejected {request.method} {path}, "
                "serving fallback"
            )
            return fallback_response()

        url = route.target_url(path)
        if request.url.query:
            url = f"{url}?{request.url.query}"

        forward = self.service_client.forward_request(
            method=request.method,
            url=url,
            headers=headers,
            content=body or None,
            timeout=route.timeout,
        )

        try:
            backend_response = await self._call_backend(request, forward)
            if backend_response.status_code >= 500:
                raise BackendError(backend_response)
        except BackendError as e:
            await breaker.record_failure(permit)
            logger.warning(f"Route {route.id} backend error: {e.message}")
            return self._to_response(e.response, request.method)
        except BackendUnavailable:
            await breaker.record_failure(permit)
            raise
        except ClientDisconnected:
            await breaker.release(permit)
            logger.info(f"Client disconnected before {route.id} answered {path}")
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        except asyncio.CancelledError:
            await self._release_quietly(breaker, permit)
            raise
        except Exception:
            await breaker.record_failure(permit)
            raise

        await breaker.record_success(permit)
        return self._to_response(backend_response, request.method)

    async def _call_backend(
        self, request: Request, forward: Awaitable[httpx.Response]
    ) -> httpx.Response:
        """Run the backend call, abandoning it if the client disconnects."""
        backend_call = asyncio.ensure_future(forward)
        disconnect_watch = asyncio.ensure_future(wait_for_disconnect(request))
        try:
            await asyncio.wait(
                {backend_call, disconnect_watch}, return_when=asyncio.FIRST_COMPLETED
            )
            if not backend_call.done() and disconnect_watch.exception() is not None:
                logger.warning(
                    f"Disconnect watch failed: {disconnect_watch.exception()!r}"
                )
                await asyncio.wait({backend_call})
            if backend_call.done():
                return backend_call.result()
            raise ClientDisconnected()
        finally:
            for task in (backend_call, disconnect_watch):
                if not task.done():
                    task.cancel()

    @staticmethod
    async def _release_quietly(breaker: CircuitBreaker, permit: CallPermit) -> None:
        # the current task is being cancelled; settle the permit in a fresh one
        await asyncio.shield(breaker.release(permit))

    @staticmethod
    def _to_response(backend_response: httpx.Response, method: str = "GET") -> Response:
        response = Response(
            content=backend_response.content,
            status_code=backend_response.status_code,
        )
        excluded = EXCLUDED_RESPONSE_HEADERS
        if method == "HEAD" and "content-encoding" not in backend_response.headers:
            # HEAD carries no body; the backend's length describes the GET entity
            excluded = excluded - {"content-length"}
            response.raw_headers = [
                (name, value)
                for name, value in response.raw_headers
                if name != b"content-length"
            ]
        response.raw_headers.extend(
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in backend_response.headers.multi_items()
            if name.lower() not in excluded
        )
        return response
