"""Middleware for the API gateway."""

import logging
import time
import uuid
from typing import Callable

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from gateway.errors import (
    BackendUnavailable,
    GatewayError,
    TokenError,
    Unauthenticated,
)
from gateway.services.access_policy import AccessPolicy
from gateway.services.error_service import ErrorService
from gateway.services.fallback import fallback_response
from gateway.services.token_service import TokenVerifier

logger = logging.getLogger(__name__)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Middleware to generate and propagate correlation IDs."""

    async def dispatch(self, request: Request, call_next: Callable):
        """Add correlation ID to request and log context."""
        correlation_id = request.headers.get("X-Correlation-Id", str(uuid.uuid4()))
        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

        response = await call_next(request)
        response.headers["X-Correlation-Id"] = correlation_id

        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log all requests."""

    async def dispatch(self, request: Request, call_next: Callable):
        """Log request and response."""
        start_time = time.time()

        logger.info(
            f"Request started: method={request.method} path={request.url.path}"
        )

        response = await call_next(request)

        latency_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Request completed: method={request.method} path={request.url.path} "
            f"status={response.status_code} latency={latency_ms:.2f}ms"
        )

        return response


class JWTAuthMiddleware(BaseHTTPMiddleware):
    """Middleware enforcing bearer-token authentication on non-public paths."""

    def __init__(self, app: ASGIApp, access_policy: AccessPolicy, verifier: TokenVerifier):
        super().__init__(app)
        self.access_policy = access_policy
        self.verifier = verifier

    async def dispatch(self, request: Request, call_next: Callable):
        """Validate the bearer token unless the path is public."""
        if self.access_policy.is_public(request.url.path):
            return await call_next(request)

        correlation_id = getattr(request.state, "correlation_id", None)

        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return self._reject(
                request, Unauthenticated("Missing Authorization header"), correlation_id
            )

        parts = auth_header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            return self._reject(
                request,
                Unauthenticated("Invalid Authorization header format"),
                correlation_id,
            )

        try:
            claims = self.verifier.verify(parts[1])
        except TokenError as e:
            return self._reject(request, e, correlation_id)

        request.state.jwt_payload = claims
        request.state.user_id = claims.get("userId") or claims.get("sub")

        logger.debug(f"Authenticated subject: {claims.get('sub')}")

        return await call_next(request)

    @staticmethod
    def _reject(request: Request, error: GatewayError, correlation_id):
        ErrorService.log_error(error, path=request.url.path, level=logging.WARNING)
        return ErrorService.to_json_response(error, correlation_id)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware for global error handling."""

    async def dispatch(self, request: Request, call_next: Callable):
        """Handle errors and return standardized responses."""
        correlation_id = getattr(request.state, "correlation_id", None)
        try:
            return await call_next(request)
        except BackendUnavailable as e:
            ErrorService.log_error(e, path=request.url.path)
            return fallback_response()
        except GatewayError as e:
            ErrorService.log_error(e, path=request.url.path)
            return ErrorService.to_json_response(e, correlation_id)
        except Exception as e:
            logger.exception(f"Unhandled exception: {e}")
            return ErrorService.internal_error_response(correlation_id)
