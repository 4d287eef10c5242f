"""Exception taxonomy for the gateway."""

from typing import Any, Dict, Optional

import httpx

from gateway.models.response import ErrorCode


class GatewayError(Exception):
    """Base class for failures surfaced to the caller as HTTP errors."""

    status_code: int = 500
    error_code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class TokenError(GatewayError):
    """Bearer token failed verification."""

    status_code = 401
    error_code = ErrorCode.UNAUTHORIZED
    default_message = "Invalid bearer token"


class MalformedToken(TokenError):
    error_code = ErrorCode.MALFORMED_TOKEN
    default_message = "Malformed bearer token"


class InvalidSignature(TokenError):
    error_code = ErrorCode.INVALID_SIGNATURE
    default_message = "Token signature verification failed"


class TokenExpired(TokenError):
    error_code = ErrorCode.TOKEN_EXPIRED
    default_message = "Token has expired"


class Unauthenticated(GatewayError):
    status_code = 401
    error_code = ErrorCode.UNAUTHORIZED
    default_message = "Missing Authorization header"


class Forbidden(GatewayError):
    status_code = 403
    error_code = ErrorCode.FORBIDDEN
    default_message = "Access denied"


class NoRouteMatched(GatewayError):
    status_code = 404
    error_code = ErrorCode.NOT_FOUND
    default_message = "No route matches the request path"


class BackendUnavailable(GatewayError):
    """Breaker rejected the call or the backend could not be reached."""

    status_code = 503
    error_code = ErrorCode.SERVICE_UNAVAILABLE
    default_message = "Backend service unavailable"


class BackendTimeout(BackendUnavailable):
    error_code = ErrorCode.REQUEST_TIMEOUT
    default_message = "Backend service timed out"


class BackendError(Exception):
    """Backend answered with a 5xx status.

    Internal to dispatch: it marks the call as a breaker failure, and the
    backend's own response is then relayed to the caller unchanged.
    """

    def __init__(self, response: httpx.Response, message: Optional[str] = None):
        self.response = response
        self.message = message or f"Backend returned status {response.status_code}"
        super().__init__(self.message)
