"""Pydantic models for the gateway."""

from gateway.models.request import IDENTITY_HEADERS, IdentityContext
from gateway.models.response import (
    BreakerStatus,
    ErrorCode,
    ErrorDetail,
    ErrorResponse,
    HealthResponse,
)
from gateway.models.route import Route

__all__ = [
    "IDENTITY_HEADERS",
    "IdentityContext",
    "BreakerStatus",
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    "HealthResponse",
    "Route",
]
