"""Core services for the API gateway."""

from gateway.services.access_policy import AccessPolicy
from gateway.services.circuit_breaker_service import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)
from gateway.services.error_service import ErrorService
from gateway.services.gateway_router import GatewayRouter
from gateway.services.token_service import TokenVerifier, extract_claims, verify_token

__all__ = [
    "AccessPolicy",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "ErrorService",
    "GatewayRouter",
    "TokenVerifier",
    "extract_claims",
    "verify_token",
]
