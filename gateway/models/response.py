"""Response models for the gateway."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorCode(str, Enum):
    """Standard error codes."""

    UNAUTHORIZED = "UNAUTHORIZED"
    MALFORMED_TOKEN = "MALFORMED_TOKEN"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    REQUEST_TIMEOUT = "REQUEST_TIMEOUT"


class ErrorDetail(BaseModel):
    """Error detail information."""

    code: ErrorCode
    message: str
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Error response envelope."""

    success: bool = False
    data: None = None
    error: ErrorDetail
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": False,
                "data": None,
                "error": {
                    "code": "TOKEN_EXPIRED",
                    "message": "Token has expired",
                    "details": None,
                },
                "metadata": {
                    "timestamp": "2024-01-10T10:30:00Z",
                    "correlation_id": "123e4567-e89b-12d3-a456-426614174000",
                },
            }
        }
    )


class BreakerStatus(BaseModel):
    """Snapshot of one circuit breaker."""

    breaker_id: str
    state: str  # closed, open, half_open
    consecutive_failures: int = 0
    seconds_since_last_failure: Optional[float] = None
    half_open_probe_in_flight: bool = False


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    uptime_seconds: int
    circuit_breakers: Dict[str, BreakerStatus] = Field(default_factory=dict)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-10T10:30:00Z",
                "uptime_seconds": 3600,
                "circuit_breakers": {
                    "productServiceCircuitBreaker": {
                        "breaker_id": "productServiceCircuitBreaker",
                        "state": "closed",
                        "consecutive_failures": 0,
                        "seconds_since_last_failure": None,
                        "half_open_probe_in_flight": False,
                    }
                },
            }
        }
    )
