"""JSON error envelopes for requests the gateway answers itself."""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi.responses import JSONResponse

from gateway.errors import GatewayError
from gateway.models.response import ErrorCode, ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)


def _envelope_metadata(correlation_id: Optional[str]) -> dict:
    metadata = {"timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")}
    if correlation_id:
        metadata["correlation_id"] = correlation_id
    return metadata


class ErrorService:
    """Builds and logs the gateway's error envelopes."""

    @staticmethod
    def build_envelope(
        error: GatewayError, correlation_id: Optional[str] = None
    ) -> ErrorResponse:
        """Wrap a gateway error in the ``{success, error, metadata}`` envelope."""
        return ErrorResponse(
            error=ErrorDetail(
                code=error.error_code, message=error.message, details=error.details
            ),
            metadata=_envelope_metadata(correlation_id),
        )

    @staticmethod
    def to_json_response(
        error: GatewayError, correlation_id: Optional[str] = None
    ) -> JSONResponse:
        envelope = ErrorService.build_envelope(error, correlation_id)
        return JSONResponse(
            status_code=error.status_code, content=envelope.model_dump(mode="json")
        )

    @staticmethod
    def internal_error_response(correlation_id: Optional[str] = None) -> JSONResponse:
        """500 envelope that never leaks the underlying exception."""
        envelope = ErrorResponse(
            error=ErrorDetail(
                code=ErrorCode.INTERNAL_SERVER_ERROR,
                message="An unexpected error occurred",
            ),
            metadata=_envelope_metadata(correlation_id),
        )
        return JSONResponse(status_code=500, content=envelope.model_dump(mode="json"))

    @staticmethod
    def log_error(
        error: GatewayError,
        path: Optional[str] = None,
        level: Optional[int] = None,
    ):
        """Log a gateway error; client errors at WARNING, the rest at ERROR.

        The correlation id is bound to the logging context by the
        correlation middleware, so it is not repeated here.
        """
        if level is None:
            level = logging.WARNING if error.status_code < 500 else logging.ERROR

        logger.log(
            level,
            f"{error.error_code.value} on {path or '-'}: {error.message}",
            extra={"error_code": error.error_code.value, "path": path},
        )
