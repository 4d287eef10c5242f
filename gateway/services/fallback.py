"""Fallback response served when a backend is deemed unavailable."""

from fastapi import status
from fastapi.responses import PlainTextResponse

FALLBACK_MESSAGE = "Service is currently unavailable. Please try again later."


def fallback_response() -> PlainTextResponse:
    return PlainTextResponse(
        FALLBACK_MESSAGE, status_code=status.HTTP_503_SERVICE_UNAVAILABLE
    )
