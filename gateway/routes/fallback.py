"""Fallback endpoint."""

from fastapi import APIRouter

from gateway.services.fallback import fallback_response

router = APIRouter()


@router.get("/fallbackRoute", include_in_schema=False)
async def fallback():
    return fallback_response()
