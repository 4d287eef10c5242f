"""Endpoints reporting the identity carried by the caller's token."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from jose import jwt
from jose.exceptions import JWTError

from gateway.errors import Forbidden, Unauthenticated
from gateway.services.token_service import get_bearer_token

router = APIRouter()

ADMIN_ROLE = "ADMIN"


def get_claims(request: Request) -> Dict[str, Any]:
    """Claims of the token verified by the auth middleware."""
    claims = getattr(request.state, "jwt_payload", None)
    if claims is None:
        raise Unauthenticated("Authentication required")
    return claims


def _timestamp(value: Any) -> Optional[str]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        # outside the range datetime can represent
        return None


def _algorithm(request: Request) -> str:
    token = get_bearer_token(request.headers.get("Authorization"))
    try:
        return jwt.get_unverified_header(token).get("alg", "N/A")
    except JWTError:
        return "N/A"


@router.get("/test")
async def token_details(request: Request, claims: Dict[str, Any] = Depends(get_claims)):
    """Describe the validated token: identity, lifetime and all claims."""
    return {
        "status": "JWT validation successful",
        "user_id": claims.get("userId") or claims.get("sub") or "N/A",
        "username": claims.get("sub") or "N/A",
        "email": claims.get("email") or "N/A",
        "role": claims.get("role") or "N/A",
        "expires_at": _timestamp(claims.get("exp")) or "N/A",
        "issued_at": _timestamp(claims.get("iat")) or "N/A",
        "algorithm": _algorithm(request),
        "all_claims": claims,
    }


@router.get("/test-simple")
async def token_summary(claims: Dict[str, Any] = Depends(get_claims)):
    return {
        "user": claims.get("sub") or "unknown",
        "role": claims.get("role") or "N/A",
        "email": claims.get("email") or "N/A",
        "status": "authenticated",
    }


@router.get("/test-admin")
async def admin_check(claims: Dict[str, Any] = Depends(get_claims)):
    """Succeeds only for tokens carrying the ADMIN role."""
    role = claims.get("role")
    if role != ADMIN_ROLE:
        raise Forbidden(
            "Admin role required",
            details={"current_role": role or "N/A", "user": claims.get("sub")},
        )
    return {
        "message": "Admin access granted",
        "user": claims.get("sub"),
        "role": role,
        "email": claims.get("email"),
    }


@router.get("/test-no-auth")
async def public_ping():
    return {
        "message": "This endpoint works without authentication",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
