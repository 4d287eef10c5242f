"""Bearer token verification and claims extraction."""

import binascii
import json
import logging
import math
import time
from typing import Any, Dict, Optional, Union

from jose import jws
from jose.constants import ALGORITHMS
from jose.exceptions import JWSError
from jose.utils import base64url_decode, base64url_encode

from gateway.errors import InvalidSignature, MalformedToken, TokenExpired

logger = logging.getLogger(__name__)


def b64url_decode(segment: Union[str, bytes]) -> bytes:
    """Decode an unpadded base64url token segment."""
    if isinstance(segment, str):
        segment = segment.encode("ascii")
    return base64url_decode(segment)


def b64url_encode(data: bytes) -> str:
    """Encode bytes as an unpadded base64url token segment."""
    return base64url_encode(data).decode("ascii")


def _split(token: str) -> list:
    parts = token.split(".")
    if len(parts) != 3:
        raise MalformedToken(f"Expected 3 token segments, got {len(parts)}")
    return parts


def _decode_json_segment(segment: str, name: str) -> Dict[str, Any]:
    try:
        value = json.loads(b64url_decode(segment))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise MalformedToken(f"Invalid token {name}: {e}")
    if not isinstance(value, dict):
        raise MalformedToken(f"Token {name} must be a JSON object")
    return value


def _check_expiry(claims: Dict[str, Any]) -> None:
    exp = claims.get("exp")
    if exp is None:
        return
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        raise MalformedToken("Token exp claim must be a number")
    if isinstance(exp, float) and math.isnan(exp):
        raise MalformedToken("Token exp claim must be a number")

    # plain numeric comparison; exp may lie beyond what datetime can represent
    if exp < time.time():
        raise TokenExpired()


def verify_token(
    token: str, secret: bytes, algorithm: str = ALGORITHMS.HS384
) -> Dict[str, Any]:
    """Verify a bearer token and return its claims.

    The signature is recomputed over ``header.payload`` with ``secret`` and
    compared in constant time. The ``exp`` claim, when present, must not lie
    in the past.

    Args:
        token: Raw token (three dot-separated base64url segments)
        secret: Shared HMAC secret
        algorithm: Accepted signing algorithm

    Returns:
        Dict of claims

    Raises:
        MalformedToken: Wrong segment count or undecodable segments
        InvalidSignature: Signature does not match
        TokenExpired: ``exp`` is in the past
    """
    header_segment, payload_segment, signature_segment = _split(token)
    _decode_json_segment(header_segment, "header")
    try:
        b64url_decode(signature_segment)
    except (binascii.Error, UnicodeError) as e:
        raise MalformedToken(f"Invalid token signature encoding: {e}")

    try:
        jws.verify(token, secret, algorithms=[algorithm])
    except JWSError as e:
        raise InvalidSignature(f"Token signature verification failed: {e}")

    claims = _decode_json_segment(payload_segment, "payload")
    _check_expiry(claims)
    return claims


def extract_claims(token: Optional[str]) -> Dict[str, Any]:
    """Decode the payload segment without verifying the signature.

    Used for best-effort identity propagation only; any decode problem
    yields an empty claim set instead of an exception.
    """
    if not token:
        return {}
    try:
        _, payload_segment, _ = _split(token)
        return _decode_json_segment(payload_segment, "payload")
    except MalformedToken as e:
        logger.info(f"Could not extract claims from token: {e.message}")
        return {}


def get_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token of an ``Authorization: Bearer <token>`` header value."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


class TokenVerifier:
    """Verifies bearer tokens against the configured shared secret."""

    def __init__(self, secret: bytes, algorithm: str = ALGORITHMS.HS384):
        """Initialize token verifier.

        Args:
            secret: Shared HMAC secret
            algorithm: Accepted signing algorithm (default: HS384)
        """
        self.secret = secret
        self.algorithm = algorithm

    def verify(self, token: str) -> Dict[str, Any]:
        claims = verify_token(token, self.secret, self.algorithm)
        logger.debug(f"Validated token for subject: {claims.get('sub')}")
        return claims
