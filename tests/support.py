"""Shared test doubles and token helpers."""

from datetime import datetime, timedelta, timezone

import httpx
from jose import jwt

from gateway.config import settings

FAILURE_THRESHOLD = 3
RECOVERY_TIMEOUT = 30.0


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class BackendStub:
    """Fake backend recording every forwarded request."""

    def __init__(self):
        self.requests = []
        self.handler = lambda request: httpx.Response(200, json={"ok": True})

    def __call__(self, request: httpx.Request):
        self.requests.append(request)
        return self.handler(request)


def make_token(claims=None, secret=None, algorithm=None, expires_in=timedelta(hours=1)):
    """Sign a token the way the auth service does."""
    payload = {
        "sub": "jane",
        "userId": "42",
        "email": "jane@example.com",
        "role": "USER",
        "iat": datetime.now(timezone.utc),
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    payload.update(claims or {})
    return jwt.encode(
        payload,
        secret if secret is not None else settings.jwt_secret_bytes,
        algorithm=algorithm or settings.JWT_ALGORITHM,
    )
