"""Request models for the gateway."""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict

IDENTITY_HEADERS = ("X-User-Id", "X-User-Email", "X-User-Role", "X-User-Username")


def _claim_str(claims: Dict[str, Any], key: str) -> str:
    value = claims.get(key)
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


class IdentityContext(BaseModel):
    """Caller identity forwarded to backends as ``X-User-*`` headers."""

    user_id: str = ""
    email: str = ""
    role: str = ""
    username: str = ""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "user_id": "42",
                "email": "jane@example.com",
                "role": "USER",
                "username": "jane",
            }
        },
    )

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "IdentityContext":
        return cls(
            user_id=_claim_str(claims, "userId"),
            email=_claim_str(claims, "email"),
            role=_claim_str(claims, "role"),
            username=_claim_str(claims, "sub"),
        )

    def to_headers(self) -> Dict[str, str]:
        return dict(
            zip(IDENTITY_HEADERS, (self.user_id, self.email, self.role, self.username))
        )
