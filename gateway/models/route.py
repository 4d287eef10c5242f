"""Route table models."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class Route(BaseModel):
    """A single entry of the gateway route table.

    ``path_pattern`` is either an exact path (``/fallbackRoute``) or a prefix
    ending in ``/**`` (``/api/product/**``), which also matches the bare
    prefix itself. Requests are forwarded to ``target_base_url`` followed by
    the full request path, or by ``rewrite_path`` when one is set.
    """

    id: str
    path_pattern: str
    target_base_url: str
    breaker_id: str
    propagate_identity: bool = True
    strip_authorization: bool = False
    rewrite_path: Optional[str] = None
    timeout: Optional[float] = None

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "id": "product_service",
                "path_pattern": "/api/product/**",
                "target_base_url": "http://localhost:8081",
                "breaker_id": "productServiceCircuitBreaker",
                "propagate_identity": True,
            }
        },
    )

    @field_validator("path_pattern")
    @classmethod
    def _pattern_is_absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("path_pattern must start with '/'")
        return value

    @field_validator("target_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def target_url(self, path: str) -> str:
        """Build the backend URL for a request path matched by this route."""
        return f"{self.target_base_url}{self.rewrite_path or path}"
