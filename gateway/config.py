import base64
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from gateway.models.route import Route


class Settings(BaseSettings):
    """Gateway settings loaded from the environment (and ``.env``)."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Service Configuration
    SERVICE_NAME: str = "api-gateway"
    SERVICE_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    HOST: str = "0.0.0.0"
    PORT: int = 9000

    # Token Verification
    JWT_SECRET_KEY: str = "change-me-this-secret-must-be-at-least-48-bytes-long!!"
    JWT_SECRET_BASE64: bool = False
    JWT_ALGORITHM: str = "HS384"

    # Backend Services
    AUTH_SERVICE_URL: str = "http://localhost:8084"
    PRODUCT_SERVICE_URL: str = "http://localhost:8080"
    ORDER_SERVICE_URL: str = "http://localhost:8081"
    INVENTORY_SERVICE_URL: str = "http://localhost:8082"

    # Per-backend timeouts in seconds; unset falls back to REQUEST_TIMEOUT
    AUTH_SERVICE_TIMEOUT: Optional[float] = None
    PRODUCT_SERVICE_TIMEOUT: Optional[float] = None
    ORDER_SERVICE_TIMEOUT: Optional[float] = None
    INVENTORY_SERVICE_TIMEOUT: Optional[float] = None

    # Route ids whose backends must not receive the Authorization header
    STRIP_AUTHORIZATION_ROUTES: List[str] = []

    # Access Policy
    PUBLIC_PATHS: List[str] = [
        "/docs",
        "/docs/**",
        "/redoc",
        "/openapi.json",
        "/aggregate/**",
        "/health",
        "/healthz",
        "/fallbackRoute",
        "/api/auth/login",
        "/api/auth/refresh",
        "/api/gateway/test-no-auth",
    ]

    # CORS Configuration
    CORS_ENABLED: bool = True
    CORS_ORIGINS: List[str] = ["http://localhost:4200"]
    CORS_METHODS: List[str] = ["GET", "POST", "PUT", "DELETE", "OPTIONS", "HEAD"]
    CORS_HEADERS: List[str] = ["Authorization", "Content-Type", "X-Requested-With"]
    CORS_EXPOSED_HEADERS: List[str] = ["Authorization"]
    CORS_ALLOW_CREDENTIALS: bool = True

    # Request Configuration
    REQUEST_TIMEOUT: float = 30.0

    # Circuit Breaker Configuration
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT: float = 60.0
    CIRCUIT_BREAKER_FAILURE_WINDOW: float = 60.0

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    # OpenAPI Configuration
    OPENAPI_TITLE: str = "Commerce API Gateway"
    OPENAPI_DESCRIPTION: str = "Single entry point for the auth, product, order and inventory services"

    @property
    def jwt_secret_bytes(self) -> bytes:
        """Shared HMAC secret, base64-decoded when ``JWT_SECRET_BASE64`` is set."""
        if self.JWT_SECRET_BASE64:
            return base64.b64decode(self.JWT_SECRET_KEY)
        return self.JWT_SECRET_KEY.encode("utf-8")


def get_settings() -> Settings:
    return Settings()


settings = get_settings()


def build_route_table(settings: Settings) -> List[Route]:
    """Build the ordered route table for the configured backends."""
    stripped = set(settings.STRIP_AUTHORIZATION_ROUTES)

    def route(route_id: str, **fields) -> Route:
        return Route(id=route_id, strip_authorization=route_id in stripped, **fields)

    routes = [
        route(
            "auth_service",
            path_pattern="/api/auth/**",
            target_base_url=settings.AUTH_SERVICE_URL,
            breaker_id="authServiceCircuitBreaker",
            propagate_identity=False,
            timeout=settings.AUTH_SERVICE_TIMEOUT,
        ),
    ]

    backends = {
        "product": (settings.PRODUCT_SERVICE_URL, settings.PRODUCT_SERVICE_TIMEOUT),
        "order": (settings.ORDER_SERVICE_URL, settings.ORDER_SERVICE_TIMEOUT),
        "inventory": (settings.INVENTORY_SERVICE_URL, settings.INVENTORY_SERVICE_TIMEOUT),
    }
    for name, (url, timeout) in backends.items():
        routes.append(
            route(
                f"{name}_service",
                path_pattern=f"/api/{name}/**",
                target_base_url=url,
                breaker_id=f"{name}ServiceCircuitBreaker",
                timeout=timeout,
            )
        )

    # API docs of each backend, served under /aggregate without identity
    for name, (url, timeout) in backends.items():
        routes.append(
            route(
                f"{name}_service_swagger",
                path_pattern=f"/aggregate/{name}-service/v3/api-docs",
                target_base_url=url,
                breaker_id=f"{name}ServiceSwaggerCircuitBreaker",
                propagate_identity=False,
                rewrite_path="/v3/api-docs",
                timeout=timeout,
            )
        )

    return routes


ROUTE_TABLE: List[Route] = build_route_table(settings)
