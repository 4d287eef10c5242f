"""API Gateway - Main entry point for all client requests."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gateway.clients import ServiceClient
from gateway.config import ROUTE_TABLE, settings
from gateway.logging_config import configure_logging
from gateway.middleware import (
    CorrelationIdMiddleware,
    ErrorHandlingMiddleware,
    JWTAuthMiddleware,
    RequestLoggingMiddleware,
)
from gateway.routes import router
from gateway.services import (
    AccessPolicy,
    CircuitBreakerRegistry,
    GatewayRouter,
    TokenVerifier,
)

try:
    import uvicorn
except ImportError:  # pragma: no cover - uvicorn optional for ASGI deployments
    uvicorn = None

logger = logging.getLogger(__name__)

access_policy = AccessPolicy(settings.PUBLIC_PATHS)
token_verifier = TokenVerifier(settings.jwt_secret_bytes, settings.JWT_ALGORITHM)


def build_gateway_router(service_client: ServiceClient, routes=ROUTE_TABLE) -> GatewayRouter:
    """Create the router with one circuit breaker per route."""
    breakers = CircuitBreakerRegistry(
        [route.breaker_id for route in routes],
        failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
        recovery_timeout=settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
        failure_window=settings.CIRCUIT_BREAKER_FAILURE_WINDOW,
    )
    return GatewayRouter(
        routes=routes,
        breakers=breakers,
        service_client=service_client,
        access_policy=access_policy,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application."""
    configure_logging(settings.SERVICE_NAME, settings.LOG_LEVEL, settings.LOG_FORMAT)
    logger.info(f"Starting {settings.SERVICE_NAME} v{settings.SERVICE_VERSION}")
    logger.info(
        "Environment: %s | Server: %s:%s",
        settings.ENVIRONMENT,
        settings.HOST,
        settings.PORT,
    )

    service_client = ServiceClient(timeout=settings.REQUEST_TIMEOUT)
    app.state.service_client = service_client
    app.state.gateway_router = build_gateway_router(service_client)

    for route in ROUTE_TABLE:
        logger.info(
            f"Route {route.id}: {route.path_pattern} -> {route.target_base_url} "
            f"(breaker: {route.breaker_id})"
        )

    logger.info(f"{settings.SERVICE_NAME} startup complete")

    yield

    logger.info(f"Shutting down {settings.SERVICE_NAME}")
    await service_client.close()
    logger.info(f"{settings.SERVICE_NAME} shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.OPENAPI_TITLE,
    version=settings.SERVICE_VERSION,
    description=settings.OPENAPI_DESCRIPTION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Middleware order matters - last added is executed first.
# Error handling sits closest to the endpoints
app.add_middleware(ErrorHandlingMiddleware)
# Bearer token authentication for non-public paths
app.add_middleware(
    JWTAuthMiddleware, access_policy=access_policy, verifier=token_verifier
)
# Request logging
app.add_middleware(RequestLoggingMiddleware)
# Correlation ID, bound before anything logs
app.add_middleware(CorrelationIdMiddleware)
# CORS outermost: decorates every response and answers preflights directly
if settings.CORS_ENABLED:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_METHODS,
        allow_headers=settings.CORS_HEADERS,
        expose_headers=settings.CORS_EXPOSED_HEADERS,
    )

# Include routers
app.include_router(router)


if __name__ == "__main__" and uvicorn:
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.ENVIRONMENT.lower() == "development",
    )
