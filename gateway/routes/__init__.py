"""Route handlers for the API gateway."""

from fastapi import APIRouter

from gateway.routes import fallback, health, identity, proxy

# Create main router
router = APIRouter()

# Include sub-routers (order matters - more specific routes first)
router.include_router(health.router, tags=["Health"])
router.include_router(fallback.router, tags=["Fallback"])
router.include_router(identity.router, prefix="/api/gateway", tags=["Identity"])
router.include_router(proxy.router, tags=["Proxy"])  # Catch-all should be last
