"""Pytest configuration and fixtures."""

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from gateway.clients import ServiceClient
from gateway.config import ROUTE_TABLE
from gateway.services import CircuitBreakerRegistry, GatewayRouter
from main import access_policy, app
from support import FAILURE_THRESHOLD, RECOVERY_TIMEOUT, BackendStub, FakeClock, make_token


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend():
    return BackendStub()


@pytest.fixture
def breakers(clock):
    return CircuitBreakerRegistry(
        [route.breaker_id for route in ROUTE_TABLE],
        failure_threshold=FAILURE_THRESHOLD,
        recovery_timeout=RECOVERY_TIMEOUT,
        failure_window=None,
        clock=clock,
    )


@pytest_asyncio.fixture
async def service_client(backend):
    service_client = ServiceClient(timeout=5, transport=httpx.MockTransport(backend))
    yield service_client
    await service_client.close()


@pytest.fixture
def gateway_router(breakers, service_client):
    return GatewayRouter(
        routes=ROUTE_TABLE,
        breakers=breakers,
        service_client=service_client,
        access_policy=access_policy,
    )


@pytest_asyncio.fixture
async def client(gateway_router):
    """Test client with a gateway router wired to the fake backend."""
    app.state.gateway_router = gateway_router

    # ASGITransport does not run the lifespan, so app state is set above
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


@pytest.fixture
def sample_jwt_token():
    return make_token()


@pytest.fixture
def auth_headers(sample_jwt_token):
    """Create authorization headers with a valid token."""
    return {"Authorization": f"Bearer {sample_jwt_token}"}
