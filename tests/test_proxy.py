"""Tests for request routing through the gateway."""

import asyncio

import httpx
import pytest
from starlette.requests import Request

from gateway.config import Settings, build_route_table
from gateway.services import GatewayRouter
from gateway.services.circuit_breaker_service import CircuitState
from gateway.services.fallback import FALLBACK_MESSAGE
from main import access_policy, app
from support import FAILURE_THRESHOLD, RECOVERY_TIMEOUT, make_token

IDENTITY_HEADERS = ["x-user-id", "x-user-email", "x-user-role", "x-user-username"]


def _server_error(request):
    return httpx.Response(500, json={"error": "boom"})


async def _trip_breaker(client, backend, auth_headers):
    backend.handler = _server_error
    for _ in range(FAILURE_THRESHOLD):
        response = await client.get("/api/product/1", headers=auth_headers)
        assert response.status_code == 500


@pytest.mark.asyncio
async def test_routes_to_product_backend_with_identity(client, backend, auth_headers):
    response = await client.get("/api/product/123", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"ok": True}

    forwarded = backend.requests[0]
    assert str(forwarded.url) == "http://localhost:8080/api/product/123"
    assert forwarded.headers["X-User-Id"] == "42"
    assert forwarded.headers["X-User-Email"] == "jane@example.com"
    assert forwarded.headers["X-User-Role"] == "USER"
    assert forwarded.headers["X-User-Username"] == "jane"
    assert forwarded.headers["Authorization"] == auth_headers["Authorization"]
    assert forwarded.headers["X-Correlation-Id"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "path,base_url",
    [
        ("/api/order/5", "http://localhost:8081"),
        ("/api/inventory/sku-9", "http://localhost:8082"),
    ],
)
async def test_routes_by_prefix(client, backend, auth_headers, path, base_url):
    response = await client.get(path, headers=auth_headers)

    assert response.status_code == 200
    assert str(backend.requests[0].url) == f"{base_url}{path}"


@pytest.mark.asyncio
async def test_preserves_method_query_and_body(client, backend, auth_headers):
    response = await client.put(
        "/api/order/5?expand=items&expand=customer&dry_run=1",
        headers={**auth_headers, "Content-Type": "application/json"},
        content=b'{"quantity": 3}',
    )

    assert response.status_code == 200
    forwarded = backend.requests[0]
    assert forwarded.method == "PUT"
    assert forwarded.url.query == b"expand=items&expand=customer&dry_run=1"
    assert forwarded.content == b'{"quantity": 3}'
    assert forwarded.headers["Content-Type"] == "application/json"


@pytest.mark.asyncio
async def test_backend_response_passed_through(client, backend, auth_headers):
    backend.handler = lambda request: httpx.Response(
        201,
        content=b"created",
        headers={"Location": "/api/order/77", "X-Backend": "order"},
    )

    response = await client.post("/api/order", headers=auth_headers, content=b"{}")

    assert response.status_code == 201
    assert response.content == b"created"
    assert response.headers["Location"] == "/api/order/77"
    assert response.headers["X-Backend"] == "order"


@pytest.mark.asyncio
async def test_client_identity_headers_are_replaced(client, backend, auth_headers):
    spoofed = {**auth_headers, "X-User-Role": "ADMIN", "X-User-Id": "1"}

    await client.get("/api/product/1", headers=spoofed)

    forwarded = backend.requests[0]
    assert forwarded.headers.get_list("X-User-Role") == ["USER"]
    assert forwarded.headers.get_list("X-User-Id") == ["42"]


@pytest.mark.asyncio
async def test_missing_claims_forwarded_as_empty_headers(client, backend):
    token = make_token({"userId": None, "email": None, "role": None})

    await client.get("/api/product/1", headers={"Authorization": f"Bearer {token}"})

    forwarded = backend.requests[0]
    assert forwarded.headers["X-User-Id"] == ""
    assert forwarded.headers["X-User-Username"] == "jane"


@pytest.mark.asyncio
async def test_auth_route_does_not_receive_identity(client, backend, auth_headers):
    response = await client.get("/api/auth/me", headers=auth_headers)

    assert response.status_code == 200
    forwarded = backend.requests[0]
    assert str(forwarded.url) == "http://localhost:8084/api/auth/me"
    for header in IDENTITY_HEADERS:
        assert header not in forwarded.headers


@pytest.mark.asyncio
async def test_public_login_route_needs_no_token(client, backend):
    response = await client.post("/api/auth/login", json={"username": "jane"})

    assert response.status_code == 200
    assert backend.requests[0].url.path == "/api/auth/login"


@pytest.mark.asyncio
async def test_public_docs_route_rewrites_path_without_identity(
    client, backend, auth_headers
):
    response = await client.get(
        "/aggregate/inventory-service/v3/api-docs",
        headers={**auth_headers, "X-User-Id": "spoofed"},
    )

    assert response.status_code == 200
    forwarded = backend.requests[0]
    assert str(forwarded.url) == "http://localhost:8082/v3/api-docs"
    for header in IDENTITY_HEADERS:
        assert header not in forwarded.headers


@pytest.mark.asyncio
async def test_no_route_matched(client, backend, auth_headers):
    response = await client.get("/api/unknown/1", headers=auth_headers)

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"
    assert backend.requests == []


@pytest.mark.asyncio
async def test_backend_5xx_passed_through_and_counted(
    client, backend, auth_headers, breakers
):
    backend.handler = lambda request: httpx.Response(503, content=b"down for maintenance")

    response = await client.get("/api/product/1", headers=auth_headers)

    assert response.status_code == 503
    assert response.content == b"down for maintenance"
    breaker = breakers.get_breaker("productServiceCircuitBreaker")
    assert breaker.consecutive_failures == 1


@pytest.mark.asyncio
async def test_4xx_counts_as_success(client, backend, auth_headers, breakers):
    backend.handler = _server_error
    await client.get("/api/product/1", headers=auth_headers)

    backend.handler = lambda request: httpx.Response(404)
    response = await client.get("/api/product/1", headers=auth_headers)

    assert response.status_code == 404
    assert breakers.get_breaker("productServiceCircuitBreaker").consecutive_failures == 0


@pytest.mark.asyncio
async def test_open_breaker_serves_fallback_without_backend_call(
    client, backend, auth_headers, breakers
):
    await _trip_breaker(client, backend, auth_headers)
    assert breakers.get_breaker("productServiceCircuitBreaker").state == CircuitState.OPEN

    response = await client.get("/api/product/1", headers=auth_headers)

    assert response.status_code == 503
    assert response.text == FALLBACK_MESSAGE
    assert len(backend.requests) == FAILURE_THRESHOLD


@pytest.mark.asyncio
async def test_breakers_are_independent(client, backend, auth_headers):
    await _trip_breaker(client, backend, auth_headers)
    backend.handler = lambda request: httpx.Response(200, json={"ok": True})

    response = await client.get("/api/order/1", headers=auth_headers)

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_half_open_allows_single_probe(client, backend, auth_headers, breakers, clock):
    """While the probe is outstanding every other request gets the fallback."""
    await _trip_breaker(client, backend, auth_headers)
    clock.advance(RECOVERY_TIMEOUT)

    release = asyncio.Event()

    async def slow_recovery(request):
        await release.wait()
        return httpx.Response(200, json={"recovered": True})

    backend.handler = slow_recovery
    calls_before = len(backend.requests)

    tasks = [
        asyncio.create_task(client.get("/api/product/1", headers=auth_headers))
        for _ in range(5)
    ]

    async def rejected_requests_done():
        while sum(task.done() for task in tasks) < 4:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(rejected_requests_done(), timeout=5)
    assert len(backend.requests) == calls_before + 1

    release.set()
    responses = await asyncio.gather(*tasks)

    statuses = sorted(response.status_code for response in responses)
    assert statuses == [200, 503, 503, 503, 503]
    breaker = breakers.get_breaker("productServiceCircuitBreaker")
    assert breaker.state == CircuitState.CLOSED
    assert breaker.consecutive_failures == 0


@pytest.mark.asyncio
async def test_failed_probe_reopens(client, backend, auth_headers, breakers, clock):
    await _trip_breaker(client, backend, auth_headers)
    clock.advance(RECOVERY_TIMEOUT)

    response = await client.get("/api/product/1", headers=auth_headers)
    assert response.status_code == 500

    breaker = breakers.get_breaker("productServiceCircuitBreaker")
    assert breaker.state == CircuitState.OPEN
    assert breaker.last_failure_time == clock.now

    response = await client.get("/api/product/1", headers=auth_headers)
    assert response.text == FALLBACK_MESSAGE


@pytest.mark.asyncio
async def test_connection_error_serves_fallback(client, backend, auth_headers, breakers):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    backend.handler = refuse

    response = await client.get("/api/inventory/1", headers=auth_headers)

    assert response.status_code == 503
    assert response.text == FALLBACK_MESSAGE
    assert breakers.get_breaker("inventoryServiceCircuitBreaker").consecutive_failures == 1


@pytest.mark.asyncio
async def test_timeouts_open_breaker(client, backend, auth_headers, breakers):
    def time_out(request):
        raise httpx.ReadTimeout("timed out", request=request)

    backend.handler = time_out

    for _ in range(FAILURE_THRESHOLD):
        response = await client.get("/api/order/1", headers=auth_headers)
        assert response.status_code == 503

    assert breakers.get_breaker("orderServiceCircuitBreaker").state == CircuitState.OPEN


@pytest.mark.asyncio
async def test_fallback_route(client):
    response = await client.get("/fallbackRoute")

    assert response.status_code == 503
    assert response.text == FALLBACK_MESSAGE


@pytest.mark.asyncio
async def test_head_keeps_backend_content_length(client, backend, auth_headers):
    backend.handler = lambda request: httpx.Response(
        200, headers={"Content-Length": "1234", "Content-Type": "application/json"}
    )

    response = await client.head("/api/product/1", headers=auth_headers)

    assert response.status_code == 200
    assert backend.requests[0].method == "HEAD"
    assert response.headers.get_list("content-length") == ["1234"]


def _router_with(service_client, breakers, **overrides):
    return GatewayRouter(
        routes=build_route_table(Settings(**overrides)),
        breakers=breakers,
        service_client=service_client,
        access_policy=access_policy,
    )


@pytest.mark.asyncio
async def test_route_timeout_overrides_default(
    client, backend, auth_headers, breakers, service_client
):
    app.state.gateway_router = _router_with(
        service_client, breakers, PRODUCT_SERVICE_TIMEOUT=2.5
    )

    await client.get("/api/product/1", headers=auth_headers)
    await client.get("/api/order/1", headers=auth_headers)

    product, order = backend.requests
    assert product.extensions["timeout"]["read"] == 2.5
    assert order.extensions["timeout"]["read"] == service_client.timeout


@pytest.mark.asyncio
async def test_route_can_strip_authorization(
    client, backend, auth_headers, breakers, service_client
):
    app.state.gateway_router = _router_with(
        service_client, breakers, STRIP_AUTHORIZATION_ROUTES=["order_service"]
    )

    await client.get("/api/order/1", headers=auth_headers)
    await client.get("/api/product/1", headers=auth_headers)

    order, product = backend.requests
    assert "authorization" not in order.headers
    assert order.headers["X-User-Id"] == "42"
    assert product.headers["Authorization"] == auth_headers["Authorization"]


def _http_scope(path, headers):
    raw_headers = [(b"host", b"test")] + [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in headers.items()
    ]
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": b"",
        "root_path": "",
        "headers": raw_headers,
        "client": ("127.0.0.1", 50000),
        "server": ("test", 80),
    }


def _receive_until(disconnected):
    """ASGI receive channel: an empty body, then a disconnect once signalled."""
    body_sent = False

    async def receive():
        nonlocal body_sent
        if not body_sent:
            body_sent = True
            return {"type": "http.request", "body": b"", "more_body": False}
        await disconnected.wait()
        return {"type": "http.disconnect"}

    return receive


def _stall_backend(backend):
    called = asyncio.Event()

    async def stall(request):
        called.set()
        await asyncio.Event().wait()

    backend.handler = stall
    return called


async def _half_open_product_breaker(breakers, clock):
    breaker = breakers.get_breaker("productServiceCircuitBreaker")
    for _ in range(FAILURE_THRESHOLD):
        await breaker.record_failure(await breaker.acquire())
    clock.advance(RECOVERY_TIMEOUT)
    return breaker


@pytest.mark.asyncio
async def test_client_disconnect_abandons_half_open_call(
    client, backend, auth_headers, breakers, clock
):
    """A caller leaving mid-call neither closes nor reopens the breaker."""
    breaker = await _half_open_product_breaker(breakers, clock)
    backend_called = _stall_backend(backend)
    disconnected = asyncio.Event()
    sent = []

    async def send(message):
        sent.append(message)

    call = asyncio.create_task(
        app(_http_scope("/api/product/1", auth_headers), _receive_until(disconnected), send)
    )
    await asyncio.wait_for(backend_called.wait(), timeout=5)
    assert breaker.state == CircuitState.HALF_OPEN
    assert breaker.half_open_probe_in_flight is True

    disconnected.set()
    await asyncio.wait_for(call, timeout=5)

    assert sent[0]["type"] == "http.response.start"
    assert sent[0]["status"] == 499
    assert breaker.state == CircuitState.HALF_OPEN
    assert breaker.half_open_probe_in_flight is False
    assert breaker.consecutive_failures == FAILURE_THRESHOLD


@pytest.mark.asyncio
async def test_cancelled_dispatch_releases_half_open_slot(
    gateway_router, backend, auth_headers, breakers, clock
):
    breaker = await _half_open_product_breaker(breakers, clock)
    backend_called = _stall_backend(backend)
    request = Request(
        _http_scope("/api/product/1", auth_headers), _receive_until(asyncio.Event())
    )

    task = asyncio.create_task(gateway_router.dispatch(request))
    await asyncio.wait_for(backend_called.wait(), timeout=5)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert breaker.state == CircuitState.HALF_OPEN
    assert breaker.half_open_probe_in_flight is False
    assert (await breaker.acquire()).probe is True
