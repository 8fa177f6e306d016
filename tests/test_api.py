"""
Integration tests for the REST API endpoints.

The app is built around the test ``NegotiationEngine`` (file-backed
SQLite), so no lifespan wiring, Redis or geocoder is involved.  Rate
limiting is switched off for the duration of each test.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from slidebid.api.app import create_app
from slidebid.api.middleware import limiter

CUSTOMER = {"X-User-Id": "1", "X-User-Role": "customer"}
OTHER_CUSTOMER = {"X-User-Id": "2", "X-User-Role": "customer"}
DRIVER = {"X-User-Id": "5", "X-User-Role": "driver"}

REQUEST_BODY = {
    "pickup": {"lat": 13.7563, "lon": 100.5018, "address": "Democracy Monument, Bangkok"},
    "dropoff": {"lat": 13.7469, "lon": 100.5349, "address": "Siam Paragon, Bangkok"},
    "vehicle_type": 1,
    "message": "Car will not start",
}


@pytest_asyncio.fixture
async def client(negotiation):
    limiter.enabled = False
    app = create_app(negotiation)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    limiter.enabled = True


async def _create_request(client: AsyncClient) -> dict:
    resp = await client.post("/api/v1/requests", json=REQUEST_BODY, headers=CUSTOMER)
    assert resp.status_code == 201
    return resp.json()["data"]


async def _create_offer(client: AsyncClient, request_id: int, price: float = 300) -> dict:
    resp = await client.post(
        "/api/v1/driver/offers",
        json={"request_id": request_id, "price": price},
        headers=DRIVER,
    )
    assert resp.status_code == 201
    return resp.json()["data"]["offer"]


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"] == {"status": "ok", "database": "ok"}


@pytest.mark.asyncio
async def test_create_request_returns_201(client: AsyncClient):
    resp = await client.post("/api/v1/requests", json=REQUEST_BODY, headers=CUSTOMER)
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Request created"
    assert body["error"] is None
    assert body["data"]["status"] == "pending"
    assert body["data"]["customer_id"] == 1
    assert body["data"]["customer_message"] == "Car will not start"


@pytest.mark.asyncio
async def test_missing_identity_is_401(client: AsyncClient):
    resp = await client.post("/api/v1/requests", json=REQUEST_BODY)
    assert resp.status_code == 401
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["kind"] == "unauthorized"


@pytest.mark.asyncio
async def test_unknown_role_is_401(client: AsyncClient):
    headers = {"X-User-Id": "1", "X-User-Role": "admin"}
    resp = await client.get("/api/v1/requests/active", headers=headers)
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_driver_cannot_create_request(client: AsyncClient):
    resp = await client.post("/api/v1/requests", json=REQUEST_BODY, headers=DRIVER)
    assert resp.status_code == 403
    assert resp.json()["error"]["kind"] == "forbidden"


@pytest.mark.asyncio
async def test_out_of_range_coordinates_rejected(client: AsyncClient):
    body = {**REQUEST_BODY, "pickup": {"lat": 100, "lon": 100.5018}}
    resp = await client.post("/api/v1/requests", json=body, headers=CUSTOMER)
    assert resp.status_code == 422
    payload = resp.json()
    assert payload["error"]["kind"] == "validation"
    assert payload["error"]["details"]["errors"]


@pytest.mark.asyncio
async def test_non_positive_offer_price_rejected(client: AsyncClient):
    request = await _create_request(client)
    resp = await client.post(
        "/api/v1/driver/offers",
        json={"request_id": request["id"], "price": 0},
        headers=DRIVER,
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_request_not_found(client: AsyncClient):
    resp = await client.get("/api/v1/requests/99999", headers=CUSTOMER)
    assert resp.status_code == 404
    assert resp.json()["error"]["kind"] == "not_found"


@pytest.mark.asyncio
async def test_other_customer_cannot_see_request(client: AsyncClient):
    request = await _create_request(client)
    resp = await client.get(f"/api/v1/requests/{request['id']}", headers=OTHER_CUSTOMER)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_request_details_include_estimate(client: AsyncClient):
    request = await _create_request(client)
    resp = await client.get(f"/api/v1/requests/{request['id']}", headers=DRIVER)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["request"]["id"] == request["id"]
    assert data["estimate"]["distance_km"] > 0
    assert data["estimate"]["price"] >= 100
    assert data["own_offer"] is None
    assert data["driver_distance_km"] is not None


@pytest.mark.asyncio
async def test_full_booking_flow(client: AsyncClient):
    request = await _create_request(client)
    request_id = request["id"]

    offer = await _create_offer(client, request_id, 300)
    assert offer["status"] == "pending"

    resp = await client.get(f"/api/v1/requests/{request_id}/offers", headers=CUSTOMER)
    assert resp.status_code == 200
    assert [o["id"] for o in resp.json()["data"]] == [offer["id"]]

    resp = await client.post(
        f"/api/v1/requests/{request_id}/accept",
        json={"offer_id": offer["id"], "payment_method_ref": 9},
        headers=CUSTOMER,
    )
    assert resp.status_code == 200
    accepted = resp.json()["data"]
    assert accepted["request"]["status"] == "accepted"
    assert accepted["offer"]["status"] == "accepted"
    assert accepted["payment"]["status"] == "Pending"
    assert accepted["payment"]["amount"] == 300
    assert accepted["payment"]["payment_method_ref"] == "9"

    resp = await client.get("/api/v1/requests/active", headers=CUSTOMER)
    assert resp.json()["data"]["id"] == request_id

    resp = await client.post(f"/api/v1/driver/requests/{request_id}/arrived", headers=DRIVER)
    assert resp.status_code == 200
    assert resp.json()["message"] == "Customer notified"

    resp = await client.post(f"/api/v1/requests/{request_id}/complete", headers=DRIVER)
    assert resp.status_code == 200
    completed = resp.json()
    assert completed["message"] == "Request completed"
    assert completed["data"]["request"]["status"] == "completed"
    receipt = completed["data"]["receipt"]
    assert receipt["service_price"] == 300
    assert receipt["payment_status"] == "Completed"
    assert receipt["driver_id"] == 5

    resp = await client.post(f"/api/v1/requests/{request_id}/complete", headers=CUSTOMER)
    assert resp.status_code == 200
    again = resp.json()
    assert again["message"] == "Request already completed"
    assert again["data"]["already_completed"] is True
    assert again["data"]["receipt"]["id"] == receipt["id"]

    resp = await client.get("/api/v1/requests/active", headers=CUSTOMER)
    assert resp.json()["data"] is None


@pytest.mark.asyncio
async def test_cancel_completed_request_conflicts(client: AsyncClient):
    request = await _create_request(client)
    offer = await _create_offer(client, request["id"])
    await client.post(
        f"/api/v1/requests/{request['id']}/accept",
        json={"offer_id": offer["id"], "payment_method_ref": "card_42"},
        headers=CUSTOMER,
    )
    await client.post(f"/api/v1/requests/{request['id']}/complete", headers=CUSTOMER)

    resp = await client.post(f"/api/v1/requests/{request['id']}/cancel", headers=CUSTOMER)
    assert resp.status_code == 409
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["kind"] == "conflict"
    assert body["data"] is None


@pytest.mark.asyncio
async def test_cancel_pending_request(client: AsyncClient):
    request = await _create_request(client)
    await _create_offer(client, request["id"])

    resp = await client.post(f"/api/v1/requests/{request['id']}/cancel", headers=CUSTOMER)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["request"]["status"] == "cancelled"
    assert data["rejected_offers"] == 1
    assert data["voided_payment"] is None


@pytest.mark.asyncio
async def test_available_requests_for_driver(client: AsyncClient):
    request = await _create_request(client)

    resp = await client.get(
        "/api/v1/driver/requests/available",
        params={"lat": 13.7460, "lon": 100.5340, "radius_km": 10},
        headers=DRIVER,
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [a["request"]["id"] for a in data] == [request["id"]]
    assert data[0]["distance_to_pickup_km"] > 0

    await _create_offer(client, request["id"])
    resp = await client.get("/api/v1/driver/requests/available", headers=DRIVER)
    assert resp.json()["data"] == []


@pytest.mark.asyncio
async def test_available_requests_need_both_coordinates(client: AsyncClient):
    resp = await client.get(
        "/api/v1/driver/requests/available", params={"lat": 13.7}, headers=DRIVER
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["kind"] == "validation"


@pytest.mark.asyncio
async def test_resubmitting_offer_updates_it(client: AsyncClient):
    request = await _create_request(client)
    first = await _create_offer(client, request["id"], 300)

    resp = await client.post(
        "/api/v1/driver/offers",
        json={"request_id": request["id"], "price": 250},
        headers=DRIVER,
    )
    assert resp.status_code == 409

    await client.post(f"/api/v1/driver/offers/{first['id']}/cancel", headers=DRIVER)
    resp = await client.post(
        "/api/v1/driver/offers",
        json={"request_id": request["id"], "price": 250},
        headers=DRIVER,
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "Offer updated"
    assert body["data"]["reopened"] is True
    assert body["data"]["offer"]["id"] == first["id"]
    assert body["data"]["offer"]["offered_price"] == 250


@pytest.mark.asyncio
async def test_reject_pending_offers(client: AsyncClient):
    request = await _create_request(client)
    await _create_offer(client, request["id"])

    resp = await client.get("/api/v1/driver/offers", headers=DRIVER)
    assert len(resp.json()["data"]) == 1

    resp = await client.post("/api/v1/driver/offers/reject-pending", headers=DRIVER)
    assert resp.status_code == 200
    assert resp.json()["data"] == {"withdrawn": 1}

    resp = await client.get("/api/v1/driver/offers", headers=DRIVER)
    assert resp.json()["data"] == []


@pytest.mark.asyncio
async def test_arrival_requires_assignment(client: AsyncClient):
    request = await _create_request(client)
    resp = await client.post(
        f"/api/v1/driver/requests/{request['id']}/arrived", headers=DRIVER
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_unknown_route_uses_envelope(client: AsyncClient):
    resp = await client.get("/api/v1/nowhere")
    assert resp.status_code == 404
    assert resp.json()["success"] is False


@pytest.mark.asyncio
async def test_request_history(client: AsyncClient):
    first = await _create_request(client)
    second = await _create_request(client)

    resp = await client.get(
        "/api/v1/requests/history", params={"status": "pending"}, headers=CUSTOMER
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total"] == 2
    assert [e["request"]["id"] for e in data["items"]] == [second["id"], first["id"]]
    assert data["items"][0]["receipt"] is None


@pytest.mark.asyncio
async def test_request_history_unknown_status_is_400(client: AsyncClient):
    resp = await client.get(
        "/api/v1/requests/history", params={"status": "finished"}, headers=CUSTOMER
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"]["kind"] == "validation"
    assert body["error"]["details"]["field"] == "status"


@pytest.mark.asyncio
async def test_driver_jobs(client: AsyncClient):
    request = await _create_request(client)
    offer = await _create_offer(client, request["id"])
    await client.post(
        f"/api/v1/requests/{request['id']}/accept",
        json={"offer_id": offer["id"], "payment_method_ref": 9},
        headers=CUSTOMER,
    )

    resp = await client.get("/api/v1/driver/jobs/active", headers=DRIVER)
    assert resp.status_code == 200
    jobs = resp.json()["data"]
    assert [j["request"]["id"] for j in jobs] == [request["id"]]
    assert jobs[0]["estimate"]["distance_km"] > 0

    await client.post(f"/api/v1/requests/{request['id']}/complete", headers=DRIVER)

    resp = await client.get("/api/v1/driver/jobs/active", headers=DRIVER)
    assert resp.json()["data"] == []
    resp = await client.get("/api/v1/driver/jobs/history", headers=DRIVER)
    page = resp.json()["data"]
    assert page["total"] == 1
    assert page["items"][0]["receipt"]["service_price"] == 300
