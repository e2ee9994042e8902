"""
End-to-end tests through the HTTP API.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from httpx import AsyncClient

from conftest import ADMIN_PASSWORD, WEBHOOK_SIGNATURE, webhook_body
from register_path.models import EventStatus


def registration_json(event_id, seats: int = 1, email: str = "ada@example.com") -> dict:
    return {
        "event_id": str(event_id),
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": email,
        "seats": seats,
    }


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.asyncio
async def test_public_event_listing(client: AsyncClient, make_event):
    event = await make_event(title="Open Day")
    await make_event(title="Secret", status=EventStatus.DRAFT)

    response = await client.get("/api/v1/events")
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["events"][0]["id"] == str(event.id)
    assert data["events"][0]["remaining"] == 10

    detail = await client.get(f"/api/v1/events/{event.id}")
    assert detail.status_code == 200
    assert detail.json()["title"] == "Open Day"


@pytest.mark.asyncio
async def test_register_verify_and_check_in(client: AsyncClient, make_event, ticket_generator):
    event = await make_event(capacity=5)

    response = await client.post("/api/v1/registrations", json=registration_json(event.id, seats=2))
    assert response.status_code == 201
    data = response.json()
    assert data["outcome"] == "confirmed"
    assert len(data["tickets"]) == 2

    code = data["tickets"][0]["ticket_code"]
    verify = await client.get(f"/api/v1/tickets/{code}/verify", params={"sig": ticket_generator.sign(code)})
    assert verify.status_code == 200
    assert verify.json()["valid"] is True
    assert verify.json()["already_checked_in"] is False

    first = await client.post(f"/api/v1/tickets/{code}/check-in")
    assert first.status_code == 200
    assert first.json()["attendee_name"] == "Ada Lovelace"

    second = await client.post(f"/api/v1/tickets/{code}/check-in")
    assert second.status_code == 409
    assert second.json()["error"]["error_code"] == "ALREADY_CHECKED_IN"

    event_response = await client.get(f"/api/v1/events/{event.id}")
    assert event_response.json()["remaining"] == 3


@pytest.mark.asyncio
async def test_verify_rejects_bad_signature(client: AsyncClient, make_event):
    event = await make_event()
    response = await client.post("/api/v1/registrations", json=registration_json(event.id))
    code = response.json()["tickets"][0]["ticket_code"]

    verify = await client.get(f"/api/v1/tickets/{code}/verify", params={"sig": "0" * 16})
    assert verify.status_code == 422


@pytest.mark.asyncio
async def test_unknown_ticket_is_404(client: AsyncClient):
    response = await client.get("/api/v1/tickets/RP-NOPE-00000000/verify")
    assert response.status_code == 404
    assert response.json()["error"]["error_code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_registration_errors(client: AsyncClient, make_event):
    full = await make_event(capacity=1, allow_waitlist=False)
    await client.post("/api/v1/registrations", json=registration_json(full.id))

    sold_out = await client.post("/api/v1/registrations", json=registration_json(full.id, email="late@example.com"))
    assert sold_out.status_code == 409
    assert sold_out.json()["error"]["error_code"] == "CAPACITY_EXCEEDED"

    too_many = await client.post("/api/v1/registrations", json=registration_json(full.id, seats=5))
    assert too_many.status_code == 422

    missing = await client.post(
        "/api/v1/registrations",
        json=registration_json("00000000-0000-0000-0000-000000000000"),
    )
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_paid_registration_through_webhook(client: AsyncClient, make_event, payment_provider, sender):
    event = await make_event(capacity=5, price=Decimal("12.50"))

    response = await client.post("/api/v1/registrations", json=registration_json(event.id, seats=2))
    assert response.status_code == 201
    data = response.json()
    assert data["outcome"] == "payment_required"
    assert data["client_secret"]
    intent_id = next(iter(payment_provider.intents))

    webhook = await client.post(
        "/api/v1/payments/webhook",
        content=webhook_body("payment_intent.succeeded", intent_id),
        headers={"Stripe-Signature": WEBHOOK_SIGNATURE},
    )
    assert webhook.status_code == 200
    assert webhook.json() == {"received": True, "action": "confirmed"}

    replay = await client.post(
        "/api/v1/payments/webhook",
        content=webhook_body("payment_intent.succeeded", intent_id),
        headers={"Stripe-Signature": WEBHOOK_SIGNATURE},
    )
    assert replay.json()["action"] == "already_processed"

    complete = await client.post(f"/api/v1/registrations/{data['registration']['id']}/complete")
    assert complete.status_code == 200
    assert complete.json()["outcome"] == "confirmed"
    assert len(complete.json()["tickets"]) == 2

    event_response = await client.get(f"/api/v1/events/{event.id}")
    assert event_response.json()["remaining"] == 3


@pytest.mark.asyncio
async def test_webhook_bad_signature(client: AsyncClient):
    response = await client.post(
        "/api/v1/payments/webhook",
        content=webhook_body("payment_intent.succeeded", "pi_test_1"),
        headers={"Stripe-Signature": "forged"},
    )
    assert response.status_code == 400
    assert response.json()["error"]["error_code"] == "WEBHOOK_SIGNATURE_INVALID"


@pytest.mark.asyncio
async def test_admin_login(client: AsyncClient):
    wrong = await client.post("/api/v1/admin/login", json={"password": "guess"})
    assert wrong.status_code == 401

    right = await client.post("/api/v1/admin/login", json={"password": ADMIN_PASSWORD})
    assert right.status_code == 200
    token = right.json()["access_token"]

    stats = await client.get("/api/v1/admin/stats", headers={"Authorization": f"Bearer {token}"})
    assert stats.status_code == 200


@pytest.mark.asyncio
async def test_admin_routes_require_token(client: AsyncClient):
    assert (await client.get("/api/v1/admin/stats")).status_code == 401
    forged = await client.get("/api/v1/admin/stats", headers={"Authorization": "Bearer not-a-token"})
    assert forged.status_code == 401


@pytest.mark.asyncio
async def test_admin_event_lifecycle(client: AsyncClient, admin_headers):
    start = datetime.now(timezone.utc) + timedelta(days=10)
    created = await client.post(
        "/api/v1/admin/events",
        json={
            "title": "Hack Night",
            "location": "Lab 3",
            "start_time": start.isoformat(),
            "end_time": (start + timedelta(hours=4)).isoformat(),
            "capacity": 30,
            "price": "0.00",
            "status": "published",
        },
        headers=admin_headers,
    )
    assert created.status_code == 201
    event_id = created.json()["id"]
    assert created.json()["remaining"] == 30

    registered = await client.post("/api/v1/registrations", json=registration_json(event_id, seats=3))
    registration_id = registered.json()["registration"]["id"]

    shrink = await client.put(f"/api/v1/admin/events/{event_id}", json={"capacity": 2}, headers=admin_headers)
    assert shrink.status_code == 409

    copied = await client.post(f"/api/v1/admin/events/{event_id}/copy", headers=admin_headers)
    assert copied.status_code == 201
    assert copied.json()["title"] == "Hack Night (Copy)"
    assert copied.json()["status"] == "draft"
    assert copied.json()["remaining"] == 30

    registrations = await client.get(f"/api/v1/admin/events/{event_id}/registrations", headers=admin_headers)
    assert registrations.status_code == 200
    assert len(registrations.json()[0]["tickets"]) == 3

    cancelled = await client.post(f"/api/v1/admin/registrations/{registration_id}/cancel", headers=admin_headers)
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"

    stats = await client.get("/api/v1/admin/stats", headers=admin_headers)
    assert stats.json()["total_events"] == 2

    deleted = await client.delete(f"/api/v1/admin/events/{event_id}", headers=admin_headers)
    assert deleted.status_code == 200
    assert (await client.get(f"/api/v1/events/{event_id}")).status_code == 404
