"""Tests for business endpoints and notifications."""

import pytest

from app.models.notification import NotificationType
from app.services.notification_service import create_notification


@pytest.mark.asyncio
async def test_create_and_get_business(client):
    """Create a business and fetch it back with normalized numbers."""
    resp = await client.post("/api/v1/businesses/", json={
        "name": "Acme Detailing",
        "owner_phone": "(555) 111-2222",
        "owner_name": "Bob",
        "owner_email": "bob@acme.example",
        "twilio_phone_number": "555.333.4444",
        "default_tone": "premium",
    })
    assert resp.status_code == 201
    biz = resp.json()
    assert biz["name"] == "Acme Detailing"
    assert biz["owner_phone"] == "+15551112222"
    assert biz["twilio_phone_number"] == "+15553334444"
    assert biz["default_tone"] == "premium"
    assert biz["sms_provider"] == "twilio"
    assert biz["is_active"] is True

    resp2 = await client.get(f"/api/v1/businesses/{biz['id']}")
    assert resp2.status_code == 200
    assert resp2.json()["owner_email"] == "bob@acme.example"


@pytest.mark.asyncio
async def test_get_business_not_found(client):
    resp = await client.get("/api/v1/businesses/00000000-0000-0000-0000-000000000000")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_update_business_messaging_settings(client, business):
    resp = await client.patch(f"/api/v1/businesses/{business.id}", json={
        "sender_name": "Sparkle Team",
        "sms_provider": "gateway",
        "sms_gateway_url": "https://sms.example/send",
    })
    assert resp.status_code == 200
    data = resp.json()
    assert data["sender_name"] == "Sparkle Team"
    assert data["sms_provider"] == "gateway"
    assert "sms_gateway_api_key" not in data


@pytest.mark.asyncio
async def test_notifications_listing_and_read(client, db, business, lead):
    await create_notification(
        db, business.id, "Sequence: Rescue", "Call Jordan", NotificationType.SEQUENCE, lead_id=lead.id
    )
    await db.commit()

    resp = await client.get("/api/v1/notifications/unread-count", params={"business_id": str(business.id)})
    assert resp.json()["count"] == 1

    resp = await client.get("/api/v1/notifications/", params={"business_id": str(business.id)})
    notifications = resp.json()
    assert len(notifications) == 1
    assert notifications[0]["type"] == "sequence"
    assert notifications[0]["lead_id"] == str(lead.id)

    resp = await client.post(
        f"/api/v1/notifications/{notifications[0]['id']}/read",
        params={"business_id": str(business.id)},
    )
    assert resp.status_code == 200
    assert resp.json()["is_read"] is True

    resp = await client.get("/api/v1/notifications/unread-count", params={"business_id": str(business.id)})
    assert resp.json()["count"] == 0
