# tests/test_orders_api.py
import base64

import pytest_asyncio

from tests.conftest import BUYER, STRANGER, TRAVELER, auth

PNG = base64.b64encode(b"\x89PNG\r\n\x1a\n fake receipt").decode()


@pytest_asyncio.fixture
async def created(client):
    resp = await client.post(
        "/orders/",
        json={"trip_id": "trip-9", "traveler_id": TRAVELER, "item_name": "Tokyo Banana", "item_price": 120000},
        headers=auth(BUYER),
    )
    assert resp.status_code == 201
    return resp.json()


async def test_health_is_public(client):
    resp = await client.get("/health")
    assert resp.json() == {"service": "order", "status": "running"}


async def test_requires_a_token(client):
    assert (await client.get("/orders/")).status_code == 401


async def test_create_order(created):
    assert created["buyer_id"] == BUYER
    assert created["status"] == "pending_payment"
    assert created["total_amount"] == 120000 + 25000 + 5000
    assert created["viewer_role"] == "buyer"
    assert created["allowed_transitions"] == []
    assert created["timeline"][0] == {"status": "pending_payment", "done": False, "current": True}


async def test_create_order_missing_price(client):
    resp = await client.post(
        "/orders/",
        json={"trip_id": "trip-9", "traveler_id": TRAVELER, "item_name": "Tokyo Banana"},
        headers=auth(BUYER),
    )
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"


async def test_orders_are_listed_for_both_parties(client, created):
    for user in (BUYER, TRAVELER):
        resp = await client.get("/orders/", headers=auth(user))
        assert [o["id"] for o in resp.json()] == [created["id"]]
    assert (await client.get("/orders/", headers=auth(STRANGER))).json() == []


async def test_detail_is_private(client, created):
    resp = await client.get(f"/orders/{created['id']}", headers=auth(TRAVELER))
    assert resp.status_code == 200
    assert resp.json()["viewer_role"] == "traveler"
    assert resp.json()["allowed_transitions"] == ["accepted", "rejected"]

    assert (await client.get(f"/orders/{created['id']}", headers=auth(STRANGER))).status_code == 403
    assert (await client.get("/orders/does-not-exist", headers=auth(BUYER))).status_code == 404


async def test_transition_roles(client, created):
    url = f"/orders/{created['id']}/transitions"

    resp = await client.post(url, json={"status": "accepted"}, headers=auth(BUYER))
    assert resp.status_code == 403
    assert resp.json()["error"] == "unauthorized"

    resp = await client.post(url, json={"status": "accepted"}, headers=auth(TRAVELER))
    assert resp.status_code == 200
    assert resp.json()["status"] == "accepted"

    resp = await client.post(url, json={"status": "paid_escrow"}, headers=auth(BUYER))
    assert resp.status_code == 409
    assert resp.json()["retryable"] is True


async def test_payment_proof_flow(client, created, blob_store):
    order_id = created["id"]
    await client.post(f"/orders/{order_id}/transitions", json={"status": "accepted"}, headers=auth(TRAVELER))

    resp = await client.post(
        f"/orders/{order_id}/payment-proof",
        json={"image_base64": f"data:image/png;base64,{PNG}", "file_ext": "png"},
        headers=auth(BUYER),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "paid_escrow"
    assert body["payment_proof_url"].startswith(f"https://blobs.test/receipts/{order_id}_")
    assert len(blob_store.objects) == 1

    resp = await client.post(f"/orders/{order_id}/transitions", json={"status": "purchased"}, headers=auth(TRAVELER))
    assert resp.json()["timeline"][2]["current"] is True


async def test_payment_proof_rejects_bad_base64(client, created):
    resp = await client.post(
        f"/orders/{created['id']}/payment-proof",
        json={"image_base64": "not base64!!", "file_ext": "jpg"},
        headers=auth(BUYER),
    )
    assert resp.status_code == 422


async def test_payment_proof_before_acceptance(client, created, blob_store):
    resp = await client.post(
        f"/orders/{created['id']}/payment-proof",
        json={"image_base64": PNG, "file_ext": "png"},
        headers=auth(BUYER),
    )
    assert resp.status_code == 409
    assert blob_store.objects == {}


async def test_chat_messages(client, created):
    url = f"/chat/{created['id']}/messages"
    resp = await client.post(url, json={"content": "Halo kak"}, headers=auth(BUYER))
    assert resp.status_code == 201
    resp = await client.post(url, json={"content": "Halo juga"}, headers=auth(TRAVELER))
    assert resp.status_code == 201

    history = (await client.get(url, headers=auth(TRAVELER))).json()
    assert sorted(m["content"] for m in history) == ["Halo juga", "Halo kak"]

    assert (await client.post(url, json={"content": "hi"}, headers=auth(STRANGER))).status_code == 403
    assert (await client.post(url, json={"content": "  "}, headers=auth(BUYER))).status_code == 422
