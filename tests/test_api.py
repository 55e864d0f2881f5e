from datetime import timedelta

import pytest
from httpx import AsyncClient

from hopelink.core.security import create_token
from hopelink.core.timeutil import utcnow

pytestmark = pytest.mark.anyio

DONATION = {
    "donor_id": "donor-1",
    "title": "rice bags",
    "category": "food",
    "quantity": 10,
    "pickup_location": "12 Osmena Blvd, Cebu City, Cebu",
    "pickup_lat": 10.3157,
    "pickup_lng": 123.8854,
    "is_urgent": True,
}

REQUEST = {
    "requester_id": "recipient-1",
    "title": "rice bags",
    "category": "food",
    "quantity_needed": 10,
    "urgency": "high",
    "city": "Cebu City",
    "lat": 10.3157,
    "lng": 123.8854,
}

async def _admin_headers(repo):
    await repo.create_user({"id": "admin-1", "role": "admin"})
    return {"Authorization": f"Bearer {create_token({'sub': 'admin-1'})}"}

async def test_health(test_client: AsyncClient):
    r = await test_client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}

async def test_create_request_then_donation_suggests_matches(test_client: AsyncClient):
    r = await test_client.post("/api/requests", json=REQUEST)
    assert r.status_code == 201, r.text
    request_id = r.json()["request"]["id"]
    assert r.json()["auto_match"]["action"] == "none"

    r = await test_client.post("/api/donations", json=DONATION)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["donation"]["status"] == "available"
    assert body["auto_match"]["action"] == "disabled"
    assert body["suggested_matches"][0]["request"]["id"] == request_id

    r = await test_client.get(f"/api/matching/requests/{request_id}/donations", params={"max_results": 5})
    assert r.status_code == 200
    matches = r.json()["matches"]
    assert matches[0]["donation"]["id"] == body["donation"]["id"]
    assert set(matches[0]["criteria_scores"]) == {
        "geographic_proximity", "item_compatibility", "urgency_alignment",
        "user_reliability", "delivery_compatibility",
    }

async def test_validation_and_missing_records(test_client: AsyncClient):
    r = await test_client.post("/api/donations", json={**DONATION, "quantity": 0})
    assert r.status_code == 422
    past = (utcnow() - timedelta(days=1)).isoformat()
    r = await test_client.post("/api/donations", json={**DONATION, "expiration_date": past})
    assert r.status_code == 422
    r = await test_client.get("/api/donations/nope")
    assert r.status_code == 404
    r = await test_client.get("/api/matching/donations/nope/requests")
    assert r.status_code == 404

async def test_claim_and_conflict(test_client: AsyncClient):
    donation_id = (await test_client.post("/api/donations", json=DONATION)).json()["donation"]["id"]

    r = await test_client.post(f"/api/donations/{donation_id}/claim", json={"recipient_id": "recipient-1"})
    assert r.status_code == 201, r.text
    assert r.json()["status"] == "claimed"

    r = await test_client.post(f"/api/donations/{donation_id}/claim", json={"recipient_id": "recipient-2"})
    assert r.status_code == 409
    assert r.json()["error"] == "DuplicateClaim"

    r = await test_client.get("/api/notifications/recipient-1")
    assert [n["title"] for n in r.json()] == ["Pickup Instructions"]

async def test_smart_match_endpoint(test_client: AsyncClient):
    request_id = (await test_client.post("/api/requests", json=REQUEST)).json()["request"]["id"]
    radio = (await test_client.post("/api/donations", json={**DONATION, "category": "electronics",
                                                            "title": "radio"})).json()["donation"]["id"]
    r = await test_client.post("/api/matching/smart-match", json={"request_id": request_id, "donation_id": radio})
    assert r.status_code == 422
    assert r.json()["error"] == "IncompatibleMatch"

    rice = (await test_client.post("/api/donations", json=DONATION)).json()["donation"]["id"]
    r = await test_client.post("/api/matching/smart-match", json={"request_id": request_id, "donation_id": rice})
    assert r.status_code == 201, r.text
    assert r.json()["donation"]["status"] == "matched"

    r = await test_client.post(f"/api/donations/{rice}/claim", json={"recipient_id": "stranger"})
    assert r.status_code == 409
    r = await test_client.post(f"/api/donations/{rice}/claim", json={"recipient_id": "recipient-1"})
    assert r.status_code == 201, r.text
    assert r.json()["request_id"] == request_id

async def test_volunteer_assignment_flow(test_client: AsyncClient):
    vol = (await test_client.post("/api/volunteers", json={
        "name": "Vic", "city": "Cebu City", "lat": 10.3157, "lng": 123.8854,
        "preferred_delivery_types": ["food items"],
    })).json()
    donation_id = (await test_client.post("/api/donations", json={**DONATION, "delivery_mode": "volunteer"})
                   ).json()["donation"]["id"]
    claim = (await test_client.post(f"/api/donations/{donation_id}/claim",
                                    json={"recipient_id": "recipient-1"})).json()

    r = await test_client.get(f"/api/matching/claims/{claim['id']}/volunteers")
    assert r.status_code == 200
    assert r.json()["matches"][0]["volunteer"]["id"] == vol["id"]

    r = await test_client.post(f"/api/claims/{claim['id']}/auto-assign")
    assert r.status_code == 200, r.text
    assert r.json()["volunteer_id"] == vol["id"]

    r = await test_client.post(f"/api/claims/{claim['id']}/accept", json={"volunteer_id": "impostor"})
    assert r.status_code == 403

    r = await test_client.post(f"/api/claims/{claim['id']}/accept", json={"volunteer_id": vol["id"]})
    assert r.status_code == 200
    assert r.json()["status"] == "assigned"

    r = await test_client.post(f"/api/claims/{claim['id']}/auto-assign")
    assert r.status_code == 409

async def test_optimal_and_ranking(test_client: AsyncClient):
    await test_client.post("/api/requests", json=REQUEST)
    await test_client.post("/api/requests", json={**REQUEST, "urgency": "low", "category": "clothing"})
    await test_client.post("/api/donations", json=DONATION)

    r = await test_client.get("/api/matching/optimal", params={"limit": 5})
    assert r.status_code == 200
    scores = [m["combined_score"] for m in r.json()["matches"]]
    assert scores == sorted(scores, reverse=True)

    r = await test_client.get("/api/matching/ranking")
    ranked = r.json()["requests"]
    assert ranked[0]["request"]["urgency"] == "high"

async def test_admin_parameters_require_admin(test_client: AsyncClient, repo):
    r = await test_client.get("/api/admin/matching-parameters/DONOR_RECIPIENT_VOLUNTEER")
    assert r.status_code == 401

    await repo.create_user({"id": "donor-1", "role": "donor"})
    donor = {"Authorization": f"Bearer {create_token({'sub': 'donor-1'})}"}
    r = await test_client.get("/api/admin/matching-parameters/DONOR_RECIPIENT_VOLUNTEER", headers=donor)
    assert r.status_code == 403

    r = await test_client.get("/api/admin/matching-parameters/X",
                              headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401

async def test_admin_parameter_updates_are_versioned(test_client: AsyncClient, repo):
    headers = await _admin_headers(repo)
    url = "/api/admin/matching-parameters/DONOR_RECIPIENT_VOLUNTEER"

    r = await test_client.get(url, headers=headers)
    assert r.status_code == 200
    assert r.json()["version"] == 0

    r = await test_client.put(url, headers=headers, json={"expected_version": 0, "auto_match_enabled": True})
    assert r.status_code == 200, r.text
    assert r.json()["version"] == 1

    r = await test_client.put(url, headers=headers, json={"expected_version": 0, "auto_claim_threshold": 0.9})
    assert r.status_code == 409

    # auto-match now on: a perfect pair is claimed on creation
    await test_client.post("/api/requests", json=REQUEST)
    r = await test_client.post("/api/donations", json=DONATION)
    body = r.json()
    assert body["auto_match"]["action"] == "auto_claimed"
    assert body["auto_match"]["params_version"] == 1
    assert body["donation"]["status"] == "claimed"

async def test_admin_expire(test_client: AsyncClient, repo):
    headers = await _admin_headers(repo)
    await repo.create_donation({**DONATION, "status": "available",
                                "expiration_date": utcnow() - timedelta(hours=2)})
    r = await test_client.post("/api/admin/expire", headers=headers)
    assert r.status_code == 200
    assert r.json() == {"expired": 1, "archived": 0}
