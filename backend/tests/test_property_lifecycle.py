from __future__ import annotations

import pytest

from buildstate.models import Role

PROPERTY = {
    "name": "Cedar House",
    "address": "9 Cedar Rd",
    "city": "Madison",
    "state": "WI",
    "zipCode": "53703",
    "propertyType": "RESIDENTIAL",
    "totalUnits": 0,
}


@pytest.mark.parametrize("role", [Role.ADMIN, Role.OWNER, Role.TECHNICIAN, Role.TENANT])
def test_non_managers_cannot_create_properties(client, make_user, auth, role):
    user = make_user(role)
    r = client.post("/api/properties", json=PROPERTY, headers=auth(user))
    assert r.status_code == 403


def test_unit_counter_round_trip(client, make_user, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    h = auth(manager)
    pid = client.post("/api/properties", json=PROPERTY, headers=h).json()["id"]

    for n in ("A", "B", "C"):
        assert client.post("/api/units", json={"propertyId": pid, "unitNumber": n}, headers=h).status_code == 201

    body = client.get(f"/api/properties/{pid}", headers=h).json()
    assert body["totalUnits"] == 3
    assert len(body["units"]) == 3


def test_manager_end_to_end(client, make_user, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    tenant = make_user(Role.TENANT)
    h = auth(manager)

    r = client.post("/api/properties", json=PROPERTY, headers=h)
    assert r.status_code == 201
    pid = r.json()["id"]

    r = client.post("/api/units", json={"propertyId": pid, "unitNumber": "U1"}, headers=h)
    assert r.status_code == 201
    uid = r.json()["id"]
    assert client.get(f"/api/properties/{pid}", headers=h).json()["totalUnits"] == 1

    r = client.post(
        f"/api/units/{uid}/tenants",
        json={
            "tenantId": tenant.id,
            "leaseStart": "2026-02-01T00:00:00Z",
            "leaseEnd": "2027-01-31T00:00:00Z",
            "rentAmount": 1500,
        },
        headers=h,
    )
    assert r.status_code == 201
    assert client.get(f"/api/units/{uid}", headers=h).json()["status"] == "OCCUPIED"

    # the tenant now sees the property
    assert [p["id"] for p in client.get("/api/properties", headers=auth(tenant)).json()] == [pid]

    r = client.delete(f"/api/properties/{pid}", headers=h)
    assert r.status_code == 400

    r = client.delete(f"/api/units/{uid}/tenants/{tenant.id}", headers=h)
    assert r.status_code == 200
    assert client.get(f"/api/units/{uid}", headers=h).json()["status"] == "AVAILABLE"

    r = client.delete(f"/api/properties/{pid}", headers=h)
    assert r.status_code == 200
    assert client.get("/api/properties", headers=h).json() == []
