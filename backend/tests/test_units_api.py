from __future__ import annotations

from datetime import datetime

from sqlalchemy import select

from buildstate.models import Inspection, Property, Role, Unit, UnitTenant


def _lease_body(tenant_id: int, **kw) -> dict:
    body = {
        "tenantId": tenant_id,
        "leaseStart": "2026-01-01T00:00:00Z",
        "leaseEnd": "2026-12-31T00:00:00Z",
        "rentAmount": 1350,
    }
    body.update(kw)
    return body


def test_create_units_and_counter(client, db, make_user, make_property, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    prop = make_property(manager)
    h = auth(manager)

    for n in ("101", "102", "103"):
        r = client.post("/api/units", json={"propertyId": prop.id, "unitNumber": n, "bedrooms": 2}, headers=h)
        assert r.status_code == 201, r.text
        assert r.json()["status"] == "AVAILABLE"

    r = client.post("/api/units", json={"propertyId": prop.id, "unitNumber": "102"}, headers=h)
    assert r.status_code == 400
    assert r.json()["error"] == "Unit number already exists for this property"

    db.expire_all()
    assert db.get(Property, prop.id).total_units == 3

    listed = client.get("/api/units", params={"propertyId": prop.id}, headers=h).json()
    assert [u["unitNumber"] for u in listed] == ["101", "102", "103"]


def test_same_number_allowed_on_another_property(client, make_user, make_property, make_unit, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    a = make_property(manager, name="A")
    b = make_property(manager, name="B")
    make_unit(a, "1")

    r = client.post("/api/units", json={"propertyId": b.id, "unitNumber": "1"}, headers=auth(manager))
    assert r.status_code == 201


def test_create_unit_validation(client, make_user, make_property, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    other = make_user(Role.PROPERTY_MANAGER)
    prop = make_property(manager)

    r = client.post("/api/units", json={"unitNumber": "9"}, headers=auth(manager))
    assert r.status_code == 400
    assert r.json()["error"] == "Property ID and unit number are required"

    r = client.post("/api/units", json={"propertyId": prop.id, "unitNumber": "9"}, headers=auth(other))
    assert r.status_code == 403


def test_list_requires_property_id(client, make_user, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    r = client.get("/api/units", headers=auth(manager))
    assert r.status_code == 400
    assert r.json()["error"] == "Property ID is required"


def test_rename_to_taken_number(client, make_user, make_property, make_unit, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    prop = make_property(manager)
    make_unit(prop, "101")
    u2 = make_unit(prop, "102")

    r = client.patch(f"/api/units/{u2.id}", json={"unitNumber": "101"}, headers=auth(manager))
    assert r.status_code == 400
    r = client.patch(f"/api/units/{u2.id}", json={"unitNumber": "102", "rentAmount": 999}, headers=auth(manager))
    assert r.status_code == 200
    assert r.json()["rentAmount"] == 999


def test_assign_tenant(client, make_user, make_property, make_unit, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    tenant = make_user(Role.TENANT)
    tech = make_user(Role.TECHNICIAN)
    prop = make_property(manager)
    unit = make_unit(prop)
    url = f"/api/units/{unit.id}/tenants"
    h = auth(manager)

    r = client.post(url, json=_lease_body(tenant.id), headers=h)
    assert r.status_code == 201, r.text
    assert r.json()["isActive"] is True
    assert r.json()["tenant"]["id"] == tenant.id

    r = client.post(url, json=_lease_body(tenant.id), headers=h)
    assert r.status_code == 400
    assert r.json()["error"] == "Tenant is already assigned to this unit"

    r = client.post(url, json=_lease_body(tech.id), headers=h)
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid tenant"

    r = client.post(url, json={"tenantId": tenant.id}, headers=h)
    assert r.status_code == 400
    assert r.json()["error"] == "Tenant ID, lease start, lease end, and rent amount are required"

    detail = client.get(f"/api/units/{unit.id}", headers=h).json()
    assert detail["status"] == "OCCUPIED"
    assert len(detail["activeLeases"]) == 1


def test_lease_end_before_start(client, make_user, make_property, make_unit, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    tenant = make_user(Role.TENANT)
    unit = make_unit(make_property(manager))

    r = client.post(
        f"/api/units/{unit.id}/tenants",
        json=_lease_body(tenant.id, leaseStart="2026-06-01T00:00:00Z", leaseEnd="2026-01-01T00:00:00Z"),
        headers=auth(manager),
    )
    assert r.status_code == 400
    assert r.json()["error"] == "Lease end date must be after lease start date"


def test_unit_stays_occupied_until_last_tenant_leaves(client, db, make_user, make_property, make_unit, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    t1 = make_user(Role.TENANT)
    t2 = make_user(Role.TENANT)
    unit = make_unit(make_property(manager))
    h = auth(manager)

    for t in (t1, t2):
        assert client.post(f"/api/units/{unit.id}/tenants", json=_lease_body(t.id), headers=h).status_code == 201

    r = client.delete(f"/api/units/{unit.id}/tenants/{t1.id}", headers=h)
    assert r.status_code == 200
    assert r.json() == {"message": "Tenant removed successfully"}
    assert client.get(f"/api/units/{unit.id}", headers=h).json()["status"] == "OCCUPIED"

    client.delete(f"/api/units/{unit.id}/tenants/{t2.id}", headers=h)
    detail = client.get(f"/api/units/{unit.id}", headers=h).json()
    assert detail["status"] == "AVAILABLE"
    assert detail["activeLeases"] == []

    # leases are kept as history
    db.expire_all()
    leases = db.scalars(select(UnitTenant).where(UnitTenant.unit_id == unit.id)).all()
    assert len(leases) == 2
    assert not any(x.is_active for x in leases)


def test_delete_unit(client, db, make_user, make_property, make_unit, make_lease, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    tenant = make_user(Role.TENANT)
    prop = make_property(manager)
    unit = make_unit(prop)
    make_lease(unit, tenant)
    h = auth(manager)
    unit_id, prop_id = unit.id, prop.id

    r = client.delete(f"/api/units/{unit.id}", headers=h)
    assert r.status_code == 400
    assert r.json()["error"] == "Cannot delete unit with active tenants. Please remove tenants first."

    client.delete(f"/api/units/{unit.id}/tenants/{tenant.id}", headers=h)
    r = client.delete(f"/api/units/{unit.id}", headers=h)
    assert r.status_code == 200

    db.expire_all()
    assert db.get(Unit, unit_id) is None
    assert db.get(Property, prop_id).total_units == 0


def test_tenant_reads_units_of_leased_property(client, make_user, make_property, make_unit, make_lease, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    tenant = make_user(Role.TENANT)
    stranger = make_user(Role.TENANT)
    prop = make_property(manager)
    unit = make_unit(prop, "101")
    make_unit(prop, "102")
    make_lease(unit, tenant)

    r = client.get("/api/units", params={"propertyId": prop.id}, headers=auth(tenant))
    assert r.status_code == 200
    assert len(r.json()) == 2

    r = client.get("/api/units", params={"propertyId": prop.id}, headers=auth(stranger))
    assert r.status_code == 403


def test_json_accessors_coexist_with_property_relationship(db, make_user, make_property, make_unit, make_lease):
    manager = make_user(Role.PROPERTY_MANAGER)
    tenant = make_user(Role.TENANT)
    prop = make_property(manager)
    unit = make_unit(prop)
    make_lease(unit, tenant)

    insp = Inspection(
        property_id=prop.id, unit_id=unit.id, title="Annual", type="ROUTINE", scheduled_date=datetime(2026, 11, 3, 9, 0)
    )
    insp.photos = ["/uploads/a.jpg"]
    insp.issues = [{"area": "roof", "severity": "LOW"}]
    db.add(insp)
    db.commit()
    db.expire_all()

    insp = db.get(Inspection, insp.id)
    assert insp.property.name == prop.name
    assert insp.photos == ["/uploads/a.jpg"]
    assert insp.issues[0]["severity"] == "LOW"

    unit = db.get(Unit, unit.id)
    assert unit.property.id == prop.id
    assert [x.tenant_id for x in unit.active_leases] == [tenant.id]
