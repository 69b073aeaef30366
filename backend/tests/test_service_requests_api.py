from __future__ import annotations

from sqlalchemy import select

from buildstate.models import Notification, NotificationType, Role


def _request(client, h, **kw):
    body = {"title": "No hot water", "description": "Since Monday", "category": "PLUMBING", "priority": "HIGH"}
    body.update(kw)
    return client.post("/api/service-requests", json=body, headers=h)


def _world(make_user, make_property, make_unit, make_lease):
    manager = make_user(Role.PROPERTY_MANAGER)
    tenant = make_user(Role.TENANT)
    tech = make_user(Role.TECHNICIAN)
    prop = make_property(manager)
    unit = make_unit(prop)
    make_lease(unit, tenant)
    return manager, tenant, tech, prop, unit


def test_tenant_submits_for_leased_unit(client, db, make_user, make_property, make_unit, make_lease, auth):
    manager, tenant, tech, prop, unit = _world(make_user, make_property, make_unit, make_lease)

    r = _request(client, auth(tenant), unitId=unit.id)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["status"] == "SUBMITTED"
    assert body["propertyId"] == prop.id
    assert body["requestedById"] == tenant.id

    db.expire_all()
    note = db.scalar(select(Notification).where(Notification.user_id == manager.id))
    assert note.title == "New Service Request"


def test_tenant_rules(client, make_user, make_property, make_unit, make_lease, auth):
    manager, tenant, tech, prop, unit = _world(make_user, make_property, make_unit, make_lease)
    other_unit = make_unit(prop, "999")

    r = _request(client, auth(tenant))
    assert r.status_code == 400
    assert r.json()["error"] == "Unit ID is required for tenants"

    r = _request(client, auth(tenant), unitId=other_unit.id)
    assert r.status_code == 403
    assert r.json()["error"] == "You do not have access to this unit"

    r = _request(client, auth(tech), unitId=unit.id)
    assert r.status_code == 403
    assert r.json()["error"] == "Only tenants and managers can create service requests"


def test_manager_review_notifies_requester(client, db, make_user, make_property, make_unit, make_lease, auth):
    manager, tenant, tech, prop, unit = _world(make_user, make_property, make_unit, make_lease)
    sr = _request(client, auth(tenant), unitId=unit.id).json()

    r = client.patch(
        f"/api/service-requests/{sr['id']}",
        json={"status": "approved", "reviewNotes": "Plumber booked"},
        headers=auth(manager),
    )
    assert r.status_code == 200
    assert r.json()["status"] == "APPROVED"
    assert r.json()["reviewedAt"] is not None

    r = client.patch(f"/api/service-requests/{sr['id']}", json={"status": "APPROVED"}, headers=auth(tenant))
    assert r.status_code == 403

    db.expire_all()
    updates = db.scalars(
        select(Notification).where(
            Notification.user_id == tenant.id, Notification.type == NotificationType.SERVICE_REQUEST_UPDATE
        )
    ).all()
    assert len(updates) == 1
    assert "approved" in updates[0].message


def test_convert_to_job(client, db, make_user, make_property, make_unit, make_lease, auth):
    manager, tenant, tech, prop, unit = _world(make_user, make_property, make_unit, make_lease)
    sr = _request(client, auth(tenant), unitId=unit.id).json()
    url = f"/api/service-requests/{sr['id']}/convert-to-job"

    r = client.post(url, json={"assignedToId": tech.id, "estimatedCost": 150}, headers=auth(manager))
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["serviceRequest"]["status"] == "CONVERTED_TO_JOB"
    job = body["job"]
    assert job["title"] == "No hot water"
    assert job["priority"] == "HIGH"
    assert job["unitId"] == unit.id
    assert job["serviceRequestId"] == sr["id"]
    assert job["status"] == "ASSIGNED"

    r = client.post(url, json={}, headers=auth(manager))
    assert r.status_code == 400
    assert r.json()["error"] == "Service request already converted to job"

    # the assigned technician can now see the request
    assert client.get(f"/api/service-requests/{sr['id']}", headers=auth(tech)).status_code == 200
    assert [x["id"] for x in client.get("/api/service-requests", headers=auth(tech)).json()] == [sr["id"]]

    r = client.delete(f"/api/service-requests/{sr['id']}", headers=auth(manager))
    assert r.status_code == 400
    assert r.json()["error"] == "Cannot delete service request that has been converted to a job"

    db.expire_all()
    types = {(n.user_id, n.type) for n in db.scalars(select(Notification)).all()}
    assert (tenant.id, NotificationType.SERVICE_REQUEST_UPDATE) in types
    assert (tech.id, NotificationType.JOB_ASSIGNED) in types


def test_requester_withdraws_only_while_submitted(client, make_user, make_property, make_unit, make_lease, auth):
    manager, tenant, tech, prop, unit = _world(make_user, make_property, make_unit, make_lease)
    first = _request(client, auth(tenant), unitId=unit.id).json()
    second = _request(client, auth(tenant), unitId=unit.id, title="Broken blind").json()

    assert client.delete(f"/api/service-requests/{first['id']}", headers=auth(tenant)).status_code == 200

    client.patch(f"/api/service-requests/{second['id']}", json={"status": "UNDER_REVIEW"}, headers=auth(manager))
    assert client.delete(f"/api/service-requests/{second['id']}", headers=auth(tenant)).status_code == 403


def test_list_scoping(client, make_user, make_property, make_unit, make_lease, auth):
    manager, tenant, tech, prop, unit = _world(make_user, make_property, make_unit, make_lease)
    neighbour = make_user(Role.TENANT)
    make_lease(unit, neighbour)

    _request(client, auth(tenant), unitId=unit.id)
    _request(client, auth(neighbour), unitId=unit.id, title="Noise")

    assert [x["title"] for x in client.get("/api/service-requests", headers=auth(neighbour)).json()] == ["Noise"]
    assert len(client.get("/api/service-requests", headers=auth(manager)).json()) == 2
    assert client.get("/api/service-requests", headers=auth(tech)).json() == []
