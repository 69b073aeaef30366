from __future__ import annotations

from datetime import datetime, timedelta

from buildstate.models import Role, Subscription, SubscriptionStatus, User

NEW_PROPERTY = {
    "name": "Birch Apartments",
    "address": "400 Birch Ave",
    "city": "Columbus",
    "state": "OH",
    "zipCode": "43004",
    "propertyType": "RESIDENTIAL",
}


def test_only_managers_create_properties(client, make_user, auth):
    tenant = make_user(Role.TENANT)
    r = client.post("/api/properties", json=NEW_PROPERTY, headers=auth(tenant))
    assert r.status_code == 403
    assert r.json()["error"] == "Only property managers can create properties"


def test_manager_in_trial_creates_property(client, make_user, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    r = client.post("/api/properties", json=NEW_PROPERTY, headers=auth(manager))
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["managerId"] == manager.id
    assert body["zipCode"] == "43004"
    assert body["totalUnits"] == 0
    assert body["status"] == "ACTIVE"


def test_expired_trial_is_refused_and_suspended(client, db, make_user, auth):
    manager = make_user(
        Role.PROPERTY_MANAGER,
        created_at=datetime.utcnow() - timedelta(days=30),
        trial_end_date=datetime.utcnow() - timedelta(days=1),
    )
    r = client.post("/api/properties", json=NEW_PROPERTY, headers=auth(manager))
    assert r.status_code == 403
    assert r.json() == {
        "error": "Active subscription required to create properties",
        "code": "SUBSCRIPTION_REQUIRED",
    }

    db.expire_all()
    assert db.get(User, manager.id).subscription_status == SubscriptionStatus.SUSPENDED


def test_trial_end_is_backfilled_from_signup(client, db, make_user, auth):
    manager = make_user(Role.PROPERTY_MANAGER, trial_end_date=None, created_at=datetime.utcnow() - timedelta(days=2))
    r = client.post("/api/properties", json=NEW_PROPERTY, headers=auth(manager))
    assert r.status_code == 201

    db.expire_all()
    user = db.get(User, manager.id)
    assert user.trial_end_date is not None
    assert user.subscription_status == SubscriptionStatus.TRIAL


def test_paid_subscription_reactivates_suspended_user(client, db, make_user, auth):
    manager = make_user(Role.PROPERTY_MANAGER, subscription_status=SubscriptionStatus.SUSPENDED)
    db.add(Subscription(user_id=manager.id, plan="basic", status="ACTIVE", start_date=datetime.utcnow()))
    db.commit()

    r = client.post("/api/properties", json=NEW_PROPERTY, headers=auth(manager))
    assert r.status_code == 201

    db.expire_all()
    assert db.get(User, manager.id).subscription_status == SubscriptionStatus.ACTIVE


def test_lapsed_subscription_does_not_count(client, make_user, auth, db):
    manager = make_user(Role.PROPERTY_MANAGER, subscription_status=SubscriptionStatus.CANCELLED)
    db.add(
        Subscription(
            user_id=manager.id,
            status="ACTIVE",
            start_date=datetime.utcnow() - timedelta(days=60),
            end_date=datetime.utcnow() - timedelta(days=30),
        )
    )
    db.commit()

    r = client.post("/api/properties", json=NEW_PROPERTY, headers=auth(manager))
    assert r.status_code == 403
    assert r.json()["code"] == "SUBSCRIPTION_REQUIRED"


def test_missing_fields_are_listed(client, make_user, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    r = client.post("/api/properties", json={"name": "Only a name"}, headers=auth(manager))
    assert r.status_code == 400
    assert r.json()["error"] == "Missing required fields: name, address, city, state, zipCode, propertyType"


def test_list_is_scoped_by_role(client, make_user, make_property, add_owner, auth):
    m1 = make_user(Role.PROPERTY_MANAGER)
    m2 = make_user(Role.PROPERTY_MANAGER)
    owner = make_user(Role.OWNER)
    admin = make_user(Role.ADMIN)
    p1 = make_property(m1, name="North")
    make_property(m2, name="South")
    add_owner(p1, owner)

    assert [x["name"] for x in client.get("/api/properties", headers=auth(m1)).json()] == ["North"]
    assert [x["name"] for x in client.get("/api/properties", headers=auth(m2)).json()] == ["South"]
    assert [x["name"] for x in client.get("/api/properties", headers=auth(owner)).json()] == ["North"]
    assert client.get("/api/properties", headers=auth(admin)).json() == []


def test_get_property_detail_and_access(client, make_user, make_property, make_unit, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    other = make_user(Role.PROPERTY_MANAGER)
    prop = make_property(manager)
    make_unit(prop, "101")

    r = client.get(f"/api/properties/{prop.id}", headers=auth(manager))
    assert r.status_code == 200
    body = r.json()
    assert [u["unitNumber"] for u in body["units"]] == ["101"]
    assert body["counts"]["units"] == 1
    assert body["manager"]["id"] == manager.id

    r = client.get(f"/api/properties/{prop.id}", headers=auth(other))
    assert r.status_code == 403
    assert r.json() == {"error": "Access denied"}

    r = client.get("/api/properties/99999", headers=auth(manager))
    assert r.status_code == 404
    assert r.json() == {"error": "Property not found"}


def test_update_property(client, make_user, make_property, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    prop = make_property(manager)

    r = client.patch(
        f"/api/properties/{prop.id}",
        json={"status": "under_maintenance", "name": None, "description": "Roof work"},
        headers=auth(manager),
    )
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "UNDER_MAINTENANCE"
    assert body["name"] == "Maple Court"
    assert body["description"] == "Roof work"


def test_delete_blocked_by_active_lease(client, db, make_user, make_property, make_unit, make_lease, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    tenant = make_user(Role.TENANT)
    prop = make_property(manager)
    make_lease(make_unit(prop), tenant)

    r = client.delete(f"/api/properties/{prop.id}", headers=auth(manager))
    assert r.status_code == 400
    assert r.json()["error"] == "Cannot delete property with active tenants. Please remove tenants first."


def test_delete_property(client, make_user, make_property, make_unit, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    prop = make_property(manager)
    make_unit(prop)

    r = client.delete(f"/api/properties/{prop.id}", headers=auth(manager))
    assert r.status_code == 200
    assert r.json() == {"message": "Property deleted successfully"}
    assert client.get(f"/api/properties/{prop.id}", headers=auth(manager)).status_code == 404


def test_owner_assignment(client, make_user, make_property, auth):
    manager = make_user(Role.PROPERTY_MANAGER)
    owner = make_user(Role.OWNER)
    tenant = make_user(Role.TENANT)
    prop = make_property(manager)
    url = f"/api/properties/{prop.id}/owners"

    r = client.post(url, json={"ownerId": owner.id, "ownershipPercentage": 60}, headers=auth(manager))
    assert r.status_code == 201
    assert r.json()["owner"]["id"] == owner.id

    r = client.post(url, json={"ownerId": owner.id}, headers=auth(manager))
    assert r.status_code == 400
    assert r.json()["error"] == "Owner already assigned to this property"

    r = client.post(url, json={"ownerId": tenant.id}, headers=auth(manager))
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid owner"

    r = client.post(url, json={}, headers=auth(manager))
    assert r.status_code == 400
    assert r.json()["error"] == "Owner ID is required"

    r = client.delete(f"{url}/{owner.id}", headers=auth(manager))
    assert r.status_code == 200
    r = client.delete(f"{url}/{owner.id}", headers=auth(manager))
    assert r.status_code == 404
