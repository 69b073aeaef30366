from __future__ import annotations

from datetime import datetime

from sqlalchemy import select

from buildstate.auth import Principal
from buildstate.models import Inspection, Job, Property, Role, ServiceRequest
from buildstate.services.access import (
    Resource,
    has_access,
    property_scope,
    resource_of,
    service_request_scope,
    work_scope,
)


def _principal(user) -> Principal:
    return Principal(user_id=user.id, email=user.email, role=user.role)


def _job(db, prop, unit=None, tech=None) -> Job:
    row = Job(
        property_id=prop.id,
        unit_id=unit.id if unit else None,
        assigned_to_id=tech.id if tech else None,
        title="Fix sink",
        description="Leaking",
    )
    db.add(row)
    db.commit()
    return row


def test_manager_sees_only_managed_properties(db, make_user, make_property):
    m1 = make_user(Role.PROPERTY_MANAGER)
    m2 = make_user(Role.PROPERTY_MANAGER)
    prop = make_property(m1)

    assert has_access(db, _principal(m1), resource_of(prop))
    assert not has_access(db, _principal(m2), resource_of(prop))


def test_owner_needs_ownership_link(db, make_user, make_property, add_owner):
    manager = make_user(Role.PROPERTY_MANAGER)
    owner = make_user(Role.OWNER)
    stranger = make_user(Role.OWNER)
    prop = make_property(manager)
    add_owner(prop, owner)
    job = _job(db, prop)

    assert has_access(db, _principal(owner), resource_of(prop))
    assert has_access(db, _principal(owner), resource_of(job))
    assert not has_access(db, _principal(stranger), resource_of(prop))


def test_tenant_property_access_via_any_unit_but_work_needs_exact_unit(
    db, make_user, make_property, make_unit, make_lease
):
    manager = make_user(Role.PROPERTY_MANAGER)
    tenant = make_user(Role.TENANT)
    prop = make_property(manager)
    u1 = make_unit(prop, "101")
    u2 = make_unit(prop, "102")
    make_lease(u1, tenant)

    p = _principal(tenant)
    assert has_access(db, p, resource_of(prop))
    assert has_access(db, p, resource_of(u2))
    assert has_access(db, p, resource_of(_job(db, prop, unit=u1)))
    assert not has_access(db, p, resource_of(_job(db, prop, unit=u2)))
    assert not has_access(db, p, resource_of(_job(db, prop)))


def test_ended_lease_grants_nothing(db, make_user, make_property, make_unit, make_lease):
    manager = make_user(Role.PROPERTY_MANAGER)
    tenant = make_user(Role.TENANT)
    prop = make_property(manager)
    unit = make_unit(prop)
    make_lease(unit, tenant, active=False)

    assert not has_access(db, _principal(tenant), resource_of(prop))


def test_tenant_keeps_access_to_own_request(db, make_user, make_property):
    manager = make_user(Role.PROPERTY_MANAGER)
    tenant = make_user(Role.TENANT)
    prop = make_property(manager)
    sr = ServiceRequest(
        property_id=prop.id,
        requested_by_id=tenant.id,
        title="Heat",
        description="No heat",
        category="HVAC",
    )
    db.add(sr)
    db.commit()

    assert has_access(db, _principal(tenant), resource_of(sr))


def test_technician_only_through_assignment(db, make_user, make_property):
    manager = make_user(Role.PROPERTY_MANAGER)
    t1 = make_user(Role.TECHNICIAN)
    t2 = make_user(Role.TECHNICIAN)
    prop = make_property(manager)
    job = _job(db, prop, tech=t1)

    assert has_access(db, _principal(t1), resource_of(job))
    assert not has_access(db, _principal(t2), resource_of(job))
    assert not has_access(db, _principal(t1), resource_of(prop))


def test_admin_has_no_implicit_access(db, make_user, make_property):
    manager = make_user(Role.PROPERTY_MANAGER)
    admin = make_user(Role.ADMIN)
    prop = make_property(manager)

    assert not has_access(db, _principal(admin), Resource(kind="property", property_id=prop.id))
    assert db.scalars(select(Property).where(property_scope(_principal(admin)))).all() == []


def test_list_scopes_match_rules(db, make_user, make_property, make_unit, make_lease):
    manager = make_user(Role.PROPERTY_MANAGER)
    other = make_user(Role.PROPERTY_MANAGER)
    tenant = make_user(Role.TENANT)
    tech = make_user(Role.TECHNICIAN)

    mine = make_property(manager, name="Mine")
    make_property(other, name="Theirs")
    u1 = make_unit(mine, "1A")
    u2 = make_unit(mine, "1B")
    make_lease(u1, tenant)

    j1 = _job(db, mine, unit=u1, tech=tech)
    _job(db, mine, unit=u2)
    db.add(
        Inspection(
            property_id=mine.id,
            unit_id=u2.id,
            title="Annual",
            type="ROUTINE",
            scheduled_date=datetime(2026, 11, 1, 9),
        )
    )
    sr = ServiceRequest(
        property_id=mine.id, unit_id=u1.id, requested_by_id=tenant.id, title="t", description="d", category="c"
    )
    db.add(sr)
    db.commit()
    j1.service_request_id = sr.id
    db.commit()

    names = lambda p: {r.name for r in db.scalars(select(Property).where(property_scope(p)))}
    assert names(_principal(manager)) == {"Mine"}
    assert names(_principal(tenant)) == {"Mine"}
    assert names(_principal(tech)) == set()

    tenant_jobs = db.scalars(select(Job.id).where(work_scope(_principal(tenant), Job))).all()
    assert tenant_jobs == [j1.id]
    assert db.scalars(select(Inspection.id).where(work_scope(_principal(tenant), Inspection))).all() == []

    tech_requests = db.scalars(select(ServiceRequest.id).where(service_request_scope(_principal(tech)))).all()
    assert tech_requests == [sr.id]
