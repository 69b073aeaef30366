# backend/buildstate/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from buildstate.db import Base, SessionLocal, engine
from buildstate.models import (
    Property,
    PropertyOwner,
    Role,
    SubscriptionStatus,
    Unit,
    UnitStatus,
    UnitTenant,
    User,
)
from buildstate.services.auth_service import hash_password
from buildstate.services.subscriptions import trial_end_for


@dataclass(frozen=True)
class SeedResult:
    manager_email: str
    owner_email: str
    technician_email: str
    tenant_email: str
    password: str
    property_id: Optional[int]


def _get_or_create_user(db: Session, *, email: str, role: str, first: str, last: str, password: str) -> User:
    row = db.scalar(select(User).where(User.email == email))
    if row:
        return row
    now = datetime.utcnow()
    row = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first,
        last_name=last,
        role=role,
        subscription_status=SubscriptionStatus.TRIAL,
        trial_end_date=trial_end_for(now),
        created_at=now,
    )
    db.add(row)
    db.commit()
    return row


def _sample_property(db: Session, *, manager: User, owner: User, tenant: User) -> Property:
    row = db.scalar(select(Property).where(Property.manager_id == manager.id, Property.name == "Harbor View"))
    if row:
        return row

    row = Property(
        manager_id=manager.id,
        name="Harbor View",
        address="100 Harbor Way",
        city="Portland",
        state="ME",
        zip_code="04101",
        property_type="RESIDENTIAL",
        year_built=1998,
        total_units=0,
    )
    db.add(row)
    db.flush()

    units = [Unit(property_id=row.id, unit_number=n, bedrooms=2, bathrooms=1.0) for n in ("101", "102", "201")]
    db.add_all(units)
    row.total_units = len(units)

    db.add(PropertyOwner(property_id=row.id, owner_id=owner.id, ownership_percentage=100.0))

    db.flush()
    start = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    db.add(
        UnitTenant(
            unit_id=units[0].id,
            tenant_id=tenant.id,
            lease_start=start,
            lease_end=start + timedelta(days=365),
            rent_amount=1450.0,
            is_active=True,
        )
    )
    units[0].status = UnitStatus.OCCUPIED
    db.commit()
    return row


def seed_demo(
    *,
    domain: str = "demo.local",
    password: str = "demo-password",
    create_sample_property: bool = True,
    create_schema: bool = False,
) -> SeedResult:
    if create_schema:
        Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        manager = _get_or_create_user(
            db, email=f"manager@{domain}", role=Role.PROPERTY_MANAGER, first="Maya", last="Manager", password=password
        )
        owner = _get_or_create_user(
            db, email=f"owner@{domain}", role=Role.OWNER, first="Omar", last="Owner", password=password
        )
        tech = _get_or_create_user(
            db, email=f"tech@{domain}", role=Role.TECHNICIAN, first="Tess", last="Technician", password=password
        )
        tenant = _get_or_create_user(
            db, email=f"tenant@{domain}", role=Role.TENANT, first="Theo", last="Tenant", password=password
        )

        prop_id = None
        if create_sample_property:
            prop_id = _sample_property(db, manager=manager, owner=owner, tenant=tenant).id

        return SeedResult(
            manager_email=manager.email,
            owner_email=owner.email,
            technician_email=tech.email,
            tenant_email=tenant.email,
            password=password,
            property_id=prop_id,
        )
    finally:
        db.close()
