from __future__ import annotations

import itertools
import os
import tempfile
from datetime import datetime, timedelta

_TMP = tempfile.mkdtemp(prefix="buildstate-tests-")

# must be set before buildstate.config builds its Settings
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP}/test.db"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP, "uploads")
os.environ["NOTIFICATION_DISPATCH"] = "inline"
os.environ["AUTH_PBKDF2_ITERS"] = "1000"
os.environ["APP_ENV"] = "test"

import pytest
from fastapi.testclient import TestClient

from buildstate.db import Base, SessionLocal, engine
from buildstate.main import app
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
from buildstate.services.auth_service import create_access_token, hash_password

PASSWORD = "correct-horse"


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def db(_schema):
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def client(_schema):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def make_user(db):
    seq = itertools.count(1)

    def _make(role: str = Role.PROPERTY_MANAGER, **kw) -> User:
        n = next(seq)
        now = datetime.utcnow()
        row = User(
            email=kw.pop("email", f"{role.lower()}{n}@test.local"),
            password_hash=hash_password(kw.pop("password", PASSWORD)),
            first_name=kw.pop("first_name", role.title().replace("_", " ")),
            last_name=kw.pop("last_name", str(n)),
            role=role,
            subscription_status=kw.pop("subscription_status", SubscriptionStatus.TRIAL),
            trial_end_date=kw.pop("trial_end_date", now + timedelta(days=14)),
            created_at=kw.pop("created_at", now),
            **kw,
        )
        db.add(row)
        db.commit()
        return row

    return _make


@pytest.fixture()
def make_property(db):
    def _make(manager: User, **kw) -> Property:
        row = Property(
            manager_id=manager.id,
            name=kw.pop("name", "Maple Court"),
            address=kw.pop("address", "12 Maple St"),
            city=kw.pop("city", "Springfield"),
            state=kw.pop("state", "IL"),
            zip_code=kw.pop("zip_code", "62701"),
            property_type=kw.pop("property_type", "RESIDENTIAL"),
            **kw,
        )
        db.add(row)
        db.commit()
        return row

    return _make


@pytest.fixture()
def make_unit(db):
    def _make(prop: Property, unit_number: str = "101", **kw) -> Unit:
        row = Unit(property_id=prop.id, unit_number=unit_number, **kw)
        db.add(row)
        prop.total_units = int(prop.total_units or 0) + 1
        db.commit()
        return row

    return _make


@pytest.fixture()
def make_lease(db):
    def _make(unit: Unit, tenant: User, *, active: bool = True) -> UnitTenant:
        start = datetime(2026, 1, 1)
        row = UnitTenant(
            unit_id=unit.id,
            tenant_id=tenant.id,
            lease_start=start,
            lease_end=start + timedelta(days=365),
            rent_amount=1200.0,
            is_active=active,
        )
        db.add(row)
        if active:
            unit.status = UnitStatus.OCCUPIED
        db.commit()
        return row

    return _make


@pytest.fixture()
def add_owner(db):
    def _add(prop: Property, owner: User) -> PropertyOwner:
        row = PropertyOwner(property_id=prop.id, owner_id=owner.id, ownership_percentage=100.0)
        db.add(row)
        db.commit()
        return row

    return _add


@pytest.fixture()
def auth():
    def _headers(user: User) -> dict[str, str]:
        token = create_access_token(user_id=user.id, role=user.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers
