from __future__ import annotations

from sqlalchemy import func, select

from buildstate.cli.seed_demo import seed_demo
from buildstate.models import Notification, NotificationType, Property, Role, Unit, UnitStatus, User
from buildstate.workers.notification_tasks import sweep_undelivered


def test_seed_demo_is_idempotent(db):
    first = seed_demo(domain="seed.local", password="pw-123456")
    second = seed_demo(domain="seed.local", password="pw-123456")

    assert first.property_id is not None
    assert first.property_id == second.property_id
    assert db.scalar(select(func.count(User.id)).where(User.email.like("%@seed.local"))) == 4

    prop = db.get(Property, first.property_id)
    assert prop.total_units == 3
    statuses = {u.unit_number: u.status for u in db.scalars(select(Unit).where(Unit.property_id == prop.id))}
    assert statuses["101"] == UnitStatus.OCCUPIED

    manager = db.scalar(select(User).where(User.email == first.manager_email))
    assert manager.role == Role.PROPERTY_MANAGER


def test_sweep_delivers_stragglers(db, make_user):
    user = make_user(Role.TENANT)
    # written without notify(), so nothing was scheduled
    db.add_all(
        [Notification(user_id=user.id, type=NotificationType.SYSTEM, title=f"n{i}", message="m") for i in range(2)]
    )
    db.commit()

    out = sweep_undelivered()
    assert out == {"ok": True, "delivered": 2}

    db.expire_all()
    assert all(n.dispatched_at is not None for n in db.scalars(select(Notification)))
