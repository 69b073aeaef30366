# backend/buildstate/workers/notification_tasks.py
from __future__ import annotations

import logging

from sqlalchemy import select

from ..db import SessionLocal
from ..models import Notification
from ..services.notifications import deliver_pending
from .celery_app import celery_app

log = logging.getLogger("buildstate.workers.notifications")


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=10,
    name="buildstate.workers.notification_tasks.deliver_notifications",
)
def deliver_notifications(self, notification_ids: list[int]) -> dict:
    """
    Delivers notifications written by a committed request.

    Safe to retry: rows already carrying dispatched_at are skipped.
    """
    db = SessionLocal()
    try:
        sent = deliver_pending(db, notification_ids)
        return {"ok": True, "delivered": sent}
    except Exception as exc:
        db.rollback()
        log.exception("notification delivery failed")
        raise self.retry(exc=exc)
    finally:
        db.close()


@celery_app.task(name="buildstate.workers.notification_tasks.sweep_undelivered")
def sweep_undelivered(limit: int = 500) -> dict:
    """Picks up rows whose post-commit enqueue never reached the broker."""
    db = SessionLocal()
    try:
        ids = list(
            db.scalars(
                select(Notification.id)
                .where(Notification.dispatched_at.is_(None))
                .order_by(Notification.id)
                .limit(int(limit))
            ).all()
        )
        sent = deliver_pending(db, ids)
        return {"ok": True, "delivered": sent}
    finally:
        db.close()
