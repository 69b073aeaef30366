# backend/buildstate/services/notifications.py
"""
In-app notifications with a transactional outbox.

`notify()` only adds a Notification row to the caller's session: it commits
(or rolls back) together with the mutation that caused it. Rows written in a
transaction are remembered in `session.info`; once the transaction commits,
delivery beyond the inbox (today: a structured log line, the hook for email or
push) is scheduled either inline or on the Celery `notifications` queue.
Delivery problems are logged and never reach the HTTP response.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import event, select
from sqlalchemy.orm import Session

from ..config import settings
from ..models import Notification

log = logging.getLogger("buildstate.notifications")

OUTBOX_KEY = "notification_outbox"


def notify(
    db: Session,
    *,
    user_id: int,
    type: str,
    title: str,
    message: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
) -> Notification:
    row = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        entity_type=entity_type,
        entity_id=entity_id,
        created_at=datetime.utcnow(),
    )
    db.add(row)
    db.info.setdefault(OUTBOX_KEY, []).append(row)
    return row


def deliver_pending(db: Session, ids: Iterable[int]) -> int:
    """Marks undelivered rows as dispatched. Idempotent per row."""
    ids = [int(i) for i in ids]
    if not ids:
        return 0

    rows = db.scalars(
        select(Notification).where(Notification.id.in_(ids), Notification.dispatched_at.is_(None))
    ).all()

    now = datetime.utcnow()
    for row in rows:
        row.dispatched_at = now
        log.info(
            "notification delivered",
            extra={"user_id": row.user_id, "notification_id": row.id},
        )
    db.commit()
    return len(rows)


def _deliver_inline(ids: list[int]) -> None:
    from ..db import SessionLocal

    db = SessionLocal()
    try:
        deliver_pending(db, ids)
    except Exception:
        db.rollback()
        log.exception("inline notification delivery failed", extra={"notification_id": ids[0]})
    finally:
        db.close()


def schedule_delivery(ids: list[int]) -> None:
    if not ids:
        return

    if settings.notification_dispatch == "celery":
        from ..workers.notification_tasks import deliver_notifications

        try:
            deliver_notifications.delay(ids)
        except Exception:
            # rows stay undelivered (dispatched_at is null) and can be swept later
            log.exception("could not enqueue notification delivery", extra={"notification_id": ids[0]})
        return

    _deliver_inline(ids)


@event.listens_for(Session, "after_commit")
def _flush_outbox(session: Session) -> None:
    pending = session.info.pop(OUTBOX_KEY, None)
    if not pending:
        return
    ids = [row.id for row in pending if row.id is not None]
    schedule_delivery(ids)


@event.listens_for(Session, "after_rollback")
def _drop_outbox(session: Session) -> None:
    session.info.pop(OUTBOX_KEY, None)
