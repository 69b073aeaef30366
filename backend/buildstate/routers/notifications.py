# backend/buildstate/routers/notifications.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc, func, select, update
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..models import Notification
from ..schemas import BulkResultOut, NotificationOut, UnreadCountOut

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _own_notification(db: Session, notification_id: int, user_id: int) -> Notification:
    row = db.get(Notification, notification_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    if row.user_id != user_id:
        raise HTTPException(status_code=403, detail="Access denied")
    return row


@router.get("", response_model=list[NotificationOut])
def list_notifications(
    is_read: Optional[bool] = Query(default=None, alias="isRead"),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    q = select(Notification).where(Notification.user_id == p.user_id)
    if is_read is not None:
        q = q.where(Notification.is_read.is_(is_read))
    q = q.order_by(desc(Notification.created_at), desc(Notification.id)).limit(limit)
    return list(db.scalars(q).all())


@router.get("/unread-count", response_model=UnreadCountOut)
def unread_count(db: Session = Depends(get_db), p=Depends(get_principal)):
    n = db.scalar(
        select(func.count(Notification.id)).where(Notification.user_id == p.user_id, Notification.is_read.is_(False))
    )
    return UnreadCountOut(count=int(n or 0))


# declared before "/{notification_id}/read" so the literal path wins
@router.patch("/mark-all-read", response_model=BulkResultOut)
def mark_all_read(db: Session = Depends(get_db), p=Depends(get_principal)):
    res = db.execute(
        update(Notification)
        .where(Notification.user_id == p.user_id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=datetime.utcnow())
    )
    db.commit()
    count = int(res.rowcount or 0)
    return BulkResultOut(success=True, message=f"Marked {count} notifications as read", count=count)


@router.patch("/{notification_id}/read", response_model=NotificationOut)
def mark_read(notification_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    row = _own_notification(db, notification_id, p.user_id)
    if not row.is_read:
        row.is_read = True
        row.read_at = datetime.utcnow()
        db.commit()
    return row


@router.delete("/{notification_id}", response_model=BulkResultOut)
def delete_notification(notification_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    row = _own_notification(db, notification_id, p.user_id)
    db.delete(row)
    db.commit()
    return BulkResultOut(success=True, message="Notification deleted")
