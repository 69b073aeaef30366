# backend/buildstate/services/inspection_rules.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import Inspection, InspectionStatus

# fixed slot length reserved by a scheduled inspection
SLOT = timedelta(hours=2)


def find_overlapping_inspection(
    db: Session,
    *,
    unit_id: int,
    scheduled_date: datetime,
    exclude_inspection_id: Optional[int] = None,
) -> Optional[Inspection]:
    """
    Another live inspection on the unit whose slot overlaps [T, T + 2h).

    Every inspection reserves SLOT from its start, so two inspections clash
    when their starts are less than SLOT apart. Only SCHEDULED and IN_PROGRESS
    inspections hold a slot.
    """
    q = select(Inspection).where(
        Inspection.unit_id == unit_id,
        Inspection.status.in_(InspectionStatus.BLOCKING),
        Inspection.scheduled_date > scheduled_date - SLOT,
        Inspection.scheduled_date < scheduled_date + SLOT,
    )
    if exclude_inspection_id is not None:
        q = q.where(Inspection.id != exclude_inspection_id)
    return db.scalar(q.limit(1))


def ensure_unit_slot_free(
    db: Session,
    *,
    unit_id: Optional[int],
    scheduled_date: datetime,
    exclude_inspection_id: Optional[int] = None,
) -> None:
    if unit_id is None:
        return
    clash = find_overlapping_inspection(
        db, unit_id=unit_id, scheduled_date=scheduled_date, exclude_inspection_id=exclude_inspection_id
    )
    if clash is not None:
        raise HTTPException(status_code=400, detail="Another inspection is already scheduled for this unit at this time")
