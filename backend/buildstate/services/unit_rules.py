# backend/buildstate/services/unit_rules.py
from __future__ import annotations

from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..models import Unit, UnitStatus, UnitTenant

DUPLICATE_UNIT_NUMBER = "Unit number already exists for this property"


def ensure_unit_number_free(
    db: Session,
    *,
    property_id: int,
    unit_number: str,
    exclude_unit_id: Optional[int] = None,
) -> None:
    """
    Pre-check for a friendly 400. The (property_id, unit_number) unique
    constraint still catches concurrent inserts at flush time.
    """
    q = select(Unit.id).where(Unit.property_id == property_id, Unit.unit_number == unit_number)
    if exclude_unit_id is not None:
        q = q.where(Unit.id != exclude_unit_id)
    if db.scalar(q.limit(1)) is not None:
        raise HTTPException(status_code=400, detail=DUPLICATE_UNIT_NUMBER)


def active_lease_count(db: Session, *, unit_id: int) -> int:
    q = select(func.count(UnitTenant.id)).where(UnitTenant.unit_id == unit_id, UnitTenant.is_active.is_(True))
    return int(db.scalar(q) or 0)


def refresh_unit_status(db: Session, unit: Unit) -> str:
    """AVAILABLE once the last active lease is gone; otherwise left as is."""
    db.flush()
    if active_lease_count(db, unit_id=unit.id) == 0:
        unit.status = UnitStatus.AVAILABLE
    return unit.status
