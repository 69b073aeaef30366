# backend/buildstate/routers/units.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import get_principal, require_roles
from ..db import get_db
from ..domain.audit import audit_write, snapshot
from ..models import Inspection, Job, Role, Unit, UnitStatus, UnitTenant
from ..schemas import (
    InspectionBrief,
    JobBrief,
    LeaseOut,
    MessageOut,
    TenantAssignIn,
    UnitCreate,
    UnitDetailOut,
    UnitOut,
    UnitUpdate,
)
from ..services.access import active_lease_exists, ensure_access
from ..services.ownership import must_get_property, must_get_unit, must_get_user_with_role, must_manage_property
from ..services.unit_rules import DUPLICATE_UNIT_NUMBER, active_lease_count, ensure_unit_number_free, refresh_unit_status
from ..services.validation import require_fields

log = logging.getLogger("buildstate.units")

router = APIRouter(prefix="/units", tags=["units"])

RECENT = 5
NOT_NULL = {"unit_number", "status"}


def _flush_unique(db: Session) -> None:
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail=DUPLICATE_UNIT_NUMBER)


def _managed_unit(db: Session, unit_id: int, user_id: int) -> Unit:
    unit = must_get_unit(db, unit_id=unit_id)
    must_manage_property(unit.property, user_id)
    return unit


@router.get("", response_model=list[UnitOut])
def list_units(
    property_id: Optional[int] = Query(default=None, alias="propertyId"),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    if property_id is None:
        raise HTTPException(status_code=400, detail="Property ID is required")

    prop = must_get_property(db, property_id=property_id)
    ensure_access(db, p, prop)

    q = select(Unit).where(Unit.property_id == property_id).order_by(Unit.unit_number)
    return list(db.scalars(q).all())


@router.get("/{unit_id}", response_model=UnitDetailOut)
def get_unit(unit_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    unit = must_get_unit(db, unit_id=unit_id)
    ensure_access(db, p, unit)

    leases = sorted(unit.leases, key=lambda x: x.lease_start, reverse=True)
    leases.sort(key=lambda x: not x.is_active)
    jobs = db.scalars(
        select(Job).where(Job.unit_id == unit.id).order_by(desc(Job.created_at), desc(Job.id)).limit(RECENT)
    ).all()
    inspections = db.scalars(
        select(Inspection)
        .where(Inspection.unit_id == unit.id)
        .order_by(desc(Inspection.scheduled_date), desc(Inspection.id))
        .limit(RECENT)
    ).all()

    out = UnitDetailOut.model_validate(unit)
    return out.model_copy(
        update={
            "leases": [LeaseOut.model_validate(x) for x in leases],
            "recent_jobs": [JobBrief.model_validate(j) for j in jobs],
            "recent_inspections": [InspectionBrief.model_validate(i) for i in inspections],
        }
    )


@router.post("", response_model=UnitOut, status_code=201)
def create_unit(
    payload: UnitCreate,
    db: Session = Depends(get_db),
    p=Depends(require_roles(Role.PROPERTY_MANAGER, detail="Only property managers can create units")),
):
    require_fields(payload, ["property_id", "unit_number"], detail="Property ID and unit number are required")
    prop = must_manage_property(must_get_property(db, property_id=payload.property_id), p.user_id)

    unit_number = payload.unit_number.strip()
    ensure_unit_number_free(db, property_id=prop.id, unit_number=unit_number)

    row = Unit(**payload.model_dump(exclude={"unit_number"}), unit_number=unit_number)
    db.add(row)
    _flush_unique(db)

    # counter moves in the same transaction as the insert
    prop.total_units = int(prop.total_units or 0) + 1

    audit_write(
        db,
        actor_user_id=p.user_id,
        action="unit.create",
        entity_type="Unit",
        entity_id=row.id,
        after=snapshot(row),
    )
    db.commit()

    log.info("unit created", extra={"user_id": p.user_id, "property_id": prop.id, "unit_id": row.id})
    return row


@router.patch("/{unit_id}", response_model=UnitOut)
def update_unit(
    unit_id: int,
    payload: UnitUpdate,
    db: Session = Depends(get_db),
    p=Depends(require_roles(Role.PROPERTY_MANAGER, detail="Only property managers can update units")),
):
    row = _managed_unit(db, unit_id, p.user_id)
    before = snapshot(row)
    data = payload.model_dump(exclude_unset=True)

    new_number = (data.get("unit_number") or "").strip()
    if new_number and new_number != row.unit_number:
        ensure_unit_number_free(db, property_id=row.property_id, unit_number=new_number, exclude_unit_id=row.id)
        data["unit_number"] = new_number

    for k, v in data.items():
        if v is None and k in NOT_NULL:
            continue
        if k == "unit_number" and not v:
            continue
        setattr(row, k, v)

    _flush_unique(db)
    audit_write(
        db,
        actor_user_id=p.user_id,
        action="unit.update",
        entity_type="Unit",
        entity_id=row.id,
        before=before,
        after=snapshot(row),
    )
    db.commit()
    return row


@router.delete("/{unit_id}", response_model=MessageOut)
def delete_unit(
    unit_id: int,
    db: Session = Depends(get_db),
    p=Depends(require_roles(Role.PROPERTY_MANAGER, detail="Only property managers can delete units")),
):
    row = _managed_unit(db, unit_id, p.user_id)

    if active_lease_count(db, unit_id=row.id) > 0:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete unit with active tenants. Please remove tenants first.",
        )

    prop = row.property
    audit_write(
        db,
        actor_user_id=p.user_id,
        action="unit.delete",
        entity_type="Unit",
        entity_id=row.id,
        before=snapshot(row),
    )
    db.delete(row)
    prop.total_units = max(0, int(prop.total_units or 0) - 1)
    db.commit()

    log.info("unit deleted", extra={"user_id": p.user_id, "property_id": prop.id, "unit_id": unit_id})
    return MessageOut(message="Unit deleted successfully")


# -----------------------------
# Tenants (leases)
# -----------------------------
@router.post("/{unit_id}/tenants", response_model=LeaseOut, status_code=201)
def assign_tenant(
    unit_id: int,
    payload: TenantAssignIn,
    db: Session = Depends(get_db),
    p=Depends(require_roles(Role.PROPERTY_MANAGER, detail="Only property managers can assign tenants")),
):
    require_fields(
        payload,
        ["tenant_id", "lease_start", "lease_end", "rent_amount"],
        detail="Tenant ID, lease start, lease end, and rent amount are required",
    )
    unit = _managed_unit(db, unit_id, p.user_id)
    must_get_user_with_role(db, user_id=payload.tenant_id, role=Role.TENANT, detail="Invalid tenant")

    if payload.lease_end < payload.lease_start:
        raise HTTPException(status_code=400, detail="Lease end date must be after lease start date")

    if active_lease_exists(db, unit_id=unit.id, tenant_id=payload.tenant_id):
        raise HTTPException(status_code=400, detail="Tenant is already assigned to this unit")

    lease = UnitTenant(
        unit_id=unit.id,
        tenant_id=payload.tenant_id,
        lease_start=payload.lease_start,
        lease_end=payload.lease_end,
        rent_amount=payload.rent_amount,
        deposit_amount=payload.deposit_amount,
        is_active=True,
    )
    db.add(lease)
    unit.status = UnitStatus.OCCUPIED
    db.flush()

    audit_write(
        db,
        actor_user_id=p.user_id,
        action="unit.tenant.assign",
        entity_type="UnitTenant",
        entity_id=lease.id,
        after=snapshot(lease),
    )
    db.commit()

    log.info("tenant assigned", extra={"user_id": p.user_id, "unit_id": unit.id})
    return lease


@router.delete("/{unit_id}/tenants/{tenant_id}", response_model=MessageOut)
def remove_tenant(
    unit_id: int,
    tenant_id: int,
    db: Session = Depends(get_db),
    p=Depends(require_roles(Role.PROPERTY_MANAGER, detail="Only property managers can remove tenants")),
):
    unit = _managed_unit(db, unit_id, p.user_id)

    leases = db.scalars(
        select(UnitTenant).where(
            UnitTenant.unit_id == unit.id,
            UnitTenant.tenant_id == tenant_id,
            UnitTenant.is_active.is_(True),
        )
    ).all()

    # soft delete: lease history stays
    for lease in leases:
        before = snapshot(lease)
        lease.is_active = False
        audit_write(
            db,
            actor_user_id=p.user_id,
            action="unit.tenant.remove",
            entity_type="UnitTenant",
            entity_id=lease.id,
            before=before,
            after=snapshot(lease),
        )

    refresh_unit_status(db, unit)
    db.commit()
    return MessageOut(message="Tenant removed successfully")
