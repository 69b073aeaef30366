# backend/buildstate/routers/properties.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import desc, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import get_principal, require_roles
from ..db import get_db
from ..domain.audit import audit_write, snapshot
from ..models import Inspection, Job, Property, PropertyOwner, Role, ServiceRequest, Unit
from ..schemas import (
    MessageOut,
    OwnerAssignIn,
    PropertyCreate,
    PropertyDetailOut,
    PropertyListOut,
    PropertyOut,
    PropertyOwnerOut,
    PropertyUpdate,
    UnitOut,
)
from ..services.access import any_active_lease, ensure_access, property_scope
from ..services.ownership import must_get_property, must_get_user_with_role, must_manage_property
from ..services.subscriptions import require_active_subscription
from ..services.validation import require_fields

log = logging.getLogger("buildstate.properties")

router = APIRouter(prefix="/properties", tags=["properties"])

REQUIRED = ["name", "address", "city", "state", "zip_code", "property_type"]
# columns that may not be patched to null
NOT_NULL = {"name", "address", "city", "state", "zip_code", "country", "property_type", "total_units", "status"}


def _counts(db: Session, property_id: int) -> dict[str, int]:
    def n(model) -> int:
        return int(db.scalar(select(func.count(model.id)).where(model.property_id == property_id)) or 0)

    return {
        "units": n(Unit),
        "jobs": n(Job),
        "inspections": n(Inspection),
        "serviceRequests": n(ServiceRequest),
    }


def property_detail(db: Session, prop: Property) -> PropertyDetailOut:
    units = [UnitOut.model_validate(u) for u in prop.units]
    out = PropertyDetailOut.model_validate(prop)
    return out.model_copy(update={"units": units, "counts": _counts(db, prop.id)})


@router.get("", response_model=list[PropertyListOut])
def list_properties(db: Session = Depends(get_db), p=Depends(get_principal)):
    rows = db.scalars(select(Property).where(property_scope(p)).order_by(desc(Property.created_at), desc(Property.id)))
    out: list[PropertyListOut] = []
    for row in rows:
        item = PropertyListOut.model_validate(row)
        out.append(item.model_copy(update={"counts": _counts(db, row.id)}))
    return out


@router.get("/{property_id}", response_model=PropertyDetailOut)
def get_property(property_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    prop = must_get_property(db, property_id=property_id)
    ensure_access(db, p, prop)
    return property_detail(db, prop)


@router.post("", response_model=PropertyOut, status_code=201)
def create_property(
    payload: PropertyCreate,
    db: Session = Depends(get_db),
    p=Depends(require_roles(Role.PROPERTY_MANAGER, detail="Only property managers can create properties")),
):
    require_active_subscription(db, p.user_id)
    require_fields(payload, REQUIRED)

    row = Property(**payload.model_dump(), manager_id=p.user_id)
    db.add(row)
    db.flush()

    audit_write(
        db,
        actor_user_id=p.user_id,
        action="property.create",
        entity_type="Property",
        entity_id=row.id,
        after=snapshot(row),
    )
    db.commit()

    log.info("property created", extra={"user_id": p.user_id, "property_id": row.id})
    return row


@router.patch("/{property_id}", response_model=PropertyOut)
def update_property(
    property_id: int,
    payload: PropertyUpdate,
    db: Session = Depends(get_db),
    p=Depends(require_roles(Role.PROPERTY_MANAGER, detail="Only property managers can update properties")),
):
    row = must_manage_property(must_get_property(db, property_id=property_id), p.user_id)
    before = snapshot(row)

    for k, v in payload.model_dump(exclude_unset=True).items():
        if v is None and k in NOT_NULL:
            continue
        setattr(row, k, v)

    db.flush()
    audit_write(
        db,
        actor_user_id=p.user_id,
        action="property.update",
        entity_type="Property",
        entity_id=row.id,
        before=before,
        after=snapshot(row),
    )
    db.commit()
    return row


@router.delete("/{property_id}", response_model=MessageOut)
def delete_property(
    property_id: int,
    db: Session = Depends(get_db),
    p=Depends(require_roles(Role.PROPERTY_MANAGER, detail="Only property managers can delete properties")),
):
    row = must_manage_property(must_get_property(db, property_id=property_id), p.user_id)

    if any_active_lease(db, unit_ids=[u.id for u in row.units]):
        raise HTTPException(
            status_code=400,
            detail="Cannot delete property with active tenants. Please remove tenants first.",
        )

    audit_write(
        db,
        actor_user_id=p.user_id,
        action="property.delete",
        entity_type="Property",
        entity_id=row.id,
        before=snapshot(row),
    )
    db.delete(row)
    db.commit()

    log.info("property deleted", extra={"user_id": p.user_id, "property_id": property_id})
    return MessageOut(message="Property deleted successfully")


# -----------------------------
# Owners
# -----------------------------
@router.post("/{property_id}/owners", response_model=PropertyOwnerOut, status_code=201)
def assign_owner(
    property_id: int,
    payload: OwnerAssignIn,
    db: Session = Depends(get_db),
    p=Depends(require_roles(Role.PROPERTY_MANAGER, detail="Only property managers can assign owners")),
):
    prop = must_manage_property(must_get_property(db, property_id=property_id), p.user_id)
    require_fields(payload, ["owner_id"], detail="Owner ID is required")
    must_get_user_with_role(db, user_id=payload.owner_id, role=Role.OWNER, detail="Invalid owner")

    row = PropertyOwner(
        property_id=prop.id,
        owner_id=payload.owner_id,
        ownership_percentage=payload.ownership_percentage,
    )
    db.add(row)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Owner already assigned to this property")

    audit_write(
        db,
        actor_user_id=p.user_id,
        action="property.owner.assign",
        entity_type="PropertyOwner",
        entity_id=row.id,
        after=snapshot(row),
    )
    db.commit()
    return row


@router.delete("/{property_id}/owners/{owner_id}", response_model=MessageOut)
def remove_owner(
    property_id: int,
    owner_id: int,
    db: Session = Depends(get_db),
    p=Depends(require_roles(Role.PROPERTY_MANAGER, detail="Only property managers can remove owners")),
):
    must_manage_property(must_get_property(db, property_id=property_id), p.user_id)

    row = db.scalar(
        select(PropertyOwner).where(PropertyOwner.property_id == property_id, PropertyOwner.owner_id == owner_id)
    )
    if row is None:
        raise HTTPException(status_code=404, detail="Owner is not assigned to this property")

    audit_write(
        db,
        actor_user_id=p.user_id,
        action="property.owner.remove",
        entity_type="PropertyOwner",
        entity_id=row.id,
        before=snapshot(row),
    )
    db.delete(row)
    db.commit()
    return MessageOut(message="Owner removed successfully")
