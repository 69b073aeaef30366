# backend/buildstate/services/access.py
"""
Role-scoped access rules.

Every entity router asks the same question: may this principal touch this
record? The answer depends only on the caller's role and a handful of foreign
keys on the record, so the rules live in one table keyed by role. Each rule is
a predicate over a `Resource` descriptor built from the row.

Two entry points:

- `has_access(db, principal, resource)` for single-record reads/writes.
  Read-only, never raises; routers turn False into 403.
- `*_scope(principal)` helpers returning SQLAlchemy clauses for list queries,
  mirroring the same rules so lists and detail views agree.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from fastapi import HTTPException
from sqlalchemy import and_, exists, false, select
from sqlalchemy.orm import Session

from ..auth import Principal
from ..models import (
    Inspection,
    Job,
    Property,
    PropertyOwner,
    Role,
    ServiceRequest,
    Unit,
    UnitTenant,
)


@dataclass(frozen=True)
class Resource:
    """What the rules need to know about a record."""

    kind: str  # property | unit | job | inspection | service_request
    property_id: int
    unit_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    requested_by_id: Optional[int] = None

    @property
    def property_level(self) -> bool:
        return self.kind in ("property", "unit")


def resource_of(row: Any) -> Resource:
    if isinstance(row, Property):
        return Resource(kind="property", property_id=row.id)
    if isinstance(row, Unit):
        # unit reads are granted through the parent property
        return Resource(kind="unit", property_id=row.property_id, unit_id=row.id)
    if isinstance(row, Job):
        return Resource(kind="job", property_id=row.property_id, unit_id=row.unit_id, assigned_to_id=row.assigned_to_id)
    if isinstance(row, Inspection):
        return Resource(
            kind="inspection", property_id=row.property_id, unit_id=row.unit_id, assigned_to_id=row.assigned_to_id
        )
    if isinstance(row, ServiceRequest):
        return Resource(
            kind="service_request",
            property_id=row.property_id,
            unit_id=row.unit_id,
            requested_by_id=row.requested_by_id,
        )
    raise TypeError(f"no access descriptor for {type(row).__name__}")


# -----------------------------
# Predicates
# -----------------------------
def _manages(db: Session, user_id: int, r: Resource) -> bool:
    return bool(db.scalar(select(Property.id).where(Property.id == r.property_id, Property.manager_id == user_id)))


def _owns(db: Session, user_id: int, r: Resource) -> bool:
    q = select(PropertyOwner.id).where(PropertyOwner.property_id == r.property_id, PropertyOwner.owner_id == user_id)
    return bool(db.scalar(q))


def _leases(db: Session, user_id: int, r: Resource) -> bool:
    if r.kind == "service_request" and r.requested_by_id == user_id:
        return True

    q = select(UnitTenant.id).where(UnitTenant.tenant_id == user_id, UnitTenant.is_active.is_(True))
    if r.property_level:
        q = q.join(Unit, Unit.id == UnitTenant.unit_id).where(Unit.property_id == r.property_id)
    elif r.unit_id is not None:
        q = q.where(UnitTenant.unit_id == r.unit_id)
    else:
        return False
    return bool(db.scalar(q.limit(1)))


def _assigned(db: Session, user_id: int, r: Resource) -> bool:
    return r.assigned_to_id is not None and r.assigned_to_id == user_id


RULES: dict[str, Callable[[Session, int, Resource], bool]] = {
    Role.PROPERTY_MANAGER: _manages,
    Role.OWNER: _owns,
    Role.TENANT: _leases,
    Role.TECHNICIAN: _assigned,
}


def has_access(db: Session, principal: Principal, resource: Resource) -> bool:
    rule = RULES.get(principal.role)
    if rule is None:
        return False
    return rule(db, principal.user_id, resource)


def ensure_access(db: Session, principal: Principal, row: Any) -> None:
    if not has_access(db, principal, resource_of(row)):
        raise HTTPException(status_code=403, detail="Access denied")


# -----------------------------
# List scopes
# -----------------------------
def _active_lease_of(user_id: int):
    return and_(UnitTenant.tenant_id == user_id, UnitTenant.is_active.is_(True))


def property_scope(p: Principal):
    if p.role == Role.PROPERTY_MANAGER:
        return Property.manager_id == p.user_id
    if p.role == Role.OWNER:
        return Property.owners.any(PropertyOwner.owner_id == p.user_id)
    if p.role == Role.TENANT:
        leased = (
            select(Unit.id)
            .join(UnitTenant, UnitTenant.unit_id == Unit.id)
            .where(Unit.property_id == Property.id, _active_lease_of(p.user_id))
        )
        return exists(leased)
    return false()


def work_scope(p: Principal, model: type[Job] | type[Inspection]):
    """Jobs and inspections share one scoping rule."""
    if p.role == Role.PROPERTY_MANAGER:
        return model.property.has(Property.manager_id == p.user_id)
    if p.role == Role.OWNER:
        return model.property.has(Property.owners.any(PropertyOwner.owner_id == p.user_id))
    if p.role == Role.TENANT:
        leased_units = select(UnitTenant.unit_id).where(_active_lease_of(p.user_id))
        return model.unit_id.in_(leased_units)
    if p.role == Role.TECHNICIAN:
        return model.assigned_to_id == p.user_id
    return false()


def service_request_scope(p: Principal):
    if p.role == Role.PROPERTY_MANAGER:
        return ServiceRequest.property.has(Property.manager_id == p.user_id)
    if p.role == Role.OWNER:
        return ServiceRequest.property.has(Property.owners.any(PropertyOwner.owner_id == p.user_id))
    if p.role == Role.TENANT:
        return ServiceRequest.requested_by_id == p.user_id
    if p.role == Role.TECHNICIAN:
        return ServiceRequest.jobs.any(Job.assigned_to_id == p.user_id)
    return false()


def active_lease_exists(db: Session, *, unit_id: int, tenant_id: int) -> bool:
    q = select(UnitTenant.id).where(
        UnitTenant.unit_id == unit_id,
        UnitTenant.tenant_id == tenant_id,
        UnitTenant.is_active.is_(True),
    )
    return bool(db.scalar(q.limit(1)))


def any_active_lease(db: Session, *, unit_ids: list[int]) -> bool:
    if not unit_ids:
        return False
    q = select(UnitTenant.id).where(UnitTenant.unit_id.in_(unit_ids), UnitTenant.is_active.is_(True))
    return bool(db.scalar(q.limit(1)))


__all__ = [
    "Resource",
    "resource_of",
    "RULES",
    "has_access",
    "ensure_access",
    "property_scope",
    "work_scope",
    "service_request_scope",
    "active_lease_exists",
    "any_active_lease",
]
