# backend/buildstate/services/ownership.py
from __future__ import annotations

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import Inspection, Job, Property, ServiceRequest, Unit, User


def must_get_property(db: Session, *, property_id: int) -> Property:
    row = db.scalar(select(Property).where(Property.id == property_id))
    if not row:
        raise HTTPException(status_code=404, detail="Property not found")
    return row


def must_get_unit(db: Session, *, unit_id: int) -> Unit:
    row = db.scalar(select(Unit).where(Unit.id == unit_id))
    if not row:
        raise HTTPException(status_code=404, detail="Unit not found")
    return row


def must_get_job(db: Session, *, job_id: int) -> Job:
    row = db.scalar(select(Job).where(Job.id == job_id))
    if not row:
        raise HTTPException(status_code=404, detail="Job not found")
    return row


def must_get_inspection(db: Session, *, inspection_id: int) -> Inspection:
    row = db.scalar(select(Inspection).where(Inspection.id == inspection_id))
    if not row:
        raise HTTPException(status_code=404, detail="Inspection not found")
    return row


def must_get_service_request(db: Session, *, request_id: int) -> ServiceRequest:
    row = db.scalar(select(ServiceRequest).where(ServiceRequest.id == request_id))
    if not row:
        raise HTTPException(status_code=404, detail="Service request not found")
    return row


def must_get_user_with_role(db: Session, *, user_id: int, role: str, detail: str) -> User:
    """400 (not 404): the referenced user is part of the request body."""
    row = db.scalar(select(User).where(User.id == user_id))
    if not row or row.role != role:
        raise HTTPException(status_code=400, detail=detail)
    return row


def must_manage_property(prop: Property, user_id: int, detail: str = "Access denied") -> Property:
    if prop.manager_id != user_id:
        raise HTTPException(status_code=403, detail=detail)
    return prop
