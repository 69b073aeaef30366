# backend/buildstate/routers/service_requests.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..auth import get_principal, require_roles
from ..db import get_db
from ..domain.audit import audit_write, snapshot
from ..models import (
    Job,
    JobStatus,
    NotificationType,
    Role,
    ServiceRequest,
    ServiceRequestStatus,
    User,
)
from ..schemas import (
    ConvertToJobIn,
    ConvertToJobOut,
    JobOut,
    MessageOut,
    ServiceRequestCreate,
    ServiceRequestOut,
    ServiceRequestUpdate,
)
from ..services.access import active_lease_exists, ensure_access, service_request_scope
from ..services.notifications import notify
from ..services.ownership import (
    must_get_property,
    must_get_service_request,
    must_get_unit,
    must_get_user_with_role,
    must_manage_property,
)
from ..services.validation import require_fields
from .jobs import notify_job_assigned, notify_request_converted

log = logging.getLogger("buildstate.service_requests")

router = APIRouter(prefix="/service-requests", tags=["service-requests"])

STATUS_MESSAGES = {
    ServiceRequestStatus.UNDER_REVIEW: "Your service request is now under review",
    ServiceRequestStatus.APPROVED: "Your service request has been approved and will be addressed soon",
    ServiceRequestStatus.REJECTED: "Your service request has been rejected",
    ServiceRequestStatus.COMPLETED: "Your service request has been completed",
}


def _status_message(status: str) -> str:
    return STATUS_MESSAGES.get(status, f"Your service request status has been updated to {status}")


@router.get("", response_model=list[ServiceRequestOut])
def list_service_requests(
    status: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    property_id: Optional[int] = Query(default=None, alias="propertyId"),
    priority: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    q = select(ServiceRequest).where(service_request_scope(p))

    if status:
        q = q.where(ServiceRequest.status == status.upper())
    if category:
        q = q.where(ServiceRequest.category == category)
    if property_id is not None:
        q = q.where(ServiceRequest.property_id == property_id)
    if priority:
        q = q.where(ServiceRequest.priority == priority.upper())

    q = q.order_by(desc(ServiceRequest.created_at), desc(ServiceRequest.id))
    return list(db.scalars(q).all())


@router.get("/{request_id}", response_model=ServiceRequestOut)
def get_service_request(request_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    row = must_get_service_request(db, request_id=request_id)

    # technicians reach a request only through a job assigned to them
    if p.role == Role.TECHNICIAN:
        if not any(j.assigned_to_id == p.user_id for j in row.jobs):
            raise HTTPException(status_code=403, detail="Access denied")
        return row

    ensure_access(db, p, row)
    return row


@router.post("", response_model=ServiceRequestOut, status_code=201)
def create_service_request(
    payload: ServiceRequestCreate,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    if p.role not in (Role.TENANT, Role.PROPERTY_MANAGER):
        raise HTTPException(status_code=403, detail="Only tenants and managers can create service requests")

    if p.role == Role.TENANT:
        require_fields(payload, ["title", "description", "category"])
        if payload.unit_id is None:
            raise HTTPException(status_code=400, detail="Unit ID is required for tenants")
        unit = must_get_unit(db, unit_id=payload.unit_id)
        if not active_lease_exists(db, unit_id=unit.id, tenant_id=p.user_id):
            raise HTTPException(status_code=403, detail="You do not have access to this unit")
        prop = unit.property
    else:
        require_fields(payload, ["title", "description", "category", "property_id"])
        prop = must_manage_property(must_get_property(db, property_id=payload.property_id), p.user_id)
        if payload.unit_id is not None and all(u.id != payload.unit_id for u in prop.units):
            raise HTTPException(status_code=400, detail="Unit does not belong to this property")

    row = ServiceRequest(
        property_id=prop.id,
        unit_id=payload.unit_id,
        requested_by_id=p.user_id,
        title=payload.title.strip(),
        description=payload.description,
        category=payload.category,
        priority=payload.priority,
        status=ServiceRequestStatus.SUBMITTED,
    )
    row.photos = payload.photos
    db.add(row)
    db.flush()

    if p.role == Role.TENANT:
        requester = db.get(User, p.user_id)
        notify(
            db,
            user_id=prop.manager_id,
            type=NotificationType.SERVICE_REQUEST_UPDATE,
            title="New Service Request",
            message=f"{requester.full_name} submitted a {row.category} request at {prop.name}",
            entity_type="service_request",
            entity_id=row.id,
        )

    audit_write(
        db,
        actor_user_id=p.user_id,
        action="service_request.create",
        entity_type="ServiceRequest",
        entity_id=row.id,
        after=snapshot(row),
    )
    db.commit()

    log.info("service request submitted", extra={"user_id": p.user_id, "property_id": prop.id})
    return row


@router.patch("/{request_id}", response_model=ServiceRequestOut)
def update_service_request(
    request_id: int,
    payload: ServiceRequestUpdate,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    row = must_get_service_request(db, request_id=request_id)
    if p.role != Role.PROPERTY_MANAGER or row.property.manager_id != p.user_id:
        raise HTTPException(status_code=403, detail="Access denied")

    before = snapshot(row)
    data = payload.model_dump(exclude_unset=True)
    was_status = row.status

    if data.get("status"):
        row.status = data["status"]
        if row.status != ServiceRequestStatus.SUBMITTED:
            row.reviewed_at = datetime.utcnow()
    if "review_notes" in data:
        row.review_notes = data["review_notes"]
    if data.get("priority"):
        row.priority = data["priority"]
    db.flush()

    if row.status != was_status:
        notify(
            db,
            user_id=row.requested_by_id,
            type=NotificationType.SERVICE_REQUEST_UPDATE,
            title="Service Request Update",
            message=f'{_status_message(row.status)}: "{row.title}"',
            entity_type="service_request",
            entity_id=row.id,
        )

    audit_write(
        db,
        actor_user_id=p.user_id,
        action="service_request.update",
        entity_type="ServiceRequest",
        entity_id=row.id,
        before=before,
        after=snapshot(row),
    )
    db.commit()
    return row


@router.post("/{request_id}/convert-to-job", response_model=ConvertToJobOut)
def convert_to_job(
    request_id: int,
    payload: ConvertToJobIn,
    db: Session = Depends(get_db),
    p=Depends(require_roles(Role.PROPERTY_MANAGER, detail="Only property managers can convert to jobs")),
):
    sr = must_get_service_request(db, request_id=request_id)
    must_manage_property(sr.property, p.user_id)

    if sr.status == ServiceRequestStatus.CONVERTED_TO_JOB:
        raise HTTPException(status_code=400, detail="Service request already converted to job")

    if payload.assigned_to_id is not None:
        must_get_user_with_role(db, user_id=payload.assigned_to_id, role=Role.TECHNICIAN, detail="Invalid technician")

    before = snapshot(sr)
    job = Job(
        title=sr.title,
        description=sr.description,
        priority=sr.priority,
        property_id=sr.property_id,
        unit_id=sr.unit_id,
        service_request_id=sr.id,
        assigned_to_id=payload.assigned_to_id,
        scheduled_date=payload.scheduled_date,
        estimated_cost=payload.estimated_cost,
        status=JobStatus.ASSIGNED if payload.assigned_to_id else JobStatus.OPEN,
    )
    db.add(job)
    sr.status = ServiceRequestStatus.CONVERTED_TO_JOB
    sr.reviewed_at = datetime.utcnow()
    db.flush()
    job.service_request = sr

    notify_request_converted(db, job)
    if job.assigned_to_id:
        notify_job_assigned(db, job, property_name=sr.property.name)

    audit_write(db, actor_user_id=p.user_id, action="job.create", entity_type="Job", entity_id=job.id, after=snapshot(job))
    audit_write(
        db,
        actor_user_id=p.user_id,
        action="service_request.convert",
        entity_type="ServiceRequest",
        entity_id=sr.id,
        before=before,
        after=snapshot(sr),
    )
    db.commit()

    log.info("service request converted", extra={"user_id": p.user_id, "job_id": job.id})
    return ConvertToJobOut(job=JobOut.model_validate(job), service_request=ServiceRequestOut.model_validate(sr))


@router.delete("/{request_id}", response_model=MessageOut)
def delete_service_request(request_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    row = must_get_service_request(db, request_id=request_id)

    is_manager = p.role == Role.PROPERTY_MANAGER and row.property.manager_id == p.user_id
    is_pending_requester = row.requested_by_id == p.user_id and row.status == ServiceRequestStatus.SUBMITTED
    if not (is_manager or is_pending_requester):
        raise HTTPException(status_code=403, detail="Access denied")

    if row.jobs:
        raise HTTPException(status_code=400, detail="Cannot delete service request that has been converted to a job")

    audit_write(
        db,
        actor_user_id=p.user_id,
        action="service_request.delete",
        entity_type="ServiceRequest",
        entity_id=row.id,
        before=snapshot(row),
    )
    db.delete(row)
    db.commit()
    return MessageOut(message="Service request deleted successfully")
