# backend/buildstate/routers/jobs.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import case, desc, select
from sqlalchemy.orm import Session

from ..auth import get_principal, require_roles
from ..db import get_db
from ..domain.audit import audit_write, snapshot
from ..models import (
    Job,
    JobStatus,
    NotificationType,
    Priority,
    Role,
    ServiceRequestStatus,
)
from ..schemas import JobCreate, JobOut, JobUpdate, MessageOut
from ..services.access import ensure_access, work_scope
from ..services.notifications import notify
from ..services.ownership import (
    must_get_job,
    must_get_property,
    must_get_service_request,
    must_get_user_with_role,
    must_manage_property,
)
from ..services.validation import require_fields

log = logging.getLogger("buildstate.jobs")

router = APIRouter(prefix="/jobs", tags=["jobs"])

TECHNICIAN_FIELDS = {"status", "notes", "evidence", "actual_cost"}
NOT_NULL = {"title", "description", "priority", "status"}

_priority_rank = case(Priority.RANK, value=Job.priority, else_=0)


def notify_job_assigned(db: Session, job: Job, *, property_name: Optional[str] = None) -> None:
    where = f" at {property_name}" if property_name else ""
    notify(
        db,
        user_id=job.assigned_to_id,
        type=NotificationType.JOB_ASSIGNED,
        title="New Job Assigned",
        message=f"You have been assigned to job: {job.title}{where}",
        entity_type="job",
        entity_id=job.id,
    )


def notify_request_converted(db: Session, job: Job) -> None:
    sr = job.service_request
    notify(
        db,
        user_id=sr.requested_by_id,
        type=NotificationType.SERVICE_REQUEST_UPDATE,
        title="Service Request Converted to Job",
        message=f'Your request "{sr.title}" has been converted to a job and will be addressed soon.',
        entity_type="job",
        entity_id=job.id,
    )


def _apply_completion(job: Job) -> None:
    if job.status == JobStatus.COMPLETED and job.completed_date is None:
        job.completed_date = datetime.utcnow()


@router.get("", response_model=list[JobOut])
def list_jobs(
    status: Optional[str] = Query(default=None),
    priority: Optional[str] = Query(default=None),
    property_id: Optional[int] = Query(default=None, alias="propertyId"),
    unit_id: Optional[int] = Query(default=None, alias="unitId"),
    assigned_to_id: Optional[int] = Query(default=None, alias="assignedToId"),
    filter: Optional[str] = Query(default=None, description="overdue|unassigned|my-jobs"),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    q = select(Job).where(work_scope(p, Job))

    if status:
        q = q.where(Job.status == status.upper())
    if priority:
        q = q.where(Job.priority == priority.upper())
    if property_id is not None:
        q = q.where(Job.property_id == property_id)
    if unit_id is not None:
        q = q.where(Job.unit_id == unit_id)
    if assigned_to_id is not None:
        q = q.where(Job.assigned_to_id == assigned_to_id)

    if filter == "overdue":
        q = q.where(Job.status.in_(JobStatus.ACTIVE), Job.scheduled_date < datetime.utcnow())
    elif filter == "unassigned":
        q = q.where(Job.assigned_to_id.is_(None), Job.status == JobStatus.OPEN)
    elif filter == "my-jobs" and p.role == Role.TECHNICIAN:
        q = q.where(Job.assigned_to_id == p.user_id)

    q = q.order_by(desc(_priority_rank), Job.scheduled_date, Job.id)
    return list(db.scalars(q).all())


@router.get("/{job_id}", response_model=JobOut)
def get_job(job_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    job = must_get_job(db, job_id=job_id)
    ensure_access(db, p, job)
    return job


@router.post("", response_model=JobOut, status_code=201)
def create_job(
    payload: JobCreate,
    db: Session = Depends(get_db),
    p=Depends(require_roles(Role.PROPERTY_MANAGER, detail="Only property managers can create jobs")),
):
    require_fields(payload, ["title", "description", "property_id"])
    prop = must_manage_property(must_get_property(db, property_id=payload.property_id), p.user_id)

    if payload.unit_id is not None:
        unit = next((u for u in prop.units if u.id == payload.unit_id), None)
        if unit is None:
            raise HTTPException(status_code=400, detail="Unit does not belong to this property")

    if payload.assigned_to_id is not None:
        must_get_user_with_role(db, user_id=payload.assigned_to_id, role=Role.TECHNICIAN, detail="Invalid technician")

    sr = None
    if payload.service_request_id is not None:
        sr = must_get_service_request(db, request_id=payload.service_request_id)
        if sr.property_id != prop.id:
            raise HTTPException(status_code=400, detail="Service request does not belong to this property")
        if sr.status == ServiceRequestStatus.CONVERTED_TO_JOB:
            raise HTTPException(status_code=400, detail="Service request already converted to job")

    job = Job(
        **payload.model_dump(),
        status=JobStatus.ASSIGNED if payload.assigned_to_id else JobStatus.OPEN,
    )
    db.add(job)
    db.flush()

    if sr is not None:
        sr.status = ServiceRequestStatus.CONVERTED_TO_JOB
        sr.reviewed_at = datetime.utcnow()
        job.service_request = sr
        notify_request_converted(db, job)

    if job.assigned_to_id:
        notify_job_assigned(db, job, property_name=prop.name)

    audit_write(db, actor_user_id=p.user_id, action="job.create", entity_type="Job", entity_id=job.id, after=snapshot(job))
    db.commit()

    log.info("job created", extra={"user_id": p.user_id, "property_id": prop.id, "job_id": job.id})
    return job


@router.patch("/{job_id}", response_model=JobOut)
def update_job(
    job_id: int,
    payload: JobUpdate,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    """
    Managers of the property may change anything. The assigned technician may
    only report progress: status, notes, evidence and actual cost. Anything
    else in a technician's body is ignored.
    """
    job = must_get_job(db, job_id=job_id)
    before = snapshot(job)
    data = payload.model_dump(exclude_unset=True)

    is_manager = p.role == Role.PROPERTY_MANAGER and job.property.manager_id == p.user_id
    is_assignee = p.role == Role.TECHNICIAN and job.assigned_to_id == p.user_id
    if not (is_manager or is_assignee):
        raise HTTPException(status_code=403, detail="Access denied")

    was_status = job.status
    was_assignee = job.assigned_to_id

    if is_assignee:
        data = {k: v for k, v in data.items() if k in TECHNICIAN_FIELDS}
    elif data.get("assigned_to_id") is not None:
        must_get_user_with_role(db, user_id=data["assigned_to_id"], role=Role.TECHNICIAN, detail="Invalid technician")

    for k, v in data.items():
        if v is None and k in NOT_NULL:
            continue
        setattr(job, k, v)

    if is_manager and "status" not in data and job.assigned_to_id and job.status == JobStatus.OPEN:
        job.status = JobStatus.ASSIGNED

    _apply_completion(job)
    db.flush()

    if job.assigned_to_id and job.assigned_to_id != was_assignee:
        notify_job_assigned(db, job)

    if is_assignee and job.status == JobStatus.COMPLETED and was_status != JobStatus.COMPLETED:
        tech = job.assigned_to
        notify(
            db,
            user_id=job.property.manager_id,
            type=NotificationType.JOB_COMPLETED,
            title="Job Completed",
            message=f'Job "{job.title}" has been completed by {tech.full_name}',
            entity_type="job",
            entity_id=job.id,
        )

    audit_write(
        db,
        actor_user_id=p.user_id,
        action="job.update",
        entity_type="Job",
        entity_id=job.id,
        before=before,
        after=snapshot(job),
    )
    db.commit()
    return job


@router.delete("/{job_id}", response_model=MessageOut)
def delete_job(
    job_id: int,
    db: Session = Depends(get_db),
    p=Depends(require_roles(Role.PROPERTY_MANAGER, detail="Only property managers can delete jobs")),
):
    job = must_get_job(db, job_id=job_id)
    must_manage_property(job.property, p.user_id)

    if job.status == JobStatus.COMPLETED:
        raise HTTPException(status_code=400, detail="Cannot delete completed jobs. Archive them instead.")

    audit_write(db, actor_user_id=p.user_id, action="job.delete", entity_type="Job", entity_id=job.id, before=snapshot(job))
    db.delete(job)
    db.commit()
    return MessageOut(message="Job deleted successfully")
