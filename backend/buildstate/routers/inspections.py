# backend/buildstate/routers/inspections.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import get_principal, require_roles
from ..db import get_db
from ..domain.audit import audit_write, snapshot
from ..domain.pci import compute_pci
from ..models import (
    Inspection,
    InspectionReport,
    InspectionStatus,
    NotificationType,
    Role,
    Unit,
    User,
)
from ..schemas import (
    InspectionCompleteIn,
    InspectionCreate,
    InspectionOut,
    InspectionReportCreate,
    InspectionReportOut,
    InspectionUpdate,
    MessageOut,
    UtcDateTime,
)
from ..services.access import ensure_access, work_scope
from ..services.inspection_rules import ensure_unit_slot_free
from ..services.notifications import notify
from ..services.ownership import (
    must_get_inspection,
    must_get_property,
    must_get_user_with_role,
    must_manage_property,
)
from ..services.validation import require_fields

log = logging.getLogger("buildstate.inspections")

router = APIRouter(prefix="/inspections", tags=["inspections"])

TECHNICIAN_FIELDS = {"status", "notes", "findings", "photos", "issues"}
NOT_NULL = {"title", "type", "status", "scheduled_date"}


def _stamp_completed(row: Inspection, user_id: Optional[int] = None) -> None:
    if row.status != InspectionStatus.COMPLETED:
        return
    if row.completed_date is None:
        row.completed_date = datetime.utcnow()
    if user_id is not None and row.completed_by_id is None:
        row.completed_by_id = user_id


def _notify_completed(db: Session, row: Inspection, actor_id: int) -> None:
    manager_id = row.property.manager_id
    if manager_id == actor_id:
        return
    completer = db.get(User, actor_id)
    notify(
        db,
        user_id=manager_id,
        type=NotificationType.INSPECTION_COMPLETED,
        title="Inspection Completed",
        message=f'Inspection "{row.title}" has been completed by {completer.full_name}',
        entity_type="inspection",
        entity_id=row.id,
    )


def _issues_as_dicts(issues) -> Optional[list[dict]]:
    if issues is None:
        return None
    return [i if isinstance(i, dict) else i.model_dump() for i in issues]


@router.get("", response_model=list[InspectionOut])
def list_inspections(
    status: Optional[str] = Query(default=None),
    property_id: Optional[int] = Query(default=None, alias="propertyId"),
    unit_id: Optional[int] = Query(default=None, alias="unitId"),
    assigned_to_id: Optional[int] = Query(default=None, alias="assignedToId"),
    date_from: Optional[UtcDateTime] = Query(default=None, alias="dateFrom"),
    date_to: Optional[UtcDateTime] = Query(default=None, alias="dateTo"),
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    q = select(Inspection).where(work_scope(p, Inspection))

    if status:
        q = q.where(Inspection.status == status.upper())
    if property_id is not None:
        q = q.where(Inspection.property_id == property_id)
    if unit_id is not None:
        q = q.where(Inspection.unit_id == unit_id)
    if assigned_to_id is not None:
        q = q.where(Inspection.assigned_to_id == assigned_to_id)
    if date_from is not None:
        q = q.where(Inspection.scheduled_date >= date_from)
    if date_to is not None:
        q = q.where(Inspection.scheduled_date <= date_to)

    return list(db.scalars(q.order_by(Inspection.scheduled_date, Inspection.id)).all())


@router.get("/{inspection_id}", response_model=InspectionOut)
def get_inspection(inspection_id: int, db: Session = Depends(get_db), p=Depends(get_principal)):
    row = must_get_inspection(db, inspection_id=inspection_id)
    ensure_access(db, p, row)
    return row


@router.post("", response_model=InspectionOut, status_code=201)
def create_inspection(
    payload: InspectionCreate,
    db: Session = Depends(get_db),
    p=Depends(require_roles(Role.PROPERTY_MANAGER, detail="Only property managers can create inspections")),
):
    require_fields(payload, ["title", "type", "scheduled_date", "property_id"])
    prop = must_manage_property(must_get_property(db, property_id=payload.property_id), p.user_id)

    unit: Optional[Unit] = None
    if payload.unit_id is not None:
        unit = next((u for u in prop.units if u.id == payload.unit_id), None)
        if unit is None:
            raise HTTPException(status_code=400, detail="Unit does not belong to this property")

    if payload.assigned_to_id is not None:
        must_get_user_with_role(db, user_id=payload.assigned_to_id, role=Role.TECHNICIAN, detail="Invalid technician")

    ensure_unit_slot_free(db, unit_id=payload.unit_id, scheduled_date=payload.scheduled_date)

    row = Inspection(**payload.model_dump(), status=InspectionStatus.SCHEDULED)
    db.add(row)
    db.flush()

    if row.assigned_to_id:
        notify(
            db,
            user_id=row.assigned_to_id,
            type=NotificationType.INSPECTION_SCHEDULED,
            title="New Inspection Assigned",
            message=f"You have been assigned to inspection: {row.title} at {prop.name}",
            entity_type="inspection",
            entity_id=row.id,
        )

    if unit is not None:
        when = row.scheduled_date.date().isoformat()
        for lease in unit.active_leases:
            notify(
                db,
                user_id=lease.tenant_id,
                type=NotificationType.INSPECTION_SCHEDULED,
                title="Inspection Scheduled",
                message=f"An inspection has been scheduled for your unit on {when}",
                entity_type="inspection",
                entity_id=row.id,
            )

    audit_write(
        db,
        actor_user_id=p.user_id,
        action="inspection.create",
        entity_type="Inspection",
        entity_id=row.id,
        after=snapshot(row),
    )
    db.commit()

    log.info("inspection scheduled", extra={"user_id": p.user_id, "property_id": prop.id, "inspection_id": row.id})
    return row


@router.patch("/{inspection_id}", response_model=InspectionOut)
def update_inspection(
    inspection_id: int,
    payload: InspectionUpdate,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    row = must_get_inspection(db, inspection_id=inspection_id)
    before = snapshot(row)
    data = payload.model_dump(exclude_unset=True)

    is_manager = p.role == Role.PROPERTY_MANAGER and row.property.manager_id == p.user_id
    is_assignee = p.role == Role.TECHNICIAN and row.assigned_to_id == p.user_id
    if not (is_manager or is_assignee):
        raise HTTPException(status_code=403, detail="Access denied")

    was_assignee = row.assigned_to_id
    was_status = row.status

    if is_assignee:
        data = {k: v for k, v in data.items() if k in TECHNICIAN_FIELDS}
    else:
        if data.get("assigned_to_id") is not None:
            must_get_user_with_role(
                db, user_id=data["assigned_to_id"], role=Role.TECHNICIAN, detail="Invalid technician"
            )
        new_date = data.get("scheduled_date")
        if new_date is not None and new_date != row.scheduled_date:
            ensure_unit_slot_free(
                db, unit_id=row.unit_id, scheduled_date=new_date, exclude_inspection_id=row.id
            )

    if "issues" in data:
        data["issues"] = _issues_as_dicts(payload.issues)

    for k, v in data.items():
        if v is None and k in NOT_NULL:
            continue
        setattr(row, k, v)

    if row.status == InspectionStatus.COMPLETED and not (row.findings or "").strip():
        raise HTTPException(status_code=400, detail="Findings are required to complete inspection")

    _stamp_completed(row, p.user_id if is_assignee else None)
    db.flush()

    if row.status == InspectionStatus.COMPLETED and was_status != InspectionStatus.COMPLETED:
        _notify_completed(db, row, p.user_id)

    if row.assigned_to_id and row.assigned_to_id != was_assignee:
        notify(
            db,
            user_id=row.assigned_to_id,
            type=NotificationType.INSPECTION_SCHEDULED,
            title="New Inspection Assigned",
            message=f"You have been assigned to inspection: {row.title} at {row.property.name}",
            entity_type="inspection",
            entity_id=row.id,
        )

    audit_write(
        db,
        actor_user_id=p.user_id,
        action="inspection.update",
        entity_type="Inspection",
        entity_id=row.id,
        before=before,
        after=snapshot(row),
    )
    db.commit()
    return row


@router.post("/{inspection_id}/complete", response_model=InspectionOut)
def complete_inspection(
    inspection_id: int,
    payload: InspectionCompleteIn,
    db: Session = Depends(get_db),
    p=Depends(get_principal),
):
    row = must_get_inspection(db, inspection_id=inspection_id)

    is_assignee = p.role == Role.TECHNICIAN and row.assigned_to_id == p.user_id
    is_manager = p.role == Role.PROPERTY_MANAGER and row.property.manager_id == p.user_id
    if not (is_assignee or is_manager):
        raise HTTPException(status_code=403, detail="You are not assigned to this inspection")

    if not (payload.findings or "").strip():
        raise HTTPException(status_code=400, detail="Findings are required to complete inspection")

    before = snapshot(row)
    row.findings = payload.findings.strip()
    if payload.photos is not None:
        row.photos = payload.photos
    if payload.issues is not None:
        row.issues = _issues_as_dicts(payload.issues)

    row.status = InspectionStatus.COMPLETED
    row.completed_date = datetime.utcnow()
    row.completed_by_id = p.user_id
    db.flush()
    _notify_completed(db, row, p.user_id)

    audit_write(
        db,
        actor_user_id=p.user_id,
        action="inspection.complete",
        entity_type="Inspection",
        entity_id=row.id,
        before=before,
        after=snapshot(row),
    )
    db.commit()

    log.info("inspection completed", extra={"user_id": p.user_id, "inspection_id": row.id})
    return row


@router.post("/{inspection_id}/report", response_model=InspectionReportOut, status_code=201)
def create_report(
    inspection_id: int,
    payload: InspectionReportCreate,
    db: Session = Depends(get_db),
    p=Depends(require_roles(Role.PROPERTY_MANAGER, detail="Only property managers can create inspection reports")),
):
    row = must_get_inspection(db, inspection_id=inspection_id)
    must_manage_property(row.property, p.user_id)

    if row.status != InspectionStatus.COMPLETED:
        raise HTTPException(status_code=400, detail="Only completed inspections can be reported")
    if row.report is not None:
        raise HTTPException(status_code=400, detail="A report already exists for this inspection")

    report = InspectionReport(
        inspection_id=row.id,
        created_by_id=p.user_id,
        title=(payload.title or "").strip() or f"{row.title} report",
        summary=payload.summary if payload.summary is not None else row.findings,
        pci_score=compute_pci(row.issues),
    )
    db.add(report)
    db.flush()

    audit_write(
        db,
        actor_user_id=p.user_id,
        action="inspection.report.create",
        entity_type="InspectionReport",
        entity_id=report.id,
        after=snapshot(report),
    )
    db.commit()
    return report


@router.delete("/{inspection_id}", response_model=MessageOut)
def delete_inspection(
    inspection_id: int,
    db: Session = Depends(get_db),
    p=Depends(require_roles(Role.PROPERTY_MANAGER, detail="Only property managers can delete inspections")),
):
    row = must_get_inspection(db, inspection_id=inspection_id)
    must_manage_property(row.property, p.user_id)

    if row.report is not None:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete inspection with associated report. Delete the report first.",
        )

    audit_write(
        db,
        actor_user_id=p.user_id,
        action="inspection.delete",
        entity_type="Inspection",
        entity_id=row.id,
        before=snapshot(row),
    )
    db.delete(row)
    db.commit()
    return MessageOut(message="Inspection deleted successfully")
