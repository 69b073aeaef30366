# backend/buildstate/routers/dashboard.py
from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..auth import get_principal
from ..db import get_db
from ..domain.pci import compute_pci, pci_band
from ..models import (
    Inspection,
    InspectionStatus,
    Job,
    JobStatus,
    Property,
    Role,
    ServiceRequest,
    SubscriptionStatus,
    Unit,
    User,
)
from ..services.access import property_scope, service_request_scope, work_scope

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

UPCOMING_WINDOW = timedelta(days=7)
TRIAL_WARNING_DAYS = 3


def _by_status(db: Session, model, where) -> dict[str, int]:
    q = select(model.status, func.count(model.id)).where(where).group_by(model.status)
    return {str(status): int(n) for status, n in db.execute(q).all()}


def _plural(n: int, word: str) -> str:
    return f"{n} {word}{'s' if n != 1 else ''}"


def _latest_pci(db: Session, property_ids: list[int]) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for pid in property_ids:
        latest = db.scalar(
            select(Inspection)
            .where(Inspection.property_id == pid, Inspection.status == InspectionStatus.COMPLETED)
            .order_by(desc(Inspection.completed_date), desc(Inspection.id))
            .limit(1)
        )
        if latest is None:
            continue
        score = latest.report.pci_score if latest.report and latest.report.pci_score is not None else None
        if score is None:
            score = compute_pci(latest.issues)
        out.append(
            {
                "propertyId": pid,
                "inspectionId": latest.id,
                "completedDate": latest.completed_date,
                "pci": score,
                "band": pci_band(score),
            }
        )
    return out


def _alerts(db: Session, p, summary: dict[str, Any]) -> list[dict[str, Any]]:
    alerts: list[dict[str, Any]] = []

    if p.role == Role.PROPERTY_MANAGER:
        user = db.get(User, p.user_id)
        if user.subscription_status == SubscriptionStatus.TRIAL and user.trial_end_date:
            days_left = math.ceil((user.trial_end_date - datetime.utcnow()).total_seconds() / 86400)
            if 0 < days_left <= TRIAL_WARNING_DAYS:
                alerts.append(
                    {
                        "id": "trial_ending",
                        "type": "warning",
                        "title": "Trial Ending Soon",
                        "message": f"Your trial ends in {_plural(days_left, 'day')}.",
                    }
                )
            elif days_left <= 0:
                alerts.append(
                    {"id": "trial_expired", "type": "error", "title": "Trial Expired", "message": "Your trial has expired."}
                )
        elif user.subscription_status not in (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE):
            alerts.append(
                {
                    "id": "no_subscription",
                    "type": "error",
                    "title": "No Active Subscription",
                    "message": "You need an active subscription to access all features.",
                }
            )

    overdue = summary["jobs"]["overdue"]
    if overdue > 0:
        alerts.append(
            {
                "id": "overdue_jobs",
                "type": "warning",
                "title": "Overdue Jobs",
                "message": f"You have {_plural(overdue, 'overdue job')}.",
            }
        )

    upcoming = summary["inspections"]["upcoming"]
    if upcoming > 0:
        alerts.append(
            {
                "id": "upcoming_inspections",
                "type": "info",
                "title": "Upcoming Inspections",
                "message": f"You have {_plural(upcoming, 'inspection')} in the next 7 days.",
            }
        )

    submitted = summary["serviceRequests"]["submitted"]
    if p.role == Role.PROPERTY_MANAGER and submitted > 0:
        alerts.append(
            {
                "id": "pending_requests",
                "type": "info",
                "title": "New Service Requests",
                "message": f"You have {_plural(submitted, 'new service request')}.",
            }
        )

    return alerts


@router.get("/summary", response_model=dict)
def dashboard_summary(db: Session = Depends(get_db), p=Depends(get_principal)):
    """
    Role-scoped counters for the signed-in user, plus alerts and the
    condition index of each visible property.
    """
    now = datetime.utcnow()
    prop_where = property_scope(p)
    property_ids = list(db.scalars(select(Property.id).where(prop_where)).all())

    props = _by_status(db, Property, prop_where)
    units = _by_status(db, Unit, Unit.property_id.in_(property_ids)) if property_ids else {}
    jobs = _by_status(db, Job, work_scope(p, Job))
    inspections = _by_status(db, Inspection, work_scope(p, Inspection))
    requests = _by_status(db, ServiceRequest, service_request_scope(p))

    overdue = db.scalar(
        select(func.count(Job.id)).where(
            work_scope(p, Job), Job.status.in_(JobStatus.ACTIVE), Job.scheduled_date < now
        )
    )
    upcoming = db.scalar(
        select(func.count(Inspection.id)).where(
            work_scope(p, Inspection),
            Inspection.status == InspectionStatus.SCHEDULED,
            Inspection.scheduled_date >= now,
            Inspection.scheduled_date <= now + UPCOMING_WINDOW,
        )
    )

    summary: dict[str, Any] = {
        "properties": {
            "total": sum(props.values()),
            "active": props.get("ACTIVE", 0),
            "inactive": props.get("INACTIVE", 0),
            "underMaintenance": props.get("UNDER_MAINTENANCE", 0),
        },
        "units": {
            "total": sum(units.values()),
            "occupied": units.get("OCCUPIED", 0),
            "available": units.get("AVAILABLE", 0),
            "maintenance": units.get("MAINTENANCE", 0),
        },
        "jobs": {
            "total": sum(jobs.values()),
            "open": jobs.get("OPEN", 0),
            "assigned": jobs.get("ASSIGNED", 0),
            "inProgress": jobs.get("IN_PROGRESS", 0),
            "completed": jobs.get("COMPLETED", 0),
            "overdue": int(overdue or 0),
        },
        "inspections": {
            "total": sum(inspections.values()),
            "scheduled": inspections.get("SCHEDULED", 0),
            "inProgress": inspections.get("IN_PROGRESS", 0),
            "completed": inspections.get("COMPLETED", 0),
            "upcoming": int(upcoming or 0),
        },
        "serviceRequests": {
            "total": sum(requests.values()),
            "submitted": requests.get("SUBMITTED", 0),
            "underReview": requests.get("UNDER_REVIEW", 0),
            "approved": requests.get("APPROVED", 0),
        },
        "propertyConditions": _latest_pci(db, property_ids),
    }
    summary["alerts"] = _alerts(db, p, summary)

    return {"success": True, "summary": summary}
