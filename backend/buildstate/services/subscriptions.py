# backend/buildstate/services/subscriptions.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..config import settings
from ..models import Subscription, SubscriptionStatus, User

log = logging.getLogger("buildstate.subscriptions")


def trial_end_for(base: Optional[datetime]) -> datetime:
    return (base or datetime.utcnow()) + timedelta(days=int(settings.trial_period_days))


def check_active_subscription(db: Session, user_id: int) -> bool:
    """
    May the user create billable records right now?

    User.subscription_status is a cached flag; the subscriptions table is the
    source of truth for paid plans. Drift between the two is repaired here and
    committed immediately, before the caller decides to proceed or refuse, so a
    refused request still records the SUSPENDED flip.
    """
    user = db.get(User, user_id)
    if user is None:
        return False

    if user.subscription_status == SubscriptionStatus.ACTIVE:
        return True

    now = datetime.utcnow()

    if user.subscription_status == SubscriptionStatus.TRIAL:
        if user.trial_end_date is None:
            user.trial_end_date = trial_end_for(user.created_at)
            db.commit()

        if now < user.trial_end_date:
            return True

        user.subscription_status = SubscriptionStatus.SUSPENDED
        db.commit()
        log.info("trial expired, user suspended", extra={"user_id": user_id})
        return False

    sub = db.scalar(
        select(Subscription).where(
            Subscription.user_id == user_id,
            Subscription.status == "ACTIVE",
            or_(Subscription.end_date.is_(None), Subscription.end_date > now),
        )
    )
    if sub is None:
        return False

    user.subscription_status = SubscriptionStatus.ACTIVE
    db.commit()
    log.info("subscription status synced to ACTIVE", extra={"user_id": user_id})
    return True


def require_active_subscription(db: Session, user_id: int) -> None:
    if not check_active_subscription(db, user_id):
        raise HTTPException(
            status_code=403,
            detail={
                "error": "Active subscription required to create properties",
                "code": "SUBSCRIPTION_REQUIRED",
            },
        )
