# backend/buildstate/workers/celery_app.py
from __future__ import annotations

from celery import Celery

from ..config import settings

celery_app = Celery(
    "buildstate",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["buildstate.workers.notification_tasks"],
)

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    timezone="UTC",
)

celery_app.conf.task_routes = {
    "buildstate.workers.notification_tasks.*": {"queue": "notifications"},
}
