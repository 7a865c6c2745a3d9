import os
from datetime import datetime, timezone

from celery import Celery
from celery.schedules import crontab
from celery.utils.log import get_task_logger

from .database import SessionLocal, session_scope
from .services import exports

# purpose: background sweeps for study export jobs
# inputs: CELERY_BROKER_URL, STUDY_EXPORT_SWEEP_MINUTES env vars
# status: active

_logger = get_task_logger(__name__)

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "memory://")
celery_app = Celery("edith", broker=CELERY_BROKER_URL)
celery_app.conf.task_always_eager = (
    CELERY_BROKER_URL == "memory://" or os.getenv("TESTING") == "1"
)

SWEEP_MINUTES = int(os.getenv("STUDY_EXPORT_SWEEP_MINUTES", "15"))

celery_app.conf.beat_schedule = {
    "study-export-expiry": {
        "task": "edith.tasks.expire_study_exports",
        "schedule": crontab(minute=f"*/{SWEEP_MINUTES}"),
    },
}


@celery_app.task(name="edith.tasks.expire_study_exports")
def expire_study_exports(now: str | None = None) -> list[str]:
    """Mark open export jobs past their deadline as EXPIRED."""

    reference = datetime.fromisoformat(now) if now else datetime.now(timezone.utc)
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)
    with session_scope(SessionLocal) as db:
        expired = exports.expire_stale_exports(db, now=reference)
        identifiers = [str(export.id) for export in expired]
    if identifiers:
        _logger.info("expired %d study export job(s): %s", len(identifiers), ", ".join(identifiers))
    return identifiers

