"""
Celery tasks for queue maintenance.
"""

import logging
from datetime import timedelta
from app.core.celery_app import celery_app
from app.core.config import settings
from app.core.database import SessionLocal
from app.crud import task_ledger

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.maintenance_tasks.cleanup_stale_tasks_task", bind=True)
def cleanup_stale_tasks_task(self, older_than_minutes: int = None):
    """
    Recover RUNNING tasks whose process stopped reporting.

    Parse tasks go back to PENDING, Match and Generation tasks are failed.
    Same sweep as POST /queue/clean, for when the API process is down.
    Sent by an operator; there is no beat schedule for it.

    Args:
        self: Celery task instance (when bind=True)
        older_than_minutes: Staleness threshold (defaults to CLEANUP_STALE_MINUTES)

    Returns:
        dict: Records changed per queue kind
    """
    minutes = older_than_minutes or settings.CLEANUP_STALE_MINUTES
    db = SessionLocal()

    try:
        cleaned = task_ledger.cleanup_stale(db, timedelta(minutes=minutes))
        logger.info(f"[Task {self.request.id}] Stale task cleanup ({minutes} min): {cleaned}")
        return {"status": "success", "cleaned": cleaned}
    finally:
        db.close()
