"""
Operator endpoints spanning all task queues.
"""

import logging
from datetime import timedelta
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.crud import task_ledger
from app.schemas.tasks import QueueCleanResponse

router = APIRouter(prefix="/queue", tags=["Queue Maintenance"])
logger = logging.getLogger(__name__)


@router.post("/clean", response_model=QueueCleanResponse)
def clean_stale_tasks(db: Session = Depends(get_db)):
    """
    Recover tasks stuck in RUNNING after a process crash.

    Anything RUNNING without an update for CLEANUP_STALE_MINUTES is handled
    per queue: Parse tasks return to PENDING, Match and Generation tasks are
    marked FAILED. Running it again right away changes nothing.
    """
    by_kind = task_ledger.cleanup_stale(db, timedelta(minutes=settings.CLEANUP_STALE_MINUTES))
    cleaned = sum(by_kind.values())
    logger.info(f"Manual stale task cleanup: {by_kind}")
    return QueueCleanResponse(
        message="Cleanup complete" if cleaned else "No stale tasks found",
        cleaned=cleaned,
        by_kind=by_kind,
    )
