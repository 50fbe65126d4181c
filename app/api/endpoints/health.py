"""
Health check and monitoring endpoints.

Provides detailed health status for the database, storage and the task queues.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.storage import S3Storage, get_storage
from app.crud import task_ledger
from app.models.task import TaskKind

router = APIRouter(tags=["Health"])
logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> Dict[str, str]:
    """
    Basic health check endpoint.

    Returns 200 OK if the service is running.
    Use this for simple uptime monitoring and load balancer health checks.
    """
    return {
        "status": "healthy",
        "timestamp": _timestamp()
    }


@router.get("/health/detailed", status_code=status.HTTP_200_OK)
def detailed_health_check(request: Request, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """
    Detailed health check with dependency status.

    Checks:
    - Database connectivity
    - Storage availability (S3 only)
    - Task schedulers and per-queue task counts
    """
    health_status = {
        "status": "healthy",
        "timestamp": _timestamp(),
        "checks": {}
    }

    # Check database connectivity
    try:
        db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = {
            "status": "healthy",
            "message": "Database connection successful"
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = {
            "status": "unhealthy",
            "message": f"Database error: {str(e)}"
        }

    # Check storage
    try:
        storage = get_storage()
        if isinstance(storage, S3Storage):
            storage.check()
            message = "S3 storage accessible"
        else:
            message = "Local storage"
        health_status["checks"]["storage"] = {"status": "healthy", "message": message}
    except Exception as e:
        logger.error(f"Storage health check failed: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["storage"] = {
            "status": "unhealthy",
            "message": f"Storage error: {str(e)}"
        }

    # Task queues
    supervisor = getattr(request.app.state, "task_supervisor", None)
    queues: Dict[str, Any] = {
        "schedulers_running": bool(supervisor and supervisor.started),
        "in_flight": supervisor.in_flight if supervisor else 0,
    }
    if health_status["checks"]["database"]["status"] == "healthy":
        queues["tasks"] = {kind.value: task_ledger.count_by_status(db, kind) for kind in TaskKind}
    health_status["checks"]["queues"] = queues

    return health_status
