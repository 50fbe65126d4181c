"""
FastAPI dependencies shared by the task queue endpoints.
"""

from contextlib import contextmanager
from fastapi import HTTPException, Request, status

from app.core.task_supervisor import TaskSupervisor
from app.crud.task_ledger import TaskConflictError, TaskNotFoundError


def get_supervisor(request: Request) -> TaskSupervisor:
    """
    The process-wide task supervisor created in the application lifespan.

    Raises:
        HTTPException 503: If the application has not finished starting
    """
    supervisor = getattr(request.app.state, "task_supervisor", None)
    if supervisor is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Task supervisor is not running"
        )
    return supervisor


@contextmanager
def ledger_errors():
    """Translate ledger exceptions into HTTP errors (404 / 409)"""
    try:
        yield
    except TaskNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except TaskConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
