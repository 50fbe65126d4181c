"""
API endpoints for AI job description generation.
"""

import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import get_supervisor, ledger_errors
from app.core.event_stream import SSE_HEADERS, EventStream
from app.core.task_supervisor import TaskSupervisor
from app.crud import task_ledger
from app.models.task import TaskKind, TaskStatus
from app.schemas.tasks import GenerationEnqueueRequest, GenerationTaskResponse, RunTaskResponse

router = APIRouter(prefix="/generation-tasks", tags=["Generation Queue"])
logger = logging.getLogger(__name__)


def _create_generation_task(db: Session, request: GenerationEnqueueRequest) -> GenerationTaskResponse:
    tags = [tag.strip() for tag in request.tags if tag.strip()]
    task = task_ledger.create(
        db, TaskKind.GENERATION,
        {"title": request.title.strip(), "department": request.department.strip(), "tags": tags},
    )
    logger.info(f"[Generation {task.id}] Queued for '{task.title}'")
    return GenerationTaskResponse.model_validate(task)


@router.post("", response_model=GenerationTaskResponse, status_code=status.HTTP_201_CREATED)
async def enqueue_generation_task(
    request: GenerationEnqueueRequest,
    db: Session = Depends(get_db),
    supervisor: TaskSupervisor = Depends(get_supervisor)
):
    """
    Queue a job description draft.

    The next poll picks it up; with immediate=true it starts in the
    background right away. Use POST /generation-tasks/{id}/stream instead
    to watch it run.
    """
    task = await run_in_threadpool(_create_generation_task, db, request)
    if request.immediate:
        supervisor.dispatch(TaskKind.GENERATION, task.id)
    return task


@router.get("", response_model=List[GenerationTaskResponse])
def list_generation_tasks(
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db)
):
    """List Generation tasks, newest first"""
    return task_ledger.list_tasks(db, TaskKind.GENERATION, status=status_filter, skip=skip, limit=limit)


@router.get("/{task_id}", response_model=GenerationTaskResponse)
def get_generation_task(task_id: str, db: Session = Depends(get_db)):
    with ledger_errors():
        return task_ledger.get_or_raise(db, TaskKind.GENERATION, task_id)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_generation_task(task_id: str, db: Session = Depends(get_db)):
    """Delete a Generation task. Refused with 409 while it is RUNNING."""
    with ledger_errors():
        task_ledger.delete(db, TaskKind.GENERATION, task_id)


@router.post("/{task_id}/cancel", response_model=GenerationTaskResponse)
def cancel_generation_task(task_id: str, db: Session = Depends(get_db)):
    """Cancel a PENDING Generation task"""
    with ledger_errors():
        return task_ledger.cancel(db, TaskKind.GENERATION, task_id)


@router.post("/{task_id}/run", response_model=RunTaskResponse, status_code=status.HTTP_202_ACCEPTED)
async def run_generation_task(
    task_id: str,
    db: Session = Depends(get_db),
    supervisor: TaskSupervisor = Depends(get_supervisor)
):
    """Start a PENDING Generation task now; poll GET /generation-tasks/{id} for the result"""
    with ledger_errors():
        await run_in_threadpool(supervisor.claim, db, TaskKind.GENERATION, task_id)
    supervisor.start_claimed(TaskKind.GENERATION, task_id)
    return RunTaskResponse(id=task_id, status=TaskStatus.RUNNING, message="Generation started")


@router.post("/{task_id}/stream")
async def stream_generation_task(
    task_id: str,
    db: Session = Depends(get_db),
    supervisor: TaskSupervisor = Depends(get_supervisor)
):
    """
    Start a PENDING Generation task now and stream server-sent events:
    `progress`, then `done` with description and requirements, or `error`.
    """
    stream = EventStream()
    with ledger_errors():
        await run_in_threadpool(supervisor.claim, db, TaskKind.GENERATION, task_id)
    supervisor.start_claimed(TaskKind.GENERATION, task_id, reporter=stream)
    return StreamingResponse(stream, media_type="text/event-stream", headers=SSE_HEADERS)
