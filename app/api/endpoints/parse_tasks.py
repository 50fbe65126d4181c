"""
API endpoints for the resume Parse queue.

Resumes are either uploaded here or referenced by an existing object key,
then parsed by the background queue at the nightly window or right away.
"""

import asyncio
import logging
import os
import uuid
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.deps import get_supervisor, ledger_errors
from app.core.event_stream import SSE_HEADERS, EventStream
from app.core.storage import StorageError, get_storage
from app.core.task_supervisor import TaskSupervisor
from app.core.time_utils import format_local, next_daily_occurrence, utcnow
from app.crud import task_ledger
from app.models.task import TaskKind, TaskStatus
from app.schemas.tasks import (
    ParseEnqueueRequest,
    ParseEnqueueResponse,
    ParseFileRef,
    ParseTaskResponse,
    RunTaskResponse,
)
from app.services.resume_parser import DOCX_CONTENT_TYPE, PDF_CONTENT_TYPE, SUPPORTED_CONTENT_TYPES

router = APIRouter(prefix="/parse-tasks", tags=["Parse Queue"])
logger = logging.getLogger(__name__)

EXTENSION_CONTENT_TYPES = {
    ".pdf": PDF_CONTENT_TYPE,
    ".docx": DOCX_CONTENT_TYPE,
}

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def _create_parse_tasks(db: Session, files: List[ParseFileRef], immediate: bool) -> ParseEnqueueResponse:
    scheduled_for = utcnow() if immediate else next_daily_occurrence(settings.PARSE_DAILY_HOUR)
    tasks = task_ledger.create_many(
        db, TaskKind.PARSE, [ref.model_dump() for ref in files], scheduled_for=scheduled_for
    )

    if immediate:
        message = f"{len(tasks)} resumes queued for parsing now"
    else:
        message = f"{len(tasks)} resumes scheduled for parsing at {format_local(scheduled_for)}"

    logger.info(message)
    return ParseEnqueueResponse(
        tasks=[ParseTaskResponse.model_validate(task) for task in tasks],
        scheduled_for=tasks[0].scheduled_for,
        message=message,
    )


async def _enqueue(db: Session, supervisor: TaskSupervisor, files: List[ParseFileRef], immediate: bool) -> ParseEnqueueResponse:
    response = await run_in_threadpool(_create_parse_tasks, db, files, immediate)
    if immediate:
        for task in response.tasks:
            supervisor.dispatch(TaskKind.PARSE, task.id)
    return response


@router.post("", response_model=ParseEnqueueResponse, status_code=status.HTTP_201_CREATED)
async def enqueue_parse_tasks(
    request: ParseEnqueueRequest,
    db: Session = Depends(get_db),
    supervisor: TaskSupervisor = Depends(get_supervisor)
):
    """
    Queue already-stored resume files for parsing.

    All records are created together or none are. With immediate=false the
    tasks wait for the next nightly parse window (PARSE_DAILY_HOUR in
    SCHEDULE_TIMEZONE).
    """
    unsupported = [ref.original_name or ref.object_name for ref in request.files
                   if ref.content_type not in SUPPORTED_CONTENT_TYPES]
    if unsupported:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Only PDF and DOCX files are supported: {', '.join(unsupported)}"
        )
    return await _enqueue(db, supervisor, request.files, request.immediate)


@router.post("/upload", response_model=ParseEnqueueResponse, status_code=status.HTTP_201_CREATED)
async def upload_and_enqueue(
    files: List[UploadFile] = File(...),
    immediate: bool = Form(False),
    db: Session = Depends(get_db),
    supervisor: TaskSupervisor = Depends(get_supervisor)
):
    """
    Upload resumes (PDF or DOCX) and queue them for parsing.

    Raises:
        HTTPException 400: Unsupported type or empty/oversized file
        HTTPException 500: Storage failure
    """
    storage = get_storage()
    refs: List[ParseFileRef] = []

    for upload in files:
        ext = os.path.splitext(upload.filename or "")[1].lower()
        content_type = EXTENSION_CONTENT_TYPES.get(ext) or upload.content_type
        if content_type not in SUPPORTED_CONTENT_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Only PDF and DOCX files are supported. Received: {upload.filename}"
            )

        data = await upload.read()
        if not data or len(data) > MAX_UPLOAD_BYTES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{upload.filename} is empty or larger than {MAX_UPLOAD_BYTES // (1024 * 1024)} MB"
            )

        file_id = str(uuid.uuid4())
        object_name = f"resumes/{file_id}{ext or '.pdf'}"
        try:
            await asyncio.to_thread(storage.upload, data, object_name, content_type)
        except StorageError as e:
            logger.error(f"Failed to store {upload.filename}: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to save file: {e}")

        refs.append(ParseFileRef(
            file_id=file_id,
            object_name=object_name,
            content_type=content_type,
            original_name=upload.filename,
        ))

    return await _enqueue(db, supervisor, refs, immediate)


@router.get("", response_model=List[ParseTaskResponse])
def list_parse_tasks(
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db)
):
    """List Parse tasks, newest first"""
    return task_ledger.list_tasks(db, TaskKind.PARSE, status=status_filter, skip=skip, limit=limit)


@router.get("/{task_id}", response_model=ParseTaskResponse)
def get_parse_task(task_id: str, db: Session = Depends(get_db)):
    with ledger_errors():
        return task_ledger.get_or_raise(db, TaskKind.PARSE, task_id)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_parse_task(task_id: str, db: Session = Depends(get_db)):
    """Delete a Parse task. Refused with 409 while it is RUNNING."""
    with ledger_errors():
        task_ledger.delete(db, TaskKind.PARSE, task_id)


@router.post("/{task_id}/cancel", response_model=ParseTaskResponse)
def cancel_parse_task(task_id: str, db: Session = Depends(get_db)):
    """Cancel a PENDING Parse task"""
    with ledger_errors():
        return task_ledger.cancel(db, TaskKind.PARSE, task_id)


@router.post("/{task_id}/run", response_model=RunTaskResponse, status_code=status.HTTP_202_ACCEPTED)
async def run_parse_task(
    task_id: str,
    db: Session = Depends(get_db),
    supervisor: TaskSupervisor = Depends(get_supervisor)
):
    """
    Start a PENDING Parse task now, regardless of its scheduled time.
    Poll GET /parse-tasks/{id} for the outcome.
    """
    with ledger_errors():
        await run_in_threadpool(supervisor.claim, db, TaskKind.PARSE, task_id)
    supervisor.start_claimed(TaskKind.PARSE, task_id)
    return RunTaskResponse(id=task_id, status=TaskStatus.RUNNING, message="Parsing started")


@router.post("/{task_id}/stream")
async def stream_parse_task(
    task_id: str,
    db: Session = Depends(get_db),
    supervisor: TaskSupervisor = Depends(get_supervisor)
):
    """
    Start a PENDING Parse task now and stream its progress as server-sent
    events: `progress` events, then one `done` or `error`. The outcome is
    also written to the task, so a client that disconnects can poll for it.
    """
    stream = EventStream()
    with ledger_errors():
        await run_in_threadpool(supervisor.claim, db, TaskKind.PARSE, task_id)
    stream.progress(0, "Parsing started")
    supervisor.start_claimed(TaskKind.PARSE, task_id, reporter=stream)
    return StreamingResponse(stream, media_type="text/event-stream", headers=SSE_HEADERS)
