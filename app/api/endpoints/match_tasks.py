"""
API endpoints for the candidate <-> job Match queue.

Match batches run in the nightly match window by default. A run-now
request starts one immediately and publishes live progress that can be
polled per job posting.
"""

import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.deps import get_supervisor, ledger_errors
from app.core.task_supervisor import TaskSupervisor
from app.core.time_utils import format_local, next_daily_occurrence
from app.crud import task_ledger
from app.models.candidate import Candidate, CandidateStatus
from app.models.job_match import JobMatch
from app.models.job_posting import JobPosting, JobPostingStatus
from app.models.task import MatchTask, TaskKind, TaskStatus
from app.schemas.tasks import (
    MatchEnqueueRequest,
    MatchEnqueueResponse,
    MatchProgressResponse,
    MatchTaskResponse,
    RunTaskResponse,
)

router = APIRouter(prefix="/match-tasks", tags=["Match Queue"])
logger = logging.getLogger(__name__)

MATCHABLE_STATUSES = (CandidateStatus.NEW, CandidateStatus.SCREENING)


def _queued_candidate_ids(db: Session, job_posting_id: str) -> set:
    """Candidates already waiting in, or being processed by, a match task for this job"""
    queued = set()
    open_tasks = (
        db.query(MatchTask.candidate_ids)
        .filter(
            MatchTask.job_posting_id == job_posting_id,
            MatchTask.status.in_([TaskStatus.PENDING, TaskStatus.RUNNING]),
        )
        .all()
    )
    for candidate_ids, in open_tasks:
        queued.update(candidate_ids or [])
    return queued


def select_candidates(db: Session, job_posting_id: str, candidate_ids: Optional[List[str]] = None) -> List[str]:
    """
    Resolve the candidate set for a new match task.

    An explicit list is de-duplicated and limited to existing candidates.
    Without one, every NEW/SCREENING candidate is taken, except those that
    already have a result for this job or sit in an open task for it.
    """
    if candidate_ids is not None:
        requested = list(dict.fromkeys(candidate_ids))
        if not requested:
            return []
        existing = {cid for cid, in db.query(Candidate.id).filter(Candidate.id.in_(requested)).all()}
        return [cid for cid in requested if cid in existing]

    matched = {cid for cid, in db.query(JobMatch.candidate_id).filter(JobMatch.job_posting_id == job_posting_id).all()}
    excluded = matched | _queued_candidate_ids(db, job_posting_id)
    rows = (
        db.query(Candidate.id)
        .filter(Candidate.status.in_(MATCHABLE_STATUSES))
        .order_by(Candidate.created_at.asc())
        .all()
    )
    return [cid for cid, in rows if cid not in excluded]


@router.post("", response_model=MatchEnqueueResponse, status_code=status.HTTP_201_CREATED)
def enqueue_match_task(request: MatchEnqueueRequest, db: Session = Depends(get_db)):
    """
    Schedule a match batch for the next nightly match window.

    Raises:
        HTTPException 404: Job posting not found or not ACTIVE
        HTTPException 400: No candidates to match
    """
    job = db.query(JobPosting).filter(JobPosting.id == request.job_posting_id).first()
    if not job or job.status != JobPostingStatus.ACTIVE:
        raise HTTPException(status_code=404, detail=f"Active job posting {request.job_posting_id} not found")

    candidate_ids = select_candidates(db, job.id, request.candidate_ids)
    if not candidate_ids:
        raise HTTPException(status_code=400, detail="No candidates to match for this job posting")

    scheduled_for = next_daily_occurrence(settings.MATCH_DAILY_HOUR)
    task = task_ledger.create(
        db, TaskKind.MATCH,
        {"job_posting_id": job.id, "candidate_ids": candidate_ids},
        scheduled_for=scheduled_for,
    )

    message = f"{len(candidate_ids)} candidates scheduled for matching against '{job.title}' at {format_local(scheduled_for)}"
    logger.info(f"[Match {task.id}] {message}")
    return MatchEnqueueResponse(task=MatchTaskResponse.model_validate(task), message=message)


@router.get("", response_model=List[MatchTaskResponse])
def list_match_tasks(
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db)
):
    """List Match tasks, newest first"""
    return task_ledger.list_tasks(db, TaskKind.MATCH, status=status_filter, skip=skip, limit=limit)


@router.get("/progress/{job_posting_id}", response_model=MatchProgressResponse)
async def get_match_progress(job_posting_id: str, supervisor: TaskSupervisor = Depends(get_supervisor)):
    """
    Live progress of an interactive match run for a job posting.

    Only visible on the process running the batch; returns status 'idle'
    otherwise. The task record stays authoritative.
    """
    return supervisor.progress.snapshot(job_posting_id)


@router.get("/{task_id}", response_model=MatchTaskResponse)
def get_match_task(task_id: str, db: Session = Depends(get_db)):
    with ledger_errors():
        return task_ledger.get_or_raise(db, TaskKind.MATCH, task_id)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_match_task(task_id: str, db: Session = Depends(get_db)):
    """Delete a Match task. Refused with 409 while it is RUNNING."""
    with ledger_errors():
        task_ledger.delete(db, TaskKind.MATCH, task_id)


@router.post("/{task_id}/cancel", response_model=MatchTaskResponse)
def cancel_match_task(task_id: str, db: Session = Depends(get_db)):
    """Cancel a PENDING Match task"""
    with ledger_errors():
        return task_ledger.cancel(db, TaskKind.MATCH, task_id)


@router.post("/{task_id}/run", response_model=RunTaskResponse, status_code=status.HTTP_202_ACCEPTED)
async def run_match_task(
    task_id: str,
    db: Session = Depends(get_db),
    supervisor: TaskSupervisor = Depends(get_supervisor)
):
    """
    Start a PENDING Match task now. Follow it with
    GET /match-tasks/progress/{job_posting_id}.

    Raises:
        HTTPException 404: Unknown task
        HTTPException 409: Task is not PENDING, or another batch for the job is running
    """
    with ledger_errors():
        await run_in_threadpool(supervisor.claim, db, TaskKind.MATCH, task_id)
    supervisor.start_claimed(TaskKind.MATCH, task_id)
    return RunTaskResponse(id=task_id, status=TaskStatus.RUNNING, message="Matching started")
