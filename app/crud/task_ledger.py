"""
CRUD operations for the durable task ledger.

Every queue kind (Parse, Match, Generation) shares the same status machine.
Transitions are written as conditional UPDATEs scoped by task id so two
pollers, or a poller and a run-now request, can never both start one task.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional
from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session, aliased

from app.core.time_utils import utcnow, to_naive_utc
from app.models.task import MatchTask, TaskKind, TaskStatus, can_transition, model_for

logger = logging.getLogger(__name__)

# How each kind recovers a RUNNING row whose worker disappeared
REQUEUE = "requeue"
FAIL = "fail"

RECOVERY_ACTIONS = {
    TaskKind.PARSE: REQUEUE,
    TaskKind.GENERATION: REQUEUE,
    # Progress is tracked per candidate; restarting from the top is unsafe
    TaskKind.MATCH: FAIL,
}

# Operator cleanup: only Parse is requeued
CLEANUP_ACTIONS = {
    TaskKind.PARSE: REQUEUE,
    TaskKind.GENERATION: FAIL,
    TaskKind.MATCH: FAIL,
}

STALE_FAILURE_REASON = "Execution timed out: the worker stopped reporting progress and the task was cleaned up automatically"


class TaskNotFoundError(Exception):
    """Raised when a task id does not exist for the given kind"""
    pass


class TaskConflictError(Exception):
    """Raised when a task is not in a status that allows the requested operation"""

    def __init__(self, message: str, status: Optional[TaskStatus] = None):
        super().__init__(message)
        self.status = status


def _clean_payload(model, payload: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(payload) - set(model.payload_fields)
    if unknown:
        raise ValueError(f"Unknown fields for {model.__name__}: {sorted(unknown)}")
    data = dict(payload)
    if model is MatchTask:
        data.setdefault("total_candidates", len(data.get("candidate_ids") or []))
    return data


def create(
    db: Session,
    kind: TaskKind,
    payload: Dict[str, Any],
    scheduled_for: Optional[datetime] = None
):
    """
    Create a PENDING task record.

    Args:
        db: Database session
        kind: Queue kind
        payload: Kind-specific input columns
        scheduled_for: Earliest start (aware or naive UTC); None means now

    Returns:
        Created task record
    """
    model = model_for(kind)
    record = model(
        **_clean_payload(model, payload),
        status=TaskStatus.PENDING,
        scheduled_for=to_naive_utc(scheduled_for) if scheduled_for else None,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def create_many(
    db: Session,
    kind: TaskKind,
    payloads: Iterable[Dict[str, Any]],
    scheduled_for: Optional[datetime] = None
) -> list:
    """
    Create several PENDING records in one transaction (all or nothing).
    """
    model = model_for(kind)
    due = to_naive_utc(scheduled_for) if scheduled_for else None
    records = [
        model(**_clean_payload(model, payload), status=TaskStatus.PENDING, scheduled_for=due)
        for payload in payloads
    ]
    try:
        db.add_all(records)
        db.commit()
    except Exception:
        db.rollback()
        raise
    for record in records:
        db.refresh(record)
    return records


def get_by_id(db: Session, kind: TaskKind, task_id: str):
    model = model_for(kind)
    return db.query(model).filter(model.id == task_id).first()


def get_or_raise(db: Session, kind: TaskKind, task_id: str):
    """Like get_by_id, but raises TaskNotFoundError"""
    record = get_by_id(db, kind, task_id)
    if record is None:
        raise TaskNotFoundError(f"{TaskKind(kind).value} task {task_id} not found")
    return record


def list_tasks(
    db: Session,
    kind: TaskKind,
    status: Optional[TaskStatus] = None,
    skip: int = 0,
    limit: int = 100
) -> list:
    """
    List task records newest first, optionally filtered by status.
    """
    model = model_for(kind)
    query = db.query(model)
    if status:
        query = query.filter(model.status == status)
    return query.order_by(model.created_at.desc()).offset(skip).limit(limit).all()


def claim_due(db: Session, kind: TaskKind, now: Optional[datetime] = None) -> list:
    """
    Return PENDING records that may start now, oldest first.

    Nothing is locked here; each record still has to win mark_running().
    """
    model = model_for(kind)
    now = to_naive_utc(now) if now else utcnow()
    return (
        db.query(model)
        .filter(
            model.status == TaskStatus.PENDING,
            or_(model.scheduled_for.is_(None), model.scheduled_for <= now),
        )
        .order_by(model.created_at.asc())
        .all()
    )


def _transition(db: Session, model, task_id: str, source: TaskStatus, values: Dict[str, Any], *extra_conditions) -> bool:
    target = values.get("status", source)
    if target != source and not can_transition(source, target):
        raise ValueError(f"Illegal task transition {source.value} -> {target.value}")
    values = dict(values, updated_at=utcnow())
    stmt = (
        update(model)
        .where(model.id == task_id, model.status == source, *extra_conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    db.commit()
    return result.rowcount == 1


def mark_running(db: Session, kind: TaskKind, task_id: str) -> bool:
    """
    Atomically move a task PENDING -> RUNNING.

    The claim succeeds only if the row is still PENDING and no other task of
    the same kind is RUNNING against the same target (job posting, file).
    Must be applied before any external side effect starts.

    Returns:
        True if this caller now owns the task, False otherwise
    """
    model = model_for(kind)
    record = get_or_raise(db, kind, task_id)
    key_name = model.target_key_column

    other = aliased(model)
    target_busy = (
        select(other.id)
        .where(
            getattr(other, key_name) == record.target_key,
            other.status == TaskStatus.RUNNING,
            other.id != task_id,
        )
        .exists()
    )

    claimed = _transition(
        db, model, task_id, TaskStatus.PENDING,
        {"status": TaskStatus.RUNNING, "error": None},
        ~target_busy,
    )
    if not claimed:
        logger.info(f"[{TaskKind(kind).value} {task_id}] Claim lost (already started or target busy)")
    return claimed


def mark_completed(db: Session, kind: TaskKind, task_id: str, result: Optional[Dict[str, Any]] = None) -> bool:
    """
    RUNNING -> COMPLETED, storing result columns.
    """
    model = model_for(kind)
    result = result or {}
    unknown = set(result) - set(model.result_fields)
    if unknown:
        raise ValueError(f"Unknown result fields for {model.__name__}: {sorted(unknown)}")
    values = dict(result, status=TaskStatus.COMPLETED, error=None)
    return _transition(db, model, task_id, TaskStatus.RUNNING, values)


def mark_failed(db: Session, kind: TaskKind, task_id: str, error_message: str) -> bool:
    """
    RUNNING -> FAILED with a user-facing message.
    """
    model = model_for(kind)
    return _transition(
        db, model, task_id, TaskStatus.RUNNING,
        {"status": TaskStatus.FAILED, "error": error_message or "Task failed"},
    )


def update_progress(db: Session, task_id: str, processed: int) -> bool:
    """Record per-candidate progress on a RUNNING match task"""
    return _transition(
        db, MatchTask, task_id, TaskStatus.RUNNING,
        {"processed_count": processed},
    )


def cancel(db: Session, kind: TaskKind, task_id: str):
    """
    PENDING -> CANCELLED. Nothing has run yet, so there is nothing to undo.

    Raises:
        TaskNotFoundError: Unknown id
        TaskConflictError: Task is not PENDING
    """
    model = model_for(kind)
    if not _transition(db, model, task_id, TaskStatus.PENDING, {"status": TaskStatus.CANCELLED}):
        record = get_or_raise(db, kind, task_id)
        raise TaskConflictError(f"Only PENDING tasks can be cancelled (status: {record.status.value})", record.status)
    return get_by_id(db, kind, task_id)


def delete(db: Session, kind: TaskKind, task_id: str) -> None:
    """
    Delete a task record. Refused while the task is RUNNING.
    """
    record = get_or_raise(db, kind, task_id)
    if record.status == TaskStatus.RUNNING:
        raise TaskConflictError("Task is running and cannot be deleted", record.status)
    db.delete(record)
    db.commit()


def _stale_cutoff(older_than: timedelta, now: Optional[datetime]) -> datetime:
    now = to_naive_utc(now) if now else utcnow()
    return now - older_than


def reset_stuck_to_pending(db: Session, kind: TaskKind, older_than: timedelta, now: Optional[datetime] = None) -> int:
    """
    Requeue RUNNING tasks not updated for `older_than`. Clears the error.

    Only for kinds that are safe to re-attempt from scratch.

    Returns:
        Number of records reset
    """
    if RECOVERY_ACTIONS[TaskKind(kind)] != REQUEUE:
        raise ValueError(f"{TaskKind(kind).value} tasks cannot be requeued")
    model = model_for(kind)
    stmt = (
        update(model)
        .where(model.status == TaskStatus.RUNNING, model.updated_at <= _stale_cutoff(older_than, now))
        .values(status=TaskStatus.PENDING, error=None, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    count = db.execute(stmt).rowcount
    db.commit()
    return count


def reset_stuck_to_failed(
    db: Session,
    kind: TaskKind,
    older_than: timedelta,
    reason: str = STALE_FAILURE_REASON,
    now: Optional[datetime] = None
) -> int:
    """
    Fail RUNNING tasks not updated for `older_than`, recording `reason`.

    Returns:
        Number of records failed
    """
    model = model_for(kind)
    stmt = (
        update(model)
        .where(model.status == TaskStatus.RUNNING, model.updated_at <= _stale_cutoff(older_than, now))
        .values(status=TaskStatus.FAILED, error=reason, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    count = db.execute(stmt).rowcount
    db.commit()
    return count


def sweep_stale(
    db: Session,
    kind: TaskKind,
    older_than: timedelta,
    now: Optional[datetime] = None,
    action: Optional[str] = None
) -> int:
    """Apply `action` (default: the kind's recovery action) to stale RUNNING tasks"""
    action = action or RECOVERY_ACTIONS[TaskKind(kind)]
    if action == REQUEUE:
        return reset_stuck_to_pending(db, kind, older_than, now=now)
    return reset_stuck_to_failed(db, kind, older_than, now=now)


def cleanup_stale(db: Session, older_than: timedelta, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Operator sweep across every kind with one global threshold.

    Parse tasks are requeued; Match and Generation tasks are failed.

    Returns:
        Records changed per kind, e.g. {"parse": 1, "match": 0, "generation": 0}
    """
    cleaned = {
        kind.value: sweep_stale(db, kind, older_than, now=now, action=CLEANUP_ACTIONS[kind])
        for kind in TaskKind
    }
    if any(cleaned.values()):
        logger.warning(f"Stale task cleanup changed records: {cleaned}")
    return cleaned


def count_by_status(db: Session, kind: TaskKind) -> Dict[str, int]:
    """Count records per status for one kind"""
    model = model_for(kind)
    counts = {status.value: 0 for status in TaskStatus}
    for record_status, in db.query(model.status).all():
        counts[record_status.value] += 1
    return counts
