"""
Test suite for the queue pollers and the task supervisor.

Tests cover:
- Due task dispatch
- Stale sweep behaviour per queue kind
- Throttled warnings while the database is unavailable
- Supervisor start/stop and run-now
"""

import asyncio
import time
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from app.core.config import settings
from app.core.logging_config import ThrottledLogger
from app.core.task_scheduler import PollScheduler, QueuePolicy, default_policies
from app.core.task_supervisor import TaskSupervisor
from app.core.time_utils import utcnow
from app.crud import task_ledger
from app.crud.task_ledger import TaskConflictError
from app.models.task import TaskKind, TaskStatus
from app.services.resume_extraction import MAX_RETRIES, RETRY_BACKOFF_SECONDS
from tests.conftest import TestingSessionLocal


class BrokenSession:
    """Session whose every statement fails as if the server were still booting"""

    def _fail(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))

    query = _fail
    execute = _fail

    def rollback(self):
        pass

    def close(self):
        pass


class SlowSession(BrokenSession):
    """Session whose statements block for a while before failing"""

    def _fail(self, *args, **kwargs):
        time.sleep(0.3)
        raise OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))

    query = _fail
    execute = _fail


class RecordingLogger:
    def __init__(self):
        self.warnings = []

    def warning(self, message, *args):
        self.warnings.append(message)


def make_scheduler(kind, dispatched, session_factory=TestingSessionLocal, db_warning=None):
    return PollScheduler(
        default_policies()[kind],
        lambda k, task_id: dispatched.append((k, task_id)),
        session_factory,
        interval=60,
        db_warning=db_warning,
    )


class TestPollScheduler:

    def test_dispatches_due_tasks(self, db_session):
        now = utcnow()
        due = task_ledger.create(
            db_session, TaskKind.PARSE,
            {"file_id": "f1", "object_name": "resumes/f1.pdf"},
            scheduled_for=now - timedelta(seconds=1),
        )
        task_ledger.create(
            db_session, TaskKind.PARSE,
            {"file_id": "f2", "object_name": "resumes/f2.pdf"},
            scheduled_for=now + timedelta(hours=5),
        )
        dispatched = []

        ids = make_scheduler(TaskKind.PARSE, dispatched).tick(now=now)

        assert ids == [due.id]
        assert dispatched == [(TaskKind.PARSE, due.id)]

    def test_stale_parse_requeued_and_redispatched(self, db_session):
        task = task_ledger.create(db_session, TaskKind.PARSE, {"file_id": "f1", "object_name": "resumes/f1.pdf"})
        task_ledger.mark_running(db_session, TaskKind.PARSE, task.id)
        dispatched = []

        make_scheduler(TaskKind.PARSE, dispatched).tick(now=utcnow() + timedelta(hours=1))

        db_session.refresh(task)
        assert task.status == TaskStatus.PENDING
        assert task.error is None
        assert dispatched == [(TaskKind.PARSE, task.id)]

    def test_stale_match_failed_not_redispatched(self, db_session):
        task = task_ledger.create(db_session, TaskKind.MATCH, {"job_posting_id": "job-1", "candidate_ids": ["c1"]})
        task_ledger.mark_running(db_session, TaskKind.MATCH, task.id)
        dispatched = []

        make_scheduler(TaskKind.MATCH, dispatched).tick(now=utcnow() + timedelta(hours=2))

        db_session.refresh(task)
        assert task.status == TaskStatus.FAILED
        assert task.error == task_ledger.STALE_FAILURE_REASON
        assert dispatched == []

    def test_database_unavailable_is_throttled(self):
        recorder = RecordingLogger()
        dispatched = []
        scheduler = make_scheduler(
            TaskKind.GENERATION, dispatched,
            session_factory=BrokenSession,
            db_warning=ThrottledLogger(recorder, cooldown_seconds=30),
        )

        for _ in range(3):
            assert scheduler.tick() == []

        assert len(recorder.warnings) == 1
        assert "Database not ready" in recorder.warnings[0]
        assert dispatched == []

    def test_live_parse_inside_extraction_budget_not_reclaimed(self, db_session):
        budget = (MAX_RETRIES + 1) * settings.RESUME_LLM_TIMEOUT_SECONDS + sum(
            RETRY_BACKOFF_SECONDS * attempt for attempt in range(1, MAX_RETRIES + 1)
        )
        assert default_policies()[TaskKind.PARSE].stale_after.total_seconds() > budget

        task = task_ledger.create(db_session, TaskKind.PARSE, {"file_id": "f1", "object_name": "resumes/f1.pdf"})
        task_ledger.mark_running(db_session, TaskKind.PARSE, task.id)
        dispatched = []

        make_scheduler(TaskKind.PARSE, dispatched).tick(now=utcnow() + timedelta(seconds=budget))

        db_session.refresh(task)
        assert task.status == TaskStatus.RUNNING
        assert dispatched == []

    async def test_slow_database_does_not_block_event_loop(self):
        recorder = RecordingLogger()
        scheduler = PollScheduler(
            default_policies()[TaskKind.PARSE],
            lambda k, task_id: None,
            SlowSession,
            interval=0.05,
            db_warning=ThrottledLogger(recorder, cooldown_seconds=30),
        )
        gaps = []

        async def heartbeat():
            last = time.monotonic()
            for _ in range(10):
                await asyncio.sleep(0.05)
                now = time.monotonic()
                gaps.append(now - last)
                last = now

        loop_task = asyncio.create_task(scheduler.run())
        try:
            await heartbeat()
        finally:
            loop_task.cancel()
            await asyncio.gather(loop_task, return_exceptions=True)

        assert max(gaps) < 0.25
        assert recorder.warnings

    def test_policy_actions(self):
        policies = default_policies()

        assert policies[TaskKind.PARSE].stale_action == task_ledger.REQUEUE
        assert policies[TaskKind.GENERATION].stale_reason is None
        assert policies[TaskKind.MATCH].stale_reason == task_ledger.STALE_FAILURE_REASON


class TestTaskSupervisor:

    async def test_start_is_idempotent(self, execution_context):
        supervisor = TaskSupervisor(ctx=execution_context, poll_interval=3600)

        assert supervisor.start() is True
        assert supervisor.start() is False
        assert len(supervisor._loops) == 3

        await supervisor.stop()
        assert not supervisor.started

    async def test_stop_without_start(self, execution_context):
        supervisor = TaskSupervisor(ctx=execution_context)

        await supervisor.stop()

        assert not supervisor.started

    async def test_run_now_executes_immediately(self, db_session, execution_context, fake_llm):
        fake_llm.responder = lambda system, user: {"description": "Own the API", "requirements": "Python"}
        task = task_ledger.create(db_session, TaskKind.GENERATION, {"title": "Backend Engineer", "department": "R&D", "tags": ["Python"]})
        supervisor = TaskSupervisor(ctx=execution_context)

        running = supervisor.run_now(db_session, TaskKind.GENERATION, task.id)
        db_session.refresh(task)
        assert task.status == TaskStatus.RUNNING

        await running
        db_session.refresh(task)
        assert task.status == TaskStatus.COMPLETED
        assert task.description == "Own the API"
        assert supervisor.in_flight == 0

    async def test_run_now_rejects_non_pending(self, db_session, execution_context):
        task = task_ledger.create(db_session, TaskKind.GENERATION, {"title": "QA", "department": "R&D", "tags": []})
        task_ledger.cancel(db_session, TaskKind.GENERATION, task.id)
        supervisor = TaskSupervisor(ctx=execution_context)

        with pytest.raises(TaskConflictError):
            supervisor.run_now(db_session, TaskKind.GENERATION, task.id)

        assert supervisor.in_flight == 0

    async def test_custom_policy(self, execution_context):
        policies = default_policies()
        policies[TaskKind.PARSE] = QueuePolicy(TaskKind.PARSE, timedelta(minutes=1))

        supervisor = TaskSupervisor(ctx=execution_context, policies=policies)

        assert supervisor.schedulers[TaskKind.PARSE].policy.stale_after == timedelta(minutes=1)
