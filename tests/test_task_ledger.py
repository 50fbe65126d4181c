"""
Test suite for the durable task ledger.

Tests cover:
- Status transitions and their guards
- Run-now / poller claim races
- Stale task recovery per queue kind
"""

from datetime import timedelta

import pytest

from app.core.time_utils import utcnow
from app.crud import task_ledger
from app.crud.task_ledger import TaskConflictError, TaskNotFoundError
from app.models.task import TaskKind, TaskStatus, can_transition


def _parse_payload(file_id="file-1"):
    return {"file_id": file_id, "object_name": f"resumes/{file_id}.pdf", "content_type": "application/pdf"}


class TestTransitions:
    """Tests for the task status machine"""

    @pytest.mark.parametrize("source,target", [
        (TaskStatus.PENDING, TaskStatus.RUNNING),
        (TaskStatus.PENDING, TaskStatus.CANCELLED),
        (TaskStatus.RUNNING, TaskStatus.COMPLETED),
        (TaskStatus.RUNNING, TaskStatus.FAILED),
        (TaskStatus.RUNNING, TaskStatus.PENDING),
    ])
    def test_allowed(self, source, target):
        assert can_transition(source, target)

    @pytest.mark.parametrize("source,target", [
        (TaskStatus.COMPLETED, TaskStatus.RUNNING),
        (TaskStatus.FAILED, TaskStatus.RUNNING),
        (TaskStatus.CANCELLED, TaskStatus.PENDING),
        (TaskStatus.PENDING, TaskStatus.COMPLETED),
    ])
    def test_illegal(self, source, target):
        assert not can_transition(source, target)

    def test_create_is_pending(self, db_session):
        task = task_ledger.create(db_session, TaskKind.PARSE, _parse_payload())

        assert task.status == TaskStatus.PENDING
        assert task.scheduled_for is None
        assert task.error is None

    def test_create_rejects_unknown_fields(self, db_session):
        with pytest.raises(ValueError):
            task_ledger.create(db_session, TaskKind.GENERATION, {"title": "x", "department": "y", "salary": 1})

    def test_full_lifecycle(self, db_session):
        task = task_ledger.create(db_session, TaskKind.GENERATION, {"title": "Backend Engineer", "department": "R&D", "tags": []})

        assert task_ledger.mark_running(db_session, TaskKind.GENERATION, task.id)
        assert task_ledger.mark_completed(
            db_session, TaskKind.GENERATION, task.id,
            {"description": "Build APIs", "requirements": "Python"},
        )

        db_session.refresh(task)
        assert task.status == TaskStatus.COMPLETED
        assert task.description == "Build APIs"

    def test_complete_requires_running(self, db_session):
        task = task_ledger.create(db_session, TaskKind.PARSE, _parse_payload())

        assert not task_ledger.mark_completed(db_session, TaskKind.PARSE, task.id, {"candidate_id": "c1"})
        db_session.refresh(task)
        assert task.status == TaskStatus.PENDING

    def test_cancel_pending(self, db_session):
        task = task_ledger.create(db_session, TaskKind.PARSE, _parse_payload())

        cancelled = task_ledger.cancel(db_session, TaskKind.PARSE, task.id)

        assert cancelled.status == TaskStatus.CANCELLED

    def test_cancel_running_conflicts(self, db_session):
        task = task_ledger.create(db_session, TaskKind.PARSE, _parse_payload())
        task_ledger.mark_running(db_session, TaskKind.PARSE, task.id)

        with pytest.raises(TaskConflictError):
            task_ledger.cancel(db_session, TaskKind.PARSE, task.id)

    def test_delete_running_conflicts(self, db_session):
        task = task_ledger.create(db_session, TaskKind.PARSE, _parse_payload())
        task_ledger.mark_running(db_session, TaskKind.PARSE, task.id)

        with pytest.raises(TaskConflictError):
            task_ledger.delete(db_session, TaskKind.PARSE, task.id)

    def test_unknown_id(self, db_session):
        with pytest.raises(TaskNotFoundError):
            task_ledger.get_or_raise(db_session, TaskKind.MATCH, "does-not-exist")


class TestClaims:
    """Tests for mark_running and claim_due"""

    def test_double_claim_only_one_wins(self, db_session):
        task = task_ledger.create(db_session, TaskKind.PARSE, _parse_payload())

        first = task_ledger.mark_running(db_session, TaskKind.PARSE, task.id)
        second = task_ledger.mark_running(db_session, TaskKind.PARSE, task.id)

        assert first is True
        assert second is False

    def test_busy_target_blocks_claim(self, db_session):
        payload = {"job_posting_id": "job-1", "candidate_ids": ["c1", "c2"]}
        running = task_ledger.create(db_session, TaskKind.MATCH, payload)
        waiting = task_ledger.create(db_session, TaskKind.MATCH, payload)
        task_ledger.mark_running(db_session, TaskKind.MATCH, running.id)

        assert not task_ledger.mark_running(db_session, TaskKind.MATCH, waiting.id)
        db_session.refresh(waiting)
        assert waiting.status == TaskStatus.PENDING

        # A different job posting is not blocked
        other = task_ledger.create(db_session, TaskKind.MATCH, {"job_posting_id": "job-2", "candidate_ids": ["c1"]})
        assert task_ledger.mark_running(db_session, TaskKind.MATCH, other.id)

    def test_match_total_defaults_to_candidate_count(self, db_session):
        task = task_ledger.create(db_session, TaskKind.MATCH, {"job_posting_id": "job-1", "candidate_ids": ["a", "b", "c"]})

        assert task.total_candidates == 3
        assert task.processed_count == 0

    def test_claim_due_respects_schedule(self, db_session):
        now = utcnow()
        due = task_ledger.create(db_session, TaskKind.PARSE, _parse_payload("due"), scheduled_for=now - timedelta(minutes=1))
        later = task_ledger.create(db_session, TaskKind.PARSE, _parse_payload("later"), scheduled_for=now + timedelta(hours=1))
        unscheduled = task_ledger.create(db_session, TaskKind.PARSE, _parse_payload("asap"))

        ids = [task.id for task in task_ledger.claim_due(db_session, TaskKind.PARSE, now=now)]

        assert due.id in ids
        assert unscheduled.id in ids
        assert later.id not in ids

    def test_create_many_is_all_or_nothing(self, db_session):
        with pytest.raises(ValueError):
            task_ledger.create_many(db_session, TaskKind.PARSE, [_parse_payload("a"), {"file_id": "b", "bogus": 1}])

        assert task_ledger.list_tasks(db_session, TaskKind.PARSE) == []


class TestStaleRecovery:
    """Tests for stuck RUNNING task recovery"""

    def test_parse_requeued_and_error_cleared(self, db_session):
        task = task_ledger.create(db_session, TaskKind.PARSE, _parse_payload())
        task_ledger.mark_running(db_session, TaskKind.PARSE, task.id)
        task.error = "worker vanished"
        db_session.commit()

        count = task_ledger.sweep_stale(db_session, TaskKind.PARSE, timedelta(minutes=30), now=utcnow() + timedelta(hours=1))

        db_session.refresh(task)
        assert count == 1
        assert task.status == TaskStatus.PENDING
        assert task.error is None

    def test_match_failed_with_reason(self, db_session):
        task = task_ledger.create(db_session, TaskKind.MATCH, {"job_posting_id": "job-1", "candidate_ids": ["c1"]})
        task_ledger.mark_running(db_session, TaskKind.MATCH, task.id)

        count = task_ledger.sweep_stale(db_session, TaskKind.MATCH, timedelta(minutes=60), now=utcnow() + timedelta(hours=2))

        db_session.refresh(task)
        assert count == 1
        assert task.status == TaskStatus.FAILED
        assert task.error == task_ledger.STALE_FAILURE_REASON

    def test_match_cannot_be_requeued(self, db_session):
        with pytest.raises(ValueError):
            task_ledger.reset_stuck_to_pending(db_session, TaskKind.MATCH, timedelta(minutes=5))

    def test_fresh_running_task_untouched(self, db_session):
        task = task_ledger.create(db_session, TaskKind.GENERATION, {"title": "QA", "department": "R&D", "tags": []})
        task_ledger.mark_running(db_session, TaskKind.GENERATION, task.id)

        assert task_ledger.sweep_stale(db_session, TaskKind.GENERATION, timedelta(minutes=10)) == 0
        db_session.refresh(task)
        assert task.status == TaskStatus.RUNNING

    def test_cleanup_twice_is_noop(self, db_session):
        task = task_ledger.create(db_session, TaskKind.PARSE, _parse_payload())
        task_ledger.mark_running(db_session, TaskKind.PARSE, task.id)
        later = utcnow() + timedelta(minutes=10)

        first = task_ledger.cleanup_stale(db_session, timedelta(minutes=5), now=later)
        second = task_ledger.cleanup_stale(db_session, timedelta(minutes=5), now=later)

        assert first == {"parse": 1, "match": 0, "generation": 0}
        assert sum(second.values()) == 0
