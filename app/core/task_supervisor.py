"""
Process-wide owner of background task execution.

Built once in the FastAPI lifespan and kept on app.state. It owns the three
poll loops and every executor coroutine they or the API start, so shutdown
can stop them all and nothing runs unsupervised.
"""

import asyncio
import logging
from typing import Callable, Coroutine, Dict, Optional, Set
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.event_stream import EventStream
from app.core.task_scheduler import PollScheduler, QueuePolicy, default_policies
from app.crud import task_ledger
from app.crud.task_ledger import TaskConflictError
from app.models.task import TaskKind, TaskStatus
from app.services.match_progress import MatchProgressStore
from app.tasks.context import ExecutionContext
from app.tasks.generation_tasks import execute_generation_task
from app.tasks.match_tasks import execute_match_task
from app.tasks.parse_tasks import execute_parse_task

logger = logging.getLogger(__name__)

EXECUTORS: Dict[TaskKind, Callable[..., Coroutine]] = {
    TaskKind.PARSE: execute_parse_task,
    TaskKind.MATCH: execute_match_task,
    TaskKind.GENERATION: execute_generation_task,
}


class TaskSupervisor:
    """
    Args:
        ctx: Collaborators passed to every executor
        poll_interval: Seconds between scheduler ticks
        policies: Staleness rules per kind (defaults from settings)
        shutdown_grace: Seconds stop() waits for running executions before cancelling them
    """

    def __init__(
        self,
        ctx: Optional[ExecutionContext] = None,
        poll_interval: float = settings.POLL_INTERVAL_SECONDS,
        policies: Optional[Dict[TaskKind, QueuePolicy]] = None,
        shutdown_grace: float = 30.0,
    ):
        self.ctx = ctx or ExecutionContext()
        self.shutdown_grace = shutdown_grace
        policies = policies or default_policies()
        self.schedulers: Dict[TaskKind, PollScheduler] = {
            kind: PollScheduler(
                policies[kind],
                self.dispatch,
                self.ctx.session_factory,
                interval=poll_interval,
                db_warning=self.ctx.db_warning,
            )
            for kind in TaskKind
        }
        self._loops: Dict[TaskKind, asyncio.Task] = {}
        self._running: Set[asyncio.Task] = set()
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def progress(self) -> MatchProgressStore:
        return self.ctx.progress

    @property
    def in_flight(self) -> int:
        return len(self._running)

    def start(self) -> bool:
        """
        Arm the poll loops. A second call is a no-op.

        Returns:
            True if this call started the loops
        """
        if self._started:
            logger.info("Task supervisor already started, skipping")
            return False
        for kind, scheduler in self.schedulers.items():
            self._loops[kind] = asyncio.create_task(scheduler.run(), name=f"{kind.value}-scheduler")
        self._started = True
        logger.info(f"Task supervisor started {len(self._loops)} schedulers")
        return True

    async def stop(self) -> None:
        """Cancel the poll loops, then wait for (or cancel) running executions"""
        if not self._started:
            return
        for loop_task in self._loops.values():
            loop_task.cancel()
        await asyncio.gather(*self._loops.values(), return_exceptions=True)
        self._loops.clear()

        if self._running:
            logger.info(f"Waiting up to {self.shutdown_grace:.0f}s for {len(self._running)} running tasks")
            _, pending = await asyncio.wait(set(self._running), timeout=self.shutdown_grace)
            for task in pending:
                task.cancel()
            if pending:
                # Left RUNNING in the ledger; the stale sweep recovers them
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning(f"Cancelled {len(pending)} tasks still running at shutdown")

        self.progress.clear()
        self._started = False
        logger.info("Task supervisor stopped")

    def spawn(self, coro: Coroutine, name: Optional[str] = None) -> asyncio.Task:
        """Run a coroutine in the background and keep track of it until it finishes"""
        task = asyncio.create_task(coro, name=name)
        self._running.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._running.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task {task.get_name()} crashed: {exc}", exc_info=exc)

    def dispatch(
        self,
        kind: TaskKind,
        task_id: str,
        claimed: bool = False,
        reporter: Optional[EventStream] = None,
        progress: Optional[MatchProgressStore] = None,
    ) -> asyncio.Task:
        """Start the kind's executor for one task in the background"""
        kind = TaskKind(kind)
        kwargs = {"claimed": claimed}
        if kind == TaskKind.MATCH:
            kwargs["progress"] = progress
        else:
            kwargs["reporter"] = reporter
        return self.spawn(EXECUTORS[kind](self.ctx, task_id, **kwargs), name=f"{kind.value}-{task_id}")

    def claim(self, db: Session, kind: TaskKind, task_id: str) -> None:
        """
        Move a PENDING task to RUNNING for an immediate start. Database work
        only; callers on the event loop run it in a thread.

        Raises:
            TaskNotFoundError: Unknown id
            TaskConflictError: Task is not PENDING, or its target is busy
        """
        record = task_ledger.get_or_raise(db, kind, task_id)
        if record.status != TaskStatus.PENDING:
            raise TaskConflictError(
                f"Only PENDING tasks can be started (status: {record.status.value})", record.status
            )
        if not task_ledger.mark_running(db, kind, task_id):
            db.refresh(record)
            raise TaskConflictError("Task was started by another worker or its target is busy", record.status)

    def start_claimed(self, kind: TaskKind, task_id: str, reporter: Optional[EventStream] = None) -> asyncio.Task:
        """Dispatch a task already claimed with claim()"""
        progress = self.progress if kind == TaskKind.MATCH else None
        return self.dispatch(kind, task_id, claimed=True, reporter=reporter, progress=progress)

    def run_now(
        self,
        db: Session,
        kind: TaskKind,
        task_id: str,
        reporter: Optional[EventStream] = None,
    ) -> asyncio.Task:
        """
        Start a PENDING task immediately, ignoring its scheduled_for.

        The task is moved to RUNNING before this returns, so callers can
        report the new status right away.

        Raises:
            TaskNotFoundError: Unknown id
            TaskConflictError: Task is not PENDING, or its target is busy
        """
        self.claim(db, kind, task_id)
        return self.start_claimed(kind, task_id, reporter=reporter)
