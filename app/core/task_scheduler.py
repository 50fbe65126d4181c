"""
Interval pollers for the durable task queues.

One PollScheduler per queue kind. Every tick:

1. Stale sweep: RUNNING rows untouched for longer than the kind's threshold
   are requeued (Parse, Generation) or failed (Match).
2. Claim: PENDING rows whose scheduled_for has passed, oldest first.
3. Dispatch: each row is handed to the supervisor, which runs the kind's
   executor in the background. The tick does not wait for it.

A tick never raises. If the database is still starting up the tick logs a
throttled warning and tries again next interval. In the run loop the sweep and
claim execute in a worker thread; dispatch happens back on the event loop.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import is_database_unavailable
from app.core.logging_config import ThrottledLogger
from app.crud import task_ledger
from app.models.task import TaskKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueuePolicy:
    """Staleness rule for one queue kind"""
    kind: TaskKind
    stale_after: timedelta

    @property
    def stale_action(self) -> str:
        return task_ledger.RECOVERY_ACTIONS[self.kind]

    @property
    def stale_reason(self) -> Optional[str]:
        if self.stale_action == task_ledger.FAIL:
            return task_ledger.STALE_FAILURE_REASON
        return None


def default_policies() -> Dict[TaskKind, QueuePolicy]:
    # Thresholds sit well above each kind's external call timeouts
    return {
        TaskKind.PARSE: QueuePolicy(TaskKind.PARSE, timedelta(minutes=settings.PARSE_STALE_MINUTES)),
        TaskKind.MATCH: QueuePolicy(TaskKind.MATCH, timedelta(minutes=settings.MATCH_STALE_MINUTES)),
        TaskKind.GENERATION: QueuePolicy(TaskKind.GENERATION, timedelta(minutes=settings.GENERATION_STALE_MINUTES)),
    }


class PollScheduler:
    """
    Poller for one queue kind.

    Args:
        policy: Staleness rule for the kind
        dispatch: Hands a claimed task id to background execution
        session_factory: Returns a new Session per tick
        interval: Seconds between ticks
        db_warning: Throttled logger for datastore-unavailable warnings
    """

    def __init__(
        self,
        policy: QueuePolicy,
        dispatch: Callable[[TaskKind, str], object],
        session_factory: Callable[[], Session],
        interval: float = settings.POLL_INTERVAL_SECONDS,
        db_warning: Optional[ThrottledLogger] = None,
    ):
        self.policy = policy
        self.dispatch = dispatch
        self.session_factory = session_factory
        self.interval = interval
        self.db_warning = db_warning or ThrottledLogger(logger, settings.DB_UNAVAILABLE_LOG_COOLDOWN_SECONDS)
        self.log_prefix = f"[{policy.kind.value.capitalize()} scheduler]"

    @property
    def kind(self) -> TaskKind:
        return self.policy.kind

    def poll(self, now: Optional[datetime] = None) -> List[str]:
        """
        Sweep and claim. Database work only, safe to run off the event loop.

        Returns:
            Ids due for dispatch (empty if nothing was due or the database
            was unavailable)
        """
        db = self.session_factory()
        try:
            swept = task_ledger.sweep_stale(db, self.kind, self.policy.stale_after, now=now)
            if swept:
                action = "requeued" if self.policy.stale_action == task_ledger.REQUEUE else "failed"
                logger.warning(f"{self.log_prefix} {swept} stale RUNNING tasks {action}")

            return [task.id for task in task_ledger.claim_due(db, self.kind, now=now)]
        except Exception as e:
            if is_database_unavailable(e):
                self.db_warning.warning(f"{self.log_prefix} Database not ready, skipping this poll: {e}")
            else:
                logger.error(f"{self.log_prefix} Poll failed: {e}", exc_info=True)
            return []
        finally:
            db.close()

    def _dispatch_all(self, due_ids: List[str]) -> None:
        if due_ids:
            logger.info(f"{self.log_prefix} Dispatching {len(due_ids)} due tasks")
        for task_id in due_ids:
            self.dispatch(self.kind, task_id)

    def tick(self, now: Optional[datetime] = None) -> List[str]:
        """
        Run one poll cycle on the calling thread.

        Returns:
            Ids handed to dispatch
        """
        due_ids = self.poll(now)
        self._dispatch_all(due_ids)
        return due_ids

    async def run(self) -> None:
        """Tick immediately, then every `interval` seconds until cancelled"""
        logger.info(f"{self.log_prefix} Started, polling every {self.interval:.0f}s")
        while True:
            due_ids = await asyncio.to_thread(self.poll)
            self._dispatch_all(due_ids)
            await asyncio.sleep(self.interval)
