"""
Parse queue executor: one uploaded resume file -> one candidate.

Runs from the poll scheduler (scheduled uploads) or from a run-now request,
optionally streaming progress to the caller. Either way the outcome is
written to the task ledger.
"""

import asyncio
import logging
from typing import Optional

from app.core.database import is_database_unavailable
from app.core.event_stream import EventStream
from app.crud import task_ledger
from app.models.task import TaskKind
from app.services.resume_ingest import parse_resume_from_storage
from app.tasks.context import ExecutionContext, failure_message, record_failure

logger = logging.getLogger(__name__)


async def execute_parse_task(
    ctx: ExecutionContext,
    task_id: str,
    claimed: bool = False,
    reporter: Optional[EventStream] = None,
) -> None:
    """
    Execute one Parse task. Never raises.

    Args:
        ctx: Shared collaborators
        task_id: ScheduledParse id
        claimed: True when the caller already moved the task to RUNNING
        reporter: Event stream of an interactive caller, if any
    """
    log_prefix = f"[Parse {task_id}]"
    db = ctx.session_factory()

    try:
        if not claimed and not await asyncio.to_thread(task_ledger.mark_running, db, TaskKind.PARSE, task_id):
            if reporter:
                reporter.error("Task is no longer pending")
            return

        task = await asyncio.to_thread(task_ledger.get_or_raise, db, TaskKind.PARSE, task_id)
        logger.info(f"{log_prefix} Processing {task.original_name or task.object_name}")

        try:
            candidate_id = await parse_resume_from_storage(
                db, task, ctx.storage, ctx.llm,
                on_progress=reporter.progress if reporter else None,
            )
        except Exception as e:
            if is_database_unavailable(e):
                raise
            db.rollback()
            message = failure_message(e)
            logger.error(f"{log_prefix} Failed: {message}", exc_info=not isinstance(e, ValueError))
            await asyncio.to_thread(task_ledger.mark_failed, db, TaskKind.PARSE, task_id, message)
            if reporter:
                reporter.error(message)
            return

        if not await asyncio.to_thread(
            task_ledger.mark_completed, db, TaskKind.PARSE, task_id, {"candidate_id": candidate_id}
        ):
            logger.warning(f"{log_prefix} Candidate {candidate_id} saved but the task was no longer RUNNING")
            if reporter:
                reporter.error("Task was reset while parsing; it will be picked up again")
            return
        logger.info(f"{log_prefix} Completed, candidate {candidate_id}")
        if reporter:
            reporter.done({"task_id": task_id, "candidate_id": candidate_id})

    except Exception as e:
        if is_database_unavailable(e):
            # Status stays as is; a stale RUNNING row is requeued by the sweep
            ctx.report_unavailable(log_prefix, e)
            if reporter:
                reporter.error("Database temporarily unavailable, please retry later")
            return
        logger.error(f"{log_prefix} Unexpected executor error: {e}", exc_info=True)
        record_failure(db, TaskKind.PARSE, task_id, "Unexpected error while parsing the resume", log_prefix)
        if reporter:
            reporter.error("Unexpected error while parsing the resume")
    finally:
        if reporter:
            reporter.close()
        db.close()
