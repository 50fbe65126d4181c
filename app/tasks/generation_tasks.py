"""
Generation queue executor: draft a job description with the LLM.
"""

import asyncio
import logging
from typing import Optional

from app.core.database import is_database_unavailable
from app.core.event_stream import EventStream
from app.crud import task_ledger
from app.models.task import TaskKind
from app.services.job_description_generator import JobDescriptionGenerationError, generate_job_description
from app.tasks.context import ExecutionContext, failure_message, record_failure

logger = logging.getLogger(__name__)


async def execute_generation_task(
    ctx: ExecutionContext,
    task_id: str,
    claimed: bool = False,
    reporter: Optional[EventStream] = None,
) -> None:
    """
    Execute one Generation task. Never raises.

    Args:
        ctx: Shared collaborators
        task_id: AiGenTask id
        claimed: True when the caller already moved the task to RUNNING
        reporter: Event stream of an interactive caller, if any
    """
    log_prefix = f"[Generation {task_id}]"
    db = ctx.session_factory()

    try:
        if not claimed and not await asyncio.to_thread(task_ledger.mark_running, db, TaskKind.GENERATION, task_id):
            if reporter:
                reporter.error("Task is no longer pending")
            return

        task = await asyncio.to_thread(task_ledger.get_or_raise, db, TaskKind.GENERATION, task_id)
        logger.info(f"{log_prefix} Generating description for '{task.title}' ({task.department})")
        if reporter:
            reporter.progress(10, "AI is writing the job description...")

        try:
            result = await generate_job_description(task.title, task.department, list(task.tags or []), ctx.llm)
        except JobDescriptionGenerationError as e:
            message = failure_message(e)
            logger.error(f"{log_prefix} Failed: {message}")
            await asyncio.to_thread(task_ledger.mark_failed, db, TaskKind.GENERATION, task_id, message)
            if reporter:
                reporter.error(message)
            return

        if reporter:
            reporter.progress(90, "Saving result...")
        if not await asyncio.to_thread(task_ledger.mark_completed, db, TaskKind.GENERATION, task_id, result):
            logger.warning(f"{log_prefix} Draft discarded, the task was no longer RUNNING")
            if reporter:
                reporter.error("Task was reset or cleaned up before it finished")
            return
        logger.info(f"{log_prefix} Completed")
        if reporter:
            reporter.done(dict(result, task_id=task_id))

    except Exception as e:
        if is_database_unavailable(e):
            ctx.report_unavailable(log_prefix, e)
            if reporter:
                reporter.error("Database temporarily unavailable, please retry later")
            return
        logger.error(f"{log_prefix} Unexpected executor error: {e}", exc_info=True)
        record_failure(db, TaskKind.GENERATION, task_id, "Unexpected error while generating the description", log_prefix)
        if reporter:
            reporter.error("Unexpected error while generating the description")
    finally:
        if reporter:
            reporter.close()
        db.close()
