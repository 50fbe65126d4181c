"""
Match queue executor: evaluate a set of candidates against one job posting.

Candidates are evaluated with bounded concurrency. An LLM failure for one
candidate falls back to the tag score for that candidate only; the rest of
the batch is unaffected. Progress is recorded per candidate in the ledger
and, for interactive runs, in the in-memory progress store. Loading the
batch and the final status write run in a worker thread; per-candidate
writes share the session on the event loop.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from app.core.batch_executor import run_bounded
from app.core.config import settings
from app.core.database import is_database_unavailable
from app.crud import task_ledger
from app.models.candidate import Candidate
from app.models.job_posting import JobPosting
from app.models.task import TaskKind
from app.services.match_engine import evaluate_pair, update_candidate_total_score, upsert_match_result
from app.services.match_progress import MatchProgressStore
from app.tasks.context import ExecutionContext, failure_message, record_failure

logger = logging.getLogger(__name__)


def _load_job(db, job_posting_id: str) -> Optional[JobPosting]:
    return db.query(JobPosting).filter(JobPosting.id == job_posting_id).first()


def _load_candidates(db, candidate_ids) -> list:
    if not candidate_ids:
        return []
    return db.query(Candidate).filter(Candidate.id.in_(candidate_ids)).all()


async def execute_match_task(
    ctx: ExecutionContext,
    task_id: str,
    claimed: bool = False,
    progress: Optional[MatchProgressStore] = None,
) -> None:
    """
    Execute one Match task. Never raises.

    Args:
        ctx: Shared collaborators
        task_id: ScheduledMatch id
        claimed: True when the caller already moved the task to RUNNING
        progress: Progress store to publish live counters to (interactive runs)
    """
    log_prefix = f"[Match {task_id}]"
    db = ctx.session_factory()
    job_posting_id = None

    try:
        if not claimed and not await asyncio.to_thread(task_ledger.mark_running, db, TaskKind.MATCH, task_id):
            return

        task = await asyncio.to_thread(task_ledger.get_or_raise, db, TaskKind.MATCH, task_id)
        job_posting_id = task.job_posting_id

        job = await asyncio.to_thread(_load_job, db, job_posting_id)
        if job is None:
            message = f"Job posting {job_posting_id} not found"
            logger.error(f"{log_prefix} {message}")
            await asyncio.to_thread(task_ledger.mark_failed, db, TaskKind.MATCH, task_id, message)
            if progress:
                progress.fail(job_posting_id, message)
            return

        candidate_ids = list(task.candidate_ids or [])
        candidates = await asyncio.to_thread(_load_candidates, db, candidate_ids)
        if len(candidates) < len(candidate_ids):
            logger.warning(f"{log_prefix} {len(candidate_ids) - len(candidates)} candidates no longer exist")

        logger.info(f"{log_prefix} Matching {len(candidates)} candidates against '{job.title}'")
        if progress:
            progress.start(job_posting_id, len(candidates))

        processed = 0

        async def evaluate(candidate: Candidate, index: int) -> Dict[str, Any]:
            nonlocal processed
            candidate_id = candidate.id
            if progress:
                progress.update(job_posting_id, current_candidate=candidate.name)

            evaluation = await evaluate_pair(candidate, job, ctx.llm)

            match = upsert_match_result(db, candidate_id, job_posting_id, evaluation)
            update_candidate_total_score(db, candidate_id)

            processed += 1
            task_ledger.update_progress(db, task_id, processed)
            if progress:
                progress.update(job_posting_id, processed=processed)

            return {
                "match_id": match.id,
                "candidate_id": candidate_id,
                "match_score": evaluation.score,
                "used_fallback": evaluation.used_fallback,
            }

        results = await run_bounded(candidates, evaluate, limit=settings.MATCH_CONCURRENCY)
        matches = [result for result in results if result is not None]

        if not await asyncio.to_thread(
            task_ledger.mark_completed, db, TaskKind.MATCH, task_id, {"processed_count": processed}
        ):
            message = "Task was failed or cleaned up before the batch finished"
            logger.warning(f"{log_prefix} {message}; {processed} results were saved")
            if progress:
                progress.fail(job_posting_id, message)
            return

        logger.info(
            f"{log_prefix} Completed: {processed}/{len(candidates)} evaluated, "
            f"{sum(1 for m in matches if m['used_fallback'])} by tag-score fallback"
        )
        if progress:
            progress.complete(job_posting_id, sorted(matches, key=lambda m: m["match_score"], reverse=True))

    except Exception as e:
        if is_database_unavailable(e):
            ctx.report_unavailable(log_prefix, e)
            if progress and job_posting_id:
                progress.fail(job_posting_id, "Database temporarily unavailable")
            return
        message = failure_message(e)
        logger.error(f"{log_prefix} Failed: {message}", exc_info=True)
        record_failure(db, TaskKind.MATCH, task_id, message, log_prefix)
        if progress and job_posting_id:
            progress.fail(job_posting_id, message)
    finally:
        db.close()
