"""
Live progress for interactively started Match runs.

This is a cache for callers polling the process that is running the batch;
the task ledger stays the source of truth. Entries disappear after a delay
once the run is terminal, and on restart. Running more than one API process
needs sticky routing per job posting, or moving this map into Redis.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class MatchProgress:
    job_posting_id: str
    total: int
    status: str = "running"
    processed: int = 0
    current_candidate: Optional[str] = None
    matches: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
    started_at: float = field(default_factory=time.time)


class MatchProgressStore:
    """
    Job posting id -> MatchProgress.

    Args:
        cleanup_delay: Seconds a terminal entry stays readable
    """

    def __init__(self, cleanup_delay: float = settings.MATCH_PROGRESS_TTL_SECONDS):
        self.cleanup_delay = cleanup_delay
        self._entries: Dict[str, MatchProgress] = {}
        self._cleanup_handles: Dict[str, asyncio.TimerHandle] = {}

    def start(self, job_posting_id: str, total: int) -> MatchProgress:
        self._cancel_cleanup(job_posting_id)
        entry = MatchProgress(job_posting_id=job_posting_id, total=total)
        self._entries[job_posting_id] = entry
        return entry

    def get(self, job_posting_id: str) -> Optional[MatchProgress]:
        return self._entries.get(job_posting_id)

    def update(self, job_posting_id: str, **fields: Any) -> None:
        entry = self._entries.get(job_posting_id)
        if entry is None:
            return
        for name, value in fields.items():
            if not hasattr(entry, name):
                raise AttributeError(f"MatchProgress has no field {name!r}")
            setattr(entry, name, value)

    def complete(self, job_posting_id: str, matches: List[Dict[str, Any]]) -> None:
        entry = self._entries.get(job_posting_id)
        if entry is None:
            return
        entry.status = "completed"
        entry.matches = matches
        entry.current_candidate = None
        self._schedule_cleanup(job_posting_id)

    def fail(self, job_posting_id: str, error: str) -> None:
        entry = self._entries.get(job_posting_id)
        if entry is None:
            return
        entry.status = "failed"
        entry.error = error
        entry.current_candidate = None
        self._schedule_cleanup(job_posting_id)

    def snapshot(self, job_posting_id: str) -> Dict[str, Any]:
        """What a polling client sees; {"status": "idle"} when nothing is tracked"""
        entry = self._entries.get(job_posting_id)
        if entry is None:
            return {"status": "idle"}
        return asdict(entry)

    def clear(self) -> None:
        for handle in self._cleanup_handles.values():
            handle.cancel()
        self._cleanup_handles.clear()
        self._entries.clear()

    def _schedule_cleanup(self, job_posting_id: str) -> None:
        self._cancel_cleanup(job_posting_id)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to time the expiry; drop right away
            self._entries.pop(job_posting_id, None)
            return
        self._cleanup_handles[job_posting_id] = loop.call_later(
            self.cleanup_delay, self._expire, job_posting_id
        )

    def _cancel_cleanup(self, job_posting_id: str) -> None:
        handle = self._cleanup_handles.pop(job_posting_id, None)
        if handle is not None:
            handle.cancel()

    def _expire(self, job_posting_id: str) -> None:
        self._cleanup_handles.pop(job_posting_id, None)
        entry = self._entries.get(job_posting_id)
        if entry is not None and entry.status != "running":
            del self._entries[job_posting_id]
            logger.debug(f"Expired match progress for job posting {job_posting_id}")
