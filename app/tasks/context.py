"""
Shared collaborators for the queue executors.
"""

import logging
from typing import Callable, Optional
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import SessionLocal
from app.core.logging_config import ThrottledLogger
from app.core.storage import StorageBackend, get_storage
from app.crud import task_ledger
from app.services.llm_client import LLMClient, get_llm_client
from app.services.match_progress import MatchProgressStore

logger = logging.getLogger(__name__)


class ExecutionContext:
    """
    Everything an executor needs besides the task id.

    Storage and the LLM client are resolved lazily so a process that never
    parses a resume never needs S3 credentials.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        storage: Optional[StorageBackend] = None,
        llm: Optional[LLMClient] = None,
        progress: Optional[MatchProgressStore] = None,
        db_warning: Optional[ThrottledLogger] = None,
    ):
        self.session_factory = session_factory
        self._storage = storage
        self._llm = llm
        self.progress = progress or MatchProgressStore()
        self.db_warning = db_warning or ThrottledLogger(
            logging.getLogger("app.tasks"), settings.DB_UNAVAILABLE_LOG_COOLDOWN_SECONDS
        )

    @property
    def storage(self) -> StorageBackend:
        if self._storage is None:
            self._storage = get_storage()
        return self._storage

    @property
    def llm(self) -> LLMClient:
        if self._llm is None:
            self._llm = get_llm_client()
        return self._llm

    def report_unavailable(self, log_prefix: str, exc: BaseException) -> None:
        self.db_warning.warning(f"{log_prefix} Database not ready, will retry on a later poll: {exc}")


def failure_message(exc: BaseException) -> str:
    """User-facing text stored on a FAILED task"""
    message = str(exc).strip()
    if not message:
        return f"Task failed ({type(exc).__name__})"
    return message


def record_failure(db, kind, task_id: str, message: str, log_prefix: str) -> None:
    """Last-resort FAILED write after an unexpected executor error"""
    try:
        db.rollback()
        task_ledger.mark_failed(db, kind, task_id, message)
    except Exception as e:
        logger.error(f"{log_prefix} Could not record failure: {e}")
