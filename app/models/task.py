"""
Durable task records for the three background queues.

Each queue kind has its own table with a shared core (status, schedule,
error, timestamps) and a kind-specific payload. Rows are created by the API,
mutated only by the executor for their kind, and never deleted while RUNNING.
"""

import enum
import uuid
from sqlalchemy import Column, String, Integer, Text, DateTime, Enum, JSON, Index
from app.core.database import Base
from app.core.time_utils import utcnow


class TaskStatus(str, enum.Enum):
    """
    Task lifecycle:

    PENDING -> RUNNING -> COMPLETED
       |          |
       |          +----> FAILED
       +--> CANCELLED

    RUNNING -> PENDING only through stale-task recovery (Parse, Generation).
    """
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class TaskKind(str, enum.Enum):
    """The three independent queues"""
    PARSE = "parse"
    MATCH = "match"
    GENERATION = "generation"


# (from, to) pairs the ledger will perform
ALLOWED_TRANSITIONS = frozenset({
    (TaskStatus.PENDING, TaskStatus.RUNNING),
    (TaskStatus.PENDING, TaskStatus.CANCELLED),
    (TaskStatus.RUNNING, TaskStatus.COMPLETED),
    (TaskStatus.RUNNING, TaskStatus.FAILED),
    (TaskStatus.RUNNING, TaskStatus.PENDING),
})


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return (current, target) in ALLOWED_TRANSITIONS


def _new_id() -> str:
    return str(uuid.uuid4())


class TaskRecordMixin:
    """Columns shared by every task table"""

    id = Column(String(36), primary_key=True, default=_new_id, index=True)
    status = Column(Enum(TaskStatus), default=TaskStatus.PENDING, nullable=False, index=True)

    # Not eligible before this instant (naive UTC); NULL means immediately
    scheduled_for = Column(DateTime, nullable=True, index=True)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    # Refreshed on every status transition; staleness is measured against it
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Column holding the logical target; at most one RUNNING row per value
    target_key_column = "id"

    # Columns a caller may fill at creation time
    payload_fields: tuple = ()

    # Columns an execution result may fill
    result_fields: tuple = ()

    @property
    def target_key(self):
        return getattr(self, self.target_key_column)

    def to_dict(self) -> dict:
        data = {column.name: getattr(self, column.name) for column in self.__table__.columns}
        data["status"] = self.status.value if self.status else None
        return data


class ParseTask(TaskRecordMixin, Base):
    """One uploaded resume file waiting to be turned into a candidate."""
    __tablename__ = "scheduled_parses"

    file_id = Column(String, nullable=False, index=True)
    object_name = Column(String, nullable=False)
    content_type = Column(String, nullable=False, default="application/pdf")
    original_name = Column(String, nullable=True)

    candidate_id = Column(String(36), nullable=True)

    target_key_column = "file_id"
    payload_fields = ("file_id", "object_name", "content_type", "original_name")
    result_fields = ("candidate_id",)

    __table_args__ = (
        Index("ix_scheduled_parses_status_scheduled_for", "status", "scheduled_for"),
    )

    def __repr__(self):
        return f"<ParseTask(id={self.id}, file_id={self.file_id}, status={self.status})>"


class MatchTask(TaskRecordMixin, Base):
    """A batch of candidates to evaluate against one job posting."""
    __tablename__ = "scheduled_matches"

    job_posting_id = Column(String(36), nullable=False, index=True)
    candidate_ids = Column(JSON, nullable=False, default=list)
    total_candidates = Column(Integer, nullable=False, default=0)
    processed_count = Column(Integer, nullable=False, default=0)

    target_key_column = "job_posting_id"
    payload_fields = ("job_posting_id", "candidate_ids", "total_candidates")
    result_fields = ("processed_count",)

    __table_args__ = (
        Index("ix_scheduled_matches_status_scheduled_for", "status", "scheduled_for"),
    )

    def __repr__(self):
        return f"<MatchTask(id={self.id}, job_posting_id={self.job_posting_id}, status={self.status})>"


class GenerationTask(TaskRecordMixin, Base):
    """An LLM request to draft a job description and requirements."""
    __tablename__ = "ai_gen_tasks"

    title = Column(String, nullable=False)
    department = Column(String, nullable=False)
    tags = Column(JSON, nullable=False, default=list)

    description = Column(Text, nullable=True)
    requirements = Column(Text, nullable=True)

    payload_fields = ("title", "department", "tags")
    result_fields = ("description", "requirements")

    def __repr__(self):
        return f"<GenerationTask(id={self.id}, title='{self.title}', status={self.status})>"


TASK_MODELS = {
    TaskKind.PARSE: ParseTask,
    TaskKind.MATCH: MatchTask,
    TaskKind.GENERATION: GenerationTask,
}


def model_for(kind: TaskKind):
    return TASK_MODELS[TaskKind(kind)]
