"""
Database models package.
"""

from app.models.tag import Tag, TagCategory
from app.models.candidate import Candidate, CandidateStatus
from app.models.job_posting import JobPosting, JobPostingStatus
from app.models.job_match import JobMatch
from app.models.task import (
    TaskStatus,
    TaskKind,
    ParseTask,
    MatchTask,
    GenerationTask,
    TASK_MODELS,
    model_for,
)

__all__ = [
    "Tag", "TagCategory",
    "Candidate", "CandidateStatus",
    "JobPosting", "JobPostingStatus",
    "JobMatch",
    "TaskStatus", "TaskKind", "ParseTask", "MatchTask", "GenerationTask",
    "TASK_MODELS", "model_for",
]
