"""
Pydantic schemas for task queue API requests/responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from app.models.task import TaskStatus


class TaskBase(BaseModel):
    """Ledger fields shared by every queue kind"""
    id: str
    status: TaskStatus
    scheduled_for: Optional[datetime] = Field(None, description="Earliest start (UTC); null means as soon as possible")
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# --- Parse -----------------------------------------------------------------

class ParseFileRef(BaseModel):
    """A resume already stored in object storage"""
    file_id: str = Field(..., min_length=1, max_length=100)
    object_name: str = Field(..., min_length=1, max_length=500)
    content_type: str = "application/pdf"
    original_name: Optional[str] = Field(None, max_length=255)


class ParseEnqueueRequest(BaseModel):
    files: List[ParseFileRef] = Field(..., min_length=1, max_length=100)
    immediate: bool = Field(False, description="Start now instead of at the nightly parse window")


class ParseTaskResponse(TaskBase):
    file_id: str
    object_name: str
    content_type: str
    original_name: Optional[str] = None
    candidate_id: Optional[str] = None


class ParseEnqueueResponse(BaseModel):
    tasks: List[ParseTaskResponse]
    scheduled_for: Optional[datetime] = None
    message: str


# --- Match -----------------------------------------------------------------

class MatchEnqueueRequest(BaseModel):
    job_posting_id: str
    candidate_ids: Optional[List[str]] = Field(
        None, description="Explicit candidate set; omitted means every NEW/SCREENING candidate not yet matched"
    )


class MatchTaskResponse(TaskBase):
    job_posting_id: str
    candidate_ids: List[str]
    total_candidates: int
    processed_count: int


class MatchEnqueueResponse(BaseModel):
    task: MatchTaskResponse
    message: str


class MatchProgressResponse(BaseModel):
    """Live progress of an interactive match run, or status 'idle'"""
    status: str
    job_posting_id: Optional[str] = None
    total: Optional[int] = None
    processed: Optional[int] = None
    current_candidate: Optional[str] = None
    matches: Optional[List[Dict[str, Any]]] = None
    error: Optional[str] = None


# --- Generation ------------------------------------------------------------

class GenerationEnqueueRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    department: str = Field(..., min_length=1, max_length=100)
    tags: List[str] = Field(default_factory=list, max_length=50)
    immediate: bool = Field(False, description="Start in the background right away instead of on the next poll")


class GenerationTaskResponse(TaskBase):
    title: str
    department: str
    tags: List[str]
    description: Optional[str] = None
    requirements: Optional[str] = None


# --- Shared ----------------------------------------------------------------

class RunTaskResponse(BaseModel):
    id: str
    status: TaskStatus
    message: str


class QueueCleanResponse(BaseModel):
    message: str
    cleaned: int
    by_kind: Dict[str, int]
