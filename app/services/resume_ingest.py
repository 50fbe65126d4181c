"""
Resume ingestion: stored file -> text -> AI extraction -> candidate record.

Shared by the scheduled Parse queue and the streaming run-now endpoint;
only the progress callback differs.
"""

import asyncio
import logging
from typing import Callable, Optional
from sqlalchemy.orm import Session

from app.core.storage import StorageBackend
from app.models.candidate import Candidate, CandidateStatus
from app.models.tag import Tag
from app.models.task import ParseTask
from app.services.llm_client import LLMClient
from app.services.resume_extraction import UNKNOWN_EMAIL, ResumeValidationError, extract_resume_data
from app.services.resume_parser import clean_resume_text, extract_text

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]


def _noop(progress: int, text: str) -> None:
    pass


def _get_or_create_tags(db: Session, extracted_tags) -> list:
    tags = []
    seen = set()
    for extracted in extracted_tags:
        key = (extracted.name.strip(), extracted.category)
        if key in seen:
            continue
        seen.add(key)
        tag = db.query(Tag).filter(Tag.name == key[0], Tag.category == key[1]).first()
        if tag is None:
            tag = Tag(name=key[0], category=key[1])
            db.add(tag)
            db.flush()
        tags.append(tag)
    return tags


def _find_saved_candidate(db: Session, task: ParseTask) -> Optional[str]:
    """Candidate an earlier, interrupted run of this task already saved"""
    row = db.query(Candidate.id).filter(Candidate.resume_url == task.object_name).first()
    return row.id if row else None


def _find_duplicate(db: Session, cleaned: str) -> Optional[str]:
    row = db.query(Candidate.id).filter(Candidate.resume_content == cleaned).first()
    return row.id if row else None


def _save_candidate(db: Session, task: ParseTask, cleaned: str, resume) -> str:
    log_prefix = f"[Parse {task.id}]"
    email = resume.email
    if email == UNKNOWN_EMAIL:
        # The column is unique; keep resumes without an address apart
        email = f"unknown-{task.file_id}@example.com"

    candidate = db.query(Candidate).filter(Candidate.email == email).first()
    if candidate is None:
        candidate = Candidate(email=email, status=CandidateStatus.NEW)
        db.add(candidate)
        logger.info(f"{log_prefix} Creating candidate {resume.name}")
    else:
        logger.info(f"{log_prefix} Updating existing candidate {candidate.id} ({email})")

    candidate.name = resume.name
    candidate.phone = resume.phone
    candidate.education = resume.education
    candidate.work_experience = resume.work_experience
    candidate.current_position = resume.current_position
    candidate.current_company = resume.current_company
    candidate.resume_url = task.object_name
    candidate.resume_file_name = task.original_name
    candidate.resume_content = cleaned
    candidate.initial_score = resume.initial_score
    candidate.ai_evaluation = resume.ai_evaluation
    if candidate.total_score is None:
        candidate.total_score = resume.initial_score

    if resume.tags:
        candidate.tags = _get_or_create_tags(db, resume.tags)

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(candidate)
    return candidate.id


async def parse_resume_from_storage(
    db: Session,
    task: ParseTask,
    storage: StorageBackend,
    llm: LLMClient,
    on_progress: Optional[ProgressCallback] = None,
) -> str:
    """
    Turn one stored resume into a candidate.

    Progress is reported at 10 (download), 25 (text extraction), 40 (AI
    analysis), 80 (candidate record), 90 (tags) and 100 (done). Database
    work runs in a worker thread; progress is reported on the event loop.

    A task requeued after its candidate was saved, but before the task was
    marked COMPLETED, finds that candidate by the stored file and returns
    it without calling the LLM again.

    Returns:
        The candidate id

    Raises:
        ResumeValidationError: Not a usable resume, or the same resume is already on file
        ResumeExtractionError: The LLM could not be used
        StorageError: The file could not be read
    """
    report = on_progress or _noop
    log_prefix = f"[Parse {task.id}]"

    saved_id = await asyncio.to_thread(_find_saved_candidate, db, task)
    if saved_id:
        logger.info(f"{log_prefix} Candidate {saved_id} was already saved from this file")
        report(100, "Parsing complete!")
        return saved_id

    report(10, "Downloading file from storage...")
    data = await asyncio.to_thread(storage.download, task.object_name)

    report(25, "Extracting file content...")
    raw_text = await asyncio.to_thread(extract_text, data, task.content_type)
    cleaned = clean_resume_text(raw_text)
    logger.info(f"{log_prefix} Extracted {len(cleaned)} chars from {task.original_name or task.object_name}")

    duplicate_id = await asyncio.to_thread(_find_duplicate, db, cleaned)
    if duplicate_id:
        raise ResumeValidationError(f"This resume is already on file (candidate {duplicate_id})")

    report(40, "AI is analysing the resume...")
    resume = await extract_resume_data(cleaned, llm)

    report(80, "Creating candidate profile...")
    if resume.tags:
        report(90, f"Generating {len(resume.tags)} talent tags...")
    candidate_id = await asyncio.to_thread(_save_candidate, db, task, cleaned, resume)

    report(100, "Parsing complete!")
    return candidate_id
