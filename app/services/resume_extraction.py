"""
LLM-based structured extraction of candidate data from resume text.
"""

import asyncio
import logging
from pydantic import ValidationError

from app.core.config import settings
from app.schemas.resume import ResumeData, ResumeExtractionSchema
from app.services.llm_client import LLMClient, LLMError

logger = logging.getLogger(__name__)

MAX_RETRIES = 2
RETRY_BACKOFF_SECONDS = 2.0

UNKNOWN_EMAIL = "unknown@example.com"


class ResumeValidationError(Exception):
    """
    The document cannot become a candidate record (not a resume, missing
    key information, or already on file). Never retried.
    """
    pass


class ResumeExtractionError(Exception):
    """Extraction failed after all retries"""
    pass


SYSTEM_PROMPT = """You are a professional HR resume parsing assistant.

The text comes from PDF/Word extraction and may contain duplicated content and noise: ID numbers, stray dates, job-board watermarks, page numbers and broken fragments. Ignore the noise and extract the information accurately.

DUPLICATES:
- A company, school or job description may appear several times because of extraction problems; extract it once
- education and work_experience must be clean, de-duplicated and clearly formatted

IS THIS A VALID RESUME?
- Not a resume (contract, paper, etc.) -> is_resume = false
- No candidate name -> is_resume = false
- Missing education AND work experience AND current position -> is_resume = false
- When is_resume = false, fill reject_reason, set every other field to null and tags to []

WHEN is_resume = true:
1. Extract name, email, phone, education, work experience, current position and company
2. initial_score (0-100): completeness 30% + clarity 30% + quality 40%
3. ai_evaluation: strengths, weaknesses and suggestions, at least 200 words
4. At least 10 tags, categories SKILL/INDUSTRY/EDUCATION/EXPERIENCE/PERSONALITY/OTHER, at least 5 of them SKILL

Return ONLY valid JSON (no markdown fences):
{
  "is_resume": true,
  "reject_reason": null,
  "name": "Full name",
  "email": "Email, or unknown@example.com if absent",
  "phone": "Phone, or null",
  "education": "Clean education history",
  "work_experience": "Clean work history",
  "current_position": "Current position",
  "current_company": "Current company",
  "initial_score": 85,
  "ai_evaluation": "Overall assessment",
  "tags": [{"name": "Tag name", "category": "SKILL"}]
}"""


def _validate(raw: ResumeExtractionSchema) -> ResumeData:
    if not raw.is_resume:
        raise ResumeValidationError(raw.reject_reason or "The document is not a valid resume")
    if not raw.name:
        raise ResumeValidationError("The resume has no candidate name")
    if not (raw.education or raw.work_experience or raw.current_position):
        raise ResumeValidationError(
            "The resume lacks education, work experience and current position"
        )

    return ResumeData(
        name=raw.name,
        email=(raw.email or UNKNOWN_EMAIL).strip().lower(),
        phone=raw.phone,
        education=raw.education,
        work_experience=raw.work_experience,
        current_position=raw.current_position,
        current_company=raw.current_company,
        initial_score=raw.initial_score or 0,
        ai_evaluation=raw.ai_evaluation or "",
        tags=raw.tags,
    )


async def extract_resume_data(
    resume_text: str,
    llm: LLMClient,
    max_retries: int = MAX_RETRIES,
    backoff_seconds: float = RETRY_BACKOFF_SECONDS,
) -> ResumeData:
    """
    Extract candidate data from cleaned resume text.

    Transport errors and malformed answers are retried with linear backoff;
    a ResumeValidationError is raised immediately.

    Args:
        resume_text: Cleaned resume text
        llm: LLM client
        max_retries: Retries after the first attempt
        backoff_seconds: Wait before retry n is n * backoff_seconds

    Returns:
        Validated ResumeData

    Raises:
        ResumeValidationError: The document cannot become a candidate
        ResumeExtractionError: All attempts failed
    """
    last_error = None

    for attempt in range(max_retries + 1):
        if attempt > 0:
            logger.info(f"Retrying resume extraction ({attempt}/{max_retries})...")
            await asyncio.sleep(backoff_seconds * attempt)

        try:
            data = await llm.complete_json(
                SYSTEM_PROMPT,
                f"Analyze the following text:\n\n{resume_text}",
                temperature=0,
                timeout=settings.RESUME_LLM_TIMEOUT_SECONDS,
            )
            return _validate(ResumeExtractionSchema(**data))
        except (LLMError, ValidationError) as e:
            last_error = e
            logger.warning(f"Resume extraction attempt {attempt + 1}/{max_retries + 1} failed: {e}")

    raise ResumeExtractionError(f"Resume extraction failed after {max_retries + 1} attempts: {last_error}")
