import logging
from typing import Dict, List
from app.services.llm_client import LLMClient, LLMError

logger = logging.getLogger(__name__)


class JobDescriptionGenerationError(Exception):
    """Custom exception for job description generation errors"""
    pass


SYSTEM_PROMPT = "You are a professional HR recruiting consultant. Return results as JSON only."


def _build_prompt(title: str, department: str, tags: List[str]) -> str:
    tags_text = f"\nRelated tags: {', '.join(tags)}" if tags else ""
    return f"""Write a professional job description and job requirements for this position:

JOB TITLE: {title}
DEPARTMENT: {department}{tags_text}

Return ONLY JSON in this format, with no extra text:
{{
  "description": "Job description (150-300 words: responsibilities, team, growth path)",
  "requirements": "Job requirements (150-300 words: education, experience, skills, nice-to-haves)"
}}"""


async def generate_job_description(title: str, department: str, tags: List[str], llm: LLMClient) -> Dict[str, str]:
    """
    Uses LLM to draft a job description and requirements.

    Args:
        title: The job title
        department: Owning department
        tags: Skill/keyword hints
        llm: LLM client

    Returns:
        {"description": ..., "requirements": ...}

    Raises:
        JobDescriptionGenerationError: If the AI call fails or the answer is incomplete
    """
    try:
        data = await llm.complete_json(SYSTEM_PROMPT, _build_prompt(title, department, tags), temperature=0.7)
    except LLMError as e:
        raise JobDescriptionGenerationError(f"AI service error: {e}")

    description = data.get("description")
    requirements = data.get("requirements")
    if not isinstance(description, str) or not isinstance(requirements, str) \
            or not description.strip() or not requirements.strip():
        raise JobDescriptionGenerationError("AI response is missing description or requirements")

    logger.info(f"Generated job description for: {title}")
    return {"description": description.strip(), "requirements": requirements.strip()}
