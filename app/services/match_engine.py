"""
Candidate <-> job posting evaluation.

Two scores are produced for every pair:

1. A coarse tag score: weighted overlap of the candidate's tags with the
   job's tags. Cheap, deterministic, shown in the UI as matched/missing/
   similar/extra partitions.
2. An authoritative score: the LLM grades five dimensions and the weighted
   sum becomes the match score.

If the LLM is unusable for a pair (error, timeout, malformed JSON) the tag
score stands in, so one bad response never aborts a batch.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from app.models.candidate import Candidate
from app.models.job_match import JobMatch
from app.models.tag import TagCategory
from app.services.llm_client import LLMClient, LLMError

logger = logging.getLogger(__name__)

TAG_CATEGORY_WEIGHTS = {
    TagCategory.SKILL: 10,
    TagCategory.EXPERIENCE: 8,
    TagCategory.INDUSTRY: 6,
    TagCategory.EDUCATION: 5,
    TagCategory.PERSONALITY: 3,
    TagCategory.OTHER: 2,
}

SIMILAR_TAG_WEIGHT = 0.6

# Interchangeable technologies; holding one counts partially for another
SIMILAR_TECH_GROUPS = [
    ["react", "vue", "angular"],
    ["javascript", "typescript"],
    ["java", "kotlin"],
    ["python", "ruby"],
    ["go", "rust"],
    ["c#", ".net"],
    ["mysql", "postgresql", "sql server", "oracle"],
    ["mongodb", "redis"],
    ["aws", "azure", "gcp", "alibaba cloud"],
    ["docker", "kubernetes"],
    ["spring", "spring boot", "spring cloud"],
    ["django", "flask", "fastapi"],
    ["pytorch", "tensorflow"],
    ["hadoop", "spark", "flink"],
    ["ios", "android", "flutter", "react native"],
]

# Dimension -> weight in the authoritative score
DIMENSION_WEIGHTS = {
    "skills_score": 0.35,
    "experience_score": 0.25,
    "project_score": 0.20,
    "education_score": 0.10,
    "career_score": 0.10,
}

# LLM scores below this are treated as a grading failure when tags overlap
LOW_SCORE_FLOOR = 20

MATCH_SYSTEM_PROMPT = """You are an experienced HR recruiting consultant. Judge whether the candidate can do the job, based on the candidate's actual profile and the job's requirements.

PRINCIPLES:
1. Focus on core ability: a candidate with the job's core skills and relevant experience should be considered capable.
2. Use the full range:
   - 70-100: skills and experience closely match; can do the job right away
   - 50-69: most core skills present, experience broadly relevant
   - 30-49: only some relevant skills, experience a weak fit
   - 0-29: different direction entirely
3. Skill tags are claims of ability made by the candidate; take them into account.
4. Do not give low scores just because the resume text is brief.

Score each dimension from 0 to 100:
1. skills_score (35%): command of the job's core technologies
2. experience_score (25%): relevance of past work to this job
3. project_score (20%): scale and complexity of past projects
4. education_score (10%): degree and field against the requirements
5. career_score (10%): career direction against this role

Return ONLY valid JSON (no markdown fences):
{
  "skills_score": 75,
  "experience_score": 70,
  "project_score": 65,
  "education_score": 60,
  "career_score": 70,
  "can_do_job": true,
  "summary": "One sentence verdict",
  "strengths": ["strength 1", "strength 2"],
  "weaknesses": ["weakness 1"],
  "reasoning": "Why you scored it this way"
}"""


@dataclass
class TagMatchResult:
    score: int
    matched: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    similar: List[str] = field(default_factory=list)
    extra: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "matched": self.matched,
            "missing": self.missing,
            "similar": self.similar,
            "extra": self.extra,
        }


@dataclass
class MatchEvaluation:
    """Outcome for one (candidate, job) pair, ready to be upserted"""
    score: int
    evaluation: str
    tag_match: TagMatchResult
    used_fallback: bool = False


def _normalize(name: str) -> str:
    return name.strip().lower()


def _similar_group(normalized: str) -> Optional[List[str]]:
    for group in SIMILAR_TECH_GROUPS:
        if normalized in group:
            return group
    return None


def _category(tag) -> TagCategory:
    try:
        return TagCategory(tag.category)
    except ValueError:
        return TagCategory.OTHER


def calculate_tag_match(candidate_tags, job_tags) -> TagMatchResult:
    """
    Weighted overlap of job tags covered by the candidate.

    Each job tag contributes its category weight; an exact name match earns
    the full weight, a match within a similar-technology group earns 60%.
    Candidate tags the job does not ask for are reported as extra.

    Args:
        candidate_tags: Objects with .name and .category
        job_tags: Objects with .name and .category

    Returns:
        TagMatchResult with score 0-100 (0 if the job has no tags)
    """
    candidate_names = {_normalize(tag.name) for tag in candidate_tags}
    job_names = {_normalize(tag.name) for tag in job_tags}
    result = TagMatchResult(score=0)

    earned = 0.0
    total = 0.0
    for tag in job_tags:
        normalized = _normalize(tag.name)
        weight = TAG_CATEGORY_WEIGHTS[_category(tag)]
        total += weight

        if normalized in candidate_names:
            result.matched.append(tag.name)
            earned += weight
            continue

        group = _similar_group(normalized)
        if group and any(alt != normalized and alt in candidate_names for alt in group):
            result.similar.append(tag.name)
            earned += weight * SIMILAR_TAG_WEIGHT
        else:
            result.missing.append(tag.name)

    result.extra = [tag.name for tag in candidate_tags if _normalize(tag.name) not in job_names]
    if total > 0:
        result.score = min(100, round(earned / total * 100))
    return result


def _tags_by_section(tags) -> Dict[str, List[str]]:
    sections = {"skills": [], "experience": [], "industry": [], "other": []}
    for tag in tags:
        category = _category(tag)
        if category == TagCategory.SKILL:
            sections["skills"].append(tag.name)
        elif category == TagCategory.EXPERIENCE:
            sections["experience"].append(tag.name)
        elif category == TagCategory.INDUSTRY:
            sections["industry"].append(tag.name)
        else:
            sections["other"].append(tag.name)
    return sections


def build_candidate_profile(candidate) -> str:
    """Render a candidate as prompt text"""
    lines = [
        "CANDIDATE",
        f"- Name: {candidate.name}",
        f"- Current position: {candidate.current_position or 'Not provided'}",
        f"- Most recent company: {candidate.current_company or 'Not provided'}",
        f"- Education: {candidate.education or 'Not provided'}",
        f"- Work experience: {candidate.work_experience or 'Not provided'}",
        "",
    ]
    labels = {"skills": "Skill tags", "experience": "Experience areas", "industry": "Industries", "other": "Other tags"}
    for key, names in _tags_by_section(candidate.tags or []).items():
        if names:
            lines += [f"{labels[key]}: {', '.join(names)}", ""]
    if candidate.resume_content:
        lines += ["Resume:", candidate.resume_content[:3000], ""]
    if candidate.ai_evaluation:
        lines += ["Resume assessment:", candidate.ai_evaluation[:1000]]
    return "\n".join(lines)


def build_job_profile(job) -> str:
    """Render a job posting as prompt text"""
    lines = [
        "JOB",
        f"- Title: {job.title}",
        f"- Department: {job.department or 'Not provided'}",
        f"- Description: {job.description or 'Not provided'}",
        f"- Requirements: {job.requirements or 'Not provided'}",
        "",
    ]
    labels = {"skills": "Required skills", "experience": "Experience required", "industry": "Industry", "other": "Other requirements"}
    for key, names in _tags_by_section(job.tags or []).items():
        if names:
            lines += [f"{labels[key]}: {', '.join(names)}", ""]
    return "\n".join(lines)


def _weighted_score(grades: Dict[str, Any]) -> int:
    total = 0.0
    for key, weight in DIMENSION_WEIGHTS.items():
        try:
            value = float(grades.get(key) or 0)
        except (TypeError, ValueError):
            raise LLMError(f"Non-numeric {key}: {grades.get(key)!r}")
        total += max(0.0, min(100.0, value)) * weight
    return round(total)


def _format_tag_section(tag_match: TagMatchResult) -> List[str]:
    lines = []
    if tag_match.matched:
        lines.append(f"Matched: {', '.join(tag_match.matched)}")
    if tag_match.similar:
        lines.append(f"Similar: {', '.join(tag_match.similar)}")
    if tag_match.missing:
        lines.append(f"Missing: {', '.join(tag_match.missing)}")
    if tag_match.extra:
        lines.append(f"Additional: {', '.join(tag_match.extra)}")
    return lines


def _build_evaluation_text(grades: Dict[str, Any], score: int, tag_match: TagMatchResult) -> str:
    can_do_job = grades.get("can_do_job")
    if can_do_job is None:
        can_do_job = score >= 50

    lines = [f"VERDICT: {'Can do the job' if can_do_job else 'Unlikely to succeed in the role'}", ""]
    lines.append(f"TAG MATCH (tag score: {tag_match.score})")
    lines += _format_tag_section(tag_match)
    lines += ["", f"AI ASSESSMENT (overall: {score})"]
    lines.append(f"- Skills: {grades.get('skills_score', '-')}")
    lines.append(f"- Experience: {grades.get('experience_score', '-')}")
    lines.append(f"- Projects: {grades.get('project_score', '-')}")
    lines.append(f"- Education: {grades.get('education_score', '-')}")
    lines.append(f"- Career direction: {grades.get('career_score', '-')}")

    if grades.get("summary"):
        lines += ["", f"SUMMARY: {grades['summary']}"]
    if grades.get("strengths"):
        lines += ["", "STRENGTHS"] + [f"- {s}" for s in grades["strengths"]]
    if grades.get("weaknesses"):
        lines += ["", "WEAKNESSES"] + [f"- {w}" for w in grades["weaknesses"]]
    if grades.get("reasoning"):
        lines += ["", "REASONING", str(grades["reasoning"])]
    return "\n".join(lines)


async def generate_ai_evaluation(candidate, job, llm: LLMClient) -> MatchEvaluation:
    """
    Ask the LLM to grade the pair and combine the grades into one score.

    Raises:
        LLMError: If the model call fails or returns an unusable answer
    """
    tag_match = calculate_tag_match(candidate.tags or [], job.tags or [])

    user_prompt = (
        "Evaluate how well this candidate fits the job.\n\n"
        f"{build_candidate_profile(candidate)}\n\n"
        f"{build_job_profile(job)}\n\n"
        "Score each of the five dimensions. Candidates whose skills and experience match should score 70+."
    )
    grades = await llm.complete_json(MATCH_SYSTEM_PROMPT, user_prompt, temperature=0.3)
    score = _weighted_score(grades)

    if score < LOW_SCORE_FLOOR and tag_match.score > 0:
        logger.info(f"[Match] LLM score {score} for {candidate.name} floored to tag score {tag_match.score}")
        score = max(score, tag_match.score)

    return MatchEvaluation(
        score=score,
        evaluation=_build_evaluation_text(grades, score, tag_match),
        tag_match=tag_match,
    )


def generate_fallback_evaluation(candidate, job, tag_match: Optional[TagMatchResult] = None) -> MatchEvaluation:
    """
    Deterministic evaluation from the tag score alone.
    """
    if tag_match is None:
        tag_match = calculate_tag_match(candidate.tags or [], job.tags or [])
    score = tag_match.score

    lines = [
        f"MATCH ANALYSIS: {candidate.name} for {job.title}",
        "(AI assessment unavailable; score based on tag overlap)",
        "",
        f"TAG MATCH (tag score: {score})",
    ]
    lines += _format_tag_section(tag_match)
    if score >= 70:
        lines += ["", "Skills closely match the role. Recommended for an interview."]
    elif score >= 50:
        lines += ["", "Broadly meets the requirements. Worth considering for an interview."]
    else:
        lines += ["", "Low overlap with the role's skills."]

    return MatchEvaluation(score=score, evaluation="\n".join(lines), tag_match=tag_match, used_fallback=True)


async def evaluate_pair(candidate, job, llm: LLMClient) -> MatchEvaluation:
    """
    AI evaluation with a per-pair fallback.

    Any failure of the AI path (transport, timeout, bad JSON, a client bug)
    degrades this pair to the tag score instead of propagating.
    """
    try:
        return await generate_ai_evaluation(candidate, job, llm)
    except LLMError as e:
        logger.warning(f"[Match] LLM evaluation failed for candidate {candidate.id}, using tag score: {e}")
    except Exception as e:
        logger.error(f"[Match] Unexpected evaluation error for candidate {candidate.id}, using tag score: {e}", exc_info=True)
    return generate_fallback_evaluation(candidate, job)


def upsert_match_result(db: Session, candidate_id: str, job_posting_id: str, evaluation: MatchEvaluation) -> JobMatch:
    """
    Write the result for a pair, overwriting any previous one.
    """
    match = (
        db.query(JobMatch)
        .filter(JobMatch.candidate_id == candidate_id, JobMatch.job_posting_id == job_posting_id)
        .first()
    )
    if match is None:
        match = JobMatch(candidate_id=candidate_id, job_posting_id=job_posting_id)
        db.add(match)

    match.match_score = evaluation.score
    match.tag_score = evaluation.tag_match.score
    match.tag_match = evaluation.tag_match.to_dict()
    match.ai_evaluation = evaluation.evaluation
    match.used_fallback = evaluation.used_fallback
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(match)
    return match


def update_candidate_total_score(db: Session, candidate_id: str) -> Optional[float]:
    """
    Set the candidate's total score to their best match score.

    A maximum, so a weak match against one more job never lowers a
    candidate's ranking.

    Returns:
        The new total score, or None if the candidate has no matches
    """
    scores = [
        score for score, in
        db.query(JobMatch.match_score).filter(JobMatch.candidate_id == candidate_id).all()
    ]
    if not scores:
        return None

    best = max(scores)
    candidate = db.query(Candidate).filter(Candidate.id == candidate_id).first()
    if candidate is not None:
        candidate.total_score = best
        db.commit()
    return best
