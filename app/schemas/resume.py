from pydantic import BaseModel, Field
from typing import List, Optional
from app.models.tag import TagCategory


class ExtractedTag(BaseModel):
    """A talent tag proposed by the resume analysis"""
    name: str = Field(..., min_length=1, max_length=100)
    category: TagCategory = TagCategory.OTHER


class ResumeExtractionSchema(BaseModel):
    """
    Raw structure the LLM returns for a resume.
    Every field except is_resume/tags is nullable; validation of what a
    usable resume needs happens after parsing.
    """
    is_resume: bool
    reject_reason: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    education: Optional[str] = None
    work_experience: Optional[str] = None
    current_position: Optional[str] = None
    current_company: Optional[str] = None
    initial_score: Optional[float] = Field(None, ge=0, le=100)
    ai_evaluation: Optional[str] = None
    tags: List[ExtractedTag] = Field(default_factory=list)


class ResumeData(BaseModel):
    """Validated resume data, ready to become a candidate record"""
    name: str
    email: str
    phone: Optional[str] = None
    education: Optional[str] = None
    work_experience: Optional[str] = None
    current_position: Optional[str] = None
    current_company: Optional[str] = None
    initial_score: float = 0
    ai_evaluation: str = ""
    tags: List[ExtractedTag] = Field(default_factory=list)
