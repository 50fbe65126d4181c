"""
Match result model.

Stores the outcome of evaluating one candidate against one job posting:
the authoritative score (LLM, or the tag score when the LLM was unusable),
the tag-overlap breakdown shown in the UI, and the narrative evaluation.
"""

import uuid
from sqlalchemy import Column, String, Float, Boolean, Text, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.core.time_utils import utcnow


class JobMatch(Base):
    __tablename__ = "job_matches"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    candidate_id = Column(String(36), ForeignKey("candidates.id", ondelete="CASCADE"), nullable=False, index=True)
    job_posting_id = Column(String(36), ForeignKey("job_postings.id", ondelete="CASCADE"), nullable=False, index=True)

    # The Headline Score (0-100)
    match_score = Column(Float, nullable=False, index=True)

    # Coarse tag overlap, display only
    # Example: {"score": 62, "matched": ["Python"], "missing": ["Go"], "similar": [], "extra": ["Vue"]}
    tag_score = Column(Float, nullable=False, default=0)
    tag_match = Column(JSON, nullable=False, default=dict)

    ai_evaluation = Column(Text, nullable=False)
    used_fallback = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    candidate = relationship("Candidate", back_populates="matches")
    job_posting = relationship("JobPosting", back_populates="matches")

    # One result per (candidate, job) pair; re-runs overwrite
    __table_args__ = (
        UniqueConstraint("candidate_id", "job_posting_id", name="uq_job_matches_candidate_job"),
    )

    def __repr__(self):
        return f"<JobMatch(candidate_id={self.candidate_id}, job_posting_id={self.job_posting_id}, match_score={self.match_score})>"
