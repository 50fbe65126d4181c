"""
Candidate database model.

A candidate is created (or refreshed) by the Parse queue from an uploaded
resume and scored by the Match queue against job postings.
"""

import enum
import uuid
from sqlalchemy import Column, String, Float, Enum, Text, DateTime
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.core.time_utils import utcnow
from app.models.tag import candidate_tags


class CandidateStatus(str, enum.Enum):
    """
    Recruiting pipeline stage.

    Only NEW and SCREENING candidates are picked up when a match batch is
    created without an explicit candidate list.
    """
    NEW = "NEW"
    SCREENING = "SCREENING"
    INTERVIEWING = "INTERVIEWING"
    HIRED = "HIRED"
    REJECTED = "REJECTED"


class Candidate(Base):
    __tablename__ = "candidates"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)

    # Extracted profile
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    phone = Column(String, nullable=True)
    education = Column(Text, nullable=True)
    work_experience = Column(Text, nullable=True)
    current_position = Column(String, nullable=True)
    current_company = Column(String, nullable=True)

    # Source document
    resume_url = Column(String, nullable=True)
    resume_file_name = Column(String, nullable=True)
    resume_content = Column(Text, nullable=True)

    # Scores: initial_score comes from resume analysis, total_score is the
    # best match score seen so far
    initial_score = Column(Float, nullable=True)
    total_score = Column(Float, nullable=True, index=True)
    ai_evaluation = Column(Text, nullable=True)

    status = Column(Enum(CandidateStatus), default=CandidateStatus.NEW, nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    tags = relationship("Tag", secondary=candidate_tags, lazy="selectin")
    matches = relationship("JobMatch", back_populates="candidate", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Candidate(id={self.id}, name='{self.name}', total_score={self.total_score})>"
