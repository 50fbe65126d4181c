import enum
import uuid
from sqlalchemy import Column, String, Text, DateTime, Enum
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.core.time_utils import utcnow
from app.models.tag import job_posting_tags


class JobPostingStatus(str, enum.Enum):
    """
    Job posting status enum.

    - DRAFT: Being written, not matchable yet
    - ACTIVE: Open; match batches may target it
    - CLOSED: No longer hiring
    """
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class JobPosting(Base):
    """
    A position candidates are matched against.
    """
    __tablename__ = "job_postings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    title = Column(String, nullable=False, index=True)
    department = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    requirements = Column(Text, nullable=True)

    status = Column(Enum(JobPostingStatus), default=JobPostingStatus.ACTIVE, nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    tags = relationship("Tag", secondary=job_posting_tags, lazy="selectin")
    matches = relationship("JobMatch", back_populates="job_posting", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<JobPosting(id={self.id}, title='{self.title}', status={self.status})>"
