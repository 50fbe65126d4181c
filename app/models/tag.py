"""
Tag model shared by candidates and job postings.

Tags are the coarse vocabulary the match engine compares; the category
decides how much an overlap is worth.
"""

import enum
import uuid
from sqlalchemy import Column, String, Enum, ForeignKey, Table, UniqueConstraint
from app.core.database import Base


class TagCategory(str, enum.Enum):
    """Tag categories, in descending match weight"""
    SKILL = "SKILL"
    EXPERIENCE = "EXPERIENCE"
    INDUSTRY = "INDUSTRY"
    EDUCATION = "EDUCATION"
    PERSONALITY = "PERSONALITY"
    OTHER = "OTHER"


candidate_tags = Table(
    "candidate_tags",
    Base.metadata,
    Column("candidate_id", String(36), ForeignKey("candidates.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", String(36), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)

job_posting_tags = Table(
    "job_posting_tags",
    Base.metadata,
    Column("job_posting_id", String(36), ForeignKey("job_postings.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", String(36), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Tag(Base):
    __tablename__ = "tags"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False, index=True)
    category = Column(Enum(TagCategory), nullable=False, default=TagCategory.OTHER)

    __table_args__ = (
        UniqueConstraint("name", "category", name="uq_tags_name_category"),
    )

    def __repr__(self):
        return f"<Tag(name='{self.name}', category={self.category})>"
