"""Create candidate, job posting and task queue tables

Revision ID: 3f6c1a9d2b7e
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f6c1a9d2b7e'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


TASK_STATUSES = ('PENDING', 'RUNNING', 'COMPLETED', 'FAILED', 'CANCELLED')


def _task_columns(enum_name: str, create_type: bool):
    """Columns every queue table shares"""
    return [
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('status', postgresql.ENUM(*TASK_STATUSES, name=enum_name, create_type=create_type), nullable=False),
        sa.Column('scheduled_for', sa.DateTime(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema - Add tag, candidate, job posting, match and queue tables."""
    op.create_table('tags',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('category', sa.Enum('SKILL', 'EXPERIENCE', 'INDUSTRY', 'EDUCATION', 'PERSONALITY', 'OTHER', name='tagcategory'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', 'category', name='uq_tags_name_category')
    )
    op.create_index(op.f('ix_tags_name'), 'tags', ['name'], unique=False)

    op.create_table('candidates',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('education', sa.Text(), nullable=True),
        sa.Column('work_experience', sa.Text(), nullable=True),
        sa.Column('current_position', sa.String(), nullable=True),
        sa.Column('current_company', sa.String(), nullable=True),
        sa.Column('resume_url', sa.String(), nullable=True),
        sa.Column('resume_file_name', sa.String(), nullable=True),
        sa.Column('resume_content', sa.Text(), nullable=True),
        sa.Column('initial_score', sa.Float(), nullable=True),
        sa.Column('total_score', sa.Float(), nullable=True),
        sa.Column('ai_evaluation', sa.Text(), nullable=True),
        sa.Column('status', sa.Enum('NEW', 'SCREENING', 'INTERVIEWING', 'HIRED', 'REJECTED', name='candidatestatus'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_candidates_id'), 'candidates', ['id'], unique=False)
    op.create_index(op.f('ix_candidates_email'), 'candidates', ['email'], unique=True)
    op.create_index(op.f('ix_candidates_total_score'), 'candidates', ['total_score'], unique=False)
    op.create_index(op.f('ix_candidates_status'), 'candidates', ['status'], unique=False)

    op.create_table('job_postings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('department', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('requirements', sa.Text(), nullable=True),
        sa.Column('status', sa.Enum('DRAFT', 'ACTIVE', 'CLOSED', name='jobpostingstatus'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_job_postings_id'), 'job_postings', ['id'], unique=False)
    op.create_index(op.f('ix_job_postings_title'), 'job_postings', ['title'], unique=False)
    op.create_index(op.f('ix_job_postings_status'), 'job_postings', ['status'], unique=False)

    op.create_table('candidate_tags',
        sa.Column('candidate_id', sa.String(length=36), nullable=False),
        sa.Column('tag_id', sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(['candidate_id'], ['candidates.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tag_id'], ['tags.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('candidate_id', 'tag_id')
    )

    op.create_table('job_posting_tags',
        sa.Column('job_posting_id', sa.String(length=36), nullable=False),
        sa.Column('tag_id', sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(['job_posting_id'], ['job_postings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tag_id'], ['tags.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('job_posting_id', 'tag_id')
    )

    op.create_table('job_matches',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('candidate_id', sa.String(length=36), nullable=False),
        sa.Column('job_posting_id', sa.String(length=36), nullable=False),
        sa.Column('match_score', sa.Float(), nullable=False),
        sa.Column('tag_score', sa.Float(), nullable=False),
        sa.Column('tag_match', sa.JSON(), nullable=False),
        sa.Column('ai_evaluation', sa.Text(), nullable=False),
        sa.Column('used_fallback', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['candidate_id'], ['candidates.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['job_posting_id'], ['job_postings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('candidate_id', 'job_posting_id', name='uq_job_matches_candidate_job')
    )
    op.create_index(op.f('ix_job_matches_id'), 'job_matches', ['id'], unique=False)
    op.create_index(op.f('ix_job_matches_candidate_id'), 'job_matches', ['candidate_id'], unique=False)
    op.create_index(op.f('ix_job_matches_job_posting_id'), 'job_matches', ['job_posting_id'], unique=False)
    op.create_index(op.f('ix_job_matches_match_score'), 'job_matches', ['match_score'], unique=False)

    # Queue tables; the three share one status ENUM type
    op.create_table('scheduled_parses',
        *_task_columns('taskstatus', create_type=True),
        sa.Column('file_id', sa.String(), nullable=False),
        sa.Column('object_name', sa.String(), nullable=False),
        sa.Column('content_type', sa.String(), nullable=False),
        sa.Column('original_name', sa.String(), nullable=True),
        sa.Column('candidate_id', sa.String(length=36), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_scheduled_parses_id'), 'scheduled_parses', ['id'], unique=False)
    op.create_index(op.f('ix_scheduled_parses_status'), 'scheduled_parses', ['status'], unique=False)
    op.create_index(op.f('ix_scheduled_parses_scheduled_for'), 'scheduled_parses', ['scheduled_for'], unique=False)
    op.create_index(op.f('ix_scheduled_parses_file_id'), 'scheduled_parses', ['file_id'], unique=False)
    op.create_index('ix_scheduled_parses_status_scheduled_for', 'scheduled_parses', ['status', 'scheduled_for'], unique=False)

    op.create_table('scheduled_matches',
        *_task_columns('taskstatus', create_type=False),
        sa.Column('job_posting_id', sa.String(length=36), nullable=False),
        sa.Column('candidate_ids', sa.JSON(), nullable=False),
        sa.Column('total_candidates', sa.Integer(), nullable=False),
        sa.Column('processed_count', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_scheduled_matches_id'), 'scheduled_matches', ['id'], unique=False)
    op.create_index(op.f('ix_scheduled_matches_status'), 'scheduled_matches', ['status'], unique=False)
    op.create_index(op.f('ix_scheduled_matches_scheduled_for'), 'scheduled_matches', ['scheduled_for'], unique=False)
    op.create_index(op.f('ix_scheduled_matches_job_posting_id'), 'scheduled_matches', ['job_posting_id'], unique=False)
    op.create_index('ix_scheduled_matches_status_scheduled_for', 'scheduled_matches', ['status', 'scheduled_for'], unique=False)

    op.create_table('ai_gen_tasks',
        *_task_columns('taskstatus', create_type=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('department', sa.String(), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('requirements', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_ai_gen_tasks_id'), 'ai_gen_tasks', ['id'], unique=False)
    op.create_index(op.f('ix_ai_gen_tasks_status'), 'ai_gen_tasks', ['status'], unique=False)
    op.create_index(op.f('ix_ai_gen_tasks_scheduled_for'), 'ai_gen_tasks', ['scheduled_for'], unique=False)


def downgrade() -> None:
    """Downgrade schema - Drop every table created above."""
    op.drop_table('ai_gen_tasks')
    op.drop_table('scheduled_matches')
    op.drop_table('scheduled_parses')
    op.drop_table('job_matches')
    op.drop_table('job_posting_tags')
    op.drop_table('candidate_tags')
    op.drop_table('job_postings')
    op.drop_table('candidates')
    op.drop_table('tags')

    for enum_name in ('taskstatus', 'jobpostingstatus', 'candidatestatus', 'tagcategory'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
