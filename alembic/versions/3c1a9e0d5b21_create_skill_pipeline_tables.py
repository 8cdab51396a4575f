"""create skill pipeline tables

Revision ID: 3c1a9e0d5b21
Revises:
Create Date: 2025-11-18 10:12:44.201533

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1a9e0d5b21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'descriptions',
        sa.Column('processing_id', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('processing_id'),
    )
    op.create_table(
        'extracted_documents',
        sa.Column('processing_id', sa.String(length=64), nullable=False),
        sa.Column('mention_count', sa.Integer(), nullable=False),
        sa.Column('skills_csv', sa.Text(), nullable=False),
        sa.Column('extracted_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('processing_id'),
    )
    op.create_table(
        'skill_mentions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('processing_id', sa.String(length=64), nullable=False),
        sa.Column('raw_text', sa.String(length=255), nullable=False),
        sa.Column('canonical_key', sa.String(length=255), nullable=False),
        sa.Column('required', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['processing_id'], ['extracted_documents.processing_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_skill_mentions_processing_id', 'skill_mentions', ['processing_id'])
    op.create_index('ix_skill_mentions_canonical_key', 'skill_mentions', ['canonical_key'])
    op.create_table(
        'skill_vectors',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('mention_id', sa.Integer(), nullable=False),
        sa.Column('model', sa.String(length=128), nullable=False),
        sa.Column('dim', sa.Integer(), nullable=False),
        sa.Column('vector', sa.LargeBinary(), nullable=False),
        sa.ForeignKeyConstraint(['mention_id'], ['skill_mentions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_skill_vectors_mention_id', 'skill_vectors', ['mention_id'], unique=True)
    op.create_table(
        'consolidated_skills',
        sa.Column('processing_id', sa.String(length=64), nullable=False),
        sa.Column('required_skills', sa.JSON(), nullable=False),
        sa.Column('skills_to_learn', sa.JSON(), nullable=False),
        sa.Column('skills_csv', sa.Text(), nullable=False),
        sa.Column('normalized_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('processing_id'),
    )
    op.create_table(
        'skills',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('skill_name', sa.String(length=255), nullable=False),
        sa.Column('canonical_key', sa.String(length=255), nullable=False),
        sa.Column('total_references', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_skills_canonical_key', 'skills', ['canonical_key'], unique=True)
    op.create_table(
        'skills_jobs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('processing_id', sa.String(length=64), nullable=False),
        sa.Column('skill_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['skill_id'], ['skills.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('processing_id', 'skill_id', name='uq_skills_jobs_pair'),
    )
    op.create_index('ix_skills_jobs_processing_id', 'skills_jobs', ['processing_id'])
    op.create_index('ix_skills_jobs_skill_id', 'skills_jobs', ['skill_id'])
    op.create_table(
        'usage_ledger',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('run_timestamp', sa.DateTime(), nullable=False),
        sa.Column('stage', sa.String(length=32), nullable=False),
        sa.Column('model_used', sa.String(length=64), nullable=False),
        sa.Column('input_tokens', sa.Integer(), nullable=False),
        sa.Column('output_tokens', sa.Integer(), nullable=False),
        sa.Column('total_cost_usd', sa.Float(), nullable=False),
        sa.Column('batch_number', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_usage_ledger_stage', 'usage_ledger', ['stage'])
    op.create_table(
        'user_profiles',
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('technical_skills', sa.Text(), nullable=True),
        sa.Column('soft_skills', sa.Text(), nullable=True),
        sa.Column('extra_curriculars', sa.Text(), nullable=True),
        sa.Column('personal_projects', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('user_id'),
    )
    op.create_table(
        'user_skills',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('skill_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['skill_id'], ['skills.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'skill_id', name='uq_user_skills_pair'),
    )
    op.create_index('ix_user_skills_user_id', 'user_skills', ['user_id'])
    op.create_index('ix_user_skills_skill_id', 'user_skills', ['skill_id'])
    op.create_table(
        'pipeline_locks',
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('owner', sa.String(length=128), nullable=False),
        sa.Column('acquired_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('name'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('pipeline_locks')
    op.drop_index('ix_user_skills_skill_id', table_name='user_skills')
    op.drop_index('ix_user_skills_user_id', table_name='user_skills')
    op.drop_table('user_skills')
    op.drop_table('user_profiles')
    op.drop_index('ix_usage_ledger_stage', table_name='usage_ledger')
    op.drop_table('usage_ledger')
    op.drop_index('ix_skills_jobs_skill_id', table_name='skills_jobs')
    op.drop_index('ix_skills_jobs_processing_id', table_name='skills_jobs')
    op.drop_table('skills_jobs')
    op.drop_index('ix_skills_canonical_key', table_name='skills')
    op.drop_table('skills')
    op.drop_table('consolidated_skills')
    op.drop_index('ix_skill_vectors_mention_id', table_name='skill_vectors')
    op.drop_table('skill_vectors')
    op.drop_index('ix_skill_mentions_canonical_key', table_name='skill_mentions')
    op.drop_index('ix_skill_mentions_processing_id', table_name='skill_mentions')
    op.drop_table('skill_mentions')
    op.drop_table('extracted_documents')
    op.drop_table('descriptions')
