"""Assessment engine schema: users, agents, catalogue, responses, jobs, deliverables

Revision ID: 3f9a1c7e2b40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a1c7e2b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NOW = sa.text('(CURRENT_TIMESTAMP)')
OUTSTANDING = sa.text("status IN ('queued', 'processing')")


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('users',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('first_name', sa.Text(), nullable=True),
        sa.Column('last_name', sa.Text(), nullable=True),
        sa.Column('company_name', sa.Text(), nullable=True),
        sa.Column('industry', sa.Text(), nullable=True),
        sa.Column('revenue', sa.Text(), nullable=True),
        sa.Column('team_size', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    op.create_table('agents',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('specialty', sa.Text(), nullable=False),
        sa.Column('background', sa.Text(), nullable=True),
        sa.Column('expertise', sa.Text(), nullable=True),
        sa.Column('experience', sa.Text(), nullable=True),
        sa.Column('profile_image_url', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('assessment_questions',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('domain_name', sa.Text(), nullable=False),
        sa.Column('question_id', sa.Text(), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('question_type', sa.Text(), nullable=True),
        sa.Column('industry', sa.Text(), nullable=True),
        sa.Column('order_index', sa.Integer(), nullable=False),
        sa.Column('options', sa.JSON(), nullable=False),
        sa.Column('follow_up_logic', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('domain_name', 'question_id', name='uq_question_domain_qid'),
    )
    op.create_index('ix_assessment_questions_domain_name', 'assessment_questions', ['domain_name'])

    op.create_table('assessments',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('progress', sa.Integer(), nullable=True),
        sa.Column('questions_answered', sa.Integer(), nullable=True),
        sa.Column('total_questions', sa.Integer(), nullable=True),
        sa.Column('documents_uploaded', sa.Integer(), nullable=True),
        sa.Column('executive_summary_path', sa.Text(), nullable=True),
        sa.Column('detailed_analysis_path', sa.Text(), nullable=True),
        sa.Column('implementation_kit_path', sa.Text(), nullable=True),
        sa.Column('payment_reference', sa.Text(), nullable=True),
        sa.Column('payment_settled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('currency', sa.Text(), nullable=True),
        sa.Column('analysis_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_assessments_user_id', 'assessments', ['user_id'])

    op.create_table('assessment_domains',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('assessment_id', sa.Text(), nullable=False),
        sa.Column('domain_name', sa.Text(), nullable=False),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('health', sa.Text(), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('recommendations', sa.JSON(), nullable=True),
        sa.Column('key_insights', sa.JSON(), nullable=True),
        sa.Column('quick_wins', sa.JSON(), nullable=True),
        sa.Column('risk_factors', sa.JSON(), nullable=True),
        sa.Column('agent_id', sa.Text(), nullable=True),
        sa.Column('analysis_complete', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(['assessment_id'], ['assessments.id']),
        sa.ForeignKeyConstraint(['agent_id'], ['agents.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('assessment_id', 'domain_name', name='uq_assessment_domain'),
    )
    op.create_index('ix_assessment_domains_assessment_id', 'assessment_domains', ['assessment_id'])

    op.create_table('assessment_responses',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('assessment_id', sa.Text(), nullable=False),
        sa.Column('domain_name', sa.Text(), nullable=False),
        sa.Column('question_id', sa.Text(), nullable=False),
        sa.Column('response', sa.Text(), nullable=True),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(['assessment_id'], ['assessments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('assessment_id', 'domain_name', 'question_id', name='uq_response_question'),
    )
    op.create_index('ix_assessment_responses_assessment_id', 'assessment_responses', ['assessment_id'])

    op.create_table('documents',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('assessment_id', sa.Text(), nullable=False),
        sa.Column('file_name', sa.Text(), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('file_type', sa.Text(), nullable=True),
        sa.Column('object_path', sa.Text(), nullable=False),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(['assessment_id'], ['assessments.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_documents_assessment_id', 'documents', ['assessment_id'])

    op.create_table('analysis_jobs',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('assessment_id', sa.Text(), nullable=False),
        sa.Column('domain_name', sa.Text(), nullable=False),
        sa.Column('agent_id', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('attempt', sa.Integer(), nullable=False),
        sa.Column('prompt', sa.Text(), nullable=True),
        sa.Column('response', sa.Text(), nullable=True),
        sa.Column('tokens_used', sa.Integer(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('cancel_requested', sa.Boolean(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(['assessment_id'], ['assessments.id']),
        sa.ForeignKeyConstraint(['agent_id'], ['agents.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_analysis_jobs_assessment_id', 'analysis_jobs', ['assessment_id'])
    # At most one queued/processing job per (assessment, domain)
    op.create_index(
        'uq_analysis_jobs_outstanding', 'analysis_jobs', ['assessment_id', 'domain_name'],
        unique=True, sqlite_where=OUTSTANDING, postgresql_where=OUTSTANDING,
    )

    op.create_table('deliverables',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('assessment_id', sa.Text(), nullable=False),
        sa.Column('tier', sa.Text(), nullable=False),
        sa.Column('path', sa.Text(), nullable=False),
        sa.Column('content_hash', sa.Text(), nullable=False),
        sa.Column('domains_included', sa.JSON(), nullable=True),
        sa.Column('degraded', sa.Boolean(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=True),
        sa.Column('assembled_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['assessment_id'], ['assessments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('assessment_id', 'tier', name='uq_deliverable_tier'),
    )
    op.create_index('ix_deliverables_assessment_id', 'deliverables', ['assessment_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_deliverables_assessment_id', table_name='deliverables')
    op.drop_table('deliverables')
    op.drop_index('uq_analysis_jobs_outstanding', table_name='analysis_jobs')
    op.drop_index('ix_analysis_jobs_assessment_id', table_name='analysis_jobs')
    op.drop_table('analysis_jobs')
    op.drop_index('ix_documents_assessment_id', table_name='documents')
    op.drop_table('documents')
    op.drop_index('ix_assessment_responses_assessment_id', table_name='assessment_responses')
    op.drop_table('assessment_responses')
    op.drop_index('ix_assessment_domains_assessment_id', table_name='assessment_domains')
    op.drop_table('assessment_domains')
    op.drop_index('ix_assessments_user_id', table_name='assessments')
    op.drop_table('assessments')
    op.drop_index('ix_assessment_questions_domain_name', table_name='assessment_questions')
    op.drop_table('assessment_questions')
    op.drop_table('agents')
    op.drop_table('users')
