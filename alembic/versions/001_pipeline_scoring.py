# alembic/versions/001_pipeline_scoring.py

"""Pipeline scoring schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Create recommendations table
    op.create_table('recommendations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('predicted_monthly', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('predicted_onetime', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('confidence_score', sa.Integer(), nullable=False),
        sa.Column('confidence_percent', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('weighted_monthly', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('weighted_onetime', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('base_score', sa.Integer(), nullable=True),
        sa.Column('total_penalties', sa.Numeric(precision=6, scale=2), nullable=True),
        sa.Column('total_bonus', sa.Numeric(precision=6, scale=2), nullable=True),
        sa.Column('last_scored_at', sa.DateTime(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('closed_lost_at', sa.DateTime(), nullable=True),
        sa.Column('closed_lost_reason', sa.Text(), nullable=True),
        sa.Column('snoozed_until', sa.DateTime(), nullable=True),
        sa.Column('revived_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_recommendations_status', 'recommendations', ['status'])
    op.create_index('ix_recommendations_created_by', 'recommendations', ['created_by'])
    op.create_index('ix_recommendations_last_scored_at', 'recommendations', ['last_scored_at'])

    # Create recommendation_invites table
    op.create_table('recommendation_invites',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('recommendation_id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('email_opened_at', sa.DateTime(), nullable=True),
        sa.Column('account_created_at', sa.DateTime(), nullable=True),
        sa.Column('viewed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['recommendation_id'], ['recommendations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_rec_invites_recommendation', 'recommendation_invites', ['recommendation_id'])

    # Create recommendation_communications table
    op.create_table('recommendation_communications',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('recommendation_id', sa.String(length=36), nullable=False),
        sa.Column('direction', sa.String(length=10), nullable=False),
        sa.Column('channel', sa.String(length=10), nullable=False),
        sa.Column('contact_at', sa.DateTime(), nullable=False),
        sa.Column('source', sa.String(length=20), nullable=False),
        sa.Column('external_message_id', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['recommendation_id'], ['recommendations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('recommendation_id', 'external_message_id', name='uq_rec_comms_external_message')
    )
    op.create_index(
        'ix_rec_comms_recommendation_contact',
        'recommendation_communications',
        ['recommendation_id', 'contact_at'],
    )

    # Create recommendation_call_scores table
    op.create_table('recommendation_call_scores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('recommendation_id', sa.String(length=36), nullable=False),
        sa.Column('budget_clarity', sa.String(length=20), nullable=False),
        sa.Column('competition', sa.String(length=20), nullable=False),
        sa.Column('engagement', sa.String(length=20), nullable=False),
        sa.Column('plan_fit', sa.String(length=20), nullable=False),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['recommendation_id'], ['recommendations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('recommendation_id')
    )

    # Create pipeline_score_history table (insert-only)
    op.create_table('pipeline_score_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('recommendation_id', sa.String(length=36), nullable=False),
        sa.Column('scored_at', sa.DateTime(), nullable=False),
        sa.Column('trigger_source', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=True),
        sa.Column('confidence_score', sa.Integer(), nullable=False),
        sa.Column('confidence_percent', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('weighted_monthly', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('weighted_onetime', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('breakdown', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['recommendation_id'], ['recommendations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('recommendation_id', 'scored_at', name='uq_score_history_rec_scored_at')
    )
    op.create_index(
        'ix_score_history_rec_scored_at',
        'pipeline_score_history',
        ['recommendation_id', 'scored_at'],
    )


def downgrade():
    op.drop_index('ix_score_history_rec_scored_at', table_name='pipeline_score_history')
    op.drop_table('pipeline_score_history')
    op.drop_table('recommendation_call_scores')
    op.drop_index('ix_rec_comms_recommendation_contact', table_name='recommendation_communications')
    op.drop_table('recommendation_communications')
    op.drop_index('ix_rec_invites_recommendation', table_name='recommendation_invites')
    op.drop_table('recommendation_invites')
    op.drop_index('ix_recommendations_last_scored_at', table_name='recommendations')
    op.drop_index('ix_recommendations_created_by', table_name='recommendations')
    op.drop_index('ix_recommendations_status', table_name='recommendations')
    op.drop_table('recommendations')
