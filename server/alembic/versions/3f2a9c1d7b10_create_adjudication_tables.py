"""create_adjudication_tables

Revision ID: 3f2a9c1d7b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('auth_id', sa.String(), nullable=True, unique=True),
        sa.Column('username', sa.String(), nullable=False),
        sa.Column('elo_rating', sa.Integer(), server_default='1200', nullable=False),
        sa.Column('debates_won', sa.Integer(), server_default='0', nullable=False),
        sa.Column('debates_lost', sa.Integer(), server_default='0', nullable=False),
        sa.Column('debates_tied', sa.Integer(), server_default='0', nullable=False),
        sa.Column('total_debates', sa.Integer(), server_default='0', nullable=False),
        sa.Column('total_score', sa.Float(), server_default='0', nullable=False),
        sa.Column('total_max_score', sa.Float(), server_default='0', nullable=False),
        sa.Column('average_rounds', sa.Float(), server_default='0', nullable=False),
    )
    op.create_table(
        'judge',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('personality', sa.String(), nullable=True),
        sa.Column('system_prompt', sa.Text(), nullable=False),
        sa.Column('debates_judged', sa.Integer(), server_default='0', nullable=False),
    )
    op.create_table(
        'debate',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('topic', sa.String(), nullable=False),
        sa.Column('challenger_position', sa.String(), nullable=False),
        sa.Column('opponent_position', sa.String(), nullable=False),
        sa.Column('challenger_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('opponent_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('current_round', sa.Integer(), server_default='1', nullable=False),
        sa.Column('total_rounds', sa.Integer(), server_default='5', nullable=False),
        sa.Column('status', sa.String(), server_default='ACTIVE', nullable=False),
        sa.Column('winner_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('verdict_reached', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('verdict_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('challenger_elo_change', sa.Integer(), nullable=True),
        sa.Column('opponent_elo_change', sa.Integer(), nullable=True),
        sa.Column('resolution_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('appeal_status', sa.String(), nullable=True),
        sa.Column('appeal_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('appealed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('appealed_by', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('appeal_reason', sa.Text(), nullable=True),
        sa.Column('appealed_verdict_ids', sa.JSON(), nullable=True),
        sa.Column('original_winner_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('appeal_rejection_reason', sa.Text(), nullable=True),
        sa.Column('tournament_match_id', sa.String(), nullable=True),
    )
    op.create_index('ix_debate_status', 'debate', ['status'])
    op.create_table(
        'statement',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('debate_id', sa.Integer(), sa.ForeignKey('debate.id'), nullable=False),
        sa.Column('author_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('round', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_statement_debate', 'statement', ['debate_id'])
    op.create_table(
        'verdict',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('debate_id', sa.Integer(), sa.ForeignKey('debate.id'), nullable=False),
        sa.Column('judge_id', sa.Integer(), sa.ForeignKey('judge.id'), nullable=False),
        sa.Column('phase', sa.String(), server_default='ORIGINAL', nullable=False),
        sa.Column('decision', sa.String(), nullable=False),
        sa.Column('reasoning', sa.Text(), nullable=False),
        sa.Column('challenger_score', sa.Float(), nullable=False),
        sa.Column('opponent_score', sa.Float(), nullable=False),
        sa.Column('winner_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('debate_id', 'phase', 'judge_id', name='uq_verdict_phase_judge'),
    )
    op.create_index('ix_verdict_debate', 'verdict', ['debate_id'])
    op.create_table(
        'notification',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('debate_id', sa.Integer(), sa.ForeignKey('debate.id'), nullable=True),
        sa.Column('read', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_notification_user', 'notification', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_notification_user', table_name='notification')
    op.drop_table('notification')
    op.drop_index('ix_verdict_debate', table_name='verdict')
    op.drop_table('verdict')
    op.drop_index('ix_statement_debate', table_name='statement')
    op.drop_table('statement')
    op.drop_index('ix_debate_status', table_name='debate')
    op.drop_table('debate')
    op.drop_table('judge')
    op.drop_table('user')
