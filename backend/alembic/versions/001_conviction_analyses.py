"""Conviction analyses table

Revision ID: 001_conviction_analyses
Revises:
Create Date: 2026-10-18 09:30:00

Creates the stored-analysis population used for cohort percentiles,
cohort statistics and the leaderboard:
- conviction_analyses table, one row per (address, chain, time_horizon, day)
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_conviction_analyses'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create conviction_analyses and its indexes"""

    # =========================================================================
    # TABLE: conviction_analyses
    # =========================================================================
    op.create_table(
        'conviction_analyses',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),

        sa.Column('address', sa.String(64), nullable=False),
        sa.Column('chain', sa.String(16), nullable=False),
        sa.Column('ens_name', sa.String(255), nullable=True),
        sa.Column('farcaster_username', sa.String(255), nullable=True),
        sa.Column('ethos_score', sa.Float(), nullable=True),

        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('patience_tax', sa.Float(), nullable=False, server_default='0'),
        sa.Column('upside_capture', sa.Float(), nullable=False, server_default='0'),
        sa.Column('early_exits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('conviction_wins', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('percentile', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('archetype', sa.String(32), nullable=True),
        sa.Column('total_positions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('avg_holding_period', sa.Float(), nullable=False, server_default='0'),
        sa.Column('win_rate', sa.Float(), nullable=False, server_default='0'),

        sa.Column('time_horizon', sa.Integer(), nullable=False),
        sa.Column('analyzed_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('analyzed_date', sa.Date(), nullable=False),

        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'address', 'chain', 'time_horizon', 'analyzed_date',
            name='uq_conviction_analysis_daily'
        ),
        sa.CheckConstraint('score >= 0 AND score <= 100', name='check_score_range'),
        sa.CheckConstraint("chain IN ('solana', 'base')", name='check_chain'),
    )

    op.create_index('ix_conviction_analyses_address', 'conviction_analyses', ['address'])
    op.create_index('idx_conviction_chain_score', 'conviction_analyses', ['chain', 'score'])
    op.create_index('idx_conviction_analyzed_at', 'conviction_analyses', ['analyzed_at'])
    op.create_index('idx_conviction_archetype', 'conviction_analyses', ['archetype'])


def downgrade() -> None:
    """Drop conviction_analyses"""
    op.drop_index('idx_conviction_archetype', table_name='conviction_analyses')
    op.drop_index('idx_conviction_analyzed_at', table_name='conviction_analyses')
    op.drop_index('idx_conviction_chain_score', table_name='conviction_analyses')
    op.drop_index('ix_conviction_analyses_address', table_name='conviction_analyses')
    op.drop_table('conviction_analyses')
