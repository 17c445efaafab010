"""core habit tables: users, habits, completions

Revision ID: 0001
Revises:
Create Date: 2026-02-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('xp', sa.Integer(), server_default='0', nullable=False),
        sa.CheckConstraint('xp >= 0', name='ck_users_xp_non_negative'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'habits',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('proof_instructions', sa.Text(), nullable=False),
        sa.Column('streak', sa.Integer(), server_default='0', nullable=False),
        sa.Column('longest_streak', sa.Integer(), server_default='0', nullable=False),
        sa.Column('total_completions', sa.Integer(), server_default='0', nullable=False),
        sa.CheckConstraint('streak >= 0', name='ck_habits_streak_non_negative'),
        sa.CheckConstraint('longest_streak >= streak', name='ck_habits_longest_streak_gte_streak'),
        sa.CheckConstraint('total_completions >= 0', name='ck_habits_total_completions_non_negative'),
    )
    op.create_index('ix_habits_user_id', 'habits', ['user_id'])

    op.create_table(
        'completions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('habit_id', sa.Uuid(), sa.ForeignKey('habits.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('completed_date', sa.Text(), nullable=False),
        sa.Column('proof_image', sa.Text(), nullable=True),
        sa.Column('proof_note', sa.Text(), nullable=True),
        sa.Column('ai_verdict', sa.Text(), nullable=False),
        sa.Column('ai_explanation', sa.Text(), nullable=True),
        sa.Column('confidence', sa.Text(), nullable=True),
        sa.Column('xp_earned', sa.Integer(), server_default='0', nullable=False),
        sa.CheckConstraint("ai_verdict IN ('VERIFIED', 'REJECTED')", name='ck_completions_verdict'),
        sa.CheckConstraint('xp_earned >= 0', name='ck_completions_xp_non_negative'),
    )
    op.create_index('ix_completions_user_id', 'completions', ['user_id'])
    op.create_index(
        'ix_completions_habit_date_verdict',
        'completions',
        ['habit_id', 'completed_date', 'ai_verdict'],
    )
    # One VERIFIED attempt per habit per local day
    op.create_index(
        'uq_completions_verified_per_day',
        'completions',
        ['habit_id', 'completed_date'],
        unique=True,
        postgresql_where=sa.text("ai_verdict = 'VERIFIED'"),
        sqlite_where=sa.text("ai_verdict = 'VERIFIED'"),
    )


def downgrade() -> None:
    op.drop_index('uq_completions_verified_per_day', table_name='completions')
    op.drop_index('ix_completions_habit_date_verdict', table_name='completions')
    op.drop_index('ix_completions_user_id', table_name='completions')
    op.drop_table('completions')
    op.drop_index('ix_habits_user_id', table_name='habits')
    op.drop_table('habits')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
