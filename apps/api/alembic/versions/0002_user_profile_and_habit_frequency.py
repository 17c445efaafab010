"""user profile fields and habit frequency policy

Revision ID: 0002
Revises: 0001
Create Date: 2026-02-15 00:00:00.000000

Additive only; existing rows get the server defaults.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: Union[str, None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table('users') as batch:
        batch.add_column(sa.Column('display_name', sa.Text(), nullable=True))
        batch.add_column(sa.Column('username', sa.Text(), nullable=True))
        batch.add_column(sa.Column('bio', sa.Text(), server_default='', nullable=False))
        batch.add_column(sa.Column('banner_color', sa.Text(), server_default='#7c3aed', nullable=False))
        batch.add_column(sa.Column('profile', sa.JSON(), nullable=True))
        batch.add_column(sa.Column('onboarding_complete', sa.Boolean(), server_default=sa.false(), nullable=False))

    with op.batch_alter_table('habits') as batch:
        batch.add_column(sa.Column('frequency_type', sa.Text(), server_default='daily', nullable=False))
        batch.add_column(sa.Column('frequency_count', sa.Integer(), server_default='1', nullable=False))


def downgrade() -> None:
    with op.batch_alter_table('habits') as batch:
        batch.drop_column('frequency_count')
        batch.drop_column('frequency_type')

    with op.batch_alter_table('users') as batch:
        batch.drop_column('onboarding_complete')
        batch.drop_column('profile')
        batch.drop_column('banner_color')
        batch.drop_column('bio')
        batch.drop_column('username')
        batch.drop_column('display_name')
