"""meal plans

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: Union[str, None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'meal_plan',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('app_user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('goal', sa.Text(), nullable=False),
        sa.Column('calories', sa.Integer(), nullable=False),
        sa.Column('macros', postgresql.JSONB(), nullable=False),
        sa.Column('meals', postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('preferences', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_meal_plan_user_id', 'meal_plan', ['user_id'])
    op.create_index('ix_meal_plan_created_at', 'meal_plan', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_meal_plan_created_at', table_name='meal_plan')
    op.drop_index('ix_meal_plan_user_id', table_name='meal_plan')
    op.drop_table('meal_plan')
