"""Create view_states table for persisted filter state and agency selection

Revision ID: 001_view_states
Revises: None
Create Date: 2026-10-16
"""
from alembic import op
import sqlalchemy as sa

revision = '001_view_states'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'view_states',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('key', sa.String(), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_view_states_id', 'view_states', ['id'])
    op.create_index('ix_view_states_key', 'view_states', ['key'], unique=True)


def downgrade():
    op.drop_index('ix_view_states_key', table_name='view_states')
    op.drop_index('ix_view_states_id', table_name='view_states')
    op.drop_table('view_states')
