"""categories_lookup

Revision ID: 002
Revises: 001
Create Date: 2026-09-28 10:30:00

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None

def upgrade():
    # The content catalogue is owned by the host application; only create it
    # when this service runs against a standalone database.
    conn = op.get_bind()
    if sa.inspect(conn).has_table('categories'):
        return

    op.create_table(
        'categories',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

def downgrade():
    # Leave a host-owned catalogue in place.
    pass
