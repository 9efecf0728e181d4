"""deferred_links

Revision ID: 001
Revises:
Create Date: 2026-09-28 10:00:00

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'deferred_links',
        sa.Column('id', sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column('install_ref', sa.Text(), nullable=False),
        sa.Column('short_code', sa.Text(), nullable=False),
        sa.Column('content_id', sa.Text(), nullable=False),
        sa.Column('token_hash', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('subject_id', sa.Text(), nullable=False),
        sa.Column('auxiliary_id', sa.Text(), nullable=True),
        sa.Column('device_user_agent', sa.Text(), nullable=True),
        sa.Column('device_ip', sa.Text(), nullable=True),
        sa.Column('install_source', sa.Text(), server_default='play_store', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('consumed', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('consumed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('install_ref', name='uq_deferred_links_install_ref'),
        sa.UniqueConstraint('short_code', name='uq_deferred_links_short_code'),
        sa.CheckConstraint(
            'consumed = (consumed_at IS NOT NULL)',
            name='ck_deferred_links_consumed_at',
        ),
    )
    op.create_index('ix_deferred_links_created_consumed', 'deferred_links', ['created_at', 'consumed'], unique=False)
    op.create_index('ix_deferred_links_ip_consumed_created', 'deferred_links', ['device_ip', 'consumed', 'created_at'], unique=False)
    op.create_index('ix_deferred_links_expires_at', 'deferred_links', ['expires_at'], unique=False)

def downgrade():
    op.drop_index('ix_deferred_links_expires_at', table_name='deferred_links')
    op.drop_index('ix_deferred_links_ip_consumed_created', table_name='deferred_links')
    op.drop_index('ix_deferred_links_created_consumed', table_name='deferred_links')
    op.drop_table('deferred_links')
