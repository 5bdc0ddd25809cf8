"""Create shops table for installed stores and their access tokens

Revision ID: p1a2b3c4d5e6
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'p1a2b3c4d5e6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create shops table."""
    op.create_table(
        'shops',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_domain', sa.String(255), nullable=False),
        sa.Column('shop_name', sa.String(255), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('scope', sa.String(500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('installed_at', sa.DateTime(), nullable=True),
        sa.Column('uninstalled_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_shops_shop_domain', 'shops', ['shop_domain'], unique=True)


def downgrade():
    """Drop shops table."""
    op.drop_index('ix_shops_shop_domain', table_name='shops')
    op.drop_table('shops')
