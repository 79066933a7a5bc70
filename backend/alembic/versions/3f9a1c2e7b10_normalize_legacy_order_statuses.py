"""Normalize legacy order statuses

Revision ID: 3f9a1c2e7b10
Revises: 
Create Date: 2026-10-12 09:41:27.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# Revision identifiers used by Alembic
revision: str = '3f9a1c2e7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Synonyms written by older clients -> canonical status
LEGACY_STATUSES = {
    'pending': 'processing',
    'shipped': 'shipping',
    'successful': 'delivered',
    'success': 'delivered',
    'completed': 'delivered',
    'canceled': 'cancelled',
}


def upgrade() -> None:
    """Upgrade schema."""
    orders = sa.table('orders', sa.column('status', sa.String))
    conn = op.get_bind()
    # Case and surrounding whitespace were never consistent either
    conn.execute(
        orders.update().values(status=sa.func.lower(sa.func.trim(orders.c.status)))
    )
    for legacy, canonical in LEGACY_STATUSES.items():
        conn.execute(
            orders.update().where(orders.c.status == legacy).values(status=canonical)
        )
    conn.execute(
        orders.update().where(orders.c.status.is_(None)).values(status='processing')
    )


def downgrade() -> None:
    """Downgrade schema."""
    # Canonical values are valid for old clients too; nothing to undo
    pass
