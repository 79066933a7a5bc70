"""Unique variant per cart

Revision ID: 8d2e4b6a91c5
Revises: 3f9a1c2e7b10
Create Date: 2026-10-12 10:05:52.774610

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# Revision identifiers used by Alembic
revision: str = '8d2e4b6a91c5'
down_revision: Union[str, Sequence[str], None] = '3f9a1c2e7b10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    conn = op.get_bind()
    items = sa.table(
        'cart_items',
        sa.column('id', sa.Integer),
        sa.column('cart_id', sa.Integer),
        sa.column('product_variant_id', sa.Integer),
        sa.column('quantity', sa.Integer),
    )

    # Merge duplicate lines into the oldest one before the constraint goes on
    dupes = conn.execute(
        sa.select(
            items.c.cart_id,
            items.c.product_variant_id,
            sa.func.min(items.c.id),
            sa.func.sum(items.c.quantity),
        )
        .group_by(items.c.cart_id, items.c.product_variant_id)
        .having(sa.func.count(items.c.id) > 1)
    ).all()
    for cart_id, variant_id, keep_id, qty in dupes:
        conn.execute(items.update().where(items.c.id == keep_id).values(quantity=qty))
        conn.execute(
            items.delete().where(
                items.c.cart_id == cart_id,
                items.c.product_variant_id == variant_id,
                items.c.id != keep_id,
            )
        )

    with op.batch_alter_table('cart_items') as batch_op:
        batch_op.create_unique_constraint('uq_cartitem_cart_variant', ['cart_id', 'product_variant_id'])


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table('cart_items') as batch_op:
        batch_op.drop_constraint('uq_cartitem_cart_variant', type_='unique')
