"""Audit log lookup indexes

Revision ID: c41e7d09a2b3
Revises: 8d2e4b6a91c5
Create Date: 2026-10-18 11:02:14.508377

"""
from typing import Sequence, Union

from alembic import op

# Revision identifiers used by Alembic
revision: str = 'c41e7d09a2b3'
down_revision: Union[str, Sequence[str], None] = '8d2e4b6a91c5'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # The log viewer filters by actor and by resource + action
    op.drop_index('ix_logs_action', table_name='logs', if_exists=True)
    op.drop_index('ix_logs_resource', table_name='logs', if_exists=True)
    op.create_index('ix_logs_user_id', 'logs', ['user_id'], if_not_exists=True)
    op.create_index('ix_logs_resource_action', 'logs', ['resource', 'action'], if_not_exists=True)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_logs_resource_action', table_name='logs')
    op.drop_index('ix_logs_user_id', table_name='logs')
    op.create_index('ix_logs_resource', 'logs', ['resource'])
    op.create_index('ix_logs_action', 'logs', ['action'])
