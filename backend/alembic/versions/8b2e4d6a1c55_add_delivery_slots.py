"""Add delivery slots and the slot chosen for each order

Revision ID: 8b2e4d6a1c55
Revises: 3f1c9a2b7d10
Create Date: 2026-10-19 16:40:03.518277

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# Revision identifiers used by Alembic
revision: str = '8b2e4d6a1c55'
down_revision: Union[str, Sequence[str], None] = '3f1c9a2b7d10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'delivery_slots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('start_time', sa.String(length=5), nullable=False),
        sa.Column('end_time', sa.String(length=5), nullable=False),
        sa.Column('max_orders', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.CheckConstraint('max_orders > 0'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_delivery_slots_id'), 'delivery_slots', ['id'], unique=False)

    # Slot chosen at checkout, with its label copied so later edits do not rewrite history
    with op.batch_alter_table('orders') as batch_op:
        batch_op.add_column(sa.Column('delivery_slot_id', sa.Integer(), nullable=True))
        batch_op.add_column(sa.Column('delivery_slot_label', sa.String(), nullable=True))
        batch_op.create_foreign_key('fk_orders_delivery_slot_id', 'delivery_slots',
                                    ['delivery_slot_id'], ['id'])


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table('orders') as batch_op:
        batch_op.drop_constraint('fk_orders_delivery_slot_id', type_='foreignkey')
        batch_op.drop_column('delivery_slot_label')
        batch_op.drop_column('delivery_slot_id')
    op.drop_index(op.f('ix_delivery_slots_id'), table_name='delivery_slots')
    op.drop_table('delivery_slots')
