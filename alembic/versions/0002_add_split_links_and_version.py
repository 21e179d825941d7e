"""add split links, fulfillment and version to orders

Revision ID: split_links
Revises: initial_models
Create Date: 2025-10-02 19:12:07.412093
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'split_links'
down_revision: Union[str, Sequence[str], None] = 'initial_models'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

order_fulfillment = sa.Enum('kitchen', 'direct', name='order_fulfillment')


def upgrade() -> None:
    """Upgrade schema: linked_order_id, fulfillment, version."""
    order_fulfillment.create(op.get_bind(), checkfirst=True)

    op.add_column('orders', sa.Column('linked_order_id', sa.Integer, nullable=True))
    op.create_foreign_key('fk_orders_linked_order_id', 'orders', 'orders', ['linked_order_id'], ['id'])
    op.create_index('ix_orders_linked_order_id', 'orders', ['linked_order_id'])

    op.add_column('orders', sa.Column('fulfillment', order_fulfillment, nullable=False, server_default='kitchen'))
    op.add_column('orders', sa.Column('version', sa.Integer, nullable=False, server_default='1'))

    # прямые заказы, созданные до разделения корзины, сразу были поданы
    op.execute("UPDATE orders SET fulfillment = 'direct' WHERE status <> 'pending' AND chef_id IS NULL")


def downgrade() -> None:
    """Downgrade schema: remove link, fulfillment and version columns."""
    op.drop_column('orders', 'version')
    op.drop_column('orders', 'fulfillment')
    op.drop_index('ix_orders_linked_order_id', table_name='orders')
    op.drop_constraint('fk_orders_linked_order_id', 'orders', type_='foreignkey')
    op.drop_column('orders', 'linked_order_id')
    order_fulfillment.drop(op.get_bind(), checkfirst=True)
