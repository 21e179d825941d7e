"""initial models"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "initial_models"
down_revision = None
branch_labels = None
depends_on = None

order_status = sa.Enum("pending", "preparing", "served", "paid", "cleared", name="order_status")
staff_role = sa.Enum("waiter", "chef", "accountant", "admin", name="staff_role")
fulfillment_kind = sa.Enum("kitchen", "direct", "combo", name="fulfillment_kind")


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "employees",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("hotel_id", sa.String(64), nullable=False, index=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("role", staff_role, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "menu_items",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("hotel_id", sa.String(64), nullable=False, index=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("requires_kitchen", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("is_combo", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_available", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("order_number", sa.Integer, nullable=True, index=True),
        sa.Column("hotel_id", sa.String(64), nullable=False, index=True),
        sa.Column("status", order_status, nullable=False, server_default="pending"),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("amount_paid", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("payment_method", sa.String(255), nullable=True),
        sa.Column("is_debt", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("debtor_name", sa.String(255), nullable=True),
        sa.Column("waiter_id", sa.Integer, sa.ForeignKey("employees.id"), nullable=True),
        sa.Column("chef_id", sa.Integer, sa.ForeignKey("employees.id"), nullable=True),
        sa.Column("table_number", sa.String(32), nullable=True),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "amount_paid >= 0 AND amount_paid <= total_amount",
            name="ck_orders_amount_paid_range",
        ),
        sa.CheckConstraint(
            r"payment_method IS NULL OR payment_method IN ('cash', 'mobile', 'card', 'pending') "
            r"OR payment_method ~ '^(cash|mpesa|kcb|card|mobile|unattributed)(:[0-9]+(\.[0-9]+)?)(,(cash|mpesa|kcb|card|mobile|unattributed):[0-9]+(\.[0-9]+)?)*$'",
            name="ck_orders_payment_method_format",
        ),
    )

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("order_id", sa.Integer, sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("menu_item_id", sa.Integer, sa.ForeignKey("menu_items.id"), nullable=True),
        sa.Column("item_name", sa.String(128), nullable=True),
        sa.Column("quantity", sa.Integer, nullable=False, server_default="1"),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("fulfillment_kind", fulfillment_kind, nullable=False, server_default="kitchen"),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("menu_items")
    op.drop_table("employees")
    fulfillment_kind.drop(op.get_bind(), checkfirst=True)
    staff_role.drop(op.get_bind(), checkfirst=True)
    order_status.drop(op.get_bind(), checkfirst=True)
