"""Initial schema: partners and orders.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    # Create enum types
    op.execute(
        "CREATE TYPE order_status AS ENUM "
        "('new', 'assigned', 'in_production', 'ready', 'fulfilled', 'cancelled')"
    )
    op.execute("CREATE TYPE actor_role AS ENUM ('admin', 'partner', 'shopify')")
    op.execute("CREATE TYPE delivery_option AS ENUM ('TODAY', 'TOMORROW', 'DATE')")

    actor_role = postgresql.ENUM(
        "admin", "partner", "shopify", name="actor_role", create_type=False
    )

    # Create partners table
    op.create_table(
        "partners",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column(
            "zone_ranges",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default="{}",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_partners")),
    )

    # Create orders table
    op.create_table(
        "orders",
        sa.Column("id", sa.UUID(), nullable=False),
        # Identity
        sa.Column("source_platform", sa.String(32), nullable=True),
        sa.Column("source_order_id", sa.String(64), nullable=True),
        sa.Column("source_order_number", sa.String(64), nullable=True),
        sa.Column("order_name", sa.String(64), nullable=True),
        sa.Column("order_number", sa.String(16), nullable=True),
        # Timing
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("order_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivery_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "delivery_option",
            postgresql.ENUM(
                "TODAY", "TOMORROW", "DATE", name="delivery_option", create_type=False
            ),
            nullable=True,
        ),
        # Contents
        sa.Column("line_items", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("add_ons", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("add_ons_summary", sa.Text(), nullable=True),
        sa.Column("customer", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("shipping_address", postgresql.JSONB(), nullable=False, server_default="{}"),
        # Routing
        sa.Column("postal_code", sa.String(16), nullable=True),
        sa.Column("zone", sa.String(64), nullable=True),
        sa.Column("partner_id", sa.UUID(), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "status",
            postgresql.ENUM(
                "new",
                "assigned",
                "in_production",
                "ready",
                "fulfilled",
                "cancelled",
                name="order_status",
                create_type=False,
            ),
            nullable=False,
            server_default="new",
        ),
        # Audit trail
        sa.Column("created_by_role", actor_role, nullable=False, server_default="shopify"),
        sa.Column("created_by_email", sa.String(255), nullable=True),
        sa.Column("updated_by_role", actor_role, nullable=True),
        sa.Column("updated_by_email", sa.String(255), nullable=True),
        sa.Column("update_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "last_updated_fields",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default="{}",
        ),
        # Cancellation
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by_role", actor_role, nullable=True),
        sa.Column("cancelled_by_email", sa.String(255), nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        # Fulfillment tracking
        sa.Column("tracking_number", sa.String(255), nullable=True),
        sa.Column("tracking_url", sa.Text(), nullable=True),
        # Source payload
        sa.Column("raw", postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["partner_id"],
            ["partners.id"],
            name=op.f("fk_orders_partner_id_partners"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_orders")),
        sa.UniqueConstraint(
            "source_platform", "source_order_id", name=op.f("uq_orders_source_order")
        ),
        sa.UniqueConstraint("order_number", name=op.f("uq_orders_order_number")),
    )
    op.create_index(op.f("ix_orders_received_at"), "orders", ["received_at"], unique=False)
    op.create_index(op.f("ix_orders_delivery_date"), "orders", ["delivery_date"], unique=False)
    op.create_index(op.f("ix_orders_zone"), "orders", ["zone"], unique=False)
    op.create_index(op.f("ix_orders_partner_id"), "orders", ["partner_id"], unique=False)
    op.create_index(op.f("ix_orders_status"), "orders", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_orders_status"), table_name="orders")
    op.drop_index(op.f("ix_orders_partner_id"), table_name="orders")
    op.drop_index(op.f("ix_orders_zone"), table_name="orders")
    op.drop_index(op.f("ix_orders_delivery_date"), table_name="orders")
    op.drop_index(op.f("ix_orders_received_at"), table_name="orders")
    op.drop_table("orders")
    op.drop_table("partners")

    op.execute("DROP TYPE IF EXISTS delivery_option")
    op.execute("DROP TYPE IF EXISTS actor_role")
    op.execute("DROP TYPE IF EXISTS order_status")
