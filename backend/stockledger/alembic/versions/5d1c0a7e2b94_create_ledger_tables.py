"""Create inventory ledger tables.

Revision ID: 5d1c0a7e2b94
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = "5d1c0a7e2b94"
down_revision = None
branch_labels = None
depends_on = None

TRANSACTION_KINDS = ("CREATE", "UPDATE", "DELETE", "QUANTITY_ADD", "QUANTITY_DEDUCT")


def _table_exists(table_name: str) -> bool:
    bind = op.get_bind()
    insp = inspect(bind)
    return bool(insp.has_table(table_name))


def upgrade() -> None:
    if not _table_exists("inventory_items"):
        op.create_table(
            "inventory_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("name_key", sa.String(length=255), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("location", sa.String(length=255), nullable=True),
            sa.Column("image_ref", sa.String(length=1024), nullable=True),
            sa.Column("url", sa.String(length=1024), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
        )
        op.create_index("ix_inventory_items_id", "inventory_items", ["id"])
        op.create_index("ix_inventory_items_name_key", "inventory_items", ["name_key"])

    if not _table_exists("inventory_item_sizes"):
        op.create_table(
            "inventory_item_sizes",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "item_id",
                sa.Integer(),
                sa.ForeignKey("inventory_items.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("size", sa.String(length=32), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
            sa.UniqueConstraint("item_id", "size", name="uq_inventory_item_size"),
            sa.CheckConstraint("quantity >= 0", name="ck_inventory_item_sizes_quantity_non_negative"),
        )
        op.create_index("ix_inventory_item_sizes_id", "inventory_item_sizes", ["id"])
        op.create_index("ix_inventory_item_sizes_item", "inventory_item_sizes", ["item_id"])

    if not _table_exists("inventory_transactions"):
        op.create_table(
            "inventory_transactions",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("actor_identity", sa.String(length=255), nullable=False),
            sa.Column("item_id", sa.Integer(), nullable=False),
            sa.Column("item_name", sa.String(length=255), nullable=False),
            sa.Column(
                "kind",
                sa.Enum(*TRANSACTION_KINDS, name="inventory_transaction_kind_enum", native_enum=False),
                nullable=False,
            ),
            sa.Column("delta", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("size", sa.String(length=32), nullable=True),
            sa.Column("quantity_before", sa.Integer(), nullable=True),
            sa.Column("quantity_after", sa.Integer(), nullable=True),
            sa.Column("detail", sa.Text(), nullable=False, server_default=""),
            sa.Column("before", sa.JSON(), nullable=True),
            sa.Column("after", sa.JSON(), nullable=True),
            sa.Column("correlation_id", sa.String(length=36), nullable=True),
            sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
            sqlite_autoincrement=True,
        )
        op.create_index("ix_inventory_transactions_correlation_id", "inventory_transactions", ["correlation_id"])
        op.create_index("ix_inventory_transactions_occurred_at", "inventory_transactions", ["occurred_at"])
        op.create_index("ix_inventory_txn_item_time", "inventory_transactions", ["item_id", "occurred_at"])
        op.create_index("ix_inventory_txn_actor_time", "inventory_transactions", ["actor_identity", "occurred_at"])
        op.create_index("ix_inventory_txn_kind_time", "inventory_transactions", ["kind", "occurred_at"])

    if not _table_exists("ledger_system_events"):
        op.create_table(
            "ledger_system_events",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("action", sa.String(length=64), nullable=False),
            sa.Column("actor_identity", sa.String(length=255), nullable=False),
            sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("metadata", sa.JSON(), nullable=True),
        )
        op.create_index("ix_ledger_system_events_id", "ledger_system_events", ["id"])
        op.create_index("ix_ledger_system_events_action", "ledger_system_events", ["action"])
        op.create_index("ix_ledger_system_events_time", "ledger_system_events", ["occurred_at"])


def downgrade() -> None:
    for table_name in (
        "ledger_system_events",
        "inventory_transactions",
        "inventory_item_sizes",
        "inventory_items",
    ):
        if _table_exists(table_name):
            op.drop_table(table_name)
