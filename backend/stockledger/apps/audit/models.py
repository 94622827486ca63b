from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum as SAEnum, Index, Integer, JSON, String, Text

from ...database import Base
from ...utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionKind(str, enum.Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    QUANTITY_ADD = "QUANTITY_ADD"
    QUANTITY_DEDUCT = "QUANTITY_DEDUCT"


QUANTITY_KINDS = (TransactionKind.QUANTITY_ADD, TransactionKind.QUANTITY_DEDUCT)


class InventoryTransaction(Base):
    """
    Append-only audit trail of inventory mutations.

    `item_id` carries no foreign key: transactions outlive the items they
    describe.
    """

    __tablename__ = "inventory_transactions"
    __table_args__ = (
        Index("ix_inventory_txn_item_time", "item_id", "occurred_at"),
        Index("ix_inventory_txn_actor_time", "actor_identity", "occurred_at"),
        Index("ix_inventory_txn_kind_time", "kind", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor_identity = Column(String(255), nullable=False)
    item_id = Column(Integer, nullable=False)
    item_name = Column(String(255), nullable=False)
    kind = Column(
        SAEnum(TransactionKind, name="inventory_transaction_kind_enum", native_enum=False),
        nullable=False,
    )
    delta = Column(Integer, nullable=False, default=0)
    size = Column(String(32), nullable=True)
    quantity_before = Column(Integer, nullable=True)
    quantity_after = Column(Integer, nullable=True)
    detail = Column(Text, nullable=False, default="")
    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)
    correlation_id = Column(String(36), nullable=True, index=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    def __repr__(self) -> str:
        return (
            f"<InventoryTransaction id={self.id} item={self.item_id} "
            f"kind={self.kind} delta={self.delta}>"
        )


class SystemEvent(Base):
    """Administrative ledger events that never reference an item."""

    __tablename__ = "ledger_system_events"
    __table_args__ = (Index("ix_ledger_system_events_time", "occurred_at"),)

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    action = Column(String(64), nullable=False, index=True)
    actor_identity = Column(String(255), nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    metadata_json = Column("metadata", JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<SystemEvent id={self.id} action={self.action}>"
