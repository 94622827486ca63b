from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from stockledger.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_name(name: str) -> str:
    return " ".join((name or "").split()).lower()


class InventoryItem(Base):
    """
    Current state of one inventory SKU.

    `id` is the only key. `name` is a display attribute; its uniqueness is
    checked by the ledger services, not by the table.
    """

    __tablename__ = "inventory_items"
    __table_args__ = (
        Index("ix_inventory_items_name_key", "name_key"),
        CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    name_key = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    location = Column(String(255), nullable=True)
    image_ref = Column(String(1024), nullable=True)
    url = Column(String(1024), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    sizes = relationship(
        "InventoryItemSize",
        back_populates="item",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="InventoryItemSize.size",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def size_quantities(self) -> Dict[str, int]:
        return {row.size: row.quantity for row in self.sizes}

    @property
    def is_size_tracked(self) -> bool:
        return bool(self.sizes)

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} name={self.name!r} quantity={self.quantity}>"


class InventoryItemSize(Base):
    __tablename__ = "inventory_item_sizes"
    __table_args__ = (
        UniqueConstraint("item_id", "size", name="uq_inventory_item_size"),
        Index("ix_inventory_item_sizes_item", "item_id"),
        CheckConstraint("quantity >= 0", name="ck_inventory_item_sizes_quantity_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False)
    size = Column(String(32), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)

    item = relationship("InventoryItem", back_populates="sizes")
