from __future__ import annotations

from typing import List, Optional

from sqlalchemy.orm import Session

from stockledger.errors import NotFoundError

from . import models


class ItemStore:
    """
    Keyed storage of current item state.

    Only the ledger services write through this class; everything else
    reads items via `get` / `list`.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, item_id: int, *, lock: bool = False) -> models.InventoryItem:
        """
        Point lookup by id.

        lock=True takes a row lock for the rest of the transaction on
        databases that support SELECT ... FOR UPDATE.
        """
        query = self.db.query(models.InventoryItem).filter(models.InventoryItem.id == item_id)
        if lock:
            query = query.with_for_update()
        item = query.first()
        if item is None:
            raise NotFoundError(f"Item {item_id} not found.", item_id=item_id)
        return item

    def list(self) -> List[models.InventoryItem]:
        return self.db.query(models.InventoryItem).order_by(models.InventoryItem.id.asc()).all()

    def put(self, item: models.InventoryItem) -> models.InventoryItem:
        self.db.add(item)
        self.db.flush()
        return item

    def remove(self, item_id: int) -> models.InventoryItem:
        item = self.get(item_id, lock=True)
        self.db.delete(item)
        self.db.flush()
        return item

    def find_by_name(self, name: str) -> Optional[models.InventoryItem]:
        return (
            self.db.query(models.InventoryItem)
            .filter(models.InventoryItem.name_key == models.normalize_name(name))
            .order_by(models.InventoryItem.id.asc())
            .first()
        )
