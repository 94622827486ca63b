"""
Seed a handful of demo items through the ledger services.

    DATABASE_URL=sqlite:///./ledger.db python -m stockledger.scripts.seed_demo

Every write goes through the ledger, so the demo data arrives with its
audit trail. Items that already exist by name are left alone.
"""

import os
from typing import List

from sqlalchemy.orm import Session

from stockledger.apps.inventory import models, schemas, services
from stockledger.apps.inventory.store import ItemStore
from stockledger.database import SessionLocal

ACTOR = os.getenv("SEED_ACTOR_IDENTITY", "seed@stockledger.local")

DEMO_ITEMS = [
    {"name": "Widget", "quantity": 25, "location": "Aisle 1"},
    {"name": "Gadget", "quantity": 8, "location": "Aisle 2"},
    {
        "name": "Team T-Shirt",
        "size_quantities": {"S": 4, "M": 10, "L": 6},
        "location": "Merch shelf",
    },
    {"name": "Cable Ties (100 pack)", "quantity": 40, "location": "Aisle 3"},
]

# (item name, amount, direction, size)
DEMO_MOVEMENTS = [
    ("Widget", 5, schemas.AdjustDirection.DEDUCT, None),
    ("Gadget", 12, schemas.AdjustDirection.ADD, None),
    ("Team T-Shirt", 2, schemas.AdjustDirection.DEDUCT, "M"),
]


def seed(db: Session, *, actor_identity: str = ACTOR) -> List[models.InventoryItem]:
    """Create missing demo items and apply the demo movements to new ones."""
    store = ItemStore(db)
    created: List[models.InventoryItem] = []
    for spec in DEMO_ITEMS:
        if store.find_by_name(spec["name"]) is not None:
            continue
        created.append(
            services.create_item(
                db,
                payload=schemas.InventoryItemCreate(**spec),
                actor_identity=actor_identity,
            )
        )

    fresh = {item.name: item.id for item in created}
    for name, amount, direction, size in DEMO_MOVEMENTS:
        if name not in fresh:
            continue
        services.adjust_quantity(
            db,
            item_id=fresh[name],
            payload=schemas.QuantityAdjustRequest(amount=amount, direction=direction, size=size),
            actor_identity=actor_identity,
        )
    return created


def main() -> None:
    db: Session = SessionLocal()
    try:
        created = seed(db)
        if not created:
            print("[INFO] Demo items already present; nothing to do.")
            return
        print(f"[OK] Seeded {len(created)} demo item(s):")
        for item in created:
            db.refresh(item)
            print(f"  {item.id:>4}  {item.name:<24} qty={item.quantity}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
