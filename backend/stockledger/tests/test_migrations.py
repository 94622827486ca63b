from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker

import stockledger
from stockledger.apps.inventory import schemas, services

ALEMBIC_DIR = Path(stockledger.__file__).resolve().parent / "alembic"
LEDGER_TABLES = {
    "inventory_items",
    "inventory_item_sizes",
    "inventory_transactions",
    "ledger_system_events",
}


def _run(engine, action, revision):
    with engine.begin() as connection:
        cfg = Config()
        cfg.set_main_option("script_location", str(ALEMBIC_DIR))
        cfg.attributes["connection"] = connection
        action(cfg, revision)


def test_upgrade_creates_ledger_tables(tmp_path):
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'migrate.db'}")

    _run(engine, command.upgrade, "head")

    assert LEDGER_TABLES <= set(inspect(engine).get_table_names())
    txn_indexes = {ix["name"] for ix in inspect(engine).get_indexes("inventory_transactions")}
    assert {"ix_inventory_txn_item_time", "ix_inventory_txn_actor_time"} <= txn_indexes
    engine.dispose()


def test_downgrade_then_upgrade_again(tmp_path):
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'migrate.db'}")

    _run(engine, command.upgrade, "head")
    _run(engine, command.downgrade, "base")
    assert not LEDGER_TABLES & set(inspect(engine).get_table_names())

    _run(engine, command.upgrade, "head")
    assert LEDGER_TABLES <= set(inspect(engine).get_table_names())
    engine.dispose()


def test_migrated_schema_accepts_ledger_writes(tmp_path):
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'migrate.db'}")
    _run(engine, command.upgrade, "head")

    db = sessionmaker(bind=engine, expire_on_commit=False)()
    try:
        item = services.create_item(
            db,
            payload=schemas.InventoryItemCreate(name="T-Shirt", size_quantities={"S": 1, "M": 2}),
            actor_identity="clerk@example.com",
        )
        services.adjust_quantity(
            db,
            item_id=item.id,
            payload=schemas.QuantityAdjustRequest(amount=2, direction="DEDUCT", size="M"),
            actor_identity="clerk@example.com",
        )
        assert services.get_item(db, item_id=item.id).quantity == 1
    finally:
        db.close()
        engine.dispose()
