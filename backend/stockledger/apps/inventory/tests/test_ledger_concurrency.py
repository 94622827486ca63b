from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, wait

import pytest

from stockledger.apps.audit import models as audit_models
from stockledger.apps.inventory import schemas, services
from stockledger.apps.inventory.locks import ItemLockRegistry, item_locks
from stockledger.apps.inventory.store import ItemStore
from stockledger.errors import ConflictError


def _seed(session_factory, name="Widget", quantity=5):
    db = session_factory()
    try:
        item = services.create_item(
            db,
            payload=schemas.InventoryItemCreate(name=name, quantity=quantity),
            actor_identity="seed@example.com",
        )
        return item.id
    finally:
        db.close()


def _add(session_factory, item_id, actor="clerk@example.com"):
    db = session_factory()
    try:
        return services.adjust_quantity(
            db,
            item_id=item_id,
            payload=schemas.QuantityAdjustRequest(amount=1, direction="ADD"),
            actor_identity=actor,
        ).quantity
    finally:
        db.close()


def test_two_concurrent_adds_from_five_end_at_seven(session_factory):
    item_id = _seed(session_factory, quantity=5)

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [pool.submit(_add, session_factory, item_id) for _ in range(2)]
        for future in futures:
            future.result(timeout=30)

    db = session_factory()
    try:
        assert ItemStore(db).get(item_id).quantity == 7
        adds = (
            db.query(audit_models.InventoryTransaction)
            .filter(audit_models.InventoryTransaction.kind == audit_models.TransactionKind.QUANTITY_ADD)
            .count()
        )
        assert adds == 2
    finally:
        db.close()


def test_many_concurrent_adds_never_lose_an_increment(session_factory):
    item_id = _seed(session_factory, quantity=3)
    workers = 25

    with ThreadPoolExecutor(max_workers=8) as pool:
        futures = [
            pool.submit(_add, session_factory, item_id, f"clerk{n % 4}@example.com")
            for n in range(workers)
        ]
        for future in futures:
            future.result(timeout=60)

    db = session_factory()
    try:
        assert ItemStore(db).get(item_id).quantity == 3 + workers
        entries = (
            db.query(audit_models.InventoryTransaction)
            .filter(audit_models.InventoryTransaction.item_id == item_id)
            .order_by(audit_models.InventoryTransaction.id.asc())
            .all()
        )
        adds = [e for e in entries if e.kind == audit_models.TransactionKind.QUANTITY_ADD]
        assert len(adds) == workers
        # Per-item order in the log matches the order the changes were applied.
        assert [e.quantity_after for e in adds] == list(range(4, 4 + workers))
    finally:
        db.close()
    assert ("item", item_id) not in item_locks.active_keys()


def test_work_on_one_item_does_not_wait_for_another(session_factory):
    busy_id = _seed(session_factory, name="Busy")
    free_id = _seed(session_factory, name="Free")

    with item_locks.hold(("item", busy_id)):
        with ThreadPoolExecutor(max_workers=1) as pool:
            assert pool.submit(_add, session_factory, free_id).result(timeout=10) == 6


def test_lock_registry_serializes_same_key_only():
    registry = ItemLockRegistry()
    entered = threading.Event()
    release = threading.Event()
    order = []

    def holder():
        with registry.hold("a"):
            order.append("holder")
            entered.set()
            release.wait(timeout=10)

    def waiter():
        with registry.hold("a"):
            order.append("waiter")

    first = threading.Thread(target=holder)
    first.start()
    assert entered.wait(timeout=10)

    second = threading.Thread(target=waiter)
    second.start()
    with registry.hold("b"):
        order.append("other-key")
    release.set()
    first.join(timeout=10)
    second.join(timeout=10)

    assert order == ["holder", "other-key", "waiter"]
    assert registry.active_keys() == []


def test_rename_cannot_slip_past_a_create_of_the_same_name(session_factory, monkeypatch):
    other_id = _seed(session_factory, name="Gadget")
    checked = threading.Event()
    resume = threading.Event()
    real_check = services._ensure_unique_name

    def paused_check(store, name, *, exclude_id=None):
        real_check(store, name, exclude_id=exclude_id)
        if exclude_id is None and not checked.is_set():
            checked.set()
            resume.wait(timeout=10)

    monkeypatch.setattr(services, "_ensure_unique_name", paused_check)

    def create():
        db = session_factory()
        try:
            return services.create_item(
                db,
                payload=schemas.InventoryItemCreate(name="Foo"),
                actor_identity="a@example.com",
            ).id
        finally:
            db.close()

    def rename():
        db = session_factory()
        try:
            return services.update_item(
                db,
                item_id=other_id,
                payload=schemas.InventoryItemUpdate(name="foo"),
                actor_identity="b@example.com",
            ).name
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=2) as pool:
        created = pool.submit(create)
        assert checked.wait(timeout=10)
        renamed = pool.submit(rename)
        done, _ = wait([renamed], timeout=0.5)
        assert not done
        resume.set()
        created.result(timeout=30)
        with pytest.raises(ConflictError):
            renamed.result(timeout=30)

    db = session_factory()
    try:
        names = sorted(item.name for item in ItemStore(db).list())
        assert names == ["Foo", "Gadget"]
    finally:
        db.close()
