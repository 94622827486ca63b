from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from stockledger.apps.audit import models as audit_models
from stockledger.apps.audit.log import AuditLog
from stockledger.apps.inventory import schemas, services
from stockledger.apps.inventory.store import ItemStore
from stockledger.errors import ConflictError, PartialFailureError, StorageUnavailableError

ACTOR = "store@example.com"


def _disk_error(*args, **kwargs):
    raise OperationalError("INSERT INTO inventory_transactions", {}, Exception("disk I/O error"))


def _seed(db, quantity=5):
    return services.create_item(
        db,
        payload=schemas.InventoryItemCreate(name="Widget", quantity=quantity),
        actor_identity=ACTOR,
    )


def _add_one(db, item_id):
    return services.adjust_quantity(
        db,
        item_id=item_id,
        payload=schemas.QuantityAdjustRequest(amount=1, direction="ADD"),
        actor_identity=ACTOR,
    )


def _transaction_count(db):
    return db.query(audit_models.InventoryTransaction).count()


def test_failed_append_rolls_back_the_item_change(db_session, monkeypatch):
    item = _seed(db_session)
    monkeypatch.setattr(AuditLog, "append", _disk_error)

    with pytest.raises(StorageUnavailableError) as excinfo:
        _add_one(db_session, item.id)

    monkeypatch.undo()
    assert excinfo.value.item_id == item.id
    assert ItemStore(db_session).get(item.id).quantity == 5
    assert _transaction_count(db_session) == 1


def test_failed_append_on_create_leaves_no_item(db_session, monkeypatch):
    monkeypatch.setattr(AuditLog, "append", _disk_error)

    with pytest.raises(StorageUnavailableError):
        _seed(db_session)

    monkeypatch.undo()
    assert ItemStore(db_session).list() == []
    assert _transaction_count(db_session) == 0


def test_failed_append_with_failed_rollback_is_partial_failure(db_session, monkeypatch):
    item = _seed(db_session)
    monkeypatch.setattr(AuditLog, "append", _disk_error)
    monkeypatch.setattr(db_session, "rollback", _disk_error)

    with pytest.raises(PartialFailureError) as excinfo:
        _add_one(db_session, item.id)

    assert excinfo.value.item_id == item.id
    assert excinfo.value.status_code == 500


def test_version_conflict_is_retried(db_session, monkeypatch):
    item = _seed(db_session)
    original_put = ItemStore.put
    calls = {"n": 0}

    def flaky_put(self, entity):
        calls["n"] += 1
        if calls["n"] == 1:
            raise StaleDataError("row version changed underneath us")
        return original_put(self, entity)

    monkeypatch.setattr(ItemStore, "put", flaky_put)
    result = _add_one(db_session, item.id)

    assert calls["n"] == 2
    assert result.quantity == 6
    assert _transaction_count(db_session) == 2


def test_version_conflict_gives_up_after_max_retries(db_session, monkeypatch):
    item = _seed(db_session)
    calls = {"n": 0}

    def always_stale(self, entity):
        calls["n"] += 1
        raise StaleDataError("row version changed underneath us")

    monkeypatch.setattr(ItemStore, "put", always_stale)
    with pytest.raises(ConflictError):
        _add_one(db_session, item.id)

    monkeypatch.undo()
    assert calls["n"] == services.MAX_CONFLICT_RETRIES
    assert ItemStore(db_session).get(item.id).quantity == 5
    assert _transaction_count(db_session) == 1


def test_storage_outage_on_read_is_storage_unavailable(db_session, monkeypatch):
    monkeypatch.setattr(ItemStore, "get", _disk_error)

    with pytest.raises(StorageUnavailableError):
        services.get_item(db_session, item_id=1)


def test_unexpected_error_rolls_back_and_propagates(db_session, monkeypatch):
    item = _seed(db_session)

    def _broken_append(*args, **kwargs):
        raise RuntimeError("serializer exploded")

    monkeypatch.setattr(AuditLog, "append", _broken_append)

    with pytest.raises(RuntimeError):
        _add_one(db_session, item.id)

    monkeypatch.undo()
    assert ItemStore(db_session).get(item.id).quantity == 5
    assert _transaction_count(db_session) == 1
