from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from stockledger.apps.audit import models as audit_models
from stockledger.apps.audit import services as audit_services
from stockledger.apps.audit.schemas import SystemEventRead, TransactionRead
from stockledger.apps.audit.log import AuditLog, TransactionFilter, as_utc
from stockledger.errors import InvalidInputError

Kind = audit_models.TransactionKind
BASE = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _entry(item_id=1, *, kind=Kind.QUANTITY_ADD, delta=1, actor="clerk@example.com", minutes=0):
    return audit_models.InventoryTransaction(
        actor_identity=actor,
        item_id=item_id,
        item_name=f"Item {item_id}",
        kind=kind,
        delta=delta,
        detail="test entry",
        occurred_at=BASE + timedelta(minutes=minutes),
    )


def _seed(db, entries):
    log = AuditLog(db)
    for entry in entries:
        log.append(entry)
    db.commit()
    return log


def test_append_assigns_increasing_ids(db_session):
    log = AuditLog(db_session)
    first = log.append(_entry(minutes=0))
    second = log.append(_entry(minutes=1))
    db_session.commit()

    assert first.id is not None
    assert second.id > first.id


def test_append_refuses_already_written_entries(db_session):
    log = AuditLog(db_session)
    entry = log.append(_entry())
    db_session.commit()

    with pytest.raises(ValueError):
        log.append(entry)


def test_query_orders_by_time_and_is_restartable(db_session):
    log = _seed(
        db_session,
        [_entry(minutes=5, delta=5), _entry(minutes=1, delta=1), _entry(minutes=3, delta=3)],
    )

    view = log.query()
    assert [e.delta for e in view] == [1, 3, 5]
    # A second pass replays the same sequence.
    assert [e.delta for e in view] == [1, 3, 5]
    assert view.count() == 3


def test_query_filters(db_session):
    log = _seed(
        db_session,
        [
            _entry(1, minutes=0, actor="a@example.com"),
            _entry(2, minutes=10, actor="b@example.com"),
            _entry(1, minutes=20, actor="b@example.com", kind=Kind.QUANTITY_DEDUCT, delta=-1),
            _entry(3, minutes=30, actor="a@example.com", kind=Kind.UPDATE, delta=0),
        ],
    )

    assert [e.item_id for e in log.query(TransactionFilter(item_id=1))] == [1, 1]
    assert [e.item_id for e in log.query(TransactionFilter(actor_identity="b@example.com"))] == [2, 1]
    window = TransactionFilter(start=BASE + timedelta(minutes=10), end=BASE + timedelta(minutes=20))
    assert [e.item_id for e in log.query(window)] == [2, 1]
    kinds = TransactionFilter(kinds=[Kind.UPDATE])
    assert [e.item_id for e in log.query(kinds)] == [3]


def test_query_treats_naive_bounds_as_utc(db_session):
    log = _seed(db_session, [_entry(minutes=0), _entry(minutes=60)])

    naive_start = datetime(2026, 3, 2, 9, 30)
    assert len(log.query(TransactionFilter(start=naive_start)).all()) == 1


def test_page_is_newest_first(db_session):
    log = _seed(db_session, [_entry(minutes=m, delta=m + 1) for m in range(5)])

    assert [e.delta for e in log.query().page(skip=1, limit=2)] == [4, 3]
    assert [e.delta for e in log.query().page(limit=2, newest_first=False)] == [1, 2]


def test_clear_wipes_entries_and_records_system_event(db_session):
    _seed(db_session, [_entry(), _entry(2)])

    removed, event = audit_services.clear_transactions(db_session, actor_identity="admin@example.com")

    assert removed == 2
    assert db_session.query(audit_models.InventoryTransaction).count() == 0
    assert event.action == "audit_log.cleared"
    assert event.actor_identity == "admin@example.com"
    assert event.metadata_json == {"removed_transactions": 2}
    events = audit_services.list_system_events(db_session, action="audit_log.cleared")
    assert [e.id for e in events] == [event.id]


def test_list_transactions_validates_window_and_paging(db_session):
    with pytest.raises(InvalidInputError):
        audit_services.list_transactions(db_session, start=BASE, end=BASE - timedelta(seconds=1))
    with pytest.raises(InvalidInputError):
        audit_services.list_transactions(db_session, limit=0)


def test_as_utc():
    assert as_utc(None) is None
    assert as_utc(datetime(2026, 1, 1, 12)).tzinfo == timezone.utc
    plus_two = timezone(timedelta(hours=2))
    assert as_utc(datetime(2026, 1, 1, 12, tzinfo=plus_two)).hour == 10


def test_read_models_keep_utc_after_reload(db_session):
    _seed(db_session, [_entry(minutes=7)])
    event = AuditLog(db_session).record_system_event(action="test.reload", actor_identity="clerk@example.com")
    db_session.commit()
    event_id = event.id
    db_session.expire_all()

    stored = AuditLog(db_session).query().all()[0]
    read = TransactionRead.model_validate(stored)
    assert read.occurred_at == BASE + timedelta(minutes=7)
    assert read.occurred_at.tzinfo == timezone.utc

    reloaded = db_session.get(audit_models.SystemEvent, event_id)
    assert SystemEventRead.model_validate(reloaded).occurred_at.tzinfo == timezone.utc
