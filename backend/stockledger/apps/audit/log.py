from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Sequence

from sqlalchemy.orm import Query, Session

from . import models


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class TransactionFilter:
    item_id: Optional[int] = None
    actor_identity: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    kinds: Optional[Sequence[models.TransactionKind]] = None


class TransactionQuery:
    """
    Lazy, restartable view over the audit log.

    Every iteration re-runs the query and streams rows in timestamp order,
    so the same object can be replayed any number of times.
    """

    def __init__(self, db: Session, criteria: TransactionFilter, *, batch_size: int = 500) -> None:
        self._db = db
        self.criteria = criteria
        self._batch_size = batch_size

    def _query(self) -> Query:
        T = models.InventoryTransaction
        query = self._db.query(T)
        criteria = self.criteria
        if criteria.item_id is not None:
            query = query.filter(T.item_id == criteria.item_id)
        if criteria.actor_identity:
            query = query.filter(T.actor_identity == criteria.actor_identity)
        if criteria.start is not None:
            query = query.filter(T.occurred_at >= as_utc(criteria.start))
        if criteria.end is not None:
            query = query.filter(T.occurred_at <= as_utc(criteria.end))
        if criteria.kinds:
            query = query.filter(T.kind.in_(list(criteria.kinds)))
        return query

    def __iter__(self) -> Iterator[models.InventoryTransaction]:
        T = models.InventoryTransaction
        ordered = self._query().order_by(T.occurred_at.asc(), T.id.asc())
        return iter(ordered.yield_per(self._batch_size))

    def count(self) -> int:
        return self._query().count()

    def all(self) -> List[models.InventoryTransaction]:
        return list(self)

    def page(self, *, skip: int = 0, limit: int = 100, newest_first: bool = True) -> List[models.InventoryTransaction]:
        T = models.InventoryTransaction
        if newest_first:
            order = (T.occurred_at.desc(), T.id.desc())
        else:
            order = (T.occurred_at.asc(), T.id.asc())
        return self._query().order_by(*order).offset(skip).limit(limit).all()


class AuditLog:
    """
    Append-only ledger of inventory transactions.

    `append` only flushes: the caller's unit of work decides when the entry
    becomes durable, so an entry is never acknowledged ahead of the item
    change it describes. Storage errors propagate unchanged.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def append(self, entry: models.InventoryTransaction) -> models.InventoryTransaction:
        if entry.id is not None:
            raise ValueError("Audit log entries are immutable once written.")
        self.db.add(entry)
        self.db.flush()
        return entry

    def query(self, criteria: Optional[TransactionFilter] = None) -> TransactionQuery:
        return TransactionQuery(self.db, criteria or TransactionFilter())

    def record_system_event(
        self,
        *,
        action: str,
        actor_identity: str,
        metadata: Optional[dict] = None,
        occurred_at: Optional[datetime] = None,
    ) -> models.SystemEvent:
        event = models.SystemEvent(
            action=action,
            actor_identity=actor_identity,
            metadata_json=metadata,
        )
        if occurred_at is not None:
            event.occurred_at = occurred_at
        self.db.add(event)
        self.db.flush()
        return event

    def clear(self, *, actor_identity: str) -> models.SystemEvent:
        """Wipe every transaction; the wipe itself is kept as a system event."""
        removed = (
            self.db.query(models.InventoryTransaction)
            .delete(synchronize_session=False)
        )
        return self.record_system_event(
            action="audit_log.cleared",
            actor_identity=actor_identity,
            metadata={"removed_transactions": removed},
        )
