from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stockledger.errors import InvalidInputError, StorageUnavailableError, translate_storage_errors

from . import models
from .log import AuditLog, TransactionFilter, as_utc

logger = logging.getLogger(__name__)


def _validate_window(start: Optional[datetime], end: Optional[datetime]) -> None:
    if start is not None and end is not None and as_utc(start) > as_utc(end):
        raise InvalidInputError("start must not be after end.")


def list_transactions(
    db: Session,
    *,
    item_id: Optional[int] = None,
    actor_identity: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[models.InventoryTransaction]:
    _validate_window(start, end)
    if skip < 0 or limit <= 0:
        raise InvalidInputError("skip must be >= 0 and limit must be > 0.")
    criteria = TransactionFilter(
        item_id=item_id,
        actor_identity=actor_identity,
        start=start,
        end=end,
    )
    with translate_storage_errors("Listing transactions"):
        return AuditLog(db).query(criteria).page(skip=skip, limit=limit)


def clear_transactions(db: Session, *, actor_identity: str) -> Tuple[int, models.SystemEvent]:
    """
    Administrative wipe of the audit log.

    The wipe and its system event commit together or not at all.
    """
    if not (actor_identity or "").strip():
        raise InvalidInputError("actor_identity is required.")
    audit_log = AuditLog(db)
    try:
        event = audit_log.clear(actor_identity=actor_identity)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageUnavailableError("Clearing the audit log failed; nothing was removed.") from exc
    removed = event.metadata_json["removed_transactions"]
    logger.warning(
        "Audit log cleared",
        extra={"actor_identity": actor_identity, "removed_transactions": removed},
    )
    return removed, event


def list_system_events(
    db: Session,
    *,
    action: Optional[str] = None,
    limit: int = 100,
) -> List[models.SystemEvent]:
    query = db.query(models.SystemEvent)
    if action:
        query = query.filter(models.SystemEvent.action == action)
    with translate_storage_errors("Listing system events"):
        return query.order_by(models.SystemEvent.occurred_at.desc(), models.SystemEvent.id.desc()).limit(limit).all()
