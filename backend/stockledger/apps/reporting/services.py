"""
Read-only analytics over the audit log.

Every figure here is derived on demand by replaying `AuditLog.query` for a
closed window; nothing is cached and nothing is written. The record store
is consulted only for current item names.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from stockledger.apps.audit import models as audit_models
from stockledger.apps.audit.log import AuditLog, TransactionFilter, as_utc
from stockledger.apps.inventory.schemas import AdjustDirection
from stockledger.apps.inventory.store import ItemStore
from stockledger.errors import InvalidInputError, NotFoundError, translate_storage_errors

from . import schemas

logger = logging.getLogger(__name__)

try:
    TOP_ITEMS_LIMIT: int = int(os.getenv("REPORT_TOP_ITEMS_LIMIT", "10"))
except ValueError:
    TOP_ITEMS_LIMIT = 10

PERIODS = ("today", "this_week", "this_month", "this_year")

TransactionKind = audit_models.TransactionKind


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------


def _window(start: Optional[datetime], end: Optional[datetime]) -> Tuple[datetime, datetime]:
    if start is None or end is None:
        raise InvalidInputError("Both start and end are required.")
    start, end = as_utc(start), as_utc(end)
    if start > end:
        raise InvalidInputError("start must not be after end.")
    return start, end


def resolve_period(period: str, *, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Translate a named period into a closed UTC window ending at `now`.

    Weeks start on Monday.
    """
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    key = (period or "").strip().lower()
    if key == "today":
        start = midnight
    elif key == "this_week":
        start = midnight - timedelta(days=midnight.weekday())
    elif key == "this_month":
        start = midnight.replace(day=1)
    elif key == "this_year":
        start = midnight.replace(month=1, day=1)
    else:
        raise InvalidInputError(f"Unknown period {period!r}; expected one of {', '.join(PERIODS)}.")
    return start, now


def _check_limit(limit: Optional[int]) -> int:
    if limit is None:
        return TOP_ITEMS_LIMIT
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise InvalidInputError("limit must be a positive integer.")
    return limit


def _check_direction(direction) -> AdjustDirection:
    try:
        return AdjustDirection(direction)
    except ValueError:
        raise InvalidInputError("direction must be ADD or DEDUCT.")


def _quantity_rows(db: Session, start: datetime, end: datetime) -> List[audit_models.InventoryTransaction]:
    criteria = TransactionFilter(
        start=start,
        end=end,
        kinds=(TransactionKind.QUANTITY_ADD, TransactionKind.QUANTITY_DEDUCT),
    )
    with translate_storage_errors("Reading the audit log"):
        return AuditLog(db).query(criteria).all()


# ---------------------------------------------------------------------------
# Pure aggregations over already-fetched transactions
# ---------------------------------------------------------------------------


def _summarize_rows(
    rows: Iterable[audit_models.InventoryTransaction],
    *,
    start: datetime,
    end: datetime,
) -> schemas.PeriodSummary:
    added = schemas.QuantityTotals()
    deducted = schemas.QuantityTotals()
    for row in rows:
        if row.kind == TransactionKind.QUANTITY_ADD:
            added.total_quantity += row.delta
            added.transaction_count += 1
        elif row.kind == TransactionKind.QUANTITY_DEDUCT:
            deducted.total_quantity += abs(row.delta)
            deducted.transaction_count += 1
    return schemas.PeriodSummary(
        start=start,
        end=end,
        added=added,
        deducted=deducted,
        net_change=added.total_quantity - deducted.total_quantity,
    )


def _rank_items(
    db: Session,
    rows: Iterable[audit_models.InventoryTransaction],
    *,
    direction: AdjustDirection,
    limit: int,
) -> List[schemas.ItemRanking]:
    kind = (
        TransactionKind.QUANTITY_ADD
        if direction == AdjustDirection.ADD
        else TransactionKind.QUANTITY_DEDUCT
    )
    # item_id -> [total, count, first transaction id, last logged name]
    groups: Dict[int, list] = {}
    for row in rows:
        if row.kind != kind:
            continue
        group = groups.get(row.item_id)
        if group is None:
            groups[row.item_id] = [abs(row.delta), 1, row.id, row.item_name]
            continue
        group[0] += abs(row.delta)
        group[1] += 1
        group[2] = min(group[2], row.id)
        group[3] = row.item_name

    ordered = sorted(groups.items(), key=lambda pair: (-pair[1][0], pair[1][2]))[:limit]

    store = ItemStore(db)
    rankings = []
    for item_id, (total, count, _first_id, logged_name) in ordered:
        try:
            with translate_storage_errors("Loading item"):
                name, exists = store.get(item_id).name, True
        except NotFoundError:
            name, exists = logged_name, False
        rankings.append(
            schemas.ItemRanking(
                item_id=item_id,
                item_name=name,
                total_quantity=total,
                transaction_count=count,
                exists=exists,
            )
        )
    return rankings


def _user_activity_rows(rows: Iterable[audit_models.InventoryTransaction]) -> List[schemas.UserActivity]:
    users: Dict[str, schemas.UserActivity] = {}
    for row in rows:
        if row.kind not in audit_models.QUANTITY_KINDS:
            continue
        entry = users.get(row.actor_identity)
        if entry is None:
            entry = users[row.actor_identity] = schemas.UserActivity(actor_identity=row.actor_identity)
        if row.kind == TransactionKind.QUANTITY_ADD:
            entry.added += row.delta
        else:
            entry.deducted += abs(row.delta)
        entry.total_actions += 1
    return sorted(users.values(), key=lambda e: (-e.total_actions, e.actor_identity))


# ---------------------------------------------------------------------------
# Public queries
# ---------------------------------------------------------------------------


def summarize(db: Session, *, start: datetime, end: datetime) -> schemas.PeriodSummary:
    start, end = _window(start, end)
    return _summarize_rows(_quantity_rows(db, start, end), start=start, end=end)


def top_items(
    db: Session,
    *,
    start: datetime,
    end: datetime,
    direction,
    limit: Optional[int] = None,
) -> List[schemas.ItemRanking]:
    """
    Items ranked by total quantity moved in one direction.

    Ties go to the item whose first matching transaction came earliest.
    Deleted items keep the name they last carried in the log.
    """
    start, end = _window(start, end)
    direction = _check_direction(direction)
    limit = _check_limit(limit)
    return _rank_items(db, _quantity_rows(db, start, end), direction=direction, limit=limit)


def user_activity(db: Session, *, start: datetime, end: datetime) -> List[schemas.UserActivity]:
    start, end = _window(start, end)
    return _user_activity_rows(_quantity_rows(db, start, end))


def drill_down(
    db: Session,
    *,
    start: datetime,
    end: datetime,
    item_id: Optional[int] = None,
    actor_identity: Optional[str] = None,
    kinds: Optional[Sequence[audit_models.TransactionKind]] = None,
) -> List[audit_models.InventoryTransaction]:
    start, end = _window(start, end)
    actor_identity = (actor_identity or "").strip() or None
    if (item_id is None) == (actor_identity is None):
        raise InvalidInputError("Drill-down needs exactly one of item_id or actor_identity.")
    criteria = TransactionFilter(
        item_id=item_id,
        actor_identity=actor_identity,
        start=start,
        end=end,
        kinds=kinds,
    )
    with translate_storage_errors("Reading the audit log"):
        return AuditLog(db).query(criteria).all()


def build_log_summary(
    db: Session,
    *,
    start: datetime,
    end: datetime,
    limit: Optional[int] = None,
) -> schemas.LogSummary:
    """Summary, both rankings and user activity from a single replay."""
    start, end = _window(start, end)
    limit = _check_limit(limit)
    rows = _quantity_rows(db, start, end)
    logger.debug(
        "Building log summary",
        extra={"start": start.isoformat(), "end": end.isoformat(), "transactions": len(rows)},
    )
    return schemas.LogSummary(
        summary=_summarize_rows(rows, start=start, end=end),
        top_added=_rank_items(db, rows, direction=AdjustDirection.ADD, limit=limit),
        top_deducted=_rank_items(db, rows, direction=AdjustDirection.DEDUCT, limit=limit),
        user_activity=_user_activity_rows(rows),
    )


def breakdown_by_item(
    transactions: Iterable[audit_models.InventoryTransaction],
) -> List[schemas.ItemBreakdown]:
    """Per-item added/deducted totals, e.g. for one user's drill-down."""
    items: Dict[int, schemas.ItemBreakdown] = {}
    for row in transactions:
        if row.kind not in audit_models.QUANTITY_KINDS:
            continue
        entry = items.get(row.item_id)
        if entry is None:
            entry = items[row.item_id] = schemas.ItemBreakdown(item_id=row.item_id, item_name=row.item_name)
        entry.item_name = row.item_name
        if row.kind == TransactionKind.QUANTITY_ADD:
            entry.added += row.delta
        else:
            entry.deducted += abs(row.delta)
        entry.transaction_count += 1
    return sorted(items.values(), key=lambda e: (-(e.added + e.deducted), e.item_id))


def breakdown_by_user(
    transactions: Iterable[audit_models.InventoryTransaction],
) -> List[schemas.UserBreakdown]:
    """Per-user added/deducted totals, e.g. for one item's drill-down."""
    users: Dict[str, schemas.UserBreakdown] = {}
    for row in transactions:
        if row.kind not in audit_models.QUANTITY_KINDS:
            continue
        entry = users.get(row.actor_identity)
        if entry is None:
            entry = users[row.actor_identity] = schemas.UserBreakdown(actor_identity=row.actor_identity)
        if row.kind == TransactionKind.QUANTITY_ADD:
            entry.added += row.delta
        else:
            entry.deducted += abs(row.delta)
        entry.transaction_count += 1
    return sorted(users.values(), key=lambda e: (-(e.added + e.deducted), e.actor_identity))
