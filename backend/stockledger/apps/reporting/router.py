from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.apps.audit.schemas import TransactionRead
from stockledger.apps.inventory.schemas import AdjustDirection
from stockledger.database import get_read_db
from stockledger.errors import InvalidInputError, LedgerError, to_http_exception
from stockledger.security import get_actor_identity

from . import schemas, services

router = APIRouter(
    prefix="/inventory/reports",
    tags=["reports"],
)


def _resolve_window(
    period: Optional[str],
    start: Optional[datetime],
    end: Optional[datetime],
) -> Tuple[datetime, datetime]:
    """`period` or an explicit start+end; nothing at all means today."""
    if period:
        if start is not None or end is not None:
            raise InvalidInputError("Send either period or start/end, not both.")
        return services.resolve_period(period)
    if start is None and end is None:
        return services.resolve_period("today")
    if start is None or end is None:
        raise InvalidInputError("start and end must be sent together.")
    return start, end


@router.get("/summary", response_model=schemas.LogSummary)
def get_log_summary(
    period: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: Optional[int] = Query(None, ge=1, le=100),
    db: Session = Depends(get_read_db),
    actor_identity: str = Depends(get_actor_identity),
):
    try:
        start, end = _resolve_window(period, start, end)
        return services.build_log_summary(db, start=start, end=end, limit=limit)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc


@router.get("/top-items", response_model=List[schemas.ItemRanking])
def get_top_items(
    direction: AdjustDirection = AdjustDirection.ADD,
    period: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: Optional[int] = Query(None, ge=1, le=100),
    db: Session = Depends(get_read_db),
    actor_identity: str = Depends(get_actor_identity),
):
    try:
        start, end = _resolve_window(period, start, end)
        return services.top_items(db, start=start, end=end, direction=direction, limit=limit)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc


@router.get("/user-activity", response_model=List[schemas.UserActivity])
def get_user_activity(
    period: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_read_db),
    actor_identity: str = Depends(get_actor_identity),
):
    try:
        start, end = _resolve_window(period, start, end)
        return services.user_activity(db, start=start, end=end)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc


@router.get("/drill-down", response_model=schemas.DrillDownResult)
def get_drill_down(
    item_id: Optional[int] = None,
    actor: Optional[str] = None,
    period: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_read_db),
    actor_identity: str = Depends(get_actor_identity),
):
    try:
        start, end = _resolve_window(period, start, end)
        transactions = services.drill_down(
            db,
            start=start,
            end=end,
            item_id=item_id,
            actor_identity=actor,
        )
    except LedgerError as exc:
        raise to_http_exception(exc) from exc

    # An item drill-down explains who moved it; a user drill-down explains what they moved.
    return schemas.DrillDownResult(
        start=start,
        end=end,
        item_id=item_id,
        actor_identity=actor if item_id is None else None,
        transactions=[TransactionRead.model_validate(row) for row in transactions],
        by_item=services.breakdown_by_item(transactions) if item_id is None else [],
        by_user=services.breakdown_by_user(transactions) if item_id is not None else [],
    )
