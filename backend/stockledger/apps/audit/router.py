from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.database import get_db, get_read_db
from stockledger.errors import LedgerError, to_http_exception
from stockledger.security import Actor, get_actor_identity, require_admin

from . import schemas, services


router = APIRouter(
    prefix="/inventory/logs",
    tags=["audit"],
)


@router.get("", response_model=List[schemas.TransactionRead])
def list_transactions(
    item_id: Optional[int] = None,
    actor: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_read_db),
    actor_identity: str = Depends(get_actor_identity),
):
    try:
        return services.list_transactions(
            db,
            item_id=item_id,
            actor_identity=actor,
            start=start,
            end=end,
            skip=skip,
            limit=limit,
        )
    except LedgerError as exc:
        raise to_http_exception(exc) from exc


@router.delete("", response_model=schemas.ClearLogsResult)
def clear_transactions(
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
):
    try:
        removed, event = services.clear_transactions(db, actor_identity=admin.identity)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    return schemas.ClearLogsResult(removed_transactions=removed, system_event_id=event.id)


@router.get("/system-events", response_model=List[schemas.SystemEventRead])
def list_system_events(
    action: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_read_db),
    admin: Actor = Depends(require_admin),
):
    try:
        return services.list_system_events(db, action=action, limit=limit)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
