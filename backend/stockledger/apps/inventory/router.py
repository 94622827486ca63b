from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from stockledger.database import get_db
from stockledger.errors import LedgerError, to_http_exception
from stockledger.security import Actor, get_actor_identity, require_admin

from . import schemas, services

router = APIRouter(
    prefix="/inventory/items",
    tags=["inventory"],
)


@router.get("", response_model=List[schemas.InventoryItemRead])
def list_items(
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    actor_identity: str = Depends(get_actor_identity),
):
    try:
        return services.list_items(db, search=search)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc


@router.post(
    "",
    response_model=schemas.InventoryItemRead,
    status_code=status.HTTP_201_CREATED,
)
def create_item(
    payload: schemas.InventoryItemCreate,
    db: Session = Depends(get_db),
    actor_identity: str = Depends(get_actor_identity),
):
    try:
        return services.create_item(db, payload=payload, actor_identity=actor_identity)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc


@router.post(
    "/batch",
    response_model=List[schemas.InventoryItemRead],
    status_code=status.HTTP_201_CREATED,
)
def create_items(
    payload: schemas.InventoryItemBatchCreate,
    db: Session = Depends(get_db),
    actor_identity: str = Depends(get_actor_identity),
):
    try:
        return services.create_items(db, payload=payload, actor_identity=actor_identity)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc


@router.delete("", response_model=schemas.ClearInventoryResult)
def clear_inventory(
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
):
    try:
        removed = services.clear_inventory(db, actor_identity=admin.identity)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    return schemas.ClearInventoryResult(removed_items=removed)


@router.get("/{item_id}", response_model=schemas.InventoryItemRead)
def get_item(
    item_id: int,
    db: Session = Depends(get_db),
    actor_identity: str = Depends(get_actor_identity),
):
    try:
        return services.get_item(db, item_id=item_id)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc


@router.patch("/{item_id}", response_model=schemas.InventoryItemRead)
def update_item(
    item_id: int,
    payload: schemas.InventoryItemUpdate,
    db: Session = Depends(get_db),
    actor_identity: str = Depends(get_actor_identity),
):
    try:
        return services.update_item(
            db,
            item_id=item_id,
            payload=payload,
            actor_identity=actor_identity,
        )
    except LedgerError as exc:
        raise to_http_exception(exc) from exc


@router.post("/{item_id}/adjust", response_model=schemas.InventoryItemRead)
def adjust_quantity(
    item_id: int,
    payload: schemas.QuantityAdjustRequest,
    db: Session = Depends(get_db),
    actor_identity: str = Depends(get_actor_identity),
):
    try:
        return services.adjust_quantity(
            db,
            item_id=item_id,
            payload=payload,
            actor_identity=actor_identity,
        )
    except LedgerError as exc:
        raise to_http_exception(exc) from exc


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_item(
    item_id: int,
    db: Session = Depends(get_db),
    actor_identity: str = Depends(get_actor_identity),
):
    try:
        services.delete_item(db, item_id=item_id, actor_identity=actor_identity)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
