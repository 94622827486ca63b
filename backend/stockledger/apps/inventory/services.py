from __future__ import annotations

import logging
import os
from contextlib import ExitStack
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, NoReturn, Optional, Tuple, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stockledger.apps.audit import models as audit_models
from stockledger.apps.audit.log import AuditLog
from stockledger.errors import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    PartialFailureError,
    StorageUnavailableError,
    translate_storage_errors,
)
from stockledger.utils.identifiers import generate_uuid7

from . import models, schemas
from .locks import item_locks
from .store import ItemStore

logger = logging.getLogger(__name__)

try:
    MAX_CONFLICT_RETRIES: int = max(1, int(os.getenv("LEDGER_MAX_RETRIES", "3")))
except ValueError:
    MAX_CONFLICT_RETRIES = 3

METADATA_FIELDS = ("location", "image_ref", "url")
MAX_SIZE_LABEL = 32
# Quantities are stored in 32-bit Integer columns.
MAX_QUANTITY = 2**31 - 1

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _require_actor(actor_identity: Optional[str]) -> str:
    actor = (actor_identity or "").strip()
    if not actor:
        raise InvalidInputError("actor_identity is required for every ledger operation.")
    return actor


def _clean_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise InvalidInputError("name must not be empty.")
    return name.strip()


def _check_quantity(value: Any, *, field: str = "quantity") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{field} must be an integer.")
    if value < 0:
        raise InvalidInputError(f"{field} must not be negative.")
    if value > MAX_QUANTITY:
        raise InvalidInputError(f"{field} must not exceed {MAX_QUANTITY}.")
    return value


def _clean_size_label(size: Any) -> str:
    if not isinstance(size, str) or not size.strip():
        raise InvalidInputError("size labels must be non-empty strings.")
    label = size.strip()
    if len(label) > MAX_SIZE_LABEL:
        raise InvalidInputError(f"size label {label!r} is longer than {MAX_SIZE_LABEL} characters.")
    return label


def _clean_sizes(size_quantities: Any) -> Dict[str, int]:
    if not isinstance(size_quantities, dict):
        raise InvalidInputError("size_quantities must be a mapping of size to quantity.")
    sizes: Dict[str, int] = {}
    for raw_size, raw_quantity in size_quantities.items():
        size = _clean_size_label(raw_size)
        if size in sizes:
            raise InvalidInputError(f"size {size!r} is listed more than once.")
        sizes[size] = _check_quantity(raw_quantity, field=f"size_quantities[{size}]")
    return sizes


def _resolve_quantities(
    quantity: Any,
    size_quantities: Any,
) -> Tuple[int, Optional[Dict[str, int]]]:
    """Return (total, sizes); sizes is None for plain items."""
    if size_quantities is None:
        if quantity is None:
            return 0, None
        return _check_quantity(quantity), None
    sizes = _clean_sizes(size_quantities)
    total = sum(sizes.values())
    if total > MAX_QUANTITY:
        raise InvalidInputError(f"size_quantities add up to more than {MAX_QUANTITY}.")
    if quantity is not None and _check_quantity(quantity) != total:
        raise InvalidInputError(
            f"quantity {quantity} does not match the sum of size_quantities ({total})."
        )
    return total, sizes


def _clean_optional(value: Any, *, field: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidInputError(f"{field} must be a string.")
    return value.strip() or None


def _ensure_unique_name(store: ItemStore, name: str, *, exclude_id: Optional[int] = None) -> None:
    existing = store.find_by_name(name)
    if existing is not None and existing.id != exclude_id:
        raise ConflictError(f"An item named {existing.name!r} already exists.", item_id=existing.id)


# ---------------------------------------------------------------------------
# Snapshots and descriptions
# ---------------------------------------------------------------------------


def _snapshot(item: models.InventoryItem) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "quantity": item.quantity,
        "size_quantities": item.size_quantities,
        "location": item.location,
        "image_ref": item.image_ref,
        "url": item.url,
    }


def _format_sizes(sizes: Dict[str, int]) -> str:
    if not sizes:
        return "{}"
    return "{" + ", ".join(f"{size}={qty}" for size, qty in sorted(sizes.items())) + "}"


def _describe(item: models.InventoryItem) -> str:
    parts = [f"{item.name}, Quantity: {item.quantity}"]
    if item.is_size_tracked:
        parts.append(f"Sizes: {_format_sizes(item.size_quantities)}")
    if item.location:
        parts.append(f"Location: {item.location}")
    if item.image_ref:
        parts.append(f"Image: {item.image_ref}")
    return ", ".join(parts)


def _new_entry(
    item: models.InventoryItem,
    *,
    kind: audit_models.TransactionKind,
    actor_identity: str,
    delta: int,
    detail: str,
    quantity_before: Optional[int],
    quantity_after: Optional[int],
    before: Optional[dict],
    after: Optional[dict],
    correlation_id: str,
    occurred_at: datetime,
    size: Optional[str] = None,
) -> audit_models.InventoryTransaction:
    return audit_models.InventoryTransaction(
        actor_identity=actor_identity,
        item_id=item.id,
        item_name=item.name,
        kind=kind,
        delta=delta,
        size=size,
        quantity_before=quantity_before,
        quantity_after=quantity_after,
        detail=detail,
        before=before,
        after=after,
        correlation_id=correlation_id,
        occurred_at=occurred_at,
    )


def _replace_sizes(item: models.InventoryItem, sizes: Dict[str, int]) -> None:
    existing = {row.size: row for row in item.sizes}
    for size, quantity in sizes.items():
        row = existing.get(size)
        if row is None:
            item.sizes.append(models.InventoryItemSize(size=size, quantity=quantity))
        else:
            row.quantity = quantity
    for size, row in existing.items():
        if size not in sizes:
            item.sizes.remove(row)


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------


def _rollback(db: Session) -> bool:
    try:
        db.rollback()
    except SQLAlchemyError:
        logger.exception("Ledger rollback failed")
        return False
    return True


def _abort_after_failed_append(
    db: Session,
    entry: audit_models.InventoryTransaction,
    exc: SQLAlchemyError,
) -> NoReturn:
    context = {
        "item_id": entry.item_id,
        "kind": entry.kind.value if entry.kind else None,
        "actor_identity": entry.actor_identity,
        "error": str(exc),
    }
    if not _rollback(db):
        logger.error("Audit append failed and the item change could not be rolled back", extra=context)
        raise PartialFailureError(
            "The item change was applied but its audit entry could not be written "
            "and the change could not be rolled back.",
            item_id=entry.item_id,
        ) from exc
    logger.warning("Audit append failed; item change rolled back", extra=context)
    raise StorageUnavailableError(
        "The audit entry could not be written; the item change was rolled back.",
        item_id=entry.item_id,
    ) from exc


def _append_entry(
    db: Session,
    audit_log: AuditLog,
    entry: audit_models.InventoryTransaction,
) -> audit_models.InventoryTransaction:
    try:
        return audit_log.append(entry)
    except StaleDataError:
        raise
    except SQLAlchemyError as exc:
        _abort_after_failed_append(db, entry, exc)


def _commit(db: Session, *, action: str, item_id: Optional[int]) -> None:
    try:
        db.commit()
    except StaleDataError:
        raise
    except SQLAlchemyError as exc:
        _rollback(db)
        raise StorageUnavailableError(f"{action} could not be committed.", item_id=item_id) from exc


def _run_unit(
    db: Session,
    *,
    action: str,
    item_id: Optional[int],
    apply: Callable[[], T],
) -> T:
    """
    Run one read-modify-write against the ledger and commit it.

    A version mismatch on the item row rolls back and re-runs `apply` from
    a fresh read; after MAX_CONFLICT_RETRIES attempts the caller gets a
    ConflictError. Every other failure rolls back and propagates.
    """
    for attempt in range(1, MAX_CONFLICT_RETRIES + 1):
        try:
            result = apply()
            _commit(db, action=action, item_id=item_id)
            return result
        except StaleDataError:
            _rollback(db)
            logger.warning(
                "Concurrent item update detected; retrying",
                extra={"action": action, "item_id": item_id, "attempt": attempt},
            )
        except Exception:
            _rollback(db)
            raise
    raise ConflictError(
        f"{action} lost {MAX_CONFLICT_RETRIES} concurrent update races; re-read and retry.",
        item_id=item_id,
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def get_item(db: Session, *, item_id: int) -> models.InventoryItem:
    with translate_storage_errors("Loading item"):
        return ItemStore(db).get(item_id)


def list_items(db: Session, *, search: Optional[str] = None) -> List[models.InventoryItem]:
    with translate_storage_errors("Listing items"):
        items = ItemStore(db).list()
    if search and search.strip():
        needle = models.normalize_name(search)
        items = [item for item in items if needle in item.name_key]
    return items


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


def _prepare_new_item(payload: schemas.InventoryItemCreate, *, now: datetime) -> models.InventoryItem:
    name = _clean_name(payload.name)
    quantity, sizes = _resolve_quantities(payload.quantity, payload.size_quantities)
    item = models.InventoryItem(
        name=name,
        name_key=models.normalize_name(name),
        quantity=quantity,
        location=_clean_optional(payload.location, field="location"),
        image_ref=_clean_optional(payload.image_ref, field="image_ref"),
        url=_clean_optional(payload.url, field="url"),
        created_at=now,
        updated_at=now,
    )
    for size, size_quantity in (sizes or {}).items():
        item.sizes.append(models.InventoryItemSize(size=size, quantity=size_quantity))
    return item


def _insert_items(
    db: Session,
    *,
    items: List[models.InventoryItem],
    actor_identity: str,
    correlation_id: str,
    now: datetime,
) -> List[models.InventoryItem]:
    store = ItemStore(db)
    audit_log = AuditLog(db)
    for item in items:
        with translate_storage_errors("Creating item"):
            _ensure_unique_name(store, item.name)
            store.put(item)
        _append_entry(
            db,
            audit_log,
            _new_entry(
                item,
                kind=audit_models.TransactionKind.CREATE,
                actor_identity=actor_identity,
                delta=item.quantity,
                detail=f"Added item: {_describe(item)}",
                quantity_before=0,
                quantity_after=item.quantity,
                before=None,
                after=_snapshot(item),
                correlation_id=correlation_id,
                occurred_at=now,
            ),
        )
    return items


def create_item(
    db: Session,
    *,
    payload: schemas.InventoryItemCreate,
    actor_identity: str,
) -> models.InventoryItem:
    actor = _require_actor(actor_identity)
    now = _utcnow()
    item = _prepare_new_item(payload, now=now)
    correlation_id = generate_uuid7()

    with item_locks.hold(("name", item.name_key)):
        _run_unit(
            db,
            action="create_item",
            item_id=None,
            apply=lambda: _insert_items(
                db,
                items=[item],
                actor_identity=actor,
                correlation_id=correlation_id,
                now=now,
            ),
        )
    logger.info(
        "Inventory item created",
        extra={"item_id": item.id, "quantity": item.quantity, "actor_identity": actor},
    )
    return item


def create_items(
    db: Session,
    *,
    payload: schemas.InventoryItemBatchCreate,
    actor_identity: str,
) -> List[models.InventoryItem]:
    """All-or-nothing batch create; one CREATE transaction per item."""
    actor = _require_actor(actor_identity)
    if not payload.items:
        raise InvalidInputError("A batch must contain at least one item.")
    now = _utcnow()
    items = [_prepare_new_item(entry, now=now) for entry in payload.items]
    seen: Dict[str, str] = {}
    for item in items:
        if item.name_key in seen:
            raise InvalidInputError(f"The batch lists {item.name!r} more than once.")
        seen[item.name_key] = item.name
    correlation_id = generate_uuid7()

    with ExitStack() as stack:
        for name_key in sorted(seen):
            stack.enter_context(item_locks.hold(("name", name_key)))
        _run_unit(
            db,
            action="create_items",
            item_id=None,
            apply=lambda: _insert_items(
                db,
                items=items,
                actor_identity=actor,
                correlation_id=correlation_id,
                now=now,
            ),
        )
    logger.info(
        "Inventory items created",
        extra={"count": len(items), "correlation_id": correlation_id, "actor_identity": actor},
    )
    return items


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


def _apply_update(
    db: Session,
    *,
    item_id: int,
    changes: Dict[str, Any],
    actor_identity: str,
    correlation_id: str,
) -> models.InventoryItem:
    store = ItemStore(db)
    with translate_storage_errors("Updating item"):
        item = store.get(item_id, lock=True)

    # Validate everything before touching the loaded row.
    new_name = item.name
    if "name" in changes:
        new_name = _clean_name(changes["name"])
        if models.normalize_name(new_name) != item.name_key:
            with translate_storage_errors("Updating item"):
                _ensure_unique_name(store, new_name, exclude_id=item.id)

    new_sizes: Optional[Dict[str, int]] = None
    new_quantity = item.quantity
    if "size_quantities" in changes:
        if changes["size_quantities"] is None:
            raise InvalidInputError("size_quantities cannot be null; send {} to drop sizes.")
        new_quantity, new_sizes = _resolve_quantities(changes.get("quantity"), changes["size_quantities"])
    elif "quantity" in changes:
        if item.is_size_tracked:
            raise InvalidInputError(
                "The total of a size-tracked item changes through size_quantities, not quantity."
            )
        if changes["quantity"] is None:
            raise InvalidInputError("quantity cannot be null.")
        new_quantity = _check_quantity(changes["quantity"])

    new_metadata = {
        field: _clean_optional(changes[field], field=field)
        for field in METADATA_FIELDS
        if field in changes
    }

    before = _snapshot(item)
    quantity_before = item.quantity
    diffs: List[Tuple[str, Any, Any]] = []

    if new_name != item.name:
        diffs.append(("name", item.name, new_name))
        item.name = new_name
        item.name_key = models.normalize_name(new_name)
    if new_sizes is not None and new_sizes != item.size_quantities:
        diffs.append(("size_quantities", _format_sizes(item.size_quantities), _format_sizes(new_sizes)))
        _replace_sizes(item, new_sizes)
    if new_quantity != item.quantity:
        diffs.append(("quantity", item.quantity, new_quantity))
        item.quantity = new_quantity
    for field, value in new_metadata.items():
        old = getattr(item, field)
        if value != old:
            diffs.append((field, old, value))
            setattr(item, field, value)

    now = _utcnow()
    item.updated_at = now
    with translate_storage_errors("Updating item"):
        store.put(item)

    if diffs:
        changes_text = ", ".join(f"{field}: {old} -> {new}" for field, old, new in diffs)
    else:
        changes_text = "No changes"
    _append_entry(
        db,
        AuditLog(db),
        _new_entry(
            item,
            kind=audit_models.TransactionKind.UPDATE,
            actor_identity=actor_identity,
            delta=item.quantity - quantity_before,
            detail=f"Updated item: {before['name']}. Changes: {changes_text}",
            quantity_before=quantity_before,
            quantity_after=item.quantity,
            before=before,
            after=_snapshot(item),
            correlation_id=correlation_id,
            occurred_at=now,
        ),
    )
    return item


def update_item(
    db: Session,
    *,
    item_id: int,
    payload: schemas.InventoryItemUpdate,
    actor_identity: str,
) -> models.InventoryItem:
    actor = _require_actor(actor_identity)
    changes = payload.model_dump(exclude_unset=True)
    correlation_id = generate_uuid7()

    with ExitStack() as stack:
        stack.enter_context(item_locks.hold(("item", item_id)))
        # Renames contend with create_item on the target name key.
        if isinstance(changes.get("name"), str):
            stack.enter_context(item_locks.hold(("name", models.normalize_name(changes["name"]))))
        item = _run_unit(
            db,
            action="update_item",
            item_id=item_id,
            apply=lambda: _apply_update(
                db,
                item_id=item_id,
                changes=changes,
                actor_identity=actor,
                correlation_id=correlation_id,
            ),
        )
    logger.info(
        "Inventory item updated",
        extra={"item_id": item_id, "fields": sorted(changes), "actor_identity": actor},
    )
    return item


# ---------------------------------------------------------------------------
# Quantity adjustments
# ---------------------------------------------------------------------------


def _apply_adjustment(
    db: Session,
    *,
    item_id: int,
    amount: int,
    direction: schemas.AdjustDirection,
    size: Optional[str],
    actor_identity: str,
    correlation_id: str,
) -> models.InventoryItem:
    store = ItemStore(db)
    with translate_storage_errors("Adjusting quantity"):
        item = store.get(item_id, lock=True)

    adding = direction == schemas.AdjustDirection.ADD
    before = _snapshot(item)
    quantity_before = item.quantity
    if adding and item.quantity + amount > MAX_QUANTITY:
        raise InvalidInputError(
            f"Adding {amount} would take the quantity past {MAX_QUANTITY}.", item_id=item_id
        )

    if item.is_size_tracked:
        if size is None:
            raise InvalidInputError("size is required to adjust a size-tracked item.", item_id=item_id)
        row = next((r for r in item.sizes if r.size == size), None)
        if row is None:
            if not adding:
                raise InvalidInputError(f"Item has no size {size!r} to deduct from.", item_id=item_id)
            row = models.InventoryItemSize(size=size, quantity=0)
            item.sizes.append(row)
        applied = amount if adding else min(amount, row.quantity)
        row.quantity = row.quantity + applied if adding else row.quantity - applied
        item.quantity = sum(r.quantity for r in item.sizes)
    else:
        if size is not None:
            raise InvalidInputError("size is only allowed for size-tracked items.", item_id=item_id)
        # Deductions clamp at zero; the shortfall is not an error.
        applied = amount if adding else min(amount, item.quantity)
        item.quantity = item.quantity + applied if adding else item.quantity - applied

    now = _utcnow()
    item.updated_at = now
    with translate_storage_errors("Adjusting quantity"):
        store.put(item)

    target = f"{item.name} ({size})" if size else item.name
    if adding:
        kind = audit_models.TransactionKind.QUANTITY_ADD
        delta = applied
        detail = f"Added {applied} to {target} ({quantity_before} -> {item.quantity})"
    else:
        kind = audit_models.TransactionKind.QUANTITY_DEDUCT
        delta = -applied
        detail = f"Deducted {applied} from {target} ({quantity_before} -> {item.quantity})"
        if applied < amount:
            detail += f"; requested {amount}, clamped at zero"

    _append_entry(
        db,
        AuditLog(db),
        _new_entry(
            item,
            kind=kind,
            actor_identity=actor_identity,
            delta=delta,
            detail=detail,
            quantity_before=quantity_before,
            quantity_after=item.quantity,
            before=before,
            after=_snapshot(item),
            correlation_id=correlation_id,
            occurred_at=now,
            size=size,
        ),
    )
    return item


def adjust_quantity(
    db: Session,
    *,
    item_id: int,
    payload: schemas.QuantityAdjustRequest,
    actor_identity: str,
) -> models.InventoryItem:
    """
    Add to or deduct from an item's quantity.

    DEDUCT never fails for lack of stock: the result is floored at zero and
    the logged delta is the amount actually removed.
    """
    actor = _require_actor(actor_identity)
    amount = payload.amount
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidInputError("amount must be a positive integer.", item_id=item_id)
    if amount > MAX_QUANTITY:
        raise InvalidInputError(f"amount must not exceed {MAX_QUANTITY}.", item_id=item_id)
    try:
        direction = schemas.AdjustDirection(payload.direction)
    except ValueError:
        raise InvalidInputError("direction must be ADD or DEDUCT.", item_id=item_id)
    size = _clean_size_label(payload.size) if payload.size is not None else None
    correlation_id = generate_uuid7()

    with item_locks.hold(("item", item_id)):
        item = _run_unit(
            db,
            action="adjust_quantity",
            item_id=item_id,
            apply=lambda: _apply_adjustment(
                db,
                item_id=item_id,
                amount=amount,
                direction=direction,
                size=size,
                actor_identity=actor,
                correlation_id=correlation_id,
            ),
        )
    logger.info(
        "Inventory quantity adjusted",
        extra={
            "item_id": item_id,
            "direction": direction.value,
            "requested": amount,
            "quantity": item.quantity,
            "actor_identity": actor,
        },
    )
    return item


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------


def _apply_delete(
    db: Session,
    *,
    item_id: int,
    actor_identity: str,
    correlation_id: str,
) -> audit_models.InventoryTransaction:
    store = ItemStore(db)
    with translate_storage_errors("Deleting item"):
        item = store.get(item_id, lock=True)
        snapshot = _snapshot(item)
        description = _describe(item)
        store.remove(item_id)
    return _append_entry(
        db,
        AuditLog(db),
        _new_entry(
            item,
            kind=audit_models.TransactionKind.DELETE,
            actor_identity=actor_identity,
            delta=-snapshot["quantity"],
            detail=f"Deleted item: {description}",
            quantity_before=snapshot["quantity"],
            quantity_after=None,
            before=snapshot,
            after=None,
            correlation_id=correlation_id,
            occurred_at=_utcnow(),
        ),
    )


def delete_item(
    db: Session,
    *,
    item_id: int,
    actor_identity: str,
) -> audit_models.InventoryTransaction:
    actor = _require_actor(actor_identity)
    correlation_id = generate_uuid7()

    with item_locks.hold(("item", item_id)):
        entry = _run_unit(
            db,
            action="delete_item",
            item_id=item_id,
            apply=lambda: _apply_delete(
                db,
                item_id=item_id,
                actor_identity=actor,
                correlation_id=correlation_id,
            ),
        )
    logger.info("Inventory item deleted", extra={"item_id": item_id, "actor_identity": actor})
    return entry


def _apply_clear(
    db: Session,
    *,
    item_ids: List[int],
    actor_identity: str,
    correlation_id: str,
) -> int:
    removed = 0
    for item_id in item_ids:
        try:
            _apply_delete(db, item_id=item_id, actor_identity=actor_identity, correlation_id=correlation_id)
        except NotFoundError:
            # Deleted by someone else between listing and locking.
            continue
        removed += 1
    AuditLog(db).record_system_event(
        action="inventory.cleared",
        actor_identity=actor_identity,
        metadata={"removed_items": removed, "correlation_id": correlation_id},
    )
    return removed


def clear_inventory(db: Session, *, actor_identity: str) -> int:
    """Delete every item, logging one DELETE per item."""
    actor = _require_actor(actor_identity)
    with translate_storage_errors("Listing items"):
        item_ids = [item.id for item in ItemStore(db).list()]
    correlation_id = generate_uuid7()

    with ExitStack() as stack:
        for item_id in item_ids:
            stack.enter_context(item_locks.hold(("item", item_id)))
        removed = _run_unit(
            db,
            action="clear_inventory",
            item_id=None,
            apply=lambda: _apply_clear(
                db,
                item_ids=item_ids,
                actor_identity=actor,
                correlation_id=correlation_id,
            ),
        )
    logger.warning("Inventory cleared", extra={"removed_items": removed, "actor_identity": actor})
    return removed
