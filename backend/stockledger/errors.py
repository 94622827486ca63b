"""
Ledger error kinds.

Every failure path of the ledger and reporting services ends in one of the
exceptions below. Routers translate them to HTTP responses with
`to_http_exception`; nothing in the engines catches and ignores them.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import DBAPIError, IntegrityError


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class LedgerError(Exception):
    """Base class for every error the ledger surfaces to callers."""

    code = "ledger_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, item_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.item_id = item_id


class InvalidInputError(LedgerError):
    """Malformed request. Always caller-fixable, never retried."""

    code = "invalid_input"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(LedgerError):
    """The referenced item id does not exist in the record store."""

    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(LedgerError):
    """A concurrent writer won the race; re-read and resubmit."""

    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


class PartialFailureError(LedgerError):
    """
    The item change could not be undone after its audit entry failed.

    The record store may hold a mutation with no matching transaction.
    Operators must reconcile before trusting the ledger for that item.
    """

    code = "partial_failure"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class StorageUnavailableError(LedgerError):
    """Persistence unreachable or the write was rolled back. Safe to retry."""

    code = "storage_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


# ---------------------------------------------------------------------------
# Translation helpers
# ---------------------------------------------------------------------------


@contextmanager
def translate_storage_errors(action: str) -> Iterator[None]:
    """Re-raise SQLAlchemy driver errors as ledger errors."""
    try:
        yield
    except IntegrityError as exc:
        raise ConflictError(f"{action} conflicts with existing data.") from exc
    except DBAPIError as exc:
        raise StorageUnavailableError(f"{action} failed: storage unavailable.") from exc


def to_http_exception(exc: LedgerError) -> HTTPException:
    headers = None
    if isinstance(exc, StorageUnavailableError):
        headers = {"Retry-After": "1"}
    return HTTPException(
        status_code=exc.status_code,
        detail={"code": exc.code, "message": exc.message},
        headers=headers,
    )
