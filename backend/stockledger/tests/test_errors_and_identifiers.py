from __future__ import annotations

import uuid

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from stockledger.errors import (
    ConflictError,
    NotFoundError,
    StorageUnavailableError,
    to_http_exception,
    translate_storage_errors,
)
from stockledger.utils.identifiers import generate_uuid7, uuid7_timestamp_ms


def test_translate_storage_errors_maps_driver_errors():
    with pytest.raises(StorageUnavailableError):
        with translate_storage_errors("Reading"):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))
    with pytest.raises(ConflictError):
        with translate_storage_errors("Writing"):
            raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))


def test_to_http_exception_carries_code_and_retry_hint():
    missing = to_http_exception(NotFoundError("Item 3 not found.", item_id=3))
    assert missing.status_code == 404
    assert missing.detail == {"code": "not_found", "message": "Item 3 not found."}

    down = to_http_exception(StorageUnavailableError("down"))
    assert down.status_code == 503
    assert down.headers == {"Retry-After": "1"}


def test_uuid7_is_versioned_and_time_ordered():
    first = generate_uuid7()
    second = generate_uuid7()

    assert uuid.UUID(first).version == 7
    assert uuid7_timestamp_ms(first) <= uuid7_timestamp_ms(second)
