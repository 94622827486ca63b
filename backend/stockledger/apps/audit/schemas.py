from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .log import as_utc
from .models import TransactionKind


class TransactionRead(BaseModel):
    id: int
    actor_identity: str
    item_id: int
    item_name: str
    kind: TransactionKind
    delta: int
    size: Optional[str] = None
    quantity_before: Optional[int] = None
    quantity_after: Optional[int] = None
    detail: str
    before: Optional[dict] = None
    after: Optional[dict] = None
    correlation_id: Optional[str] = None
    occurred_at: datetime

    @field_validator("occurred_at")
    @classmethod
    def normalize_occurred_at(cls, value: datetime) -> datetime:
        # SQLite hands DateTime(timezone=True) columns back naive.
        return as_utc(value)

    class Config:
        from_attributes = True


class SystemEventRead(BaseModel):
    id: str
    action: str
    actor_identity: str
    occurred_at: datetime
    metadata: Optional[dict] = Field(default=None, validation_alias="metadata_json")

    @field_validator("occurred_at")
    @classmethod
    def normalize_occurred_at(cls, value: datetime) -> datetime:
        return as_utc(value)

    class Config:
        from_attributes = True
        populate_by_name = True


class ClearLogsResult(BaseModel):
    removed_transactions: int
    system_event_id: str
