from __future__ import annotations

import enum
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from stockledger.apps.audit.log import as_utc


class AdjustDirection(str, enum.Enum):
    ADD = "ADD"
    DEDUCT = "DEDUCT"


class InventoryItemCreate(BaseModel):
    name: str
    quantity: Optional[int] = None
    size_quantities: Optional[Dict[str, int]] = None
    location: Optional[str] = None
    image_ref: Optional[str] = None
    url: Optional[str] = None


class InventoryItemBatchCreate(BaseModel):
    items: List[InventoryItemCreate] = Field(default_factory=list)


class InventoryItemUpdate(BaseModel):
    """Only fields the caller actually sends are applied."""

    name: Optional[str] = None
    quantity: Optional[int] = None
    size_quantities: Optional[Dict[str, int]] = None
    location: Optional[str] = None
    image_ref: Optional[str] = None
    url: Optional[str] = None


class QuantityAdjustRequest(BaseModel):
    amount: int
    direction: AdjustDirection
    size: Optional[str] = None


class InventoryItemRead(BaseModel):
    id: int
    name: str
    quantity: int
    size_quantities: Dict[str, int] = Field(default_factory=dict)
    location: Optional[str] = None
    image_ref: Optional[str] = None
    url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime) -> datetime:
        return as_utc(value)

    class Config:
        from_attributes = True


class ClearInventoryResult(BaseModel):
    removed_items: int
