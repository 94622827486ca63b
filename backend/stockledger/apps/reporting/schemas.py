from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from stockledger.apps.audit.schemas import TransactionRead


class QuantityTotals(BaseModel):
    total_quantity: int = 0
    transaction_count: int = 0


class PeriodSummary(BaseModel):
    start: datetime
    end: datetime
    added: QuantityTotals = Field(default_factory=QuantityTotals)
    deducted: QuantityTotals = Field(default_factory=QuantityTotals)
    net_change: int = 0


class ItemRanking(BaseModel):
    item_id: int
    item_name: str
    total_quantity: int
    transaction_count: int
    exists: bool = True


class UserActivity(BaseModel):
    actor_identity: str
    added: int = 0
    deducted: int = 0
    total_actions: int = 0


class LogSummary(BaseModel):
    """Everything the activity-log summary screen shows for one window."""

    summary: PeriodSummary
    top_added: List[ItemRanking] = Field(default_factory=list)
    top_deducted: List[ItemRanking] = Field(default_factory=list)
    user_activity: List[UserActivity] = Field(default_factory=list)


class ItemBreakdown(BaseModel):
    item_id: int
    item_name: str
    added: int = 0
    deducted: int = 0
    transaction_count: int = 0


class UserBreakdown(BaseModel):
    actor_identity: str
    added: int = 0
    deducted: int = 0
    transaction_count: int = 0


class DrillDownResult(BaseModel):
    start: datetime
    end: datetime
    item_id: Optional[int] = None
    actor_identity: Optional[str] = None
    transactions: List[TransactionRead] = Field(default_factory=list)
    by_item: List[ItemBreakdown] = Field(default_factory=list)
    by_user: List[UserBreakdown] = Field(default_factory=list)
