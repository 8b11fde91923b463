"""Pydantic models for ledger records and notifications."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_CATEGORY = "Other"


class Budget(BaseModel):
    """Monthly spending limit for one category."""
    id: str
    user_id: str
    category: str
    monthly_limit: float
    alert_threshold: float = 80.0  # percent
    enable_alerts: bool = True
    month: int = Field(ge=1, le=12)
    year: int
    currency: str = "USD"
    is_active: bool = True


class ExpenseRecord(BaseModel):
    """A single categorized expense."""
    id: str
    user_id: str
    name: str = ""
    category: Optional[str] = None
    amount: float = Field(gt=0)
    date: datetime

    @property
    def category_or_default(self) -> str:
        return self.category or DEFAULT_CATEGORY


class Subscription(BaseModel):
    """Recurring charge with a known next billing date."""
    id: str
    user_id: str
    name: str
    price: float
    next_billing_date: datetime


class WalletSnapshot(BaseModel):
    """A user's wallet. A user has at most one."""
    id: str
    user_id: str
    balance: float = 0.0
    monthly_budget: Optional[float] = None
    currency: str = "USD"


class SavingsGoal(BaseModel):
    """Savings goal; is_completed only ever moves from False to True."""
    id: str
    user_id: str
    name: str
    current_amount: float = 0.0
    target_amount: Optional[float] = None
    is_active: bool = True
    is_completed: bool = False

    @property
    def is_reached(self) -> bool:
        return self.target_amount is not None and self.current_amount >= self.target_amount


class NotificationRecord(BaseModel):
    """Persisted notification."""
    id: Optional[int] = None
    user_id: str
    type: str
    subject_key: str
    window_bucket: str
    title: str
    message: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    is_read: bool = False

    @field_validator("payload", mode="before")
    @classmethod
    def _empty_payload(cls, value):
        return value or {}
