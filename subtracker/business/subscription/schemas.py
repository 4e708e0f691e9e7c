from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


Currency = Literal["USD", "EUR", "JPY", "GBP", "AUD", "CAD", "CHF", "CNY", "INR", "HKD"]
Frequency = Literal["daily", "weekly", "monthly", "yearly"]
Category = Literal[
    "sports",
    "entertainment",
    "news",
    "education",
    "health",
    "lifestyle",
    "technology",
    "business",
    "other",
]
SubscriptionStatus = Literal["active", "cancelled", "expired"]
UpcomingScope = Literal["mine", "all"]


class SubscriptionCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=100)
    price: Decimal = Field(ge=Decimal("0"))
    currency: Currency = "INR"
    frequency: Frequency | None = None
    category: Category
    payment_method: str = Field(min_length=1, max_length=128)
    status: SubscriptionStatus = "active"
    start_date: date
    renewal_date: date | None = None


class SubscriptionUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str | None = Field(default=None, min_length=2, max_length=100)
    price: Decimal | None = Field(default=None, ge=Decimal("0"))
    currency: Currency | None = None
    frequency: Frequency | None = None
    category: Category | None = None
    payment_method: str | None = Field(default=None, min_length=1, max_length=128)
    status: SubscriptionStatus | None = None
    start_date: date | None = None
    renewal_date: date | None = None

    @field_validator("name", "price", "currency", "category", "payment_method", "status", "start_date")
    @classmethod
    def _reject_explicit_null(cls, value: object) -> object:
        if value is None:
            raise ValueError("field cannot be null")
        return value


class SubscriptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: str
    name: str
    price: Decimal | str
    currency: Currency | str
    frequency: Frequency | str | None
    category: Category | str
    payment_method: str
    status: SubscriptionStatus | str
    start_date: date
    renewal_date: date
    created_at: datetime
    updated_at: datetime


class UpcomingRenewalRead(BaseModel):
    subscription: SubscriptionRead
    next_renewal_date: date
    days_until_renewal: int


class SubscriptionDeleteResult(BaseModel):
    id: UUID
    status: Literal["deleted"] = "deleted"
