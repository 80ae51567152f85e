import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from models import ExpenseCategory, PaymentMethod, RecurringType


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class ExpenseIn(ApiModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    category: ExpenseCategory
    description: Optional[str] = Field(default=None, max_length=500)
    date: dt.date
    payment_method: PaymentMethod = PaymentMethod.cash
    is_recurring: bool = False
    recurring_type: Optional[RecurringType] = None
    tags: list[str] = Field(default_factory=list)

    @field_validator("description")
    @classmethod
    def blank_description_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, value: list[str]) -> list[str]:
        return [tag.strip() for tag in value if tag and tag.strip()]

    @model_validator(mode="after")
    def check_recurring_type(self) -> "ExpenseIn":
        if self.is_recurring and self.recurring_type is None:
            raise ValueError("recurringType is required for recurring expenses")
        return self


class ExpenseOut(ApiModel):
    id: int
    title: str
    amount: Decimal
    category: ExpenseCategory
    description: Optional[str] = None
    date: dt.date
    payment_method: PaymentMethod
    is_recurring: bool
    recurring_type: Optional[RecurringType] = None
    tags: list[str] = Field(default_factory=list)
    created_at: dt.datetime
    updated_at: dt.datetime


class ExpenseSavedOut(ApiModel):
    message: str
    expense: ExpenseOut


class ExpensePageOut(ApiModel):
    expenses: list[ExpenseOut]
    total: int
    total_pages: int
    current_page: int


class CategoryStatOut(ApiModel):
    category: str
    total: Decimal
    count: int


class MonthlyStatOut(ApiModel):
    month: int
    total: Decimal
    count: int


class TotalStatOut(ApiModel):
    total: Decimal
    count: int


class PeriodOut(ApiModel):
    start_date: dt.date
    end_date: dt.date


class ExpenseStatsOut(ApiModel):
    category_stats: list[CategoryStatOut]
    monthly_stats: list[MonthlyStatOut]
    total_expenses: TotalStatOut
    period: PeriodOut
