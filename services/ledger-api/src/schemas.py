"""Request payloads accepted by the ledger API (camelCase on the wire)."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

EntryTypeField = Literal["income", "expense"]
RecurringRuleField = Literal["weekly", "monthly", "yearly"]
ThemeField = Literal["light", "dark", "system"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class RegisterPayload(CamelModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=200)
    full_name: Optional[str] = Field(default=None, max_length=200)


class LoginPayload(CamelModel):
    email: str = Field(min_length=1, max_length=320)
    password: str = Field(min_length=1, max_length=200)


class SettingsPatch(CamelModel):
    """Account settings only; unknown fields such as a local API key are dropped."""

    currency: Optional[str] = Field(default=None, min_length=1, max_length=8)
    first_day_of_month: Optional[int] = Field(default=None, ge=1, le=28, strict=True)
    theme: Optional[ThemeField] = None


class CategoryCreate(CamelModel):
    id: Optional[str] = Field(default=None, min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=100)
    type: EntryTypeField
    color: str = Field(min_length=1, max_length=32)
    icon: str = Field(min_length=1, max_length=64)


class CategoryUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[EntryTypeField] = None
    color: Optional[str] = Field(default=None, min_length=1, max_length=32)
    icon: Optional[str] = Field(default=None, min_length=1, max_length=64)


class TransactionCreate(CamelModel):
    id: Optional[str] = Field(default=None, min_length=1, max_length=64)
    category_id: str = Field(min_length=1, max_length=64)
    type: EntryTypeField
    amount: float = Field(ge=0, strict=True, allow_inf_nan=False)
    date: datetime
    merchant: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=1000)
    tags: List[str] = Field(default_factory=list)
    is_recurring: bool = False
    recurring_rule: Optional[RecurringRuleField] = None


class TransactionUpdate(CamelModel):
    category_id: Optional[str] = Field(default=None, min_length=1, max_length=64)
    type: Optional[EntryTypeField] = None
    amount: Optional[float] = Field(default=None, ge=0, strict=True, allow_inf_nan=False)
    date: Optional[datetime] = None
    merchant: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=1000)
    tags: Optional[List[str]] = None
    is_recurring: Optional[bool] = None
    recurring_rule: Optional[RecurringRuleField] = None


class BudgetPut(CamelModel):
    category_id: Optional[str] = Field(default=None, max_length=64)
    month: int = Field(ge=1, le=12, strict=True)
    year: int = Field(ge=1, le=9999, strict=True)
    amount: float = Field(ge=0, strict=True, allow_inf_nan=False)
    rollover_enabled: bool = False
