"""Snapshot types handed to the aggregation engine.

The store converts its rows into these before any computation; the engine
only ever reads them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence, Union

MONTH_FORMAT_ERROR = "Month must use the YYYY-MM format"
UNKNOWN_CATEGORY = "unknown"

_MONTH_KEY_RE = re.compile(r"([0-9]{4})-([0-9]{2})")
_ZERO = Decimal("0")


@dataclass(frozen=True, order=True)
class MonthKey:
    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(MONTH_FORMAT_ERROR)

    @classmethod
    def parse(cls, value: Union[str, "MonthKey"]) -> "MonthKey":
        if isinstance(value, MonthKey):
            return value
        if not isinstance(value, str):
            raise ValueError(MONTH_FORMAT_ERROR)
        match = _MONTH_KEY_RE.fullmatch(value)
        if not match:
            raise ValueError(MONTH_FORMAT_ERROR)
        return cls(int(match.group(1)), int(match.group(2)))

    @classmethod
    def of(cls, day: date) -> "MonthKey":
        return cls(day.year, day.month)

    def start(self) -> date:
        return date(self.year, self.month, 1)

    def end(self) -> date:
        if self.month == 12:
            return date(self.year + 1, 1, 1) - date.resolution
        return date(self.year, self.month + 1, 1) - date.resolution

    def contains(self, day: Optional[date]) -> bool:
        return day is not None and day.year == self.year and day.month == self.month

    def shift(self, months: int) -> "MonthKey":
        index = self.year * 12 + (self.month - 1) + months
        return MonthKey(index // 12, index % 12 + 1)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


def to_decimal(value: object) -> Decimal:
    """Read an amount; anything that is not a finite number counts as zero."""
    if value is None or isinstance(value, bool):
        return _ZERO
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        try:
            amount = Decimal(value.strip())
        except InvalidOperation:
            return _ZERO
    else:
        return _ZERO
    if not amount.is_finite():
        return _ZERO
    return amount


def amount_of(record: object) -> Decimal:
    return to_decimal(getattr(record, "amount", None))


def category_label(record: object) -> str:
    name = (getattr(record, "category_name", None) or "").strip()
    return name or UNKNOWN_CATEGORY


@dataclass(frozen=True)
class TransactionRecord:
    id: object
    date: Union[date, datetime, str, None]
    amount: Decimal
    category_name: Optional[str] = None
    is_income: bool = False


@dataclass(frozen=True)
class BudgetRecord:
    id: object
    categories: tuple[str, ...]
    amount: Decimal
    month: MonthKey

    def __post_init__(self) -> None:
        # accept a single name or any sequence of names; store an immutable tuple
        if isinstance(self.categories, str):
            object.__setattr__(self, "categories", (self.categories,))
        elif not isinstance(self.categories, tuple):
            object.__setattr__(self, "categories", tuple(self.categories))
        if isinstance(self.month, str):
            object.__setattr__(self, "month", MonthKey.parse(self.month))

    @property
    def label(self) -> str:
        return ", ".join(self.categories)


def budgets_for_month(
    budgets: Sequence[BudgetRecord], month: MonthKey
) -> list[BudgetRecord]:
    return [b for b in budgets if getattr(b, "month", None) == month]
