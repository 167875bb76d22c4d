"""Time windows over dated records.

Everything here is a pure function of its arguments. The current year is
always passed in by the caller; :func:`local_today` is the only helper that
reads a clock and it is meant for the outer layer that builds the arguments.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Sequence, TypeVar, Union
from zoneinfo import ZoneInfo

from config import get_settings
from records import amount_of

logger = logging.getLogger(__name__)

_ISO_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

R = TypeVar("R")


class WindowMode(str, Enum):
    all = "all"
    current = "current"
    previous = "previous"


@dataclass(frozen=True)
class YearBucketStats:
    count: int = 0
    total: Decimal = Decimal("0")
    expense_total: Decimal = Decimal("0")
    income_total: Decimal = Decimal("0")


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def parse_date(value: object) -> Optional[date]:
    """Best-effort date parsing; ``None`` for anything unusable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        if _ISO_DAY_RE.match(text):
            return date.fromisoformat(text)
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def record_date(record: object) -> Optional[date]:
    return parse_date(getattr(record, "date", None))


def record_year(record: object) -> Optional[int]:
    day = record_date(record)
    return day.year if day else None


def _coerce_mode(mode: Union[str, WindowMode]) -> WindowMode:
    try:
        return WindowMode(mode)
    except ValueError as exc:
        raise ValueError(f"Unknown time window: {mode!r}") from exc


def bucket_by_year(records: Iterable[object]) -> dict[int, YearBucketStats]:
    counts: dict[int, int] = {}
    expenses: dict[int, Decimal] = {}
    incomes: dict[int, Decimal] = {}
    skipped = 0
    for record in records:
        year = record_year(record)
        if year is None:
            skipped += 1
            continue
        counts[year] = counts.get(year, 0) + 1
        amount = amount_of(record)
        if getattr(record, "is_income", False):
            incomes[year] = incomes.get(year, Decimal("0")) + amount
        else:
            expenses[year] = expenses.get(year, Decimal("0")) + amount
    if skipped:
        logger.debug(f"bucket_by_year: undated_records={skipped}")

    buckets: dict[int, YearBucketStats] = {}
    for year in sorted(counts, reverse=True):
        expense_total = expenses.get(year, Decimal("0"))
        income_total = incomes.get(year, Decimal("0"))
        buckets[year] = YearBucketStats(
            count=counts[year],
            total=expense_total - income_total,
            expense_total=expense_total,
            income_total=income_total,
        )
    return buckets


def available_years(records: Iterable[object], current_year: int) -> list[int]:
    years = {year for year in map(record_year, records) if year is not None}
    if not years:
        return [current_year]
    return sorted(years, reverse=True)


def previous_years(records: Iterable[object], current_year: int) -> list[int]:
    return [y for y in available_years(records, current_year) if y < current_year]


def filter_by_window(
    records: Sequence[R],
    mode: Union[str, WindowMode] = WindowMode.all,
    explicit_year: Optional[int] = None,
    *,
    current_year: int,
) -> list[R]:
    window = _coerce_mode(mode)
    if window is WindowMode.all:
        return list(records)

    kept: list[R] = []
    for record in records:
        year = record_year(record)
        if year is None:
            continue
        if window is WindowMode.current:
            if year == current_year:
                kept.append(record)
        elif explicit_year is not None:
            if year == explicit_year:
                kept.append(record)
        elif year < current_year:
            kept.append(record)
    return kept


def window_label(
    mode: Union[str, WindowMode],
    explicit_year: Optional[int] = None,
    *,
    current_year: int,
) -> str:
    window = _coerce_mode(mode)
    if window is WindowMode.current:
        return str(current_year)
    if window is WindowMode.previous:
        return str(explicit_year) if explicit_year is not None else "Previous years"
    return "All"


def transactions_by_month(records: Iterable[R], year: int) -> dict[int, list[R]]:
    grouped: dict[int, list[R]] = {}
    for record in records:
        day = record_date(record)
        if day is None or day.year != year:
            continue
        grouped.setdefault(day.month, []).append(record)
    return grouped
