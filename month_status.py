"""Per-month budget health for a year, used to colour the month picker."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor, as_completed
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional, Sequence, Union

from budgets import (
    HUNDRED,
    percentage_of,
    total_budget_cap,
    total_spent_in_budgeted_categories,
)
from config import get_settings
from periods import transactions_by_month as group_by_month
from records import BudgetRecord, MonthKey, TransactionRecord, budgets_for_month

logger = logging.getLogger(__name__)

MONTHS = range(1, 13)

TransactionsByMonth = Union[
    Mapping[int, Sequence[TransactionRecord]], Sequence[TransactionRecord]
]


class MonthStatus(str, Enum):
    none = "none"
    ok = "ok"
    warning = "warning"
    exceeded = "exceeded"


def status_for_percentage(
    percentage: Decimal, warning_threshold: Optional[Decimal] = None
) -> MonthStatus:
    threshold = (
        warning_threshold
        if warning_threshold is not None
        else get_settings().warning_threshold
    )
    if percentage > HUNDRED:
        return MonthStatus.exceeded
    if percentage >= threshold:
        return MonthStatus.warning
    return MonthStatus.ok


def classify_month(
    budgets: Sequence[BudgetRecord],
    transactions: Sequence[TransactionRecord],
    month: Union[MonthKey, str],
    *,
    warning_threshold: Optional[Decimal] = None,
) -> MonthStatus:
    """Combined status across every budget of ``month``.

    Spend and caps are pooled over all of the month's budgets before the
    ratio is taken, so one badly overspent budget can tip the whole month.
    """
    month = MonthKey.parse(month)
    try:
        in_month = budgets_for_month(budgets, month)
        if not in_month:
            return MonthStatus.none
        cap = total_budget_cap(in_month)
        if cap <= 0:
            return MonthStatus.none
        spent = total_spent_in_budgeted_categories(in_month, transactions, month)
        return status_for_percentage(percentage_of(spent, cap), warning_threshold)
    except (ArithmeticError, AttributeError, TypeError, ValueError) as exc:
        logger.warning(f"classify_month: month={month} degraded_to=none error={exc!r}")
        return MonthStatus.none


def classify_year(
    year: int,
    budgets_by_month: Mapping[int, Sequence[BudgetRecord]],
    transactions_by_month: TransactionsByMonth,
    *,
    warning_threshold: Optional[Decimal] = None,
) -> dict[int, MonthStatus]:
    if isinstance(transactions_by_month, Mapping):
        grouped = transactions_by_month
    else:
        grouped = group_by_month(transactions_by_month, year)

    statuses: dict[int, MonthStatus] = {}
    for month in MONTHS:
        budgets = budgets_by_month.get(month)
        if not budgets:
            statuses[month] = MonthStatus.none
            continue
        statuses[month] = classify_month(
            budgets,
            grouped.get(month) or [],
            MonthKey(year, month),
            warning_threshold=warning_threshold,
        )
    return statuses


def load_year_budgets(
    list_budgets: Callable[[MonthKey], Sequence[BudgetRecord]],
    year: int,
    *,
    max_workers: Optional[int] = None,
) -> dict[int, list[BudgetRecord]]:
    """Fetch the budgets of all twelve months concurrently.

    ``list_budgets`` runs on worker threads and must open its own session.
    Months are stored as their fetch completes; a failed fetch is re-raised.
    """
    workers = max_workers or get_settings().fetch_workers
    loaded: dict[int, list[BudgetRecord]] = {}
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {pool.submit(list_budgets, MonthKey(year, m)): m for m in MONTHS}
        for future in as_completed(futures):
            month = futures[future]
            loaded[month] = list(future.result())
    logger.info(
        f"load_year_budgets: year={year} months_with_budgets="
        f"{sum(1 for rows in loaded.values() if rows)}"
    )
    return loaded
