"""Budget analysis for a single month.

A budget covers a set of categories that share one cap: matching treats the
set like several independent budgets, but spend from every member category
is pooled before it is compared with the cap.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Sequence, Union

from periods import record_date
from records import (
    BudgetRecord,
    MonthKey,
    TransactionRecord,
    amount_of,
    budgets_for_month,
    to_decimal,
)

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
NEAR_LIMIT_PERCENT = Decimal("80")

AMOUNT_ERROR = "Budget amount must be greater than zero"
CATEGORIES_ERROR = "Budget needs at least one category"

MonthLike = Union[MonthKey, str]


class BudgetConflictError(ValueError):
    def __init__(self, month: MonthKey, conflicts: Sequence[str]) -> None:
        self.month = month
        self.conflicts = list(conflicts)
        super().__init__(
            f"Categories already budgeted for {month}: {', '.join(self.conflicts)}"
        )


@dataclass(frozen=True)
class BudgetAnalysisResult:
    budget: BudgetRecord
    spent: Decimal
    remaining: Decimal
    percentage: Decimal
    raw_percentage: Decimal
    is_over_budget: bool
    transactions: tuple[TransactionRecord, ...] = ()

    @property
    def is_near_limit(self) -> bool:
        return NEAR_LIMIT_PERCENT <= self.raw_percentage < HUNDRED


@dataclass(frozen=True)
class BudgetMonthSummary:
    month: MonthKey
    total_cap: Decimal
    total_spent: Decimal
    remaining: Decimal
    percentage: Decimal
    over_budget: tuple[BudgetAnalysisResult, ...]

    @property
    def has_budgets(self) -> bool:
        return self.total_cap > 0


def normalize_category(name: Optional[str]) -> str:
    return (name or "").strip().casefold()


def category_keys(categories: Iterable[str]) -> set[str]:
    return {key for key in map(normalize_category, categories) if key}


def _is_expense_in(record: object, month: MonthKey) -> bool:
    return not getattr(record, "is_income", False) and month.contains(
        record_date(record)
    )


def percentage_of(spent: Decimal, cap: Decimal) -> Decimal:
    if cap <= 0:
        return Decimal("0")
    return spent / cap * HUNDRED


def analyze_budget(
    budget: BudgetRecord,
    transactions: Iterable[TransactionRecord],
    month: MonthLike,
) -> BudgetAnalysisResult:
    target = MonthKey.parse(month)
    keys = category_keys(budget.categories)
    matched = tuple(
        txn
        for txn in transactions
        if _is_expense_in(txn, target)
        and normalize_category(getattr(txn, "category_name", None)) in keys
    )
    cap = to_decimal(budget.amount)
    spent = sum((amount_of(txn) for txn in matched), Decimal("0"))
    raw = percentage_of(spent, cap)
    return BudgetAnalysisResult(
        budget=budget,
        spent=spent,
        remaining=cap - spent,
        percentage=min(raw, HUNDRED),
        raw_percentage=raw,
        is_over_budget=spent > cap,
        transactions=matched,
    )


def analyze_budgets(
    budgets: Sequence[BudgetRecord],
    transactions: Sequence[TransactionRecord],
    month: MonthLike,
) -> list[BudgetAnalysisResult]:
    target = MonthKey.parse(month)
    return [analyze_budget(budget, transactions, target) for budget in budgets]


def total_budget_cap(budgets: Iterable[BudgetRecord]) -> Decimal:
    return sum((to_decimal(b.amount) for b in budgets), Decimal("0"))


def total_spent_in_budgeted_categories(
    budgets: Iterable[BudgetRecord],
    transactions: Iterable[TransactionRecord],
    month: MonthLike,
) -> Decimal:
    """Expense total for the month, counting only categories that have a budget."""
    target = MonthKey.parse(month)
    keys: set[str] = set()
    for budget in budgets:
        keys |= category_keys(budget.categories)
    if not keys:
        return Decimal("0")
    return sum(
        (
            amount_of(txn)
            for txn in transactions
            if _is_expense_in(txn, target)
            and normalize_category(getattr(txn, "category_name", None)) in keys
        ),
        Decimal("0"),
    )


def over_budget_list(
    results: Iterable[BudgetAnalysisResult],
) -> list[BudgetAnalysisResult]:
    return [r for r in results if r.is_over_budget]


def budget_alerts(
    results: Iterable[BudgetAnalysisResult],
) -> list[BudgetAnalysisResult]:
    return [r for r in results if r.is_over_budget or r.is_near_limit]


def summarize_month(
    budgets: Sequence[BudgetRecord],
    transactions: Sequence[TransactionRecord],
    month: MonthLike,
) -> BudgetMonthSummary:
    target = MonthKey.parse(month)
    in_month = budgets_for_month(budgets, target)
    results = analyze_budgets(in_month, transactions, target)
    cap = total_budget_cap(in_month)
    spent = total_spent_in_budgeted_categories(in_month, transactions, target)
    return BudgetMonthSummary(
        month=target,
        total_cap=cap,
        total_spent=spent,
        remaining=cap - spent,
        percentage=percentage_of(spent, cap),
        over_budget=tuple(over_budget_list(results)),
    )


def claimed_categories(
    existing: Iterable[BudgetRecord], month: MonthLike
) -> set[str]:
    target = MonthKey.parse(month)
    claimed: set[str] = set()
    for budget in existing:
        if budget.month == target:
            claimed |= category_keys(budget.categories)
    return claimed


def find_category_conflicts(
    existing: Iterable[BudgetRecord],
    candidate: Iterable[str],
    month: MonthLike,
) -> list[str]:
    claimed = claimed_categories(existing, month)
    return [
        name for name in _as_names(candidate) if normalize_category(name) in claimed
    ]


def ensure_no_conflicts(
    existing: Iterable[BudgetRecord],
    candidate: Iterable[str],
    month: MonthLike,
) -> None:
    target = MonthKey.parse(month)
    conflicts = find_category_conflicts(existing, candidate, target)
    if conflicts:
        logger.info(f"budget_conflict: month={target} categories={conflicts}")
        raise BudgetConflictError(target, conflicts)


def _as_names(categories: Union[str, Iterable[Optional[str]]]) -> list:
    if isinstance(categories, str):
        return [categories]
    return list(categories)


def clean_categories(categories: Iterable[Optional[str]]) -> tuple[str, ...]:
    seen: set[str] = set()
    cleaned: list[str] = []
    for raw in _as_names(categories):
        name = (raw or "").strip()
        key = name.casefold()
        if not key or key in seen:
            continue
        seen.add(key)
        cleaned.append(name)
    return tuple(cleaned)


def validate_amount(amount: object) -> Decimal:
    value = to_decimal(amount)
    if value <= 0:
        raise ValueError(AMOUNT_ERROR)
    return value


def validate_budget_input(
    categories: Iterable[Optional[str]],
    amount: object,
    month: MonthLike,
) -> tuple[tuple[str, ...], Decimal, MonthKey]:
    """Check a new budget before it is stored.

    Each failing condition raises ``ValueError`` with its own message, checked
    in the order amount, categories, month.
    """
    value = validate_amount(amount)
    names = clean_categories(categories)
    if not names:
        raise ValueError(CATEGORIES_ERROR)
    target = MonthKey.parse(month)
    return names, value, target
