"""Headline numbers for dashboard cards, independent of any budget."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Sequence, Union

from budgets import HUNDRED
from periods import record_date
from records import MonthKey, TransactionRecord, amount_of, category_label

_ZERO = Decimal("0")


class SignConvention(str, Enum):
    # expenses minus incomes; positive means money went out
    net_spend = "net_spend"
    # incomes minus expenses; positive means a surplus
    surplus = "surplus"


@dataclass(frozen=True)
class CategoryTotal:
    name: str
    total: Decimal
    count: int
    percentage: Decimal


@dataclass(frozen=True)
class AggregationSummary:
    total_expenses: Decimal
    total_incomes: Decimal
    net_total: Decimal
    balance: Decimal
    headline: Decimal
    sign_convention: SignConvention
    transaction_count: int
    average_expense: Decimal
    top_category: Optional[str]
    category_breakdown: tuple[CategoryTotal, ...]


@dataclass(frozen=True)
class MonthOverMonth:
    month: MonthKey
    current_total: Decimal
    previous_total: Decimal
    change_percent: Decimal


def _expenses(transactions: Iterable[TransactionRecord]) -> list[TransactionRecord]:
    return [txn for txn in transactions if not getattr(txn, "is_income", False)]


def category_breakdown(
    transactions: Iterable[TransactionRecord],
) -> list[CategoryTotal]:
    """Expense totals per category, largest first.

    Ties keep the order in which categories were first seen; ``sorted`` is
    stable and the totals dict preserves insertion order.
    """
    totals: dict[str, Decimal] = {}
    counts: dict[str, int] = {}
    for txn in _expenses(transactions):
        label = category_label(txn)
        totals[label] = totals.get(label, _ZERO) + amount_of(txn)
        counts[label] = counts.get(label, 0) + 1

    grand_total = sum(totals.values(), _ZERO)
    rows = [
        CategoryTotal(
            name=name,
            total=total,
            count=counts[name],
            percentage=(total / grand_total * HUNDRED) if grand_total > 0 else _ZERO,
        )
        for name, total in totals.items()
    ]
    return sorted(rows, key=lambda row: row.total, reverse=True)


def summarize(
    transactions: Sequence[TransactionRecord],
    *,
    sign_convention: Union[str, SignConvention] = SignConvention.net_spend,
) -> AggregationSummary:
    convention = SignConvention(sign_convention)
    total_expenses = _ZERO
    total_incomes = _ZERO
    for txn in transactions:
        if getattr(txn, "is_income", False):
            total_incomes += amount_of(txn)
        else:
            total_expenses += amount_of(txn)

    count = len(transactions)
    breakdown = tuple(category_breakdown(transactions))
    net_total = total_expenses - total_incomes
    balance = total_incomes - total_expenses
    return AggregationSummary(
        total_expenses=total_expenses,
        total_incomes=total_incomes,
        net_total=net_total,
        balance=balance,
        headline=net_total if convention is SignConvention.net_spend else balance,
        sign_convention=convention,
        transaction_count=count,
        average_expense=total_expenses / count if count else _ZERO,
        top_category=breakdown[0].name if breakdown else None,
        category_breakdown=breakdown,
    )


def monthly_change_percent(current_total: Decimal, previous_total: Decimal) -> Decimal:
    if previous_total <= 0:
        return _ZERO
    return (current_total - previous_total) / previous_total * HUNDRED


def expense_total_for_month(
    transactions: Iterable[TransactionRecord], month: MonthKey
) -> Decimal:
    return sum(
        (
            amount_of(txn)
            for txn in _expenses(transactions)
            if month.contains(record_date(txn))
        ),
        _ZERO,
    )


def month_over_month(
    transactions: Sequence[TransactionRecord], month: Union[MonthKey, str]
) -> MonthOverMonth:
    target = MonthKey.parse(month)
    current = expense_total_for_month(transactions, target)
    previous = expense_total_for_month(transactions, target.shift(-1))
    return MonthOverMonth(
        month=target,
        current_total=current,
        previous_total=previous,
        change_percent=monthly_change_percent(current, previous),
    )
