from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable, Iterable, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from budgets import (
    BudgetConflictError,
    ensure_no_conflicts,
    find_category_conflicts,
    normalize_category,
    validate_amount,
    validate_budget_input,
)
from database import session_scope
from models import Budget, BudgetCategory, Transaction
from records import BudgetRecord, MonthKey, TransactionRecord
from schemas import BudgetIn, TransactionIn

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str], None]


def get_current_user_id() -> int:
    return 1


def budget_record(budget: Budget) -> BudgetRecord:
    return BudgetRecord(
        id=budget.id,
        categories=tuple(c.name for c in budget.categories),
        amount=budget.amount,
        month=MonthKey(budget.year, budget.month),
    )


def transaction_record(txn: Transaction) -> TransactionRecord:
    return TransactionRecord(
        id=txn.id,
        date=txn.date,
        amount=txn.amount,
        category_name=txn.category_name,
        is_income=txn.is_income,
    )


class _StoreService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        on_change: Optional[ChangeListener] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.on_change = on_change

    def _notify(self, event: str) -> None:
        # tells the caller to refetch and recompute; the engine keeps no cache
        if self.on_change is not None:
            self.on_change(event)


class TransactionService(_StoreService):
    def create(self, data: TransactionIn) -> Transaction:
        txn = Transaction(
            user_id=self.user_id,
            date=data.date,
            amount=data.amount,
            category_name=data.category_name or None,
            is_income=data.is_income,
            note=data.note or None,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        self._notify("transaction_created")
        return txn

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            raise ValueError("Transaction not found")
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()
        self._notify("transaction_deleted")

    def list_transactions(self) -> list[TransactionRecord]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        return [transaction_record(txn) for txn in self.session.scalars(stmt)]


class BudgetService(_StoreService):
    def _budgets_stmt(self):
        return (
            select(Budget)
            .options(selectinload(Budget.categories))
            .where(Budget.user_id == self.user_id)
        )

    def _get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise ValueError("Budget not found")
        return budget

    def list_budgets(
        self, month: Union[MonthKey, str, None] = None
    ) -> list[BudgetRecord]:
        stmt = self._budgets_stmt()
        if month is not None:
            key = MonthKey.parse(month)
            stmt = stmt.where(Budget.year == key.year, Budget.month == key.month)
        stmt = stmt.order_by(Budget.year.desc(), Budget.month.desc(), Budget.id.asc())
        return [budget_record(b) for b in self.session.scalars(stmt)]

    def months_with_budgets(self) -> list[MonthKey]:
        stmt = (
            select(Budget.year, Budget.month)
            .where(Budget.user_id == self.user_id)
            .distinct()
            .order_by(Budget.year.desc(), Budget.month.desc())
        )
        return [MonthKey(row.year, row.month) for row in self.session.execute(stmt)]

    def create(self, data: BudgetIn) -> BudgetRecord:
        return self.create_budget(data.categories, data.amount, data.month)

    def create_budget(
        self,
        categories: Iterable[str],
        amount: Union[Decimal, int, str],
        month: Union[MonthKey, str],
    ) -> BudgetRecord:
        names, value, key = validate_budget_input(categories, amount, month)
        existing = self.list_budgets(key)
        ensure_no_conflicts(existing, names, key)

        budget = Budget(
            user_id=self.user_id, year=key.year, month=key.month, amount=value
        )
        budget.categories = [
            BudgetCategory(
                user_id=self.user_id,
                year=key.year,
                month=key.month,
                name=name,
                name_key=normalize_category(name),
                position=position,
            )
            for position, name in enumerate(names)
        ]
        self.session.add(budget)
        try:
            self.session.commit()
        except IntegrityError as exc:
            # another writer claimed one of the categories since the check
            self.session.rollback()
            conflicts = find_category_conflicts(self.list_budgets(key), names, key)
            raise BudgetConflictError(key, conflicts or list(names)) from exc
        self.session.refresh(budget)
        logger.info(
            f"budget_created: id={budget.id} month={key} categories={list(names)}"
        )
        self._notify("budget_created")
        return budget_record(budget)

    def update_budget(
        self, budget_id: int, amount: Union[Decimal, int, str]
    ) -> BudgetRecord:
        value = validate_amount(amount)
        budget = self._get(budget_id)
        budget.amount = value
        self.session.commit()
        self.session.refresh(budget)
        self._notify("budget_updated")
        return budget_record(budget)

    def delete_budget(self, budget_id: int) -> None:
        budget = self._get(budget_id)
        self.session.delete(budget)
        self.session.commit()
        logger.info(f"budget_deleted: id={budget_id}")
        self._notify("budget_deleted")


def month_budgets_loader(
    factory: Optional[sessionmaker] = None, user_id: Optional[int] = None
) -> Callable[[MonthKey], list[BudgetRecord]]:
    """Per-month budget fetcher for ``month_status.load_year_budgets``.

    Each call opens its own session so calls can run on separate threads.
    """

    def load(month: MonthKey) -> list[BudgetRecord]:
        with session_scope(factory) as session:
            return BudgetService(session, user_id).list_budgets(month)

    return load
