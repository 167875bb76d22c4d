from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from budgets import AMOUNT_ERROR, CATEGORIES_ERROR, BudgetConflictError, analyze_budgets
from database import Base, build_engine, create_schema
from models import Budget, BudgetCategory
from month_status import MonthStatus, classify_year, load_year_budgets
from periods import transactions_by_month
from records import MONTH_FORMAT_ERROR, MonthKey
from schemas import BudgetIn, TransactionIn
from services import BudgetService, TransactionService, month_budgets_loader


def _memory_engine():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


def test_budget_round_trip() -> None:
    engine = _memory_engine()

    with Session(engine) as session:
        events: list[str] = []
        budgets = BudgetService(session, on_change=events.append)

        created = budgets.create_budget([" Food ", "Transport"], "250.00", "2024-06")
        assert created.categories == ("Food", "Transport")
        assert created.label == "Food, Transport"
        assert created.amount == Decimal("250")
        assert created.month == MonthKey(2024, 6)

        listed = budgets.list_budgets("2024-06")
        assert [b.id for b in listed] == [created.id]
        assert budgets.list_budgets("2024-07") == []

        updated = budgets.update_budget(created.id, Decimal("300"))
        assert updated.amount == Decimal("300")

        budgets.delete_budget(created.id)
        assert budgets.list_budgets() == []
        assert session.scalars(select(BudgetCategory)).all() == []

        assert events == ["budget_created", "budget_updated", "budget_deleted"]


def test_create_rejects_category_already_in_shared_budget() -> None:
    engine = _memory_engine()

    with Session(engine) as session:
        budgets = BudgetService(session)
        budgets.create_budget(["Food", "Transport"], 300, "2024-06")

        with pytest.raises(BudgetConflictError) as excinfo:
            budgets.create_budget(["food"], 100, "2024-06")
        assert excinfo.value.conflicts == ["food"]

        with pytest.raises(BudgetConflictError, match="Transport"):
            budgets.create(
                BudgetIn(categories=["Rent", "Transport"], amount=50, month="2024-06")
            )

        assert len(session.scalars(select(Budget)).all()) == 1

        other_month = budgets.create_budget(["Food"], 100, "2024-07")
        assert other_month.month == MonthKey(2024, 7)
        assert budgets.months_with_budgets() == [MonthKey(2024, 7), MonthKey(2024, 6)]


def test_invalid_budget_input_is_rejected_before_writing() -> None:
    engine = _memory_engine()

    with Session(engine) as session:
        budgets = BudgetService(session)

        with pytest.raises(ValueError, match=AMOUNT_ERROR):
            budgets.create_budget(["Food"], 0, "2024-06")
        with pytest.raises(ValueError, match=CATEGORIES_ERROR):
            budgets.create_budget([], 10, "2024-06")
        with pytest.raises(ValueError, match=MONTH_FORMAT_ERROR):
            budgets.create_budget(["Food"], 10, "06-2024")

        assert session.scalars(select(Budget)).all() == []


def test_update_and_delete_validate_their_input() -> None:
    engine = _memory_engine()

    with Session(engine) as session:
        budgets = BudgetService(session)
        created = budgets.create_budget(["Food"], 100, "2024-06")

        with pytest.raises(ValueError, match=AMOUNT_ERROR):
            budgets.update_budget(created.id, -1)
        with pytest.raises(ValueError, match="Budget not found"):
            budgets.update_budget(created.id + 1, 10)
        with pytest.raises(ValueError, match="Budget not found"):
            budgets.delete_budget(created.id + 1)


def test_budgets_are_scoped_to_their_user() -> None:
    engine = _memory_engine()

    with Session(engine) as session:
        created = BudgetService(session, user_id=1).create_budget(
            ["Food"], 100, "2024-06"
        )
        other = BudgetService(session, user_id=2)

        assert other.list_budgets("2024-06") == []
        other.create_budget(["Food"], 80, "2024-06")
        with pytest.raises(ValueError, match="Budget not found"):
            other.delete_budget(created.id)


def test_transaction_snapshot_feeds_the_analyzer() -> None:
    engine = _memory_engine()

    with Session(engine) as session:
        events: list[str] = []
        txns = TransactionService(session, on_change=events.append)
        txns.create(
            TransactionIn(date=date(2024, 6, 1), amount="100", category_name="Food")
        )
        txns.create(
            TransactionIn(date=date(2024, 6, 15), amount="50", category_name="Food")
        )
        salary = txns.create(
            TransactionIn(
                date=date(2024, 6, 30),
                amount="2000",
                category_name="Salary",
                is_income=True,
            )
        )
        txns.create(TransactionIn(amount=Decimal("5"), category_name="Food"))

        budgets = BudgetService(session)
        budgets.create_budget(["Food"], 120, "2024-06")

        snapshot = txns.list_transactions()
        assert len(snapshot) == 4
        assert snapshot[-1].date is None

        [result] = analyze_budgets(budgets.list_budgets("2024-06"), snapshot, "2024-06")
        assert result.spent == Decimal("150")
        assert result.remaining == Decimal("-30")
        assert result.raw_percentage == Decimal("125")
        assert result.is_over_budget

        statuses = classify_year(
            2024,
            {6: budgets.list_budgets("2024-06")},
            transactions_by_month(snapshot, 2024),
        )
        assert statuses[6] is MonthStatus.exceeded

        txns.delete(salary.id)
        with pytest.raises(ValueError, match="Transaction not found"):
            txns.get(salary.id)
        assert events[-1] == "transaction_deleted"


def test_transaction_input_rejects_negative_amounts() -> None:
    with pytest.raises(ValueError):
        TransactionIn(date=date(2024, 6, 1), amount=Decimal("-1"))


def test_year_of_budgets_loads_concurrently_from_the_database(tmp_path) -> None:
    engine = build_engine(f"sqlite:///{tmp_path / 'finance.db'}")
    create_schema(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    with Session(engine) as session:
        budgets = BudgetService(session)
        budgets.create_budget(["Food"], 100, "2024-02")
        budgets.create_budget(["Rent", "Utilities"], 900, "2024-11")

    loaded = load_year_budgets(month_budgets_loader(factory), 2024, max_workers=6)

    assert sorted(loaded) == list(range(1, 13))
    assert [b.categories for b in loaded[2]] == [("Food",)]
    assert [b.categories for b in loaded[11]] == [("Rent", "Utilities")]
    assert all(loaded[m] == [] for m in range(1, 13) if m not in (2, 11))
    engine.dispose()
