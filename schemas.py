import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TransactionIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    date: Optional[dt.date] = None
    amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    category_name: Optional[str] = Field(default=None, max_length=100)
    is_income: bool = False
    note: Optional[str] = Field(default=None, max_length=200)


class BudgetIn(BaseModel):
    """Budget form input as typed by the user.

    Only the shape is checked here; amount, category and month rules are
    enforced by ``BudgetService`` so each failure keeps its own message.
    """

    categories: list[str] = Field(default_factory=list)
    amount: Decimal
    month: str
