"""Dashboard view model: converts stored base-currency records into what the client renders.

A `DashboardView` is built from freshly fetched records on every request and thrown away afterwards. Rates
are supplied from outside as multipliers from the base currency; nothing converted here is ever written back.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime

import pandas as pd

from finance_tracker.core.db import DebtRecord, TransactionRecord
from finance_tracker.core.errors import ValidationError
from finance_tracker.core.models import CamelModel, TransactionType, UtcDatetime
from finance_tracker.core.utils import utcnow

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "JPY": "¥"}


def format_currency(amount: float, currency: str) -> str:
    """Format an amount with two decimals, thousands separators and a symbol or currency code."""
    sign = "-" if amount < 0 else ""
    body = f"{abs(amount):,.2f}"
    symbol = CURRENCY_SYMBOLS.get(currency)
    if symbol:
        return f"{sign}{symbol}{body}"
    return f"{sign}{currency} {body}"


@dataclass(frozen=True)
class CurrencyConverter:
    """Converts between the base currency and display currencies using multiplier rates."""

    base_currency: str
    rates: Mapping[str, float]

    def rate(self, currency: str) -> float:
        """Return the multiplier from the base currency to `currency`."""
        if currency == self.base_currency:
            return float(self.rates.get(currency, 1.0))
        rate = self.rates.get(currency)
        if rate is None or rate <= 0:
            msg = f"No exchange rate for currency {currency!r}"
            raise ValidationError(msg)
        return float(rate)

    def convert(self, amount: float, currency: str) -> float:
        """Convert a base-currency amount for display."""
        return amount * self.rate(currency)

    def to_base(self, amount: float, currency: str) -> float:
        """Convert an amount entered in `currency` back to the base currency."""
        return amount / self.rate(currency)


class TransactionRow(CamelModel):
    """A transaction ready for display."""

    id: int
    description: str
    type: TransactionType
    tags: list[str]
    date: UtcDatetime
    amount: float
    display_amount: float
    formatted: str


class DebtRow(CamelModel):
    """A debt ready for display."""

    id: int
    description: str
    lender: str
    due_date: UtcDatetime
    is_paid: bool
    is_overdue: bool
    amount: float
    display_amount: float
    formatted: str


class Totals(CamelModel):
    """Income, expense and balance in both the base and the display currency."""

    income: float
    expense: float
    balance: float
    display_income: float
    display_expense: float
    display_balance: float
    formatted_income: str
    formatted_expense: str
    formatted_balance: str


class ChartSlice(CamelModel):
    """One slice of the income/expense doughnut."""

    label: str
    value: float


class TagOption(CamelModel):
    """An entry of the tag filter dropdown."""

    value: str
    label: str


class DashboardView(CamelModel):
    """Everything the client needs to render its three views."""

    currency: str
    base_currency: str
    rate: float
    totals: Totals
    chart: list[ChartSlice]
    expense_by_tag: dict[str, float]
    transactions: list[TransactionRow]
    debts: list[DebtRow]
    tag_options: list[TagOption]

    @classmethod
    def build(
        cls,
        transactions: Iterable[TransactionRecord],
        debts: Iterable[DebtRecord],
        tags: Iterable[str],
        converter: CurrencyConverter,
        currency: str,
        now: datetime | None = None,
    ) -> "DashboardView":
        """Build a fresh view from the given records."""
        rate = converter.rate(currency)
        now = now or utcnow()
        transactions = list(transactions)
        income, expense, by_tag = _aggregate(transactions)
        balance = income - expense
        totals = Totals(
            income=income,
            expense=expense,
            balance=balance,
            display_income=income * rate,
            display_expense=expense * rate,
            display_balance=balance * rate,
            formatted_income=format_currency(income * rate, currency),
            formatted_expense=format_currency(expense * rate, currency),
            formatted_balance=format_currency(balance * rate, currency),
        )
        chart = []
        if income or expense:
            chart = [
                ChartSlice(label="Income", value=totals.display_income),
                ChartSlice(label="Expense", value=totals.display_expense),
            ]
        return cls(
            currency=currency,
            base_currency=converter.base_currency,
            rate=rate,
            totals=totals,
            chart=chart,
            expense_by_tag={tag: amount * rate for tag, amount in by_tag.items()},
            transactions=[_transaction_row(tx, rate, currency) for tx in transactions],
            debts=[_debt_row(debt, rate, currency, now) for debt in debts],
            tag_options=[TagOption(value=tag, label=tag[:1].upper() + tag[1:]) for tag in sorted(tags)],
        )


def _aggregate(transactions: list[TransactionRecord]) -> tuple[float, float, dict[str, float]]:
    """Sum income, expense magnitude and expense per tag in the base currency."""
    if not transactions:
        return 0.0, 0.0, {}
    frame = pd.DataFrame(
        {
            "type": [tx.type for tx in transactions],
            "amount": [float(tx.amount) for tx in transactions],
            "tags": [tx.tags for tx in transactions],
        }
    )
    # Linked expenses are stored negative, user-entered ones usually positive.
    frame["magnitude"] = frame["amount"].abs()
    income = float(frame.loc[frame["type"] == TransactionType.income.value, "amount"].sum())
    expenses = frame[frame["type"] == TransactionType.expense.value]
    expense = float(expenses["magnitude"].sum())
    tagged = expenses.explode("tags").dropna(subset=["tags"])
    by_tag = {str(tag): float(total) for tag, total in tagged.groupby("tags")["magnitude"].sum().items()}
    return income, expense, by_tag


def _transaction_row(tx: TransactionRecord, rate: float, currency: str) -> TransactionRow:
    display = abs(tx.amount) * rate
    sign = "-" if tx.type == TransactionType.expense.value else "+"
    return TransactionRow(
        id=tx.id,
        description=tx.description,
        type=TransactionType(tx.type),
        tags=tx.tags,
        date=tx.date,
        amount=tx.amount,
        display_amount=display,
        formatted=f"{sign} {format_currency(display, currency)}",
    )


def _debt_row(debt: DebtRecord, rate: float, currency: str, now: datetime) -> DebtRow:
    display = debt.amount * rate
    return DebtRow(
        id=debt.id,
        description=debt.description,
        lender=debt.lender,
        due_date=debt.due_date,
        is_paid=debt.is_paid,
        is_overdue=debt.due_date < now and not debt.is_paid,
        amount=debt.amount,
        display_amount=display,
        formatted=format_currency(display, currency),
    )
