"""Pydantic models for the Finance Tracker.

This module defines the request and response shapes for transactions and debts. Validation lives here so
that the record store, the linkage service and the API all reject the same malformed input. Field names
are camelCase on the wire and snake_case in Python; both are accepted on input.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from finance_tracker.core.utils import split_tags, to_naive_utc

UNKNOWN_LENDER = "Unknown"


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


# Stored timestamps are naive UTC; responses carry the offset explicitly.
UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class TransactionType(str, Enum):
    """The two kinds of transaction the tracker admits."""

    income = "income"
    expense = "expense"


class CamelModel(BaseModel):
    """Base model exposing camelCase aliases while accepting snake_case names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _clean_description(value: str) -> str:
    value = value.strip()
    if not value:
        msg = "description must not be empty"
        raise ValueError(msg)
    return value


class TransactionCreate(CamelModel):
    """Fields accepted when recording a transaction."""

    description: str
    amount: float = Field(allow_inf_nan=False)
    type: TransactionType
    tags: list[str] = Field(default_factory=list)
    date: datetime | None = None

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, value: str) -> str:
        """Trim the description and refuse an empty one."""
        return _clean_description(value)

    @field_validator("amount")
    @classmethod
    def amount_not_zero(cls, value: float) -> float:
        """Refuse a zero amount."""
        if value == 0:
            msg = "amount must be non-zero"
            raise ValueError(msg)
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def parse_tags(cls, value: object) -> list[str]:
        """Accept a list or a comma-separated string of tags."""
        return split_tags(value)

    @field_validator("date")
    @classmethod
    def normalize_date(cls, value: datetime | None) -> datetime | None:
        """Store timestamps as naive UTC."""
        return to_naive_utc(value) if value is not None else None


class TransactionUpdate(CamelModel):
    """Partial transaction update, used by the store only; the API never mutates transactions."""

    description: str | None = None
    amount: float | None = None
    type: TransactionType | None = None
    tags: list[str] | None = None
    date: datetime | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def parse_tags(cls, value: object) -> list[str] | None:
        """Accept a list or a comma-separated string of tags."""
        return split_tags(value) if value is not None else None


class TransactionOut(CamelModel):
    """A stored transaction."""

    id: int
    description: str
    amount: float
    type: TransactionType
    tags: list[str]
    date: UtcDatetime


class DebtBase(CamelModel):
    """Fields shared by every valid debt state."""

    description: str
    amount: float = Field(gt=0, allow_inf_nan=False)
    lender: str = UNKNOWN_LENDER
    due_date: datetime

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, value: str) -> str:
        """Trim the description and refuse an empty one."""
        return _clean_description(value)

    @field_validator("lender", mode="before")
    @classmethod
    def default_lender(cls, value: object) -> object:
        """Fall back to the unknown lender when none is given."""
        if value is None or (isinstance(value, str) and not value.strip()):
            return UNKNOWN_LENDER
        return value.strip() if isinstance(value, str) else value

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, value: datetime) -> datetime:
        """Store timestamps as naive UTC."""
        return to_naive_utc(value)


class DebtCreate(DebtBase):
    """Fields accepted when recording a debt."""


class DebtState(DebtBase):
    """A complete debt as it must look after an update."""

    is_paid: bool


class DebtUpdate(CamelModel):
    """Partial debt update; only the fields present in the request change."""

    description: str | None = None
    amount: float | None = None
    lender: str | None = None
    due_date: datetime | None = None
    is_paid: bool | None = None


class DebtOut(CamelModel):
    """A stored debt, with its link to the mirror expense transaction."""

    id: int
    description: str
    amount: float
    lender: str
    due_date: UtcDatetime
    is_paid: bool
    date_created: UtcDatetime
    linked_transaction_id: int | None = None
    link_pending: bool


class ReconcileSummary(CamelModel):
    """Outcome of retrying every pending debt link."""

    attempted: int
    linked: list[int]
    failed: dict[int, str]
