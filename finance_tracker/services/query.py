"""Whitelisted filtering and sorting over stored records."""

from collections.abc import Mapping
from dataclasses import dataclass

from sqlalchemy import Select

from finance_tracker.core.db import DebtRecord, TransactionRecord, TransactionTag

DEFAULT_SORT_FIELD = "date"
TRANSACTION_SORT_FIELDS = {
    "date": TransactionRecord.date,
    "amount": TransactionRecord.amount,
    "description": TransactionRecord.description,
    "type": TransactionRecord.type,
}
DEBT_ORDER = (DebtRecord.is_paid.asc(), DebtRecord.due_date.asc())


@dataclass(frozen=True)
class TransactionQuery:
    """Filter and sort options for listing transactions.

    Filters are exact matches on `type` and membership of `tag` in the tag list; both are optional and
    combined with AND. Only one sort field applies at a time.
    """

    type: str | None = None
    tag: str | None = None
    sort_by: str = DEFAULT_SORT_FIELD
    descending: bool = True

    @classmethod
    def from_params(cls, params: Mapping[str, object]) -> "TransactionQuery":
        """Build a query from raw request parameters, ignoring keys outside the whitelist."""
        sort_by = _clean(params.get("sortBy", params.get("sort_by"))) or DEFAULT_SORT_FIELD
        if sort_by not in TRANSACTION_SORT_FIELDS:
            sort_by = DEFAULT_SORT_FIELD
        order = _clean(params.get("order")) or "desc"
        return cls(
            type=_clean(params.get("type")),
            tag=_clean(params.get("tag")),
            sort_by=sort_by,
            descending=order.lower() != "asc",
        )

    def apply(self, stmt: Select) -> Select:
        """Add this query's predicates and ordering to a select over transactions."""
        if self.type:
            stmt = stmt.where(TransactionRecord.type == self.type)
        if self.tag:
            stmt = stmt.where(TransactionRecord.tag_rows.any(TransactionTag.value == self.tag))
        column = TRANSACTION_SORT_FIELDS[self.sort_by]
        return stmt.order_by(column.desc() if self.descending else column.asc())


def _clean(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
