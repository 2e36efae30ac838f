"""Record store: SQLAlchemy-backed persistence for transactions and debts.

Each write commits on its own. Pydantic validation failures surface as `ValidationError`, missing ids as
`NotFound`, and any SQLAlchemy failure is rolled back and re-raised as `StoreError`.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, ClassVar, Generic, TypeVar

import pydantic
from sqlalchemy import Select, distinct, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from finance_tracker.core.db import DebtRecord, TransactionRecord, TransactionTag
from finance_tracker.core.errors import NotFound, StoreError, ValidationError
from finance_tracker.core.models import (
    DebtCreate,
    DebtState,
    DebtUpdate,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
)
from finance_tracker.core.utils import get_logger, to_naive_utc, utcnow
from finance_tracker.services.query import DEBT_ORDER, TransactionQuery

logger = get_logger("finance-tracker.store")

RecordT = TypeVar("RecordT", TransactionRecord, DebtRecord)
SchemaT = TypeVar("SchemaT", bound=pydantic.BaseModel)

Fields = Mapping[str, Any] | pydantic.BaseModel


def validate_fields(schema: type[SchemaT], fields: Fields) -> SchemaT:
    """Validate raw fields against a schema, translating pydantic errors into `ValidationError`."""
    if isinstance(fields, schema):
        return fields
    data = fields.model_dump(exclude_unset=True) if isinstance(fields, pydantic.BaseModel) else dict(fields)
    try:
        return schema.model_validate(data)
    except pydantic.ValidationError as exc:
        details = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors())
        msg = f"Invalid fields: {details}"
        raise ValidationError(msg) from exc


class RecordStore(Generic[RecordT]):
    """Create, read, update and delete for one kind of record."""

    model: ClassVar[type]
    kind: ClassVar[str]
    create_schema: ClassVar[type[pydantic.BaseModel]]
    update_schema: ClassVar[type[pydantic.BaseModel]]
    state_schema: ClassVar[type[pydantic.BaseModel]]

    def __init__(self, session: Session) -> None:
        """Initialize the store with a SQLAlchemy session."""
        self.session = session

    def create(self, fields: Fields) -> RecordT:
        """Validate and persist a new record, returning it with its assigned id."""
        payload = validate_fields(self.create_schema, fields)
        record = self._build(payload)
        self.session.add(record)
        self._commit(f"create {self.kind}", record)
        logger.info(f"Created {self.kind} id={record.id}")
        return record

    def get_by_id(self, record_id: int) -> RecordT:
        """Fetch a record by id or raise `NotFound`."""
        try:
            record = self.session.get(self.model, record_id)
        except SQLAlchemyError as exc:
            msg = f"Failed to load {self.kind} {record_id}: {exc}"
            raise StoreError(msg) from exc
        if record is None:
            raise NotFound(self.kind, record_id)
        return record

    def update(self, record_id: int, fields: Fields) -> RecordT:
        """Apply only the supplied fields, re-validate the whole record and persist it."""
        record = self.get_by_id(record_id)
        changes = validate_fields(self.update_schema, fields).model_dump(exclude_unset=True)
        state = validate_fields(self.state_schema, {**self._snapshot(record), **changes})
        self._assign(record, state, set(changes))
        self._commit(f"update {self.kind} {record_id}", record)
        logger.info(f"Updated {self.kind} id={record_id} fields={sorted(changes)}")
        return record

    def delete(self, record_id: int) -> None:
        """Delete a record by id; a missing id raises `NotFound`."""
        record = self.get_by_id(record_id)
        self.session.delete(record)
        self._commit(f"delete {self.kind} {record_id}")
        logger.info(f"Deleted {self.kind} id={record_id}")

    def _scalars(self, stmt: Select) -> list[RecordT]:
        try:
            return list(self.session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            msg = f"Failed to query {self.kind}: {exc}"
            raise StoreError(msg) from exc

    def _commit(self, action: str, record: RecordT | None = None) -> None:
        """Commit the session and reload `record`; any failure is rolled back."""
        try:
            self.session.commit()
            if record is not None:
                self.session.refresh(record)
        except SQLAlchemyError as exc:
            self.session.rollback()
            msg = f"Failed to {action}: {exc}"
            logger.error(msg)
            raise StoreError(msg) from exc

    def _build(self, payload: Any) -> RecordT:
        raise NotImplementedError

    def _snapshot(self, record: RecordT) -> dict[str, Any]:
        raise NotImplementedError

    def _assign(self, record: RecordT, state: Any, changed: set[str]) -> None:
        raise NotImplementedError


class TransactionStore(RecordStore[TransactionRecord]):
    """Store for income and expense transactions."""

    model = TransactionRecord
    kind = "Transaction"
    create_schema = TransactionCreate
    update_schema = TransactionUpdate
    state_schema = TransactionCreate

    def list(self, query: TransactionQuery | None = None) -> list[TransactionRecord]:
        """List transactions matching the query, newest first by default."""
        stmt = (query or TransactionQuery()).apply(select(TransactionRecord))
        return self._scalars(stmt)

    def distinct_tag_values(self) -> set[str]:
        """Return every tag used by any transaction, each value once."""
        try:
            return set(self.session.scalars(select(distinct(TransactionTag.value))).all())
        except SQLAlchemyError as exc:
            msg = f"Failed to query tags: {exc}"
            raise StoreError(msg) from exc

    def find_matching(self, description: str, amount: float, date: datetime) -> list[TransactionRecord]:
        """Return transactions equal on description, amount and date, most recently created first."""
        stmt = (
            select(TransactionRecord)
            .where(
                TransactionRecord.description == description,
                TransactionRecord.amount == amount,
                TransactionRecord.date == to_naive_utc(date),
            )
            .order_by(TransactionRecord.id.desc())
        )
        return self._scalars(stmt)

    def _build(self, payload: TransactionCreate) -> TransactionRecord:
        return TransactionRecord(
            description=payload.description,
            amount=payload.amount,
            type=payload.type.value,
            date=payload.date or utcnow(),
            tag_rows=_tag_rows(payload.tags),
        )

    def _snapshot(self, record: TransactionRecord) -> dict[str, Any]:
        return {
            "description": record.description,
            "amount": record.amount,
            "type": record.type,
            "tags": record.tags,
            "date": record.date,
        }

    def _assign(self, record: TransactionRecord, state: TransactionCreate, changed: set[str]) -> None:
        record.description = state.description
        record.amount = state.amount
        record.type = TransactionType(state.type).value
        record.date = state.date or record.date
        if "tags" in changed:
            record.tag_rows = _tag_rows(state.tags)


class DebtStore(RecordStore[DebtRecord]):
    """Store for debts owed to lenders."""

    model = DebtRecord
    kind = "Debt"
    create_schema = DebtCreate
    update_schema = DebtUpdate
    state_schema = DebtState

    def list(self) -> list[DebtRecord]:
        """List debts, unpaid first, then soonest due."""
        return self._scalars(select(DebtRecord).order_by(*DEBT_ORDER))

    def pending_links(self) -> list[DebtRecord]:
        """List debts still waiting for their mirror transaction."""
        stmt = select(DebtRecord).where(DebtRecord.link_pending.is_(True)).order_by(DebtRecord.id)
        return self._scalars(stmt)

    def attach_link(self, debt: DebtRecord, transaction_id: int) -> DebtRecord:
        """Record the mirror transaction id on a debt and clear its pending marker."""
        debt.linked_transaction_id = transaction_id
        debt.link_pending = False
        self._commit(f"link debt {debt.id} to transaction {transaction_id}", debt)
        return debt

    def _build(self, payload: DebtCreate) -> DebtRecord:
        return DebtRecord(
            description=payload.description,
            amount=payload.amount,
            lender=payload.lender,
            due_date=payload.due_date,
            is_paid=False,
            date_created=utcnow(),
            link_pending=True,
        )

    def _snapshot(self, record: DebtRecord) -> dict[str, Any]:
        return {
            "description": record.description,
            "amount": record.amount,
            "lender": record.lender,
            "due_date": record.due_date,
            "is_paid": record.is_paid,
        }

    def _assign(self, record: DebtRecord, state: DebtState, changed: set[str]) -> None:
        record.description = state.description
        record.amount = state.amount
        record.lender = state.lender
        record.due_date = state.due_date
        record.is_paid = state.is_paid


def _tag_rows(tags: list[str]) -> list[TransactionTag]:
    return [TransactionTag(position=index, value=tag) for index, tag in enumerate(tags)]
