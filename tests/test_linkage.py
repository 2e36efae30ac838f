"""Tests for the debt/transaction linkage service and the link reconciler."""

from datetime import datetime

import pytest
from sqlalchemy.orm import Session, sessionmaker

from finance_tracker.core.errors import NotFound, PartialFailure, StoreError, ValidationError
from finance_tracker.services.linkage import DebtLinkageService, linked_expense_description
from finance_tracker.services.record_store import DebtStore, TransactionStore
from finance_tracker.workers.link_reconciler import LinkReconciler, run_reconciliation

DUE = datetime(2025, 3, 1)
RENT = {"description": "Rent", "amount": 500, "lender": "Bob", "dueDate": DUE}


def _fail_create(self: TransactionStore, fields: object) -> None:
    msg = "disk full"
    raise StoreError(msg)


def test_linked_expense_description_defaults_lender() -> None:
    """The mirror description falls back to the unknown lender."""
    if linked_expense_description("Phone", None) != "Debt added: Phone (Lender: Unknown)":
        msg = "Expected the unknown lender in the description"
        raise AssertionError(msg)


def test_creating_a_debt_creates_one_mirror_expense(
    linkage: DebtLinkageService, transactions: TransactionStore
) -> None:
    """A debt yields exactly one negative expense dated at the debt's creation."""
    debt = linkage.create_debt_with_linked_expense(RENT)
    listed = transactions.list()
    if len(listed) != 1:
        msg = f"Expected exactly 1 transaction, got {len(listed)}"
        raise AssertionError(msg)
    tx = listed[0]
    got = (tx.amount, tx.type, tx.date, tx.description, tx.tags)
    expected = (-500.0, "expense", debt.date_created, "Debt added: Rent (Lender: Bob)", [])
    if got != expected:
        msg = f"Expected {expected}, got {got}"
        raise AssertionError(msg)
    if (debt.linked_transaction_id, debt.link_pending) != (tx.id, False):
        msg = f"Expected debt linked to {tx.id}, got {debt.linked_transaction_id} pending={debt.link_pending}"
        raise AssertionError(msg)


def test_invalid_debt_creates_nothing(linkage: DebtLinkageService, debts: DebtStore, transactions: TransactionStore) -> None:
    """A rejected debt writes neither the debt nor a transaction."""
    with pytest.raises(ValidationError):
        linkage.create_debt_with_linked_expense({"description": "Rent", "amount": 500})
    if debts.list() or transactions.list():
        msg = "Expected no records after a rejected debt"
        raise AssertionError(msg)


def test_failed_mirror_write_reports_partial_failure(
    linkage: DebtLinkageService, debts: DebtStore, transactions: TransactionStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    """When the expense write fails the debt stays, marked pending, and the error names it."""
    monkeypatch.setattr(TransactionStore, "create", _fail_create)
    with pytest.raises(PartialFailure) as info:
        linkage.create_debt_with_linked_expense(RENT)
    stored = debts.list()
    if len(stored) != 1 or stored[0].id != info.value.debt_id:
        msg = f"Expected the debt to survive with id {info.value.debt_id}, got {[d.id for d in stored]}"
        raise AssertionError(msg)
    if not stored[0].link_pending or stored[0].linked_transaction_id is not None:
        msg = "Expected the surviving debt to keep its pending marker"
        raise AssertionError(msg)
    if not isinstance(info.value.cause, StoreError) or "disk full" not in str(info.value):
        msg = f"Expected the underlying StoreError to be carried, got {info.value.cause!r}"
        raise AssertionError(msg)
    monkeypatch.undo()
    if transactions.list():
        msg = "Expected no transaction after the failed write"
        raise AssertionError(msg)


def test_deleting_a_debt_removes_only_its_mirror(linkage: DebtLinkageService, transactions: TransactionStore) -> None:
    """Deleting a linked debt removes its expense by id and leaves an identical lookalike alone."""
    debt = linkage.create_debt_with_linked_expense(RENT)
    other = transactions.create({"description": "Groceries", "amount": 60, "type": "expense"})
    lookalike = transactions.create(
        {"description": "Debt added: Rent (Lender: Bob)", "amount": -500, "type": "expense", "date": debt.date_created}
    )
    removed = linkage.delete_debt_and_linked_expense(debt.id)
    remaining = sorted(tx.id for tx in transactions.list())
    if removed != debt.linked_transaction_id or remaining != sorted([other.id, lookalike.id]):
        msg = f"Expected only {debt.linked_transaction_id} removed, got removed={removed}, remaining={remaining}"
        raise AssertionError(msg)


def test_unlinked_debt_falls_back_to_newest_field_match(
    linkage: DebtLinkageService, transactions: TransactionStore, session: Session
) -> None:
    """A debt without a link id removes exactly one matching transaction, the most recently created."""
    debt = linkage.create_debt_with_linked_expense(RENT)
    first_mirror = debt.linked_transaction_id
    duplicate = transactions.create(
        {"description": "Debt added: Rent (Lender: Bob)", "amount": -500, "type": "expense", "date": debt.date_created}
    )
    debt.linked_transaction_id = None
    session.commit()
    removed = linkage.delete_debt_and_linked_expense(debt.id)
    remaining = [tx.id for tx in transactions.list()]
    if removed != duplicate.id or remaining != [first_mirror]:
        msg = f"Expected newest match {duplicate.id} removed, got removed={removed}, remaining={remaining}"
        raise AssertionError(msg)


def test_debt_is_deleted_even_when_mirror_lookup_fails(
    linkage: DebtLinkageService, debts: DebtStore, transactions: TransactionStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Mirror removal is best effort: a missing mirror or a store error never blocks the debt delete."""
    first = linkage.create_debt_with_linked_expense(RENT)
    transactions.delete(first.linked_transaction_id)
    if linkage.delete_debt_and_linked_expense(first.id) is not None:
        msg = "Expected nothing removed for a dangling link"
        raise AssertionError(msg)

    second = linkage.create_debt_with_linked_expense(RENT)

    def broken_delete(self: TransactionStore, record_id: int) -> None:
        msg = "database is locked"
        raise StoreError(msg)

    monkeypatch.setattr(TransactionStore, "delete", broken_delete)
    linkage.delete_debt_and_linked_expense(second.id)
    if debts.list():
        msg = "Expected the debt to be deleted despite the failed unlink"
        raise AssertionError(msg)
    if len(transactions.list()) != 1:
        msg = "Expected the mirror to remain after the failed unlink"
        raise AssertionError(msg)


def test_delete_unknown_debt_raises_not_found(linkage: DebtLinkageService) -> None:
    """Deleting an unknown debt raises NotFound."""
    with pytest.raises(NotFound):
        linkage.delete_debt_and_linked_expense(42)


def test_toggle_twice_restores_flag_without_side_effects(
    linkage: DebtLinkageService, transactions: TransactionStore
) -> None:
    """Toggling paid twice returns to the starting value and never touches transactions."""
    debt = linkage.create_debt_with_linked_expense(RENT)
    before = [(tx.id, tx.amount, tx.description) for tx in transactions.list()]
    first = linkage.toggle_debt_paid(debt.id).is_paid
    second = linkage.toggle_debt_paid(debt.id).is_paid
    after = [(tx.id, tx.amount, tx.description) for tx in transactions.list()]
    if (first, second) != (True, False):
        msg = f"Expected True then False, got {first} then {second}"
        raise AssertionError(msg)
    if before != after:
        msg = f"Expected transactions unchanged, got {before} -> {after}"
        raise AssertionError(msg)


def test_update_does_not_touch_mirror(linkage: DebtLinkageService, transactions: TransactionStore) -> None:
    """Updating a debt's amount leaves the mirror expense stale."""
    debt = linkage.create_debt_with_linked_expense(RENT)
    updated = linkage.update_debt(debt.id, {"amount": 450, "description": "Rent March"})
    mirror = transactions.get_by_id(debt.linked_transaction_id)
    if updated.amount != 450 or mirror.amount != -500 or mirror.description != "Debt added: Rent (Lender: Bob)":
        msg = f"Expected stale mirror, got debt={updated.amount}, mirror={mirror.amount} {mirror.description!r}"
        raise AssertionError(msg)


def test_relink_creates_or_adopts_mirror(
    linkage: DebtLinkageService, transactions: TransactionStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Relinking a pending debt creates its mirror once; relinking again is a no-op."""
    monkeypatch.setattr(TransactionStore, "create", _fail_create)
    with pytest.raises(PartialFailure) as info:
        linkage.create_debt_with_linked_expense(RENT)
    monkeypatch.undo()
    debt = linkage.relink(info.value.debt_id)
    again = linkage.relink(info.value.debt_id)
    listed = transactions.list()
    if len(listed) != 1 or debt.linked_transaction_id != listed[0].id or debt.link_pending:
        msg = f"Expected one adopted mirror, got {[tx.id for tx in listed]} link={debt.linked_transaction_id}"
        raise AssertionError(msg)
    if again.linked_transaction_id != listed[0].id:
        msg = "Expected a second relink to keep the same mirror"
        raise AssertionError(msg)


def test_relink_adopts_existing_match(
    linkage: DebtLinkageService, debts: DebtStore, transactions: TransactionStore
) -> None:
    """A pending debt whose mirror already exists adopts it instead of writing a duplicate."""
    debt = debts.create(RENT)
    existing = transactions.create(
        {"description": "Debt added: Rent (Lender: Bob)", "amount": -500, "type": "expense", "date": debt.date_created}
    )
    relinked = linkage.relink(debt.id)
    if relinked.linked_transaction_id != existing.id or len(transactions.list()) != 1:
        msg = f"Expected adoption of {existing.id}, got {relinked.linked_transaction_id}"
        raise AssertionError(msg)


def test_reconciler_links_every_pending_debt(session: Session, debts: DebtStore, transactions: TransactionStore) -> None:
    """The reconciler attaches mirrors to all pending debts and reports them."""
    first = debts.create(RENT)
    second = debts.create({"description": "Laptop", "amount": 1200, "due_date": DUE})
    summary = LinkReconciler(session).reconcile_pending_links()
    if (summary.attempted, sorted(summary.linked), summary.failed) != (2, [first.id, second.id], {}):
        msg = f"Unexpected reconcile summary: {summary}"
        raise AssertionError(msg)
    descriptions = sorted(tx.description for tx in transactions.list())
    expected = ["Debt added: Laptop (Lender: Unknown)", "Debt added: Rent (Lender: Bob)"]
    if descriptions != expected or debts.pending_links():
        msg = f"Expected mirrors {expected}, got {descriptions}"
        raise AssertionError(msg)


def test_reconciler_counts_failures(session_factory: sessionmaker, monkeypatch: pytest.MonkeyPatch) -> None:
    """A failing relink is counted and does not stop the pass."""
    session = session_factory()
    debt = DebtStore(session).create(RENT)
    session.close()
    monkeypatch.setattr(TransactionStore, "create", _fail_create)
    summary = run_reconciliation(session_factory)
    if summary.attempted != 1 or summary.linked or debt.id not in summary.failed:
        msg = f"Expected one failure for debt {debt.id}, got {summary}"
        raise AssertionError(msg)


def test_link_to_an_unrelated_transaction_is_ignored(
    linkage: DebtLinkageService, transactions: TransactionStore, session: Session
) -> None:
    """A link id that resolves to something other than the mirror is neither deleted nor adopted."""
    debt = linkage.create_debt_with_linked_expense(RENT)
    mirror_id = debt.linked_transaction_id
    salary = transactions.create({"description": "Salary", "amount": 2000, "type": "income"})
    debt.linked_transaction_id = salary.id
    session.commit()

    relinked = linkage.relink(debt.id)
    if relinked.linked_transaction_id != mirror_id:
        msg = f"Expected relink to adopt the real mirror {mirror_id}, got {relinked.linked_transaction_id}"
        raise AssertionError(msg)

    debt.linked_transaction_id = salary.id
    session.commit()
    removed = linkage.delete_debt_and_linked_expense(debt.id)
    remaining = sorted(tx.id for tx in transactions.list())
    if removed is not None or remaining != sorted([mirror_id, salary.id]):
        msg = f"Expected nothing removed, got removed={removed}, remaining={remaining}"
        raise AssertionError(msg)


def test_stale_mirror_is_still_removed_after_update(linkage: DebtLinkageService, transactions: TransactionStore) -> None:
    """A mirror left stale by a debt update is still recognised and removed with the debt."""
    debt = linkage.create_debt_with_linked_expense(RENT)
    mirror_id = debt.linked_transaction_id
    linkage.update_debt(debt.id, {"amount": 450, "lender": "Carol"})
    removed = linkage.delete_debt_and_linked_expense(debt.id)
    if removed != mirror_id or transactions.list():
        msg = f"Expected the stale mirror {mirror_id} removed, got {removed}"
        raise AssertionError(msg)
