"""Debt and mirror-transaction linkage.

Creating a debt also records an expense transaction for the same money, and deleting the debt removes that
expense again. The two writes are not atomic: the debt is committed first and stays committed even when
the expense write fails. Such a debt keeps `link_pending` set so `relink` can finish the job later.

The expense is found through `linked_transaction_id`, and is only touched while it still carries the debt's
creation date and the "Debt added" description. Debts without a link id (older rows, or a link that was
never attached) fall back to matching description, amount and date; when several transactions match, only
the most recently created one is removed.
"""

from typing import Any

from finance_tracker.core.db import DebtRecord, TransactionRecord
from finance_tracker.core.errors import NotFound, PartialFailure, StoreError, ValidationError
from finance_tracker.core.models import UNKNOWN_LENDER, TransactionType
from finance_tracker.core.utils import get_logger
from finance_tracker.services.record_store import DebtStore, Fields, TransactionStore

logger = get_logger("finance-tracker.linkage")

LINKED_EXPENSE_PREFIX = "Debt added: "
LINKED_EXPENSE_TEMPLATE = LINKED_EXPENSE_PREFIX + "{description} (Lender: {lender})"


def linked_expense_description(description: str, lender: str | None) -> str:
    """Build the description used for a debt's mirror expense."""
    return LINKED_EXPENSE_TEMPLATE.format(description=description, lender=lender or UNKNOWN_LENDER)


def linked_expense_fields(debt: DebtRecord) -> dict[str, Any]:
    """Return the fields of the expense transaction that mirrors a debt."""
    return {
        "description": linked_expense_description(debt.description, debt.lender),
        "amount": -abs(debt.amount),
        "type": TransactionType.expense,
        "tags": [],
        "date": debt.date_created,
    }


def is_mirror_of(transaction: TransactionRecord, debt: DebtRecord) -> bool:
    """Tell whether a transaction still looks like the expense written for a debt.

    Only the fields a debt update cannot change are compared, so a mirror left stale by an update still counts.
    """
    return (
        transaction.type == TransactionType.expense.value
        and transaction.date == debt.date_created
        and transaction.description.startswith(LINKED_EXPENSE_PREFIX)
    )


class DebtLinkageService:
    """Coordinates writes that touch both a debt and its mirror expense transaction."""

    def __init__(self, debts: DebtStore, transactions: TransactionStore) -> None:
        """Initialize the service with the two record stores."""
        self.debts = debts
        self.transactions = transactions

    def create_debt_with_linked_expense(self, fields: Fields) -> DebtRecord:
        """Store a debt, then its mirror expense.

        A `ValidationError` on the debt aborts before anything is written. A failure on the expense leaves
        the debt in place with `link_pending` set and raises `PartialFailure`.
        """
        debt = self.debts.create(fields)
        debt_id = debt.id
        try:
            self._write_mirror(debt)
        except (StoreError, ValidationError) as exc:
            logger.exception(f"Debt id={debt_id} created but its linked transaction failed")
            raise PartialFailure(debt_id, exc) from exc
        logger.info(f"Debt id={debt.id} linked to transaction id={debt.linked_transaction_id}")
        return debt

    def delete_debt_and_linked_expense(self, debt_id: int) -> int | None:
        """Delete a debt after a best-effort removal of its mirror expense.

        Returns the id of the removed transaction, or None when none was removed.
        """
        debt = self.debts.get_by_id(debt_id)
        removed = None
        try:
            removed = self._remove_mirror(debt)
        except (StoreError, NotFound) as exc:
            logger.warning(f"Could not remove linked transaction for debt id={debt_id}: {exc}")
        self.debts.delete(debt_id)
        return removed

    def update_debt(self, debt_id: int, fields: Fields) -> DebtRecord:
        """Apply a partial update to a debt; the mirror expense is left as it was."""
        return self.debts.update(debt_id, fields)

    def toggle_debt_paid(self, debt_id: int) -> DebtRecord:
        """Flip a debt's paid flag."""
        # No transaction side effects in either direction.
        debt = self.debts.get_by_id(debt_id)
        return self.debts.update(debt_id, {"is_paid": not debt.is_paid})

    def relink(self, debt_id: int) -> DebtRecord:
        """Make sure a debt has a mirror expense, adopting a matching one before creating a new one."""
        debt = self.debts.get_by_id(debt_id)
        if debt.linked_transaction_id is not None and not debt.link_pending:
            if self._linked_mirror(debt) is not None:
                return debt
        matches = self._find_mirror_candidates(debt)
        if matches:
            logger.info(f"Debt id={debt_id} adopting existing transaction id={matches[0].id}")
            return self.debts.attach_link(debt, matches[0].id)
        return self._write_mirror(debt)

    def _write_mirror(self, debt: DebtRecord) -> DebtRecord:
        transaction = self.transactions.create(linked_expense_fields(debt))
        return self.debts.attach_link(debt, transaction.id)

    def _find_mirror_candidates(self, debt: DebtRecord) -> list[TransactionRecord]:
        expected = linked_expense_fields(debt)
        return self.transactions.find_matching(expected["description"], expected["amount"], expected["date"])

    def _linked_mirror(self, debt: DebtRecord) -> TransactionRecord | None:
        try:
            transaction = self.transactions.get_by_id(debt.linked_transaction_id)
        except NotFound:
            logger.warning(f"Debt id={debt.id} points at missing transaction id={debt.linked_transaction_id}")
            return None
        if not is_mirror_of(transaction, debt):
            logger.warning(f"Transaction id={transaction.id} linked to debt id={debt.id} is not its mirror; ignoring it")
            return None
        return transaction

    def _remove_mirror(self, debt: DebtRecord) -> int | None:
        if debt.linked_transaction_id is not None:
            mirror = self._linked_mirror(debt)
            if mirror is None:
                return None
            self.transactions.delete(mirror.id)
            logger.info(f"Removed linked transaction id={mirror.id} of debt id={debt.id}")
            return mirror.id
        matches = self._find_mirror_candidates(debt)
        if not matches:
            logger.warning(f"No transaction matches debt id={debt.id}; nothing to unlink")
            return None
        if len(matches) > 1:
            logger.warning(f"{len(matches)} transactions match debt id={debt.id}; removing the newest only")
        self.transactions.delete(matches[0].id)
        logger.info(f"Removed matched transaction id={matches[0].id} of debt id={debt.id}")
        return matches[0].id
