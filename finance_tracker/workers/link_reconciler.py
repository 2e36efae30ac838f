"""Retry mirror-transaction creation for debts left with a pending link."""

from sqlalchemy.orm import Session, sessionmaker

from finance_tracker.core.errors import FinanceTrackerError
from finance_tracker.core.models import ReconcileSummary
from finance_tracker.core.utils import get_logger
from finance_tracker.services.linkage import DebtLinkageService
from finance_tracker.services.record_store import DebtStore, TransactionStore

logger = get_logger("finance-tracker.reconciler")


class LinkReconciler:
    """Walks every debt with `link_pending` set and tries to attach its mirror expense."""

    def __init__(self, session: Session) -> None:
        """Initialize the reconciler with a SQLAlchemy session."""
        self.debts = DebtStore(session)
        self.linkage = DebtLinkageService(self.debts, TransactionStore(session))

    def reconcile_pending_links(self) -> ReconcileSummary:
        """Relink each pending debt; a failing debt is logged and counted, the rest still run."""
        pending = [debt.id for debt in self.debts.pending_links()]
        logger.info(f"Reconciling {len(pending)} debts with pending links")
        linked: list[int] = []
        failed: dict[int, str] = {}
        for debt_id in pending:
            try:
                self.linkage.relink(debt_id)
            except FinanceTrackerError as exc:
                logger.exception(f"Failed to relink debt id={debt_id}")
                failed[debt_id] = str(exc)
            else:
                linked.append(debt_id)
        logger.info(f"Reconciliation finished: linked={len(linked)} failed={len(failed)}")
        return ReconcileSummary(attempted=len(pending), linked=linked, failed=failed)


def run_reconciliation(session_factory: sessionmaker) -> ReconcileSummary:
    """Top-level function to run a reconciliation pass in its own session (for startup or background tasks)."""
    session = session_factory()
    try:
        return LinkReconciler(session).reconcile_pending_links()
    finally:
        session.close()
