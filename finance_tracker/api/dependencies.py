"""FastAPI dependencies for DI (settings, DB session, stores, linkage service).

This module provides dependency injection helpers so that endpoints receive ready-made stores bound to the
request's session, and tests can swap the session for an in-memory database.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from finance_tracker.core.db import get_session
from finance_tracker.core.settings import Settings, get_settings
from finance_tracker.presentation.view_model import CurrencyConverter
from finance_tracker.services.linkage import DebtLinkageService
from finance_tracker.services.record_store import DebtStore, TransactionStore


def get_transaction_store(session: Session = Depends(get_session)) -> TransactionStore:
    """Provide a TransactionStore bound to the request session."""
    return TransactionStore(session)


def get_debt_store(session: Session = Depends(get_session)) -> DebtStore:
    """Provide a DebtStore bound to the request session."""
    return DebtStore(session)


def get_linkage_service(
    debts: DebtStore = Depends(get_debt_store),
    transactions: TransactionStore = Depends(get_transaction_store),
) -> DebtLinkageService:
    """Provide a DebtLinkageService over the request's stores."""
    return DebtLinkageService(debts, transactions)


def get_converter(settings: Settings = Depends(get_settings)) -> CurrencyConverter:
    """Provide a CurrencyConverter built from the configured rates."""
    return CurrencyConverter(settings.base_currency, settings.exchange_rates)
