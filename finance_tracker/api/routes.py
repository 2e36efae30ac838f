"""FastAPI endpoints for the Finance Tracker API.

This module defines the REST routes for transactions, tags, debts and the dashboard summary. It wires the
record stores and the debt linkage service to HTTP, translating domain errors into status codes.
"""

from typing import TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from finance_tracker.api.dependencies import (
    get_converter,
    get_debt_store,
    get_linkage_service,
    get_transaction_store,
)
from finance_tracker.core.errors import NotFound, PartialFailure, ValidationError
from finance_tracker.core.models import DebtCreate, DebtOut, DebtUpdate, ReconcileSummary, TransactionCreate, TransactionOut
from finance_tracker.core.settings import Settings, get_settings
from finance_tracker.core.utils import get_logger
from finance_tracker.presentation.view_model import CurrencyConverter, DashboardView
from finance_tracker.services.linkage import DebtLinkageService
from finance_tracker.services.query import TransactionQuery
from finance_tracker.services.record_store import DebtStore, TransactionStore
from finance_tracker.workers.link_reconciler import LinkReconciler

PayloadT = TypeVar("PayloadT", TransactionCreate, DebtCreate)

router = APIRouter()
logger = get_logger("finance-tracker.api")


def _http_error(exc: Exception) -> HTTPException:
    """Map a domain error to the matching HTTPException."""
    if isinstance(exc, NotFound):
        return HTTPException(404, str(exc))
    return HTTPException(400, str(exc))


def _in_base_currency(payload: PayloadT, currency: str | None, converter: CurrencyConverter) -> PayloadT:
    """Convert an amount entered in `currency` to the base currency; no currency means it already is."""
    if not currency:
        return payload
    return payload.model_copy(update={"amount": converter.to_base(payload.amount, currency.upper())})


# --- Transactions ---


@router.get(
    "/transactions",
    response_model=list[TransactionOut],
    summary="List transactions",
    description=(
        "List transactions, optionally filtered and sorted.\n\n"
        "**Query parameters:**\n"
        "- `type`: `income` or `expense`.\n"
        "- `tag`: only transactions carrying this tag.\n"
        "- `sortBy`: `date` (default), `amount`, `description` or `type`.\n"
        "- `order`: `asc` or `desc` (default).\n\n"
        "Unknown parameters are ignored."
    ),
)
def list_transactions(
    type: str | None = None,  # noqa: A002
    tag: str | None = None,
    sort_by: str | None = Query(None, alias="sortBy"),
    order: str | None = None,
    store: TransactionStore = Depends(get_transaction_store),
) -> list[TransactionOut]:
    """List transactions matching the whitelisted filters."""
    query = TransactionQuery.from_params({"type": type, "tag": tag, "sortBy": sort_by, "order": order})
    return [TransactionOut.model_validate(tx) for tx in store.list(query)]


@router.get("/transactions/{tx_id}", response_model=TransactionOut)
def get_transaction(tx_id: int, store: TransactionStore = Depends(get_transaction_store)) -> TransactionOut:
    """Fetch a single transaction."""
    try:
        return TransactionOut.model_validate(store.get_by_id(tx_id))
    except NotFound as exc:
        raise _http_error(exc) from exc


@router.post(
    "/transactions",
    status_code=201,
    response_model=TransactionOut,
    summary="Record a transaction",
    description="Store an income or expense. Pass `currency` when `amount` is in a display currency.",
    responses={
        201: {"description": "Transaction stored."},
        400: {
            "description": "Missing or invalid fields.",
            "content": {"application/json": {"example": {"detail": "Invalid fields: type: Input should be 'income' or 'expense'"}}},
        },
    },
)
def create_transaction(
    payload: TransactionCreate,
    currency: str | None = None,
    store: TransactionStore = Depends(get_transaction_store),
    converter: CurrencyConverter = Depends(get_converter),
) -> TransactionOut:
    """Record a new income or expense, optionally entered in another currency."""
    logger.info(f"Creating transaction: type={payload.type.value}, amount={payload.amount} {currency or ''}")
    try:
        payload = _in_base_currency(payload, currency, converter)
        return TransactionOut.model_validate(store.create(payload))
    except ValidationError as exc:
        raise _http_error(exc) from exc


@router.delete("/transactions/{tx_id}")
def delete_transaction(tx_id: int, store: TransactionStore = Depends(get_transaction_store)) -> dict:
    """Delete a transaction."""
    try:
        store.delete(tx_id)
    except NotFound as exc:
        raise _http_error(exc) from exc
    return {"detail": "Transaction deleted"}


@router.get("/tags", response_model=list[str])
def list_tags(store: TransactionStore = Depends(get_transaction_store)) -> list[str]:
    """Return every tag in use, regardless of any active filter."""
    return sorted(store.distinct_tag_values())


# --- Debts ---


@router.get("/debts", response_model=list[DebtOut])
def list_debts(store: DebtStore = Depends(get_debt_store)) -> list[DebtOut]:
    """List debts, unpaid first, then soonest due."""
    return [DebtOut.model_validate(debt) for debt in store.list()]


@router.get("/debts/{debt_id}", response_model=DebtOut)
def get_debt(debt_id: int, store: DebtStore = Depends(get_debt_store)) -> DebtOut:
    """Fetch a single debt."""
    try:
        return DebtOut.model_validate(store.get_by_id(debt_id))
    except NotFound as exc:
        raise _http_error(exc) from exc


@router.post(
    "/debts",
    status_code=201,
    response_model=DebtOut,
    summary="Record a debt and its linked expense",
    description=(
        "Store a debt, then an expense transaction mirroring it "
        "(`Debt added: <description> (Lender: <lender>)`, negative amount, dated at the debt's creation).\n\n"
        "Pass `currency` when `amount` was entered in a display currency; it is converted to the base currency "
        "before anything is stored.\n\n"
        "**Response:**\n"
        "- 201 Created: the debt.\n"
        "- 400 Bad Request: the debt is invalid; nothing was written.\n"
        "- 500 Internal Server Error: the debt was stored but its expense was not. The body carries `debtId` "
        "and `error`; retry with `POST /debts/{debtId}/link`."
    ),
    responses={
        500: {
            "description": "Debt created, linked transaction failed.",
            "content": {
                "application/json": {
                    "example": {"detail": "Debt 7 created, linked transaction failed: ...", "debtId": 7, "error": "..."}
                }
            },
        },
    },
)
def create_debt(
    payload: DebtCreate,
    currency: str | None = None,
    service: DebtLinkageService = Depends(get_linkage_service),
    converter: CurrencyConverter = Depends(get_converter),
) -> DebtOut | JSONResponse:
    """Record a debt together with its mirror expense."""
    try:
        payload = _in_base_currency(payload, currency, converter)
        debt = service.create_debt_with_linked_expense(payload)
    except ValidationError as exc:
        raise _http_error(exc) from exc
    except PartialFailure as exc:
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "debtId": exc.debt_id, "error": str(exc.cause)},
        )
    return DebtOut.model_validate(debt)


@router.put("/debts/{debt_id}", response_model=DebtOut)
def update_debt(
    debt_id: int,
    payload: DebtUpdate,
    service: DebtLinkageService = Depends(get_linkage_service),
) -> DebtOut:
    """Apply a partial update to a debt; its linked expense is not touched."""
    try:
        return DebtOut.model_validate(service.update_debt(debt_id, payload))
    except (NotFound, ValidationError) as exc:
        raise _http_error(exc) from exc


@router.put("/debts/{debt_id}/toggle", response_model=DebtOut)
def toggle_debt(debt_id: int, service: DebtLinkageService = Depends(get_linkage_service)) -> DebtOut:
    """Flip a debt's paid status."""
    try:
        return DebtOut.model_validate(service.toggle_debt_paid(debt_id))
    except NotFound as exc:
        raise _http_error(exc) from exc


@router.post("/debts/reconcile", response_model=ReconcileSummary)
def reconcile_debts(store: DebtStore = Depends(get_debt_store)) -> ReconcileSummary:
    """Retry the linked expense of every debt still marked pending."""
    return LinkReconciler(store.session).reconcile_pending_links()


@router.post("/debts/{debt_id}/link", response_model=DebtOut)
def relink_debt(debt_id: int, service: DebtLinkageService = Depends(get_linkage_service)) -> DebtOut:
    """Create or adopt the linked expense of a single debt."""
    try:
        return DebtOut.model_validate(service.relink(debt_id))
    except NotFound as exc:
        raise _http_error(exc) from exc


@router.delete("/debts/{debt_id}")
def delete_debt(debt_id: int, service: DebtLinkageService = Depends(get_linkage_service)) -> dict:
    """Delete a debt and, best effort, its linked expense."""
    try:
        removed = service.delete_debt_and_linked_expense(debt_id)
    except NotFound as exc:
        raise _http_error(exc) from exc
    return {"detail": "Debt deleted", "linkedTransactionId": removed}


# --- Summary ---


@router.get(
    "/summary",
    response_model=DashboardView,
    summary="Dashboard view model",
    description=(
        "Totals, chart data and display rows converted into `currency` "
        "(defaults to the configured display currency). 400 if no rate is known for it."
    ),
)
def summary(
    currency: str | None = None,
    transactions: TransactionStore = Depends(get_transaction_store),
    debts: DebtStore = Depends(get_debt_store),
    converter: CurrencyConverter = Depends(get_converter),
    settings: Settings = Depends(get_settings),
) -> DashboardView:
    """Build a fresh dashboard view from the current records."""
    currency = (currency or settings.display_currency).upper()
    try:
        return DashboardView.build(
            transactions.list(),
            debts.list(),
            transactions.distinct_tag_values(),
            converter,
            currency,
        )
    except ValidationError as exc:
        raise _http_error(exc) from exc


@router.get(
    "/health",
    summary="Health check",
    description="Simple health check endpoint. Returns status ok.",
    response_description="Status ok.",
    responses={200: {"description": "API is healthy.", "content": {"application/json": {"example": {"status": "ok"}}}}},
)
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
