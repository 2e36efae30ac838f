"""API package: provides FastAPI dependencies and route definitions for the application."""

from .dependencies import get_debt_store, get_linkage_service, get_transaction_store  # noqa: F401
from .routes import router  # noqa: F401
