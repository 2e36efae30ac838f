"""Core package: provides models, database helpers, settings, errors and shared utilities."""

from .db import get_session  # noqa: F401
from .errors import NotFound, PartialFailure, StoreError, ValidationError  # noqa: F401
from .models import DebtCreate, DebtOut, DebtUpdate, TransactionCreate, TransactionOut, TransactionType  # noqa: F401
from .settings import Settings  # noqa: F401
from .utils import get_logger  # noqa: F401
