"""Services package: record stores, query surface and the debt linkage service."""

from .linkage import DebtLinkageService  # noqa: F401
from .query import TransactionQuery  # noqa: F401
from .record_store import DebtStore, TransactionStore  # noqa: F401
