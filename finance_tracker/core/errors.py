"""Domain exceptions raised by the record store and the linkage service."""


class FinanceTrackerError(Exception):
    """Base class for all Finance Tracker errors."""


class ValidationError(FinanceTrackerError):
    """A required field is missing or malformed; nothing was written."""


class NotFound(FinanceTrackerError):
    """An id does not resolve to a stored record."""

    def __init__(self, kind: str, record_id: int) -> None:
        """Remember which kind of record was missing."""
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} not found")


class StoreError(FinanceTrackerError):
    """The persistence layer failed underneath an operation."""


class PartialFailure(FinanceTrackerError):
    """A debt was stored but its mirror expense transaction was not."""

    def __init__(self, debt_id: int, cause: Exception) -> None:
        """Keep the created debt id and the write error so the caller can retry the link."""
        self.debt_id = debt_id
        self.cause = cause
        super().__init__(f"Debt {debt_id} created, linked transaction failed: {cause}")
