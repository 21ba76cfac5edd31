from typing import Optional


class AccountError(Exception):
    """Base class for errors raised when an operation cannot be applied to an account."""

    error_code = "ACCOUNT_ERROR"

    def __init__(self, client_id: int, tx_id: int, detail: str = ""):
        self.client_id = client_id
        self.tx_id = tx_id
        self.detail = detail or self.__class__.__name__
        super().__init__(f"[client {client_id}] tx {tx_id}: {self.detail}")


class AccountLocked(AccountError):
    error_code = "ACCOUNT_LOCKED"


class InsufficientFunds(AccountError):
    error_code = "INSUFFICIENT_FUNDS"


class DisputedTransactionNotFound(AccountError):
    error_code = "DISPUTED_TRANSACTION_NOT_FOUND"


class AlreadyProcessed(AccountError):
    error_code = "ALREADY_PROCESSED"


class IngestionError(Exception):
    """Base class for records the ingestion adapter refuses to turn into operations."""

    error_code = "INGESTION_ERROR"

    def __init__(self, detail: str, line: Optional[int] = None):
        self.detail = detail
        self.line = line
        super().__init__(detail)


class MalformedRecord(IngestionError):
    error_code = "MALFORMED_RECORD"


class UnknownOperationType(IngestionError):
    error_code = "UNKNOWN_OPERATION_TYPE"


class MissingAmount(IngestionError):
    error_code = "MISSING_AMOUNT"


class InvalidPrecision(IngestionError):
    error_code = "INVALID_PRECISION"


class InvariantViolation(RuntimeError):
    """Raised when account state breaks a balance invariant. Always a bug."""
