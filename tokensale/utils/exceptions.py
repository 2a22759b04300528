"""
Token sale exception handling and standardized error codes
"""

from typing import Any, Optional, Sequence, Tuple


class SaleErrorCodes:
    """Standardized error codes for sale lifecycle operations"""

    # Input errors
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_DURATION = "INVALID_DURATION"
    INVALID_DECIMALS = "INVALID_DECIMALS"

    # State errors
    PRECONDITION_VIOLATION = "PRECONDITION_VIOLATION"
    INSUFFICIENT_SUPPLY = "INSUFFICIENT_SUPPLY"

    # Transaction errors
    TRANSACTION_REVERTED = "TRANSACTION_REVERTED"
    TRANSACTION_TIMEOUT = "TRANSACTION_TIMEOUT"
    TRANSACTION_DROPPED = "TRANSACTION_DROPPED"

    # Node errors
    CHAIN_CLIENT_ERROR = "CHAIN_CLIENT_ERROR"


class TokenSaleException(Exception):

    default_code = SaleErrorCodes.INVALID_INPUT

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.error_code = error_code or self.default_code
        self.message = message
        self.operation: Optional[str] = None
        self.step: Optional[str] = None
        self.completed_steps: Tuple[str, ...] = ()
        super().__init__(f"{self.error_code}: {message}")

    def attach_progress(self, operation: str, step: Optional[str], completed_steps: Sequence[str]):
        """Record where inside a multi-step operation the failure happened"""
        self.operation = operation
        self.step = step
        self.completed_steps = tuple(completed_steps)
        return self

    def context(self) -> dict:
        return {
            "error_code": self.error_code,
            "operation": self.operation,
            "step": self.step,
            "completed_steps": list(self.completed_steps),
        }


class InvalidInputError(TokenSaleException):
    default_code = SaleErrorCodes.INVALID_INPUT


class InvalidDurationError(InvalidInputError):
    default_code = SaleErrorCodes.INVALID_DURATION


class InvalidDecimalsError(InvalidInputError):
    default_code = SaleErrorCodes.INVALID_DECIMALS


class PreconditionViolationError(TokenSaleException):
    default_code = SaleErrorCodes.PRECONDITION_VIOLATION


class InsufficientSupplyError(TokenSaleException):
    default_code = SaleErrorCodes.INSUFFICIENT_SUPPLY


class TransactionError(TokenSaleException):

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message)

    def context(self) -> dict:
        data = super().context()
        data["tx_hash"] = self.tx_hash
        return data


class TransactionRevertedError(TransactionError):
    """Mined with a failed status, or refused by the node while simulating"""

    default_code = SaleErrorCodes.TRANSACTION_REVERTED

    def __init__(self, message: str, tx_hash: Optional[str] = None, receipt: Any = None, reason: Optional[str] = None):
        self.receipt = receipt
        self.reason = reason
        super().__init__(message, tx_hash=tx_hash)


class TransactionTimeoutError(TransactionError):
    default_code = SaleErrorCodes.TRANSACTION_TIMEOUT

    def __init__(self, message: str, tx_hash: Optional[str] = None, timeout: float = 0.0, confirmations_seen: int = 0):
        self.timeout = timeout
        self.confirmations_seen = confirmations_seen
        super().__init__(message, tx_hash=tx_hash)


class TransactionDroppedError(TransactionError):
    default_code = SaleErrorCodes.TRANSACTION_DROPPED


class ChainClientError(TokenSaleException):
    """Opaque failure reported by the JSON-RPC node"""

    default_code = SaleErrorCodes.CHAIN_CLIENT_ERROR

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)
