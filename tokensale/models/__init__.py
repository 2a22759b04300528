from .sale import Sale, SaleStatus, ZERO_ADDRESS
from .transaction import LifecycleResult, TxHandle, TxReceipt

__all__ = [
    "Sale",
    "SaleStatus",
    "ZERO_ADDRESS",
    "LifecycleResult",
    "TxHandle",
    "TxReceipt",
]
