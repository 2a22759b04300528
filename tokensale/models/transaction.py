from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from .sale import Sale


@dataclass(frozen=True)
class TxHandle:
    """A broadcast transaction that has not necessarily been mined"""

    tx_hash: str
    description: str
    nonce: Optional[int] = None


@dataclass(frozen=True)
class TxReceipt:

    tx_hash: str
    block_number: int
    block_hash: str
    status: int
    gas_used: int = 0
    contract_address: Optional[str] = None
    confirmations: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    def with_confirmations(self, confirmations: int) -> "TxReceipt":
        return replace(self, confirmations=confirmations)


@dataclass
class LifecycleResult:
    """Outcome of one orchestrated lifecycle operation"""

    operation: str
    token_id: Optional[int] = None
    receipts: Dict[str, TxReceipt] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    deposit_amount: Optional[int] = None
    sale: Optional[Sale] = None
    contract_address: Optional[str] = None
    withdrawn_amount: Optional[int] = None
    completed_steps: List[str] = field(default_factory=list)

    def record(self, step: str, receipt: Optional[TxReceipt] = None):
        """Mark a step done, either confirmed with a receipt or skipped"""
        if receipt is None:
            self.skipped.append(step)
        else:
            self.receipts[step] = receipt
        self.completed_steps.append(step)

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "token_id": self.token_id,
            "transactions": {step: r.tx_hash for step, r in self.receipts.items()},
            "skipped": list(self.skipped),
            "deposit_amount": str(self.deposit_amount) if self.deposit_amount is not None else None,
            "withdrawn_amount": str(self.withdrawn_amount) if self.withdrawn_amount is not None else None,
            "contract_address": self.contract_address,
            "sale": self.sale.to_dict() if self.sale else None,
        }
