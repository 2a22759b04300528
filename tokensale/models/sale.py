from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class SaleStatus(Enum):

    NOT_CREATED = "not_created"
    ACTIVE = "active"
    FUNDED = "funded"
    PAUSED = "paused"
    WITHDRAWN = "withdrawn"


@dataclass(frozen=True)
class Sale:
    """Snapshot of one sale slot as returned by the contract's tokens(tokenId) getter"""

    token_id: int
    token: str
    token_price: int
    total_tokens: int
    tokens_sold: int
    sale_end_date: int
    sale_active: bool

    @classmethod
    def from_chain(cls, token_id: int, values: Sequence[Any]) -> "Sale":
        token, token_price, total_tokens, tokens_sold, sale_end_date, sale_active = values
        return cls(
            token_id=token_id,
            token=token,
            token_price=int(token_price),
            total_tokens=int(total_tokens),
            tokens_sold=int(tokens_sold),
            sale_end_date=int(sale_end_date),
            sale_active=bool(sale_active),
        )

    @property
    def exists(self) -> bool:
        return bool(self.token) and int(self.token, 16) != 0

    @property
    def is_funded(self) -> bool:
        return self.total_tokens > 0

    @property
    def remaining_tokens(self) -> int:
        return max(self.total_tokens - self.tokens_sold, 0)

    @property
    def status(self) -> SaleStatus:
        if not self.exists:
            return SaleStatus.NOT_CREATED
        if self.sale_active:
            return SaleStatus.FUNDED if self.is_funded else SaleStatus.ACTIVE
        if self.remaining_tokens > 0:
            return SaleStatus.PAUSED
        return SaleStatus.WITHDRAWN

    def to_dict(self) -> dict:
        return {
            "token_id": self.token_id,
            "token": self.token,
            "token_price": str(self.token_price),
            "total_tokens": str(self.total_tokens),
            "tokens_sold": str(self.tokens_sold),
            "sale_end_date": self.sale_end_date,
            "sale_active": self.sale_active,
            "status": self.status.value,
        }
