"""
Exact amount handling for ERC20 token quantities.
All quantities are integers in the token's smallest unit; floats are never used.
"""

import re
from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from tokensale.utils.exceptions import (
    InsufficientSupplyError,
    InvalidDecimalsError,
    InvalidInputError,
)

MAX_DECIMALS = 36


def unit_scale(decimals: int) -> int:
    """Return 10**decimals, the size of one whole token in smallest units"""
    if isinstance(decimals, bool) or not isinstance(decimals, int):
        raise InvalidDecimalsError(f"Decimals must be an integer, got {decimals!r}")
    if decimals < 0 or decimals > MAX_DECIMALS:
        raise InvalidDecimalsError(f"Decimals must be between 0 and {MAX_DECIMALS}, got {decimals}")
    return 10**decimals


def compute_deposit_amount(total_supply: int, decimals: int) -> int:
    """
    Amount to deposit into a sale: half the supply in whole tokens, minus one token.

    Args:
        total_supply: Token total supply in smallest units
        decimals: Token decimal precision

    Returns:
        int: Deposit amount in smallest units

    Raises:
        InvalidInputError: If total_supply is not a non-negative integer
        InvalidDecimalsError: If decimals is out of range
        InsufficientSupplyError: If half the supply is less than one whole token
    """
    if isinstance(total_supply, bool) or not isinstance(total_supply, int):
        raise InvalidInputError(f"Total supply must be an integer, got {total_supply!r}")
    if total_supply < 0:
        raise InvalidInputError(f"Total supply cannot be negative: {total_supply}")

    scale = unit_scale(decimals)
    whole_tokens = total_supply // (2 * scale)
    amount = whole_tokens * scale - scale

    if amount < 0:
        raise InsufficientSupplyError(
            f"Total supply {format_units(total_supply, decimals)} is too small: "
            f"half of it is less than one whole token"
        )
    return amount


def format_units(amount: int, decimals: int) -> str:
    """Render a smallest-unit amount as a human readable decimal string"""
    scale = unit_scale(decimals)
    sign = "-" if amount < 0 else ""
    whole, fraction = divmod(abs(amount), scale)
    if decimals == 0 or fraction == 0:
        return f"{sign}{whole}"
    fraction_str = str(fraction).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{fraction_str}"


def parse_units(value: Union[str, int, Decimal], decimals: int) -> int:
    """
    Convert a human readable amount ("0.01") into smallest units.

    Raises:
        InvalidInputError: If the value is not a non-negative number or has
            more fractional digits than the token supports
    """
    scale = unit_scale(decimals)
    if isinstance(value, bool):
        raise InvalidInputError(f"Invalid amount: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise InvalidInputError(f"Amount cannot be negative: {value}")
        return value * scale

    if isinstance(value, str):
        value = value.strip()
        if not re.match(r"^[0-9]+(\.[0-9]+)?$", value):
            raise InvalidInputError(f"Invalid amount format: {value!r}")

    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInputError(f"Invalid amount: {value!r}")

    if not amount.is_finite() or amount < 0:
        raise InvalidInputError(f"Invalid amount: {value!r}")

    with localcontext() as ctx:
        ctx.prec = len(amount.as_tuple().digits) + MAX_DECIMALS + 2
        scaled = amount * scale
        if scaled != scaled.to_integral_value():
            raise InvalidInputError(f"Amount {value} has more than {decimals} decimal places")
        return int(scaled)
