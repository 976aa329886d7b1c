"""Conversions between ether decimal strings and integer wei amounts.

Amounts are held as integer base units everywhere inside the core and only
converted to decimal strings when a response is built.
"""

from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from .exceptions import InvalidArgument

ETHER_DECIMALS = 18
MAX_UINT256 = 2**256 - 1
# Enough digits for any uint256 with 18 decimals
_PRECISION = 100


def _format_decimal_string(value: Decimal) -> str:
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        text = format(value.normalize(), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def parse_units(amount: Union[str, int, Decimal], decimals: int, field: str = "amount") -> int:
    """Parse a human decimal amount into integer base units.

    Raises InvalidArgument for negative, non-numeric, or over-precise values,
    and for results that do not fit in a uint256.
    """
    if amount is None or (isinstance(amount, str) and not amount.strip()):
        raise InvalidArgument(f"{field} is required")
    if isinstance(amount, bool):
        raise InvalidArgument(f"{field} must be a decimal number")
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise InvalidArgument(f"{field} must be a decimal number, got {amount!r}")
    if not value.is_finite():
        raise InvalidArgument(f"{field} must be a finite number")
    if value < 0:
        raise InvalidArgument(f"{field} must not be negative")

    with localcontext() as ctx:
        ctx.prec = _PRECISION
        scaled = value.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise InvalidArgument(f"{field} has more than {decimals} decimal places")
        units = int(scaled)
    if units > MAX_UINT256:
        raise InvalidArgument(f"{field} is too large")
    return units


def format_units(value: int, decimals: int) -> str:
    """Format integer base units as a plain decimal string without exponent."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return _format_decimal_string(Decimal(int(value)).scaleb(-decimals))


def parse_ether(amount: Union[str, int, Decimal], field: str = "amount") -> int:
    return parse_units(amount, ETHER_DECIMALS, field)


def format_ether(wei: int) -> str:
    return format_units(wei, ETHER_DECIMALS)


def format_percentage(numerator: int, decimals: int, places: int = 2) -> str:
    """Render ``numerator / decimals`` as a percentage string.

    ``decimals`` is the on-chain percentage scale (the value representing 100%).
    """
    if decimals <= 0:
        raise ValueError("percentage scale must be positive")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        pct = Decimal(int(numerator)) * 100 / Decimal(int(decimals))
        return _format_decimal_string(pct.quantize(Decimal(1).scaleb(-places)))
