"""Display unit vs. raw unit conversion.

Stablecoin amounts are stored on the ledger and in settlement records as
integers of the micro denomination (``microUSDC``, 6 decimals) and shown
to people in the display unit (``USDC``).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MICRO_PREFIX = "micro"
DECIMALS = 6
MICRO_FACTOR = Decimal(10) ** DECIMALS
DISPLAY_PLACES = Decimal("0.0001")


def to_decimal(amount: str | int | float | Decimal) -> Decimal:
    """Parse *amount* into a finite Decimal (floats go through ``str``).

    Raises:
        ValueError: If *amount* is not a number, or is NaN or infinite.
    """
    if isinstance(amount, Decimal):
        value = amount
    else:
        try:
            value = Decimal(str(amount).strip())
        except InvalidOperation as exc:
            msg = f"invalid amount: {amount!r}"
            raise ValueError(msg) from exc
    if not value.is_finite():
        msg = f"invalid amount: {amount!r}"
        raise ValueError(msg)
    return value


def is_micro_unit(unit: str) -> bool:
    """Whether *unit* is a micro denomination (``microUSDC``)."""
    return unit.lower().startswith(MICRO_PREFIX)


def normalize_unit(unit: str) -> str:
    """Strip the ``micro`` prefix and upper-case: ``microUSDC`` -> ``USDC``."""
    unit = unit.strip()
    if is_micro_unit(unit):
        unit = unit[len(MICRO_PREFIX) :]
    return unit.upper()


def to_micro(amount: str | int | float | Decimal) -> int:
    """Display amount to raw micro units, rounded half up."""
    return int((to_decimal(amount) * MICRO_FACTOR).to_integral_value(rounding=ROUND_HALF_UP))


def from_micro(amount: str | int | float | Decimal) -> Decimal:
    """Raw micro units to display amount."""
    return to_decimal(amount) / MICRO_FACTOR


def to_display(amount: str | int | float | Decimal, unit: str) -> tuple[Decimal, str]:
    """Convert ``(amount, unit)`` to the display unit.

    Micro units are divided down; anything else is taken as already in
    display units.
    """
    if is_micro_unit(unit):
        return from_micro(amount), normalize_unit(unit)
    return to_decimal(amount), normalize_unit(unit)


def format_display(amount: str | int | float | Decimal, unit: str = "microUSDC") -> str:
    """Human-readable amount with 4 decimal places: ``"50.0001 USDC"``."""
    value, display_unit = to_display(amount, unit)
    return f"{value.quantize(DISPLAY_PLACES, rounding=ROUND_HALF_UP)} {display_unit}"
