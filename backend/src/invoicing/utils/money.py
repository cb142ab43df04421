"""Money rounding, coercion and formatting helpers.

Every stored or compared money value goes through ``round_two_decimals`` so
that line amounts, invoice totals, balances and remaining-balance checks
never accumulate floating point drift.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from invoicing.config import settings
from invoicing.exceptions import AmountOutOfRangeError

CENT = Decimal("0.01")
ZERO = Decimal("0")

# Column limits: Numeric(12, 2) money, Numeric(5, 2) percentages, Integer quantities
MAX_AMOUNT = Decimal("9999999999.99")
MAX_PERCENT = Decimal("999.99")
MAX_QTY = Decimal("2147483647")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """
    Coerce a loosely typed numeric input to Decimal.

    Floats are converted through their shortest string form, so ``0.1``
    becomes ``Decimal("0.1")`` rather than its binary expansion.

    Args:
        value: Number, numeric string, Decimal or None
        default: Returned when the value is missing, non-numeric or not finite

    Returns:
        Decimal value

    Example:
        >>> to_decimal("12.5")
        Decimal('12.5')
        >>> to_decimal("abc", Decimal("1"))
        Decimal('1')
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return default
    if not result.is_finite():
        return default
    return result


def round_two_decimals(value: Any) -> Decimal:
    """
    Round a money value to 2 decimal places, half-up on cents.

    Args:
        value: Amount to round

    Returns:
        Amount quantized to cents

    Example:
        >>> round_two_decimals(2.675)
        Decimal('2.68')
        >>> round_two_decimals(Decimal("235.999"))
        Decimal('236.00')

    Raises:
        AmountOutOfRangeError: Value has too many digits to hold cents
    """
    try:
        return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise AmountOutOfRangeError(f"Amount is out of range (maximum {MAX_AMOUNT})") from None


def check_range(value: Any, limit: Decimal = MAX_AMOUNT, label: str = "Amount") -> Decimal:
    """
    Coerce a loose number and reject magnitudes above ``limit``.

    Raises:
        AmountOutOfRangeError: ``abs(value)`` exceeds ``limit``
    """
    number = to_decimal(value)
    # copy_abs ignores the context, so exponents past Emax cannot overflow here
    if number.copy_abs() > limit:
        raise AmountOutOfRangeError(f"{label} is out of range (maximum {limit})")
    return number


def sum_amounts(amounts: Any) -> Decimal:
    """Sum money values and round the result."""
    return round_two_decimals(sum((to_decimal(a) for a in amounts), ZERO))


def format_money(amount: Any, symbol: str | None = None) -> str:
    """
    Format an amount for user-facing messages.

    Example:
        >>> format_money(Decimal("236"), "₹")
        '₹236.00'
    """
    symbol = settings.currency_symbol if symbol is None else symbol
    return f"{symbol}{round_two_decimals(amount):.2f}"


@dataclass(frozen=True)
class RoundOff:
    """Outcome of applying round-off to a payment."""

    amount: Decimal
    round_off: Decimal
    applied: bool


def calculate_round_off(
    payment_amount: Any,
    remaining_balance: Any,
    threshold: Any = None,
) -> RoundOff:
    """
    Absorb a small overpayment made in whole currency units.

    When a payer hands over a whole number that exceeds the remaining balance
    by no more than ``threshold``, the payment is recorded at the remaining
    balance and the difference is kept as round-off. Any other payment is
    returned unchanged.

    Args:
        payment_amount: Amount the payer handed over
        remaining_balance: Balance still due on the invoice
        threshold: Largest absorbable difference (defaults to settings)

    Returns:
        RoundOff with the amount to record and the absorbed difference

    Example:
        >>> calculate_round_off(237, Decimal("236.40"), Decimal("1"))
        RoundOff(amount=Decimal('236.40'), round_off=Decimal('0.60'), applied=True)
    """
    threshold = round_two_decimals(settings.round_off_threshold if threshold is None else threshold)
    payment = round_two_decimals(payment_amount)
    balance = round_two_decimals(remaining_balance)

    if threshold <= ZERO or balance <= ZERO or payment != payment.to_integral_value():
        return RoundOff(amount=payment, round_off=ZERO, applied=False)

    difference = round_two_decimals(payment - balance)
    if ZERO < difference <= threshold:
        return RoundOff(amount=balance, round_off=difference, applied=True)

    return RoundOff(amount=payment, round_off=ZERO, applied=False)
