"""Price parsing and rounding shared by booking and completion."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .errors import InvalidPriceError, ValidationError

CENT = Decimal("0.01")
# Upper bound for any stored price; keeps cents well inside a 64-bit column.
MAX_PRICE = Decimal("1000000.00")


def quantize(amount: Decimal) -> Decimal:
    """Round a currency amount half-up to 2 decimal places."""
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValidationError(f"amount out of range: {amount}") from exc


def _to_decimal(value: object) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None


def parse_price(value: object) -> Decimal:
    """Parse a booking/catalog price: any finite number between 0 and MAX_PRICE."""
    amount = _to_decimal(value)
    if amount is None or not amount.is_finite():
        raise ValidationError(f"price must be a number, got {value!r}")
    if amount < 0:
        raise ValidationError("price must be >= 0")
    if amount > MAX_PRICE:
        raise ValidationError(f"price must be <= {MAX_PRICE}")
    return quantize(amount)


def resolve_final_price(original_price: Decimal | int | float, user_entered: object = None) -> Decimal:
    """Return the price charged at completion.

    A blank or missing ``user_entered`` keeps ``original_price`` unchanged.
    Anything else must parse to a finite decimal greater than zero and no
    larger than ``MAX_PRICE``, and is rounded to cents.
    """
    if user_entered is None or (isinstance(user_entered, str) and not user_entered.strip()):
        return original_price if isinstance(original_price, Decimal) else Decimal(str(original_price))

    amount = _to_decimal(user_entered)
    if amount is None or not amount.is_finite():
        raise InvalidPriceError(f"final price is not a number: {user_entered!r}")
    if amount <= 0:
        raise InvalidPriceError("final price must be greater than zero")
    if amount > MAX_PRICE:
        raise InvalidPriceError(f"final price must be <= {MAX_PRICE}")
    return quantize(amount)


def to_cents(amount: Decimal) -> int:
    return int(quantize(amount) * 100)


def from_cents(cents: int | None) -> Decimal:
    return (Decimal(cents or 0) / 100).quantize(CENT)
