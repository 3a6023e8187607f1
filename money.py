from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

ONE_DECIMAL = Decimal("0.1")


def to_cents(value: Union[Decimal, str, int, float]) -> int:
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents < 0:
        raise ValueError("Amount must be positive")
    return cents


def cents_to_units(cents: int) -> float:
    return cents / 100


def percentage(part_cents: int, whole_cents: int) -> str:
    """Share of ``whole_cents`` as a one-decimal string; "0.0" for an empty whole."""
    if whole_cents <= 0:
        return "0.0"
    share = Decimal(part_cents) * 100 / Decimal(whole_cents)
    return str(share.quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP))
