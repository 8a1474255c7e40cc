# storefront/domain/money.py
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP

CURRENCY = "BDT"
ZERO = Decimal("0.00")
_CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Quantize an amount to 2 decimal places (half-up)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def floor_money(value: Decimal) -> Decimal:
    # percentage discounts never round up in the customer's favour
    return value.quantize(_CENT, rounding=ROUND_DOWN)


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    return floor_money(amount * Decimal(percent) / Decimal(100))


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(value, high))


def bdt_to_usd_cents(amount_bdt: Decimal, rate: Decimal) -> int:
    usd = Decimal(amount_bdt) * Decimal(rate)
    return int((usd * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_bdt(amount: Decimal) -> str:
    return f"৳{to_money(amount):,}"
