from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal('0.01')
HUNDRED = Decimal('100')


def to_money(value):
    """Coerce ints, floats, strings and Decimals to a two-place Decimal."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def percentage_of(amount, percent):
    if percent < 0 or percent > HUNDRED:
        raise ValueError(f"Percent must be between 0 and 100, got {percent}")
    return to_money(to_money(amount) * Decimal(str(percent)) / HUNDRED)
