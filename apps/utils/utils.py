from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def money(value) -> Decimal:
    """
    Coerce to a 2-decimal currency amount.
    """
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


