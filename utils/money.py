from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal("0")
    # str() keeps floats like 0.2 from turning into 0.2000000000000000111
    return Decimal(str(value))


def money(value) -> Decimal:
    """Round a currency amount to two decimal places, half up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
