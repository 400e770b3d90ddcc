from decimal import ROUND_HALF_UP, Decimal

# Money columns are Numeric(12, 2); every amount is brought to cents before it
# is multiplied, summed or stored so returned totals match what is read back.
CENT = Decimal("0.01")


def to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0.00")
    if not isinstance(val, Decimal):
        val = Decimal(str(val))
    return val.quantize(CENT, rounding=ROUND_HALF_UP)
