"""Decimal parsing and quantization for money and stock quantities."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

MONEY_QUANT = Decimal('0.01')
QUANTITY_QUANT = Decimal('0.001')


def to_decimal(value, field: str = 'valor') -> Decimal:
    """
    Convert user or DB input to Decimal without going through float.

    Accepts Decimal, int, str and float (floats are converted via str()).
    A comma decimal separator is accepted (e.g. "0,5").

    Raises:
        ValueError: if the value is empty or not a finite number.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError(f'{field} es requerido')

    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip().replace(',', '.'))
        except (InvalidOperation, ValueError):
            raise ValueError(f'{field} inválido: {value!r}')

    if not result.is_finite():
        raise ValueError(f'{field} inválido: {value!r}')
    return result


def to_money(value, field: str = 'monto') -> Decimal:
    """Parse and round to currency minor units (2 decimals, half-up)."""
    return to_decimal(value, field).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def to_quantity(value, field: str = 'cantidad') -> Decimal:
    """Parse a stock quantity (3 decimals, matching the Numeric columns)."""
    return to_decimal(value, field).quantize(QUANTITY_QUANT, rounding=ROUND_HALF_UP)


def is_integral(value: Decimal) -> bool:
    """True when the quantity has no fractional part (0.000 counts as integral)."""
    return value == value.to_integral_value()


def within_tolerance(a: Decimal, b: Decimal, tolerance: Decimal = MONEY_QUANT) -> bool:
    """Compare two money amounts within a rounding tolerance."""
    return abs(Decimal(a) - Decimal(b)) <= Decimal(tolerance)
