"""Shared utility functions for services.

parse_date:          returns None on bad input
parse_date_input:    raises ValueError on bad input
round_half_up:       half-up rounding for reported percentages and hours
"""
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD
    - YYYY-MM-DDTHH:MM:SS (→ .date())
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value, field_name="date"):
    """Parse a date string, raising ValueError on bad input.

    Same as parse_date() but raises instead of returning None, so callers
    can turn the message into a 400 response.
    """
    if not value:
        raise ValueError(f"{field_name} is required")
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"Invalid {field_name}: '{value}'. Use YYYY-MM-DD or DD.MM.YYYY.")
    return parsed


def round_half_up(value, ndigits=0):
    """Round like a spreadsheet does (0.5 → 1), not banker's rounding.

    Returns an int when ndigits is 0.
    """
    if value is None:
        return 0 if ndigits == 0 else 0.0
    quant = Decimal(1).scaleb(-ndigits)
    result = Decimal(str(value)).quantize(quant, rounding=ROUND_HALF_UP)
    return int(result) if ndigits == 0 else float(result)
