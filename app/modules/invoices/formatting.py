"""
Helpers that turn stored invoice values into printable text.
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from zoneinfo import ZoneInfo

from app.core.config import settings

THREE_PLACES = Decimal("0.001")
# Largest value a Numeric(15, 3) column holds
MAX_AMOUNT = Decimal("999999999999.999")


def _to_decimal(value):
    if value is None or isinstance(value, bool):
        return None
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def round_amount(value) -> Decimal:
    """Round to millimes, half-up."""
    number = _to_decimal(value)
    if number is None:
        return Decimal("0.000")
    return number.quantize(THREE_PLACES, rounding=ROUND_HALF_UP)


def format_currency(value, suffix: str = None) -> str:
    """1234.5 -> '1234,500 TND'. Invalid or missing amounts print as zero."""
    suffix = settings.CURRENCY_SUFFIX if suffix is None else suffix
    amount = round_amount(value)
    if amount == 0:
        amount = abs(amount)
    return f"{amount:f}".replace(".", ",") + f" {suffix}"


def format_quantity(value) -> str:
    number = _to_decimal(value)
    if number is None or number == 0:
        return "0"
    text = f"{number.normalize():f}"
    return text


def format_date(value, tz_name: str = None) -> str:
    """dd/mm/yyyy in the issuer's time zone; naive datetimes are UTC."""
    if value is None:
        return ""
    if not isinstance(value, datetime):
        # plain date
        return value.strftime("%d/%m/%Y")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    tz = ZoneInfo(tz_name or settings.ISSUER_TIMEZONE)
    return value.astimezone(tz).strftime("%d/%m/%Y")


def text_or_empty(value) -> str:
    if value is None:
        return ""
    return str(value)
