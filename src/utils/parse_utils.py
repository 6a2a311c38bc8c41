# src/utils/parse_utils.py
import re
from datetime import date, datetime
from typing import Iterable, Optional

DEFAULT_CURRENCY_SYMBOLS = "$€£¥₹"

# Day-before-month first. Month-first formats are never tried.
DEFAULT_DATE_FORMATS = ("%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y", "%Y-%m-%d")

_ACCOUNTING_NEGATIVE = re.compile(r"^\((.*)\)$")
_NUMERIC = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")


def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:  # NaN
        return True
    return isinstance(value, str) and not value.strip()


def parse_currency(value, symbols: str = DEFAULT_CURRENCY_SYMBOLS) -> float:
    """
    Convert a formatted money amount ("$1,200.50", "(15.00)", "€ 80") to float.
    Raises ValueError when nothing numeric is left after stripping.
    """
    if isinstance(value, bool):
        raise ValueError(f"not a currency amount: {value!r}")
    if isinstance(value, (int, float)) and not _is_blank(value):
        return float(value)
    if _is_blank(value):
        raise ValueError("empty currency amount")

    text = str(value).strip()
    negative = False

    m = _ACCOUNTING_NEGATIVE.match(text)
    if m:
        negative = True
        text = m.group(1).strip()

    for sym in symbols:
        text = text.replace(sym, "")
    text = text.replace(",", "").replace(" ", "").replace("\u00a0", "")

    if text.startswith("-"):
        negative = not negative
        text = text[1:]

    if not _NUMERIC.match(text):
        raise ValueError(f"unparseable currency amount: {value!r}")

    amount = float(text)
    return -amount if negative else amount


def parse_decimal(value) -> float:
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    if isinstance(value, (int, float)) and not _is_blank(value):
        return float(value)
    if _is_blank(value):
        raise ValueError("empty numeric value")

    text = str(value).strip().replace(",", "")
    if not _NUMERIC.match(text):
        raise ValueError(f"unparseable number: {value!r}")
    return float(text)


def parse_int(value) -> int:
    """Accepts "1,024" and "12.0"; rejects "12.5"."""
    number = parse_decimal(value)
    if not number.is_integer():
        raise ValueError(f"expected a whole number, got {value!r}")
    return int(number)


def parse_date(value, formats: Optional[Iterable[str]] = None) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if _is_blank(value):
        raise ValueError("empty date")

    text = str(value).strip()
    for fmt in (formats or DEFAULT_DATE_FORMATS):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"unparseable date: {value!r}")


def month_bucket(d: date) -> str:
    """Truncate a date to its calendar month, rendered YYYY-MM."""
    return f"{d.year:04d}-{d.month:02d}"
