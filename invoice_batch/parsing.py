"""
Value normalization helpers shared by the schemas and the ground truth loader.

Spreadsheets maintained by hand and AI responses both carry amounts and
dates in localized formats; these helpers turn them into plain Python values.
"""

import re
from datetime import date, datetime
from typing import Optional

from dateutil import parser as date_parser

from .config import DATE_FORMATS

# Currency markers stripped before numeric parsing ("R$", "BRL", "$", ...)
_CURRENCY_PATTERN = re.compile(r"(?i)R\$|BRL|US\$|USD|EUR|[\$€£¥]")


def parse_amount(value) -> Optional[float]:
    """
    Parse a monetary amount from a cell value or localized string.

    Handles both:
    - Brazilian/European format: 1.234,56 (period = thousand separator, comma = decimal)
    - US/UK format: 1,234.56 (comma = thousand separator, period = decimal)

    A lone period after a non-zero integer part and before exactly three
    digits (1.500) is read as a thousand separator.

    Returns None when the value does not yield a number.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return float(value)

    value_str = str(value).strip()
    if not value_str:
        return None

    value_str = _CURRENCY_PATTERN.sub("", value_str)
    value_str = re.sub(r"\s", "", value_str)

    if not re.fullmatch(r"-?[\d.,]+", value_str) or not re.search(r"\d", value_str):
        return None

    if "," in value_str:
        comma_pos = value_str.rfind(",")
        period_pos = value_str.rfind(".")

        if period_pos < comma_pos:
            # "1.234,56" -> "1234.56", "257,04" -> "257.04"
            value_str = value_str.replace(".", "")
            value_str = value_str.replace(",", ".")
        else:
            # "1,234.56" -> "1234.56"
            value_str = value_str.replace(",", "")
    elif value_str.count(".") > 1:
        # "1.234.567" only makes sense as thousand separators
        value_str = value_str.replace(".", "")
    elif re.fullmatch(r"-?[1-9]\d{0,2}\.\d{3}", value_str):
        # "1.500" -> "1500"
        value_str = value_str.replace(".", "")

    try:
        return float(value_str)
    except ValueError:
        return None


def parse_date(date_str: str) -> Optional[date]:
    """
    Parse a date string using multiple format patterns.
    """
    date_str = date_str.strip()
    if not date_str:
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(date_str, fmt).date()
        except ValueError:
            continue

    try:
        return date_parser.parse(date_str, dayfirst=True).date()
    except (ValueError, OverflowError):
        return None


def normalize_vendor(name: str) -> str:
    """Lowercase and trim a vendor name for containment matching."""
    return name.strip().lower()
