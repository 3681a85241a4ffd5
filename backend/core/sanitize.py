"""Cell and identifier sanitization.

Column names are reduced to ``[A-Za-z0-9_]`` (max 64 chars) before they are
compared with the template or used in SQL. Cell values are coerced per the
declared column type: numbers to ``float`` or ``None``, dates to ``date`` or
``None``, everything else to a trimmed, length-bounded string.
"""

import re
from datetime import date, datetime
from typing import Any, Optional

from openpyxl.utils.datetime import from_excel

from backend.core.models import ColumnType

MAX_IDENTIFIER_LENGTH = 64
WILDCARD_TOKENS = frozenset({"optional", "none"})

_IDENTIFIER_STRIP = re.compile(r"[^A-Za-z0-9_]")
_NUMBER_PREFIX = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def sanitize_column_name(value: Any) -> str:
    """Strip everything outside [A-Za-z0-9_] and cap at 64 chars."""
    if value is None:
        return ""
    return _IDENTIFIER_STRIP.sub("", str(value))[:MAX_IDENTIFIER_LENGTH]


def sanitize_string(value: Any, max_length: int) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        text = value.isoformat(sep=" ")
    elif isinstance(value, float) and value.is_integer():
        text = str(int(value))
    else:
        text = str(value)
    return text.strip()[:max_length]


def sanitize_number(value: Any) -> Optional[float]:
    """Parse a leading numeric prefix ("30", "30.5kg", " -2e3") into a float."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _NUMBER_PREFIX.match(str(value).strip())
    if not match:
        return None
    return float(match.group(0))


def sanitize_date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        # Excel serial date
        try:
            converted = from_excel(value)
        except (ValueError, OverflowError):
            return None
        return converted.date() if isinstance(converted, datetime) else None
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in ("%d/%m/%Y", "%m/%d/%Y", "%d-%m-%Y", "%Y/%m/%d"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def sanitize_cell(value: Any, column_type: ColumnType, max_length: int) -> Any:
    """Coerce a raw cell value according to its declared column type."""
    if value is None:
        return None
    if column_type.is_numeric:
        return sanitize_number(value)
    if column_type == ColumnType.DATE:
        return sanitize_date(value)
    return sanitize_string(value, max_length)


def normalize_for_lookup(value: Any) -> str:
    """Normalize a sanitized value for allowed-value comparison."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    elif isinstance(value, date):
        value = value.isoformat()
    return str(value).strip().lower()


def is_wildcard_token(value: str) -> bool:
    return value in WILDCARD_TOKENS
