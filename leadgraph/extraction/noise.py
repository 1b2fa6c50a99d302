"""
Record noise scrubbing.

Database bookkeeping columns and id-like numbers produce spurious
"identifiers" when a record is re-scanned for leads. scrub_record() removes
them before extraction; record_text() gives the compact JSON form used for
substring filtering.
"""

import json
import re
from typing import Any, Dict, Mapping

SKIP_COLUMNS = frozenset({
    "global_id", "s_indx", "is_deleted", "updated_at", "created_at",
    "deleted_at", "id", "_id", "uuid", "timestamp", "version", "rowid", "pk",
})

MAX_PLAUSIBLE_NUMBER = 9_999_999_999

_SCIENTIFIC_RE = re.compile(r"e\+?\d+$", re.IGNORECASE)
_LONG_DIGITS_RE = re.compile(r"^\d{15,}$")
_NEGATIVE_INT_RE = re.compile(r"^-\d+$")


def is_noise_column(key: str) -> bool:
    k = key.lower()
    return k in SKIP_COLUMNS or k.endswith("_id") or k.startswith("_")


def is_noise_value(value: Any) -> bool:
    """True for numbers and strings that look like database ids or floats."""
    # bool is an int subclass; flags are kept
    if isinstance(value, bool):
        return False

    if isinstance(value, (int, float)):
        if abs(value) > MAX_PLAUSIBLE_NUMBER:
            return True
        if value < 0:
            return True
        if isinstance(value, float) and not value.is_integer():
            return True
        return False

    if isinstance(value, str):
        stripped = value.strip()
        if _SCIENTIFIC_RE.search(value):
            return True
        if _LONG_DIGITS_RE.match(stripped):
            return True
        if _NEGATIVE_INT_RE.match(stripped):
            return True

    return False


def scrub_record(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy of record without noise columns and noise values."""
    return {
        key: value
        for key, value in record.items()
        if not is_noise_column(str(key)) and not is_noise_value(value)
    }


def record_text(record: Mapping[str, Any]) -> str:
    """Compact JSON serialization of a record (non-JSON values stringified)."""
    return json.dumps(record, ensure_ascii=False, default=str)


__all__ = [
    "SKIP_COLUMNS",
    "is_noise_column",
    "is_noise_value",
    "scrub_record",
    "record_text",
]
