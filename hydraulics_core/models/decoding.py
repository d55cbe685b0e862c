# =============================================================================
# hydraulics_core/models/decoding.py
# Lenient field readers for remote and journal documents
# =============================================================================
"""
Documents written by older app versions use different field names and
timestamp shapes. These helpers read a field from the first key present and
fall back to a default instead of failing, so one odd record never blocks a
whole collection from loading.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def first_present(doc: Mapping[str, Any], keys: Iterable[str], default: Any = None) -> Any:
    """Return the value of the first key that exists and is not None."""
    for key in keys:
        value = doc.get(key)
        if value is not None:
            return value
    return default


def parse_timestamp(value: Any, default: Optional[datetime] = None) -> Optional[datetime]:
    """
    Convert a stored timestamp to an aware UTC datetime.

    Accepts datetimes, ISO strings, epoch seconds, and Firestore style maps
    ({"seconds": .., "nanoseconds": ..} or {"_seconds": ..}).
    """
    if value is None or value == "":
        return default

    if isinstance(value, Mapping):
        seconds = first_present(value, ("seconds", "_seconds"))
        if seconds is None:
            return default
        nanos = first_present(value, ("nanoseconds", "_nanoseconds"), 0)
        try:
            return datetime.fromtimestamp(float(seconds) + float(nanos) / 1e9, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            return default

    if isinstance(value, bool):
        return default

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return default

    try:
        stamp = pd.to_datetime(value, utc=True)
    except (TypeError, ValueError, OverflowError):
        return default
    if pd.isna(stamp):
        return default
    return stamp.to_pydatetime()


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as an ISO-8601 UTC string."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def as_optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "y")
    return bool(value)


def as_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, Iterable):
        return [str(v) for v in value if v is not None]
    return []


def as_str_dict(value: Any) -> Dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    return {str(k): as_str(v) for k, v in value.items() if v is not None}


def as_bool_dict(value: Any) -> Dict[str, bool]:
    if not isinstance(value, Mapping):
        return {}
    return {str(k): as_bool(v) for k, v in value.items()}


def as_mapping_list(value: Any) -> List[Mapping[str, Any]]:
    if not isinstance(value, (list, tuple)):
        return []
    return [v for v in value if isinstance(v, Mapping)]
