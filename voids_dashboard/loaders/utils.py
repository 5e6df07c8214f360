"""
Shared utilities for record ingestion: numeric coercion, the canonical date
parser and month bucketing.

Every dashboard buckets by the same month key, so tables, charts and the map
agree for a given filter state.
"""

import logging
import math
from typing import Any

import pandas as pd

from ..config import UNKNOWN

logger = logging.getLogger(__name__)


def coerce_number(val: Any) -> float:
    """Coerce a loosely-typed value to float, defaulting to 0.

    Booleans count as 1/0, numeric strings are parsed, and anything else
    (None, blank, non-numeric text, NaN, infinities) becomes 0.
    """
    if val is None:
        return 0.0
    if isinstance(val, bool):
        return 1.0 if val else 0.0
    if isinstance(val, str):
        val = val.strip()
        if not val:
            return 0.0
    try:
        number = float(val)
    except (ValueError, TypeError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


def coerce_text(val: Any, default: str = "") -> str:
    """Return val if it is a non-empty string, else default."""
    if isinstance(val, str) and val:
        return val
    return default


def coerce_coordinate(val: Any) -> float | None:
    """Parse a latitude/longitude value, returning None when unusable."""
    if val is None or isinstance(val, bool):
        return None
    try:
        number = float(str(val).strip()) if isinstance(val, str) else float(val)
    except (ValueError, TypeError):
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_date(val: Any) -> pd.Timestamp | None:
    """Canonical date parser for every record field.

    Accepts ISO strings, datetime/Timestamp objects and Firestore timestamp
    objects exposing ``to_datetime()``. Timezone-aware values are converted
    to UTC and made naive. Returns None for anything unparsable.
    """
    if val is None or isinstance(val, bool):
        return None
    if hasattr(val, "to_datetime") and not isinstance(val, pd.Timestamp):
        val = val.to_datetime()
    if isinstance(val, str):
        val = val.strip()
        if not val:
            return None
    try:
        ts = pd.Timestamp(val)
    except (ValueError, TypeError, OverflowError):
        logger.debug("Could not parse date value: %r", val)
        return None
    if ts is pd.NaT or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts


def month_key(ts: pd.Timestamp | None) -> str:
    """Month bucket "YYYY-MM" for a parsed date, or the Unknown sentinel."""
    if ts is None:
        return UNKNOWN
    return f"{ts.year:04d}-{ts.month:02d}"


def month_label(key: str) -> str:
    """Display label for a month bucket, e.g. "2024-04" -> "Apr 24"."""
    if key == UNKNOWN:
        return UNKNOWN
    period = pd.Period(key, freq="M")
    return period.strftime("%b %y")


def month_range(start: str, months: int) -> list[str]:
    """Consecutive month keys starting at start ("YYYY-MM")."""
    first = pd.Period(start, freq="M")
    return [str(first + offset) for offset in range(months)]


def month_sort_key(key: str) -> pd.Period:
    """Chronological sort key for a month bucket."""
    return pd.Period(key, freq="M")
