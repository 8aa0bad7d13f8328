from __future__ import annotations

import datetime as dt
from typing import Any, Optional

import numpy as np
import pandas as pd

# Epoch values above this are milliseconds (year 2001 in ms, year ~33658 in s)
_MS_THRESHOLD = 1e12


def _is_blank(val: Any) -> bool:
    """True if value is None/NaN/empty/“nan”/“none” (case-insensitive)."""
    if val is None or val is pd.NaT:
        return True
    if isinstance(val, float) and np.isnan(val):
        return True
    if isinstance(val, str):
        s = val.strip()
        return s == "" or s.lower() in {"nan", "none", "null"}
    return False


def coerce_timestamp(value: Any) -> Optional[dt.datetime]:
    """
    Parse any timestamp shape the order documents have carried over time into
    an aware UTC datetime. Returns None for blank or unparseable input.

    Accepted:
      - datetime / pandas.Timestamp (naive values are taken as UTC)
      - ISO-8601 strings
      - epoch numbers (seconds or milliseconds)
      - Firestore-style maps: {"_seconds", "_nanoseconds"} or {"seconds", "nanoseconds"}

    Any other type (lists, arrays, objects) is treated as unparseable.
    """
    if _is_blank(value) or isinstance(value, bool):
        return None

    if isinstance(value, dict):
        secs = value.get("_seconds", value.get("seconds"))
        if secs is None:
            return None
        nanos = value.get("_nanoseconds", value.get("nanoseconds")) or 0
        try:
            return dt.datetime.fromtimestamp(float(secs) + float(nanos) / 1e9, tz=dt.timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            return None

    # lists, sets and other containers would parse to an index, not a point in time
    if not isinstance(value, (str, int, float, np.integer, np.floating, dt.date, np.datetime64)):
        return None

    try:
        if isinstance(value, (int, float, np.integer, np.floating)):
            unit = "ms" if abs(float(value)) >= _MS_THRESHOLD else "s"
            ts = pd.to_datetime(value, unit=unit, utc=True)
        else:
            ts = pd.to_datetime(value, utc=True)
    except (TypeError, ValueError, OverflowError):
        return None

    if ts is pd.NaT or pd.isna(ts):
        return None
    return ts.to_pydatetime()


def minutes_between(start: Any, end: Any) -> Optional[float]:
    """Minutes from start to end, or None when either side is missing."""
    a = coerce_timestamp(start)
    b = coerce_timestamp(end)
    if a is None or b is None:
        return None
    return (b - a).total_seconds() / 60.0
