"""
Timestamp helpers.

All timestamps inside the core are timezone-aware `pandas.Timestamp`
objects in UTC.  Naive inputs coming from recorded data are localised
to the configured timezone before conversion.
"""

from __future__ import annotations

from typing import Optional

import pandas as pd


def utc_now() -> pd.Timestamp:
    """Current time as a UTC `pandas.Timestamp`."""
    return pd.Timestamp.now(tz="UTC")


def to_timezone(ts: pd.Timestamp, tz_name: str) -> pd.Timestamp:
    """Convert a `pandas.Timestamp` to the specified timezone.

    If the timestamp is naive, it is assumed to be in UTC before
    conversion.  If it already has a timezone, it will be converted.
    """
    if not isinstance(ts, pd.Timestamp):
        ts = pd.Timestamp(ts)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.tz_convert(tz_name)


def localize_index(index: pd.DatetimeIndex, tz_name: str) -> pd.DatetimeIndex:
    """Attach `tz_name` to a naive index (or convert an aware one) and return it in UTC."""
    if index.tz is None:
        index = index.tz_localize(tz_name)
    return index.tz_convert("UTC")


def record_date(ts: pd.Timestamp) -> str:
    """``YYYY-MM-DD`` of a timestamp, as written to the trade log."""
    return to_timezone(ts, "UTC").strftime("%Y-%m-%d")


class ReplayClock:
    """Clock that reports the timestamp of the event being replayed.

    Call it like `utc_now`; `advance()` moves it to the next recorded
    time.  Before the first event it falls back to wall-clock time.
    """

    def __init__(self) -> None:
        self.now: Optional[pd.Timestamp] = None

    def advance(self, ts: pd.Timestamp) -> None:
        self.now = to_timezone(ts, "UTC")

    def __call__(self) -> pd.Timestamp:
        return self.now if self.now is not None else utc_now()
