"""
Bar period and timezone utilities.

This module centralises the bar periods the tools understand and the
timezone handling of broker timestamps.  Periods are named the way
MetaTrader names its timeframes.
"""

from __future__ import annotations

from typing import Tuple
import pandas as pd


PERIODS: Tuple[str, ...] = ('M1', 'M5', 'M15', 'M30', 'H1', 'H4', 'D1')


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
