"""
Heikin Ashi candles.

Each synthetic candle closes at the average of the real bar's four
prices and opens at the midpoint of the previous synthetic candle.  The
first candle opens at the midpoint of its own real open and close.
"""

from __future__ import annotations

from typing import Tuple
import pandas as pd


def heikin_ashi(bars: pd.DataFrame) -> pd.DataFrame:
    """Convert OHLC bars to Heikin Ashi candles.

    Parameters
    ----------
    bars : pandas.DataFrame
        Bars with ``open``, ``high``, ``low`` and ``close`` columns,
        oldest first.

    Returns
    -------
    pandas.DataFrame
        Same index, columns ``open``, ``high``, ``low``, ``close``.
    """
    ha_close = (bars['open'] + bars['high'] + bars['low'] + bars['close']) / 4.0
    ha_open = [0.0] * len(bars)
    for i in range(len(bars)):
        if i == 0:
            ha_open[i] = (bars['open'].iloc[0] + bars['close'].iloc[0]) / 2.0
        else:
            ha_open[i] = (ha_open[i - 1] + ha_close.iloc[i - 1]) / 2.0
    ha_open_series = pd.Series(ha_open, index=bars.index)
    return pd.DataFrame(
        {
            'open': ha_open_series,
            'high': pd.concat([bars['high'], ha_open_series, ha_close], axis=1).max(axis=1),
            'low': pd.concat([bars['low'], ha_open_series, ha_close], axis=1).min(axis=1),
            'close': ha_close,
        },
        index=bars.index,
    )


def last_candle(bars: pd.DataFrame) -> Tuple[float, float]:
    """Return ``(open, close)`` of the most recent Heikin Ashi candle."""
    if bars.empty:
        raise ValueError("No bars to build a Heikin Ashi candle from")
    candles = heikin_ashi(bars)
    return float(candles['open'].iloc[-1]), float(candles['close'].iloc[-1])
