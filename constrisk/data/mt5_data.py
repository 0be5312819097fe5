"""
MetaTrader 5 data feed.

This module wraps the `MetaTrader5` Python package to read the latest
ticks and recent bars of the configured instruments.  If the package is
not installed or initialisation fails, the code raises a clear
exception.  The paper host uses the feed as its price source and the
live host builds on it for order management.
"""

from __future__ import annotations

import logging
from typing import Any
import pandas as pd

from ..config.schema import MT5Config
from ..execution.host import PriceSource
from ..execution.models import Account, Tick
from ..utils.timeutils import to_timezone
from .instruments import Instrument

# Attempt to import MetaTrader5.  If unavailable, mt5 will be None.
try:
    import MetaTrader5 as mt5  # type: ignore
except ImportError:
    mt5 = None  # Will be checked at runtime


logger = logging.getLogger(__name__)


def mt5_api() -> Any:
    """Return the MetaTrader5 module or fail with an installation hint."""
    if mt5 is None:
        raise RuntimeError(
            "MetaTrader5 package is not installed.  Install it with 'pip install MetaTrader5' to use paper or live trading."
        )
    return mt5


class MT5DataFeed(PriceSource):
    """Handle connection to MetaTrader 5 and retrieval of prices."""

    def __init__(self, config: MT5Config, timezone: str = "UTC") -> None:
        self.config = config
        self.timezone = timezone
        self._connected = False

    def connect(self) -> None:
        """Initialise the MetaTrader 5 terminal.

        Raises
        ------
        RuntimeError
            If the MetaTrader5 package is not installed or initialisation fails.
        """
        api = mt5_api()
        if not api.initialize(path=self.config.path, login=self.config.login, password=self.config.password, server=self.config.server):
            raise RuntimeError(f"MT5 initialisation failed: {api.last_error()}")
        self._connected = True
        logger.info("Connected to MetaTrader 5 server %s", self.config.server)

    def shutdown(self) -> None:
        """Shutdown the MT5 connection if it was opened."""
        if mt5 and self._connected:
            mt5.shutdown()
            self._connected = False

    def symbol(self, instrument: Instrument) -> str:
        return f"{instrument.symbol}{self.config.symbol_suffix}"

    def _get_mt5_timeframe(self, period: str) -> int:
        """Map a period string to the MetaTrader5 timeframe constant."""
        api = mt5_api()
        timeframe_map = {
            'M1': api.TIMEFRAME_M1,
            'M5': api.TIMEFRAME_M5,
            'M15': api.TIMEFRAME_M15,
            'M30': api.TIMEFRAME_M30,
            'H1': api.TIMEFRAME_H1,
            'H4': api.TIMEFRAME_H4,
            'D1': api.TIMEFRAME_D1,
        }
        tf = timeframe_map.get(period.upper())
        if tf is None:
            raise ValueError(f"Unsupported timeframe for MT5: {period}")
        return tf

    def _require_connection(self) -> None:
        if not self._connected:
            raise RuntimeError("MT5DataFeed is not connected.  Call connect() before requesting data.")

    def get_account(self) -> Account:
        self._require_connection()
        info = mt5_api().account_info()
        if info is None:
            raise RuntimeError(f"MT5 account_info failed: {mt5_api().last_error()}")
        return Account(currency=str(info.currency).upper())

    def get_latest_tick(self, instrument: Instrument) -> Tick:
        self._require_connection()
        tick = mt5_api().symbol_info_tick(self.symbol(instrument))
        if tick is None:
            raise RuntimeError(f"No tick available for {instrument}")
        return Tick(
            bid=float(tick.bid),
            ask=float(tick.ask),
            time=to_timezone(pd.Timestamp(tick.time, unit='s'), self.timezone),
        )

    def get_bars(self, instrument: Instrument, period: str, count: int, side: str = 'bid') -> pd.DataFrame:
        """Retrieve the last `count` completed bars.

        MT5 rates are bid prices; ask bars add the recorded spread.
        Position 0 is the bar still forming, so reading starts at 1.

        Returns
        -------
        pandas.DataFrame
            DataFrame with columns ``open``, ``high``, ``low``, ``close`` and
            index of timezone-aware ``Timestamp``.
        """
        self._require_connection()
        symbol = self.symbol(instrument)
        rates = mt5_api().copy_rates_from_pos(symbol, self._get_mt5_timeframe(period), 1, count)
        if rates is None or len(rates) == 0:
            return pd.DataFrame(columns=['open', 'high', 'low', 'close'])
        df = pd.DataFrame(rates)
        df['time'] = pd.to_datetime(df['time'], unit='s', utc=True)
        df = df.set_index('time').sort_index()
        df.index = df.index.tz_convert(self.timezone)
        if side == 'ask':
            info = mt5_api().symbol_info(symbol)
            spread = df['spread'] * info.point
            for column in ('open', 'high', 'low', 'close'):
                df[column] = df[column] + spread
        return df[['open', 'high', 'low', 'close']]
