"""
Polling runner.

Neither the paper host nor MetaTrader 5 calls back into the strategy,
so the runner does it: it polls the host, turns newly completed bars
into `on_bar()` calls and drains the host's message queue into
`on_message()`, strictly one callback at a time.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional
import pandas as pd

from ..config.schema import RunnerConfig
from ..strategy.lifecycle import RunState
from ..strategy.runtime import StrategyRuntime
from .host import TradingHost


logger = logging.getLogger(__name__)


class StrategyRunner:
    """Drive a `StrategyRuntime` from a polling loop."""

    def __init__(
        self,
        runtime: StrategyRuntime,
        host: TradingHost,
        config: RunnerConfig,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.runtime = runtime
        self.host = host
        self.config = config
        self.sleep = sleep
        self.last_bar_times: Dict[str, Optional[pd.Timestamp]] = {}

    def _dispatch_messages(self) -> None:
        for message in self.host.poll_messages():
            self.runtime.on_message(message)

    def _dispatch_bars(self) -> None:
        instrument = self.runtime.instrument
        for period in sorted(self.runtime.periods):
            bid_bars = self.host.get_bars(instrument, period, 1, side='bid')
            if bid_bars.empty:
                continue
            ts = bid_bars.index[-1]
            last = self.last_bar_times.get(period)
            self.last_bar_times[period] = ts
            # bars completed before the run started are not replayed
            if last is None or ts <= last:
                continue
            ask_bars = self.host.get_bars(instrument, period, 1, side='ask')
            ask_bar = ask_bars.iloc[-1] if not ask_bars.empty else bid_bars.iloc[-1]
            self.runtime.on_bar(instrument, period, ask_bar, bid_bars.iloc[-1])

    def run(self, max_cycles: Optional[int] = None) -> Optional[RunState]:
        """Start the run, poll until it is flat or interrupted, then stop it.

        Returns the final run state, or ``None`` if the run never started.
        """
        state = self.runtime.on_start()
        self._dispatch_messages()
        if not self.runtime.active:
            logger.warning("Strategy is idle, nothing was submitted")
            return self.runtime.on_stop()

        cycles = 0
        try:
            while True:
                self.host.refresh()
                self._dispatch_messages()
                self._dispatch_bars()
                self._dispatch_messages()
                if self.config.stop_when_flat and not state.any_open:
                    logger.info("All orders closed, stopping")
                    break
                cycles += 1
                if max_cycles is not None and cycles >= max_cycles:
                    break
                self.sleep(self.config.poll_seconds)
        except KeyboardInterrupt:
            logger.info("Shutting down runner...")
        return self.runtime.on_stop()
