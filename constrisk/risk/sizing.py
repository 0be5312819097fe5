"""
Constant currency risk position sizing.

The sizer answers one question: which amount makes a stop-loss hit
cost exactly the configured currency risk?  It reads the latest tick of
the traded pair (and of the conversion pair when the account currency
differs), converts one pip into account currency and divides.

Nothing is rounded here.  An amount above the safety limit is reported
and replaced by zero, never clamped to the limit.
"""

from __future__ import annotations

import logging

from ..data.instruments import Instrument
from ..execution.host import PriceSource
from ..execution.models import Direction
from .conversion import resolve_account_pip_rate


logger = logging.getLogger(__name__)


class PositionSizer:
    """Compute order amounts for a fixed currency risk.

    Parameters
    ----------
    prices : PriceSource
        Source of the latest ticks.
    account_currency : str
        Settlement currency of the account.
    max_position_size : float
        Safety limit in millions of units; larger results become zero.
    """

    def __init__(self, prices: PriceSource, account_currency: str, max_position_size: float = 0.05) -> None:
        self.prices = prices
        self.account_currency = account_currency
        self.max_position_size = max_position_size

    def account_currency_per_pip(self, instrument: Instrument, direction: Direction) -> float:
        """Account currency earned or lost per pip on 100 000 units."""
        reference = self.prices.get_latest_tick(instrument).price_for(direction)
        per_pip = instrument.pip_value / reference * 100000
        if instrument.primary != self.account_currency:
            per_pip /= resolve_account_pip_rate(instrument, self.account_currency, direction, self.prices)
        return per_pip

    def size_position(
        self,
        instrument: Instrument,
        stop_loss_pips: float,
        currency_risk: float,
        direction: Direction,
    ) -> float:
        """Return the amount risking `currency_risk` over `stop_loss_pips`.

        `stop_loss_pips` must be positive; callers check it.  Raises
        `InstrumentNotFoundError` when the account conversion cannot be
        resolved.
        """
        per_pip = self.account_currency_per_pip(instrument, direction)
        units = currency_risk / stop_loss_pips * 100000 / per_pip
        lots = units / 1000000

        if lots > self.max_position_size:
            logger.error(
                "Position size exceeds safety check, max position size is %s lots. "
                "But current position size is %s lots.",
                self.max_position_size,
                lots,
            )
            return 0.0
        logger.debug(
            "Sized %s %s: risk=%s sl_pips=%s per_pip=%.5f lots=%.6f",
            direction.value, instrument, currency_risk, stop_loss_pips, per_pip, lots,
        )
        return lots
