"""
Order submission.

Turns a side, a currency risk and stop-loss/take-profit inputs into an
order request.  Stop-loss and take-profit may be given as pip distances
or as absolute prices; both are normalised to absolute prices measured
from the current tick (market orders) or from the stop entry price
(pending orders) before the request goes out.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional, Union

from ..config.schema import ConfigurationError
from ..data.instruments import Instrument
from ..execution.host import TradingHost
from ..execution.models import Order, OrderCommand, OrderLabel
from ..risk.sizing import PositionSizer


logger = logging.getLogger(__name__)

SLIPPAGE_PIPS = 5.0


@dataclass(frozen=True)
class Pips:
    """Distance from the entry reference, in pips."""
    value: float


@dataclass(frozen=True)
class Price:
    """Absolute price level."""
    value: float


@dataclass(frozen=True)
class RewardRatio:
    """Take-profit distance as a multiple of the stop-loss distance."""
    value: float


StopLossSpec = Union[Pips, Price]
TakeProfitSpec = Optional[Union[Pips, Price, RewardRatio]]


def pips_between(price: float, reference: float, instrument: Instrument) -> float:
    """Absolute distance between two prices, in pips."""
    return abs(price - reference) * 10 ** instrument.pip_scale


def take_profit_pips(stop_loss_pips: float, reward_risk_ratio: float) -> float:
    """Scale a stop-loss distance by the reward:risk ratio.

    Brokers accept distances in steps of 0.1 pip, so a scaled result is
    rounded half-up to one decimal.
    """
    if reward_risk_ratio == 1:
        return stop_loss_pips
    scaled = stop_loss_pips * reward_risk_ratio
    return float(Decimal(scaled).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP))


class LabelGenerator:
    """Produce run-unique labels of the form ``<COMMAND><TAG><millis>``."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self.clock = clock
        self._last_millis = 0

    def next(self, command: OrderCommand, slot_tag: str = "") -> OrderLabel:
        millis = int(self.clock() * 1000)
        if millis <= self._last_millis:
            millis = self._last_millis + 1
        self._last_millis = millis
        return OrderLabel(f"{command.value}{slot_tag}{millis}")


class OrderSubmitter:
    """Size and place orders through a host.

    Parameters
    ----------
    host : TradingHost
        Platform receiving the requests.
    sizer : PositionSizer
        Computes the amount for the configured risk.
    labels : LabelGenerator
        Source of correlation labels, shared by every order of a run.
    slippage_pips : float
        Slippage tolerance attached to each request.
    """

    def __init__(
        self,
        host: TradingHost,
        sizer: PositionSizer,
        labels: LabelGenerator,
        slippage_pips: float = SLIPPAGE_PIPS,
    ) -> None:
        self.host = host
        self.sizer = sizer
        self.labels = labels
        self.slippage_pips = slippage_pips

    def submit(
        self,
        instrument: Instrument,
        command: OrderCommand,
        currency_risk: float,
        stop_loss: StopLossSpec,
        take_profit: TakeProfitSpec = None,
        entry_price: float = 0.0,
        slot_tag: str = "",
    ) -> Order:
        """Compute prices and amount, then request the order.

        Returns the host's order object.  A zero amount (safety check
        tripped) is still submitted; the host decides what to do with it.

        Raises
        ------
        ConfigurationError
            If the stop-loss distance is not positive or a pending order
            has no entry price.
        InstrumentNotFoundError
            If the account conversion pair cannot be resolved.
        """
        direction = command.direction
        sign = 1.0 if command.is_long else -1.0
        if command.is_pending:
            if entry_price <= 0:
                raise ConfigurationError("Invalid stop order entry price")
            reference = entry_price
        else:
            reference = self.host.get_latest_tick(instrument).price_for(direction)

        if isinstance(stop_loss, Pips):
            stop_loss_pips = stop_loss.value
            stop_loss_price = reference - sign * stop_loss_pips * instrument.pip_value
        else:
            stop_loss_price = stop_loss.value
            stop_loss_pips = pips_between(stop_loss_price, reference, instrument)
        if stop_loss_pips <= 0:
            raise ConfigurationError(f"Invalid stop loss distance: {stop_loss_pips} pips")

        if isinstance(take_profit, RewardRatio):
            tp_pips = take_profit_pips(stop_loss_pips, take_profit.value)
            take_profit_price = reference + sign * tp_pips * instrument.pip_value
        elif isinstance(take_profit, Pips):
            take_profit_price = reference + sign * take_profit.value * instrument.pip_value
        elif isinstance(take_profit, Price):
            take_profit_price = take_profit.value
        else:
            take_profit_price = 0.0

        amount = self.sizer.size_position(instrument, stop_loss_pips, currency_risk, direction)
        if amount == 0:
            logger.warning("Submitting %s order on %s with zero amount", command.value, instrument)

        label = self.labels.next(command, slot_tag)
        order = self.host.submit_order(
            label,
            instrument,
            command,
            amount,
            entry_price if command.is_pending else 0.0,
            self.slippage_pips,
            stop_loss_price,
            take_profit_price,
        )
        logger.info(
            "Order %s submitted. Direction: %s Stop loss: %s Take profit: %s Amount: %s",
            order.label,
            direction.value,
            order.stop_loss_price,
            order.take_profit_price,
            order.amount,
        )
        return order
