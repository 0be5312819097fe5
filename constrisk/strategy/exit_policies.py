"""
Break-even and exit policies.

Every strategy variant shares the same sizing and submission core and
differs only in how open orders are managed afterwards.  Those rules are
expressed as `ExitPolicy` objects which the runtime calls when a bar of
their period closes:

- `TargetTrigger` moves the stop-loss to the open price once the
  floating profit reaches a share of the target profit.
- `PriceLevelTrigger` does the same once a bar crosses a precomputed
  price, exactly once per run.
- `TrendReversal` closes the position at the first Heikin Ashi candle
  pointing against it.
- `ScaleOutDual` moves both scale-out orders to break-even once the
  latest tick crosses a shared trigger price.
- `PendingSizeRefresh` keeps the amount of a waiting stop order in line
  with the configured risk as prices drift.

Orders are always fetched again by label; a label the host no longer
knows is logged and skipped.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
import pandas as pd

from ..data.instruments import Instrument
from ..execution.host import TradingHost
from ..execution.models import Direction, Order, OrderState
from ..risk.conversion import InstrumentNotFoundError
from ..risk.sizing import PositionSizer
from .heikin_ashi import last_candle
from .lifecycle import OrderSlot, RunState


logger = logging.getLogger(__name__)

BREAK_EVEN_PERIOD = 'M1'
HEIKIN_ASHI_LOOKBACK = 50


@dataclass
class RunContext:
    """What a policy may touch while evaluating a bar."""
    host: TradingHost
    state: RunState
    instrument: Instrument
    direction: Direction


def fetch_order(ctx: RunContext, slot: OrderSlot) -> Optional[Order]:
    order = ctx.host.get_order_by_label(slot.label)
    if order is None:
        logger.error("Order %s (%s) not found", slot.label, slot.name)
    return order


def move_to_break_even(ctx: RunContext, slot: OrderSlot, order: Order) -> bool:
    """Request a stop-loss at the open price unless it is there or already requested."""
    if order.state is not OrderState.OPENED:
        return False
    open_price = order.open_price
    if order.stop_loss_price == open_price or slot.requested_stop_loss == open_price:
        return False
    ctx.host.modify_stop_loss(order, open_price)
    slot.requested_stop_loss = open_price
    logger.info("Order %s: SL moved to B.E.", order.label)
    return True


class ExitPolicy(ABC):
    period: str = BREAK_EVEN_PERIOD

    @abstractmethod
    def on_bar(self, ctx: RunContext, ask_bar: pd.Series, bid_bar: pd.Series) -> None:
        ...


class TargetTrigger(ExitPolicy):
    """Break-even once floating profit reaches `fraction` of `target_profit`."""

    def __init__(self, target_profit: float, fraction: float = 0.9) -> None:
        self.target_profit = target_profit
        self.fraction = fraction

    @property
    def threshold(self) -> float:
        return self.target_profit * self.fraction

    def on_bar(self, ctx: RunContext, ask_bar: pd.Series, bid_bar: pd.Series) -> None:
        for slot in ctx.state.open_slots():
            order = fetch_order(ctx, slot)
            if order is None:
                continue
            if order.profit_loss >= self.threshold:
                move_to_break_even(ctx, slot, order)


class PriceLevelTrigger(ExitPolicy):
    """Break-even once a bar reaches `trigger_price`; fires once per run."""

    def __init__(self, trigger_price: float) -> None:
        self.trigger_price = trigger_price

    @classmethod
    def one_to_one(cls, entry_price: float, stop_loss_price: float) -> 'PriceLevelTrigger':
        """Trigger at the price mirroring the stop-loss around the entry."""
        return cls(entry_price + (entry_price - stop_loss_price))

    def reached(self, direction: Direction, ask_bar: pd.Series, bid_bar: pd.Series) -> bool:
        if direction is Direction.LONG:
            return float(ask_bar['high']) >= self.trigger_price
        return float(bid_bar['low']) <= self.trigger_price

    def on_bar(self, ctx: RunContext, ask_bar: pd.Series, bid_bar: pd.Series) -> None:
        if ctx.state.sl_moved_to_break_even:
            return
        for slot in ctx.state.open_slots():
            order = fetch_order(ctx, slot)
            if order is None:
                continue
            if not self.reached(ctx.direction, ask_bar, bid_bar):
                continue
            if move_to_break_even(ctx, slot, order) or order.stop_loss_price == order.open_price:
                ctx.state.sl_moved_to_break_even = True


class TrendReversal(ExitPolicy):
    """Close the position on the first opposite Heikin Ashi candle of `period`."""

    def __init__(self, period: str, lookback: int = HEIKIN_ASHI_LOOKBACK) -> None:
        self.period = period
        self.lookback = lookback

    def on_bar(self, ctx: RunContext, ask_bar: pd.Series, bid_bar: pd.Series) -> None:
        bars = ctx.host.get_bars(ctx.instrument, self.period, self.lookback, side='bid')
        if bars.empty:
            logger.warning("No %s bars for %s, trend exit skipped", self.period, ctx.instrument)
            return
        ha_open, ha_close = last_candle(bars)
        logger.debug("Heikin Ashi open %s close %s", ha_open, ha_close)
        if ctx.direction is Direction.LONG:
            reversed_ = ha_close < ha_open
        else:
            reversed_ = ha_close > ha_open
        if not reversed_:
            return
        for slot in ctx.state.open_slots():
            order = fetch_order(ctx, slot)
            if order is None:
                continue
            ctx.host.close(order)
            slot.is_open = False
            logger.info("Order %s: closing on opposite Heikin Ashi candle", order.label)


class ScaleOutDual(ExitPolicy):
    """Break-even for every scale-out order once the tick crosses `trigger_price`."""

    def __init__(self, trigger_price: float) -> None:
        self.trigger_price = trigger_price

    def on_bar(self, ctx: RunContext, ask_bar: pd.Series, bid_bar: pd.Series) -> None:
        state = ctx.state
        if not state.break_even_triggered:
            price = ctx.host.get_latest_tick(ctx.instrument).price_for(ctx.direction)
            if ctx.direction is Direction.LONG:
                state.break_even_triggered = price >= self.trigger_price
            else:
                state.break_even_triggered = price <= self.trigger_price
            if not state.break_even_triggered:
                return
            logger.info("Break even trigger %s reached at %s", self.trigger_price, price)
        for slot in state.open_slots():
            order = fetch_order(ctx, slot)
            if order is None:
                continue
            move_to_break_even(ctx, slot, order)


class PendingSizeRefresh(ExitPolicy):
    """Resize a waiting stop order so its risk stays constant."""

    def __init__(self, sizer: PositionSizer, stop_loss_pips: float, currency_risk: float) -> None:
        self.sizer = sizer
        self.stop_loss_pips = stop_loss_pips
        self.currency_risk = currency_risk

    def on_bar(self, ctx: RunContext, ask_bar: pd.Series, bid_bar: pd.Series) -> None:
        for slot in ctx.state.open_slots():
            order = fetch_order(ctx, slot)
            if order is None or order.state is not OrderState.PENDING:
                continue
            try:
                amount = self.sizer.size_position(
                    order.instrument, self.stop_loss_pips, self.currency_risk, order.command.direction
                )
            except InstrumentNotFoundError as exc:
                logger.error("Cannot resize order %s: %s", order.label, exc)
                continue
            if order.amount != amount:
                ctx.host.modify_requested_amount(order, amount)
                logger.info("Order %s updated position size: %s", order.label, amount)
