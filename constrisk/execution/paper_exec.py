"""
Paper trading host.

This module contains `PaperHost`, an in-memory broker that executes a
strategy run's requests against any `PriceSource`: live MetaTrader 5
prices in paper mode, or a `StaticPriceSource` fed by hand.  Market
orders fill at the current ask (buy) or bid (sell), stop orders fill
once the market reaches their entry price, and open positions close
when the bid/ask crosses their stop-loss or take-profit.  Outcomes are
queued as messages, just as a real broker would report them.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple
import pandas as pd

from ..data.instruments import Instrument
from ..risk.conversion import quote_to_account_rate
from .host import PriceSource, TradingHost
from .models import (
    STANDARD_LOT_UNITS,
    UNITS_PER_AMOUNT,
    Account,
    Message,
    MessageType,
    Order,
    OrderCommand,
    OrderLabel,
    OrderState,
    Tick,
)


logger = logging.getLogger(__name__)

_ACTIVE = (OrderState.PENDING, OrderState.OPENED)


class StaticPriceSource(PriceSource):
    """Prices set explicitly, for paper sessions and tests."""

    def __init__(self) -> None:
        self.ticks: Dict[Instrument, Tick] = {}
        self.bars: Dict[Tuple[Instrument, str, str], pd.DataFrame] = {}

    def set_tick(self, instrument: Instrument, bid: float, ask: float, time: Optional[pd.Timestamp] = None) -> None:
        self.ticks[instrument] = Tick(bid=bid, ask=ask, time=time)

    def set_bars(self, instrument: Instrument, period: str, bars: pd.DataFrame, side: str = 'bid') -> None:
        self.bars[(instrument, period, side)] = bars

    def get_latest_tick(self, instrument: Instrument) -> Tick:
        tick = self.ticks.get(instrument)
        if tick is None:
            raise KeyError(f"No tick available for {instrument}")
        return tick

    def get_bars(self, instrument: Instrument, period: str, count: int, side: str = 'bid') -> pd.DataFrame:
        bars = self.bars.get((instrument, period, side))
        if bars is None:
            return pd.DataFrame(columns=['open', 'high', 'low', 'close'])
        return bars.tail(count)


class PaperHost(TradingHost):
    """Simulated broker keeping every order in memory.

    Parameters
    ----------
    prices : PriceSource
        Source of ticks and bars.
    account_currency : str
        Settlement currency of the simulated account.
    commission_per_lot : float
        Commission charged at close per standard lot (100 000 units).
    clock : callable
        Returns the current timestamp, used to stamp fills and closes.
    """

    def __init__(
        self,
        prices: PriceSource,
        account_currency: str = 'USD',
        commission_per_lot: float = 0.0,
        clock: Callable[[], pd.Timestamp] = lambda: pd.Timestamp.now(tz='UTC'),
    ) -> None:
        self.prices = prices
        self.account_currency = account_currency
        self.commission_per_lot = commission_per_lot
        self.clock = clock
        self.orders: Dict[OrderLabel, Order] = {}
        self.subscribed: Set[Instrument] = set()
        self._messages: List[Message] = []

    # Prices and account

    def get_account(self) -> Account:
        return Account(currency=self.account_currency)

    def get_latest_tick(self, instrument: Instrument) -> Tick:
        return self.prices.get_latest_tick(instrument)

    def get_bars(self, instrument: Instrument, period: str, count: int, side: str = 'bid') -> pd.DataFrame:
        return self.prices.get_bars(instrument, period, count, side)

    def subscribe(self, instruments: Iterable[Instrument]) -> None:
        self.subscribed.update(instruments)
        logger.info("Subscribed instruments: %s", ", ".join(sorted(str(i) for i in self.subscribed)))

    # Requests

    def submit_order(
        self,
        label: OrderLabel,
        instrument: Instrument,
        command: OrderCommand,
        amount: float,
        price: float,
        slippage: float,
        stop_loss_price: float,
        take_profit_price: float,
    ) -> Order:
        order = Order(
            label=label,
            instrument=instrument,
            command=command,
            amount=amount,
            open_price=price,
            stop_loss_price=stop_loss_price,
            take_profit_price=take_profit_price,
        )
        if label in self.orders:
            order.state = OrderState.REJECTED
            self._emit(MessageType.ORDER_SUBMIT_REJECTED, order, "duplicate label")
            return order
        self.orders[label] = order
        if amount <= 0:
            order.state = OrderState.REJECTED
            self._emit(MessageType.ORDER_SUBMIT_REJECTED, order, f"invalid amount {amount}")
            return order
        if command.is_pending and price <= 0:
            order.state = OrderState.REJECTED
            self._emit(MessageType.ORDER_SUBMIT_REJECTED, order, "missing stop entry price")
            return order

        self._emit(MessageType.ORDER_SUBMIT_OK, order)
        if not command.is_pending:
            tick = self.get_latest_tick(instrument)
            self._fill(order, tick.price_for(command.direction))
        return order

    def get_order_by_label(self, label: OrderLabel) -> Optional[Order]:
        order = self.orders.get(label)
        if order is None or order.state not in _ACTIVE:
            return None
        if order.state is OrderState.OPENED:
            self._mark(order)
        return order

    def modify_stop_loss(self, order: Order, price: float) -> None:
        current = self.get_order_by_label(order.label)
        if current is None:
            self._emit(MessageType.ORDER_CHANGED_REJECTED, order, "order is not active")
            return
        if current.state is OrderState.OPENED:
            tick = self.get_latest_tick(current.instrument)
            # a stop-loss beyond the market would close immediately
            if (current.is_long and price >= tick.bid) or (not current.is_long and price <= tick.ask):
                self._emit(MessageType.ORDER_CHANGED_REJECTED, current, f"invalid stop loss {price}")
                return
        current.stop_loss_price = price
        self._emit(MessageType.ORDER_CHANGED_OK, current, f"stop loss {price}")

    def modify_requested_amount(self, order: Order, amount: float) -> None:
        current = self.get_order_by_label(order.label)
        if current is None or current.state is not OrderState.PENDING or amount <= 0:
            self._emit(MessageType.ORDER_CHANGED_REJECTED, order, f"cannot change amount to {amount}")
            return
        current.amount = amount
        self._emit(MessageType.ORDER_CHANGED_OK, current, f"amount {amount}")

    def close(self, order: Order) -> None:
        current = self.get_order_by_label(order.label)
        if current is None:
            self._emit(MessageType.ORDER_CLOSE_REJECTED, order, "order is not active")
            return
        if current.state is OrderState.PENDING:
            self._close(current, 0.0, "cancelled")
            return
        tick = self.get_latest_tick(current.instrument)
        exit_price = tick.bid if current.is_long else tick.ask
        self._close(current, exit_price, "closed at market")

    def poll_messages(self) -> List[Message]:
        messages, self._messages = self._messages, []
        return messages

    def refresh(self) -> None:
        """Fill triggered stop orders and close positions hitting SL or TP."""
        for order in list(self.orders.values()):
            if order.state is OrderState.PENDING:
                tick = self.get_latest_tick(order.instrument)
                if order.is_long and tick.ask >= order.open_price:
                    self._fill(order, order.open_price)
                elif not order.is_long and tick.bid <= order.open_price:
                    self._fill(order, order.open_price)
            elif order.state is OrderState.OPENED:
                self._check_exit(order)

    # Internals

    def _emit(self, kind: MessageType, order: Optional[Order], text: str = "") -> None:
        self._messages.append(Message(type=kind, order=order, text=text))

    def _fill(self, order: Order, price: float) -> None:
        order.state = OrderState.OPENED
        order.open_price = price
        order.open_time = self.clock()
        self._emit(MessageType.ORDER_FILL_OK, order, f"filled at {price}")

    def _check_exit(self, order: Order) -> None:
        tick = self.get_latest_tick(order.instrument)
        sl, tp = order.stop_loss_price, order.take_profit_price
        if order.is_long:
            if sl > 0 and tick.bid <= sl:
                self._close(order, sl, "stop loss")
            elif tp > 0 and tick.bid >= tp:
                self._close(order, tp, "take profit")
            else:
                self._mark(order)
        else:
            if sl > 0 and tick.ask >= sl:
                self._close(order, sl, "stop loss")
            elif tp > 0 and tick.ask <= tp:
                self._close(order, tp, "take profit")
            else:
                self._mark(order)

    def _profit(self, order: Order, exit_price: float) -> float:
        sign = 1.0 if order.is_long else -1.0
        quote_profit = (exit_price - order.open_price) * sign * order.amount * UNITS_PER_AMOUNT
        return quote_profit * quote_to_account_rate(order.instrument, self.account_currency, self.prices)

    def _mark(self, order: Order) -> None:
        tick = self.get_latest_tick(order.instrument)
        exit_price = tick.bid if order.is_long else tick.ask
        order.profit_loss = self._profit(order, exit_price)

    def _close(self, order: Order, price: float, reason: str) -> None:
        if order.state is OrderState.OPENED:
            order.profit_loss = self._profit(order, price)
            order.commission = self.commission_per_lot * order.amount * UNITS_PER_AMOUNT / STANDARD_LOT_UNITS
        else:
            order.profit_loss = 0.0
        order.state = OrderState.CLOSED
        order.close_price = price
        order.close_time = self.clock()
        logger.debug("Paper order %s %s at %s", order.label, reason, price)
        self._emit(MessageType.ORDER_CLOSE_OK, order, reason)
