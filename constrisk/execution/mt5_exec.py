"""
MetaTrader 5 trading host.

This module provides `MT5Host`, which trades a strategy run through a
MetaTrader 5 terminal.  MT5 has no order labels, so the label travels
in the order comment and orders are found again by comparing comments
(and tickets once known).  MT5 pushes no events either: `refresh()`
compares the terminal's positions and pending orders with the orders
the run submitted and queues fill and close messages for whatever
changed.

**Note**: Running this host requires the `MetaTrader5` package and
a locally installed MT5 terminal.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional
import pandas as pd

from ..data.instruments import Instrument
from ..data.mt5_data import MT5DataFeed, mt5_api
from .host import SubmissionError, TradingHost
from .models import (
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


class MT5Host(TradingHost):
    """Send a run's requests to MetaTrader 5.

    Parameters
    ----------
    feed : MT5DataFeed
        Connected feed used for prices and symbol names.
    magic : int
        Expert magic number attached to every request.
    """

    def __init__(self, feed: MT5DataFeed, magic: int = 0) -> None:
        self.feed = feed
        self.magic = magic
        self.orders: Dict[OrderLabel, Order] = {}
        self.tickets: Dict[OrderLabel, int] = {}
        self._messages: List[Message] = []

    def get_account(self) -> Account:
        return self.feed.get_account()

    def get_latest_tick(self, instrument: Instrument) -> Tick:
        return self.feed.get_latest_tick(instrument)

    def get_bars(self, instrument: Instrument, period: str, count: int, side: str = 'bid') -> pd.DataFrame:
        return self.feed.get_bars(instrument, period, count, side)

    def subscribe(self, instruments: Iterable[Instrument]) -> None:
        api = mt5_api()
        for instrument in instruments:
            if not api.symbol_select(self.feed.symbol(instrument), True):
                logger.warning("Could not select %s in Market Watch", self.feed.symbol(instrument))

    # Volume conversion

    def to_volume(self, instrument: Instrument, amount: float) -> float:
        """Convert an amount in millions of units to MT5 lots."""
        info = mt5_api().symbol_info(self.feed.symbol(instrument))
        volume = amount * UNITS_PER_AMOUNT / info.trade_contract_size
        steps = round(volume / info.volume_step)
        volume = round(steps * info.volume_step, 8)
        return volume if volume >= info.volume_min else 0.0

    def to_amount(self, instrument: Instrument, volume: float) -> float:
        info = mt5_api().symbol_info(self.feed.symbol(instrument))
        return volume * info.trade_contract_size / UNITS_PER_AMOUNT

    # Requests

    def _send(self, request: Dict[str, Any]) -> Any:
        api = mt5_api()
        result = api.order_send(request)
        if result is None:
            raise SubmissionError(f"order_send failed: {api.last_error()}")
        return result

    @staticmethod
    def _done(result: Any) -> bool:
        api = mt5_api()
        return result.retcode in (api.TRADE_RETCODE_DONE, api.TRADE_RETCODE_PLACED)

    def _order_type(self, command: OrderCommand) -> int:
        api = mt5_api()
        return {
            OrderCommand.BUY: api.ORDER_TYPE_BUY,
            OrderCommand.SELL: api.ORDER_TYPE_SELL,
            OrderCommand.BUYSTOP: api.ORDER_TYPE_BUY_STOP,
            OrderCommand.SELLSTOP: api.ORDER_TYPE_SELL_STOP,
        }[command]

    def _deviation(self, instrument: Instrument, slippage_pips: float) -> int:
        info = mt5_api().symbol_info(self.feed.symbol(instrument))
        points_per_pip = 10 ** (info.digits - instrument.pip_scale)
        return int(round(slippage_pips * points_per_pip))

    def _entry_request(self, order: Order, volume: float, slippage: float) -> Dict[str, Any]:
        api = mt5_api()
        if order.command.is_pending:
            action, price, filling = api.TRADE_ACTION_PENDING, order.open_price, api.ORDER_FILLING_RETURN
        else:
            tick = self.get_latest_tick(order.instrument)
            action, price, filling = api.TRADE_ACTION_DEAL, tick.price_for(order.command.direction), api.ORDER_FILLING_IOC
        return {
            "action": action,
            "symbol": self.feed.symbol(order.instrument),
            "volume": volume,
            "type": self._order_type(order.command),
            "price": price,
            "sl": order.stop_loss_price,
            "tp": order.take_profit_price,
            "deviation": self._deviation(order.instrument, slippage),
            "magic": self.magic,
            "comment": order.label.value,
            "type_time": api.ORDER_TIME_GTC,
            "type_filling": filling,
        }

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
        volume = self.to_volume(instrument, amount)
        if volume <= 0:
            order.state = OrderState.REJECTED
            self._emit(MessageType.ORDER_SUBMIT_REJECTED, order, f"amount {amount} is below the minimum volume")
            return order

        result = self._send(self._entry_request(order, volume, slippage))
        self.orders[label] = order
        if not self._done(result):
            order.state = OrderState.REJECTED
            self._emit(MessageType.ORDER_SUBMIT_REJECTED, order, f"retcode {result.retcode} {result.comment}")
            return order

        self.tickets[label] = result.order
        self._emit(MessageType.ORDER_SUBMIT_OK, order)
        if not command.is_pending:
            order.state = OrderState.OPENED
            order.open_price = result.price or order.open_price
            order.open_time = pd.Timestamp.now(tz='UTC')
            self._emit(MessageType.ORDER_FILL_OK, order, f"filled at {order.open_price}")
        return order

    def get_order_by_label(self, label: OrderLabel) -> Optional[Order]:
        order = self.orders.get(label)
        if order is None or order.state not in (OrderState.PENDING, OrderState.OPENED):
            return None
        if not self._sync(order):
            return None
        return order

    def modify_stop_loss(self, order: Order, price: float) -> None:
        api = mt5_api()
        request = {
            "action": api.TRADE_ACTION_SLTP,
            "symbol": self.feed.symbol(order.instrument),
            "position": self.tickets.get(order.label, 0),
            "sl": price,
            "tp": order.take_profit_price,
            "magic": self.magic,
        }
        if order.state is OrderState.PENDING:
            request = {
                "action": api.TRADE_ACTION_MODIFY,
                "order": self.tickets.get(order.label, 0),
                "price": order.open_price,
                "sl": price,
                "tp": order.take_profit_price,
            }
        result = self._send(request)
        if self._done(result):
            order.stop_loss_price = price
            self._emit(MessageType.ORDER_CHANGED_OK, order, f"stop loss {price}")
        else:
            self._emit(MessageType.ORDER_CHANGED_REJECTED, order, f"retcode {result.retcode} {result.comment}")

    def modify_requested_amount(self, order: Order, amount: float) -> None:
        """Replace a pending order with one of the new amount.

        MT5 cannot change the volume of a placed order, so the order is
        removed and placed again under the same label.
        """
        if order.state is not OrderState.PENDING:
            self._emit(MessageType.ORDER_CHANGED_REJECTED, order, "only pending orders can be resized")
            return
        volume = self.to_volume(order.instrument, amount)
        if volume <= 0:
            self._emit(MessageType.ORDER_CHANGED_REJECTED, order, f"amount {amount} is below the minimum volume")
            return
        api = mt5_api()
        removed = self._send({"action": api.TRADE_ACTION_REMOVE, "order": self.tickets.get(order.label, 0)})
        if not self._done(removed):
            self._emit(MessageType.ORDER_CHANGED_REJECTED, order, f"retcode {removed.retcode} {removed.comment}")
            return
        placed = self._send(self._entry_request(order, volume, 0.0))
        if not self._done(placed):
            order.state = OrderState.CLOSED
            self._emit(MessageType.ORDER_CHANGED_REJECTED, order, f"retcode {placed.retcode} {placed.comment}")
            self._emit(MessageType.ORDER_CLOSE_OK, order, "cancelled")
            return
        self.tickets[order.label] = placed.order
        order.amount = amount
        self._emit(MessageType.ORDER_CHANGED_OK, order, f"amount {amount}")

    def close(self, order: Order) -> None:
        api = mt5_api()
        ticket = self.tickets.get(order.label, 0)
        if order.state is OrderState.PENDING:
            result = self._send({"action": api.TRADE_ACTION_REMOVE, "order": ticket})
        else:
            tick = self.get_latest_tick(order.instrument)
            result = self._send({
                "action": api.TRADE_ACTION_DEAL,
                "symbol": self.feed.symbol(order.instrument),
                "volume": self.to_volume(order.instrument, order.amount),
                "type": api.ORDER_TYPE_SELL if order.is_long else api.ORDER_TYPE_BUY,
                "position": ticket,
                "price": tick.bid if order.is_long else tick.ask,
                "deviation": self._deviation(order.instrument, 5.0),
                "magic": self.magic,
                "comment": order.label.value,
                "type_time": api.ORDER_TIME_GTC,
                "type_filling": api.ORDER_FILLING_IOC,
            })
        if not self._done(result):
            self._emit(MessageType.ORDER_CLOSE_REJECTED, order, f"retcode {result.retcode} {result.comment}")
        # the close itself is reported by refresh()

    def poll_messages(self) -> List[Message]:
        messages, self._messages = self._messages, []
        return messages

    def refresh(self) -> None:
        for order in list(self.orders.values()):
            if order.state in (OrderState.PENDING, OrderState.OPENED):
                self._sync(order)

    # Internals

    def _emit(self, kind: MessageType, order: Optional[Order], text: str = "") -> None:
        self._messages.append(Message(type=kind, order=order, text=text))

    def _matches(self, label: OrderLabel, item: Any) -> bool:
        ticket = self.tickets.get(label)
        return item.ticket == ticket or item.comment == label.value

    def _sync(self, order: Order) -> bool:
        """Update `order` from the terminal; ``False`` once it is gone."""
        api = mt5_api()
        symbol = self.feed.symbol(order.instrument)
        for position in api.positions_get(symbol=symbol) or ():
            if self._matches(order.label, position):
                if order.state is OrderState.PENDING:
                    order.state = OrderState.OPENED
                    order.open_time = pd.Timestamp.now(tz='UTC')
                    self._emit(MessageType.ORDER_FILL_OK, order, f"filled at {position.price_open}")
                self.tickets[order.label] = position.ticket
                order.open_price = float(position.price_open)
                order.stop_loss_price = float(position.sl)
                order.take_profit_price = float(position.tp)
                order.profit_loss = float(position.profit)
                order.amount = self.to_amount(order.instrument, float(position.volume))
                return True

        if order.state is OrderState.PENDING:
            for pending in api.orders_get(symbol=symbol) or ():
                if self._matches(order.label, pending):
                    order.stop_loss_price = float(pending.sl)
                    order.take_profit_price = float(pending.tp)
                    return True
            # filled and closed between two polls: the position left deals behind
            deals = api.history_deals_get(position=self.tickets.get(order.label, 0)) or ()
            entries = [deal for deal in deals if deal.entry == api.DEAL_ENTRY_IN]
            if entries:
                order.state = OrderState.OPENED
                order.open_price = float(entries[0].price)
                order.open_time = pd.Timestamp(entries[0].time, unit='s', tz='UTC')
                self._emit(MessageType.ORDER_FILL_OK, order, f"filled at {order.open_price}")
                self._finish_close(order)
                return False
            order.state = OrderState.CLOSED
            order.close_time = pd.Timestamp.now(tz='UTC')
            self._emit(MessageType.ORDER_CLOSE_OK, order, "cancelled")
            return False

        self._finish_close(order)
        return False

    def _finish_close(self, order: Order) -> None:
        api = mt5_api()
        deals = api.history_deals_get(position=self.tickets.get(order.label, 0)) or ()
        exits = [deal for deal in deals if deal.entry == api.DEAL_ENTRY_OUT]
        order.profit_loss = sum(float(deal.profit) + float(deal.swap) for deal in deals)
        order.commission = -sum(float(deal.commission) for deal in deals)
        if exits:
            order.close_price = float(exits[-1].price)
            order.close_time = pd.Timestamp(exits[-1].time, unit='s', tz='UTC')
        else:
            order.close_time = pd.Timestamp.now(tz='UTC')
        order.state = OrderState.CLOSED
        self._emit(MessageType.ORDER_CLOSE_OK, order, "position closed")
