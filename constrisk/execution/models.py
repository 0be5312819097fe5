"""
Order, tick and message models.

These dataclasses represent the objects passed between the strategy
runtime and the trading hosts.  Keeping them in a separate module
improves readability and makes unit testing easier.

Amounts are expressed in millions of base-currency units: an amount of
0.01 is 10 000 units, a tenth of a standard lot.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional
import pandas as pd

from ..data.instruments import Instrument


UNITS_PER_AMOUNT = 1_000_000
STANDARD_LOT_UNITS = 100_000


class Direction(Enum):
    LONG = 'long'
    SHORT = 'short'


class OrderCommand(Enum):
    BUY = 'BUY'
    SELL = 'SELL'
    BUYSTOP = 'BUYSTOP'
    SELLSTOP = 'SELLSTOP'

    @property
    def is_long(self) -> bool:
        return self in (OrderCommand.BUY, OrderCommand.BUYSTOP)

    @property
    def is_pending(self) -> bool:
        return self in (OrderCommand.BUYSTOP, OrderCommand.SELLSTOP)

    @property
    def direction(self) -> Direction:
        return Direction.LONG if self.is_long else Direction.SHORT

    @classmethod
    def for_direction(cls, direction: Direction, pending: bool = False) -> 'OrderCommand':
        if direction is Direction.LONG:
            return cls.BUYSTOP if pending else cls.BUY
        return cls.SELLSTOP if pending else cls.SELL


class OrderState(Enum):
    PENDING = 'PENDING'  # working stop order, not filled yet
    OPENED = 'OPENED'
    CLOSED = 'CLOSED'
    REJECTED = 'REJECTED'


@dataclass(frozen=True)
class OrderLabel:
    """Correlation key between a run and the host's order objects."""
    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Tick:
    """Latest bid/ask snapshot of an instrument."""
    bid: float
    ask: float
    time: Optional[pd.Timestamp] = None

    def price_for(self, direction: Direction) -> float:
        """Ask for buying, bid for selling."""
        return self.ask if direction is Direction.LONG else self.bid


@dataclass(frozen=True)
class Account:
    currency: str


@dataclass
class Order:
    """One working or filled order as seen by the host.

    The host owns the object; strategies re-fetch it by label before
    every mutation and only request changes through the host.
    """
    label: OrderLabel
    instrument: Instrument
    command: OrderCommand
    amount: float
    open_price: float
    stop_loss_price: float
    take_profit_price: float
    state: OrderState = OrderState.PENDING
    profit_loss: float = 0.0
    commission: float = 0.0
    close_price: float = 0.0
    open_time: Optional[pd.Timestamp] = None
    close_time: Optional[pd.Timestamp] = None

    @property
    def is_long(self) -> bool:
        return self.command.is_long


class MessageType(Enum):
    ORDER_SUBMIT_OK = 'ORDER_SUBMIT_OK'
    ORDER_FILL_OK = 'ORDER_FILL_OK'
    ORDER_CLOSE_OK = 'ORDER_CLOSE_OK'
    ORDER_SUBMIT_REJECTED = 'ORDER_SUBMIT_REJECTED'
    ORDER_CHANGED_OK = 'ORDER_CHANGED_OK'
    ORDER_CHANGED_REJECTED = 'ORDER_CHANGED_REJECTED'
    ORDER_CLOSE_REJECTED = 'ORDER_CLOSE_REJECTED'
    INSTRUMENT_STATUS = 'INSTRUMENT_STATUS'
    CALENDAR = 'CALENDAR'
    NOTIFICATION = 'NOTIFICATION'


@dataclass(frozen=True)
class Message:
    """Event delivered by a host after an asynchronous request."""
    type: MessageType
    order: Optional[Order] = None
    text: str = ""

    def __str__(self) -> str:
        label = f" {self.order.label}" if self.order is not None else ""
        return f"{self.type.value}{label} {self.text}".strip()


@dataclass
class ClosedOrder:
    """Represents a completed order, recorded when its close is confirmed."""
    label: str
    instrument: str
    side: str
    amount: float
    open_price: float
    close_price: float
    open_time: Optional[pd.Timestamp]
    close_time: Optional[pd.Timestamp]
    profit: float
    commission: float
