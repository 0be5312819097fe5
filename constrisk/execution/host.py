"""
Trading host interface.

A host is the platform a strategy run trades through.  It serves
prices, accepts order requests and reports their outcome later as
`Message` objects.  Requests never return a success flag: submission,
stop-loss changes, amount changes and closes are fire-and-forget and
their result is only known once `poll_messages()` delivers it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional
import pandas as pd

from ..data.instruments import Instrument
from .models import Account, Message, Order, OrderCommand, OrderLabel, Tick


class SubmissionError(RuntimeError):
    """Raised when a request cannot even be handed to the broker."""


class PriceSource(ABC):
    """Anything that can quote the latest tick and recent bars."""

    @abstractmethod
    def get_latest_tick(self, instrument: Instrument) -> Tick:
        ...

    @abstractmethod
    def get_bars(self, instrument: Instrument, period: str, count: int, side: str = 'bid') -> pd.DataFrame:
        """Return the last `count` completed bars, oldest first.

        The frame has ``open``, ``high``, ``low`` and ``close`` columns
        and a time index.  `side` selects ``'bid'`` or ``'ask'`` prices.
        """


class TradingHost(PriceSource):
    """Order-management side of a trading platform."""

    @abstractmethod
    def get_account(self) -> Account:
        ...

    @abstractmethod
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
        """Request a new order.

        `price` is the entry of a pending stop order and ``0`` for
        market orders.  `slippage` is expressed in pips.
        """

    @abstractmethod
    def get_order_by_label(self, label: OrderLabel) -> Optional[Order]:
        ...

    @abstractmethod
    def modify_stop_loss(self, order: Order, price: float) -> None:
        ...

    @abstractmethod
    def modify_requested_amount(self, order: Order, amount: float) -> None:
        ...

    @abstractmethod
    def close(self, order: Order) -> None:
        ...

    @abstractmethod
    def subscribe(self, instruments: Iterable[Instrument]) -> None:
        ...

    def refresh(self) -> None:
        """Bring order states up to date; called once per polling cycle."""

    @abstractmethod
    def poll_messages(self) -> List[Message]:
        """Return and forget the messages produced since the last call."""
