"""
Run state and order lifecycle bookkeeping.

A `RunState` lives exactly as long as one strategy run.  It tracks the
order slots the run manages (one, or two when scaling out), the running
profit and commission totals and the break-even flags.  The only way
broker outcomes reach it is `handle_message()`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..execution.models import ClosedOrder, Message, MessageType, Order, OrderLabel


logger = logging.getLogger(__name__)

_FILTERED = (MessageType.INSTRUMENT_STATUS, MessageType.CALENDAR)


@dataclass
class OrderSlot:
    """One managed order."""
    name: str
    label: Optional[OrderLabel] = None
    is_open: bool = False
    requested_stop_loss: Optional[float] = None


@dataclass
class RunState:
    """Mutable state of one strategy run."""
    slots: Dict[str, OrderSlot] = field(default_factory=dict)
    total_profit: float = 0.0
    total_commission: float = 0.0
    sl_moved_to_break_even: bool = False
    break_even_triggered: bool = False
    closed_orders: List[ClosedOrder] = field(default_factory=list)

    @property
    def net_profit(self) -> float:
        return self.total_profit - self.total_commission

    @property
    def any_open(self) -> bool:
        return any(slot.is_open for slot in self.slots.values())

    def open_slots(self) -> List[OrderSlot]:
        return [slot for slot in self.slots.values() if slot.is_open]

    def track(self, name: str, label: OrderLabel) -> OrderSlot:
        slot = OrderSlot(name=name, label=label, is_open=True)
        self.slots[name] = slot
        return slot

    def slot_for(self, label: OrderLabel) -> Optional[OrderSlot]:
        for slot in self.slots.values():
            if slot.label == label:
                return slot
        return None


def _record_close(state: RunState, order: Order) -> None:
    state.total_profit += order.profit_loss
    state.total_commission += order.commission
    state.closed_orders.append(
        ClosedOrder(
            label=str(order.label),
            instrument=order.instrument.name,
            side=order.command.direction.value,
            amount=order.amount,
            open_price=order.open_price,
            close_price=order.close_price,
            open_time=order.open_time,
            close_time=order.close_time,
            profit=order.profit_loss,
            commission=order.commission,
        )
    )


def handle_message(state: RunState, message: Message) -> RunState:
    """Apply a host message to the run state.

    Only messages about orders this run tracks change the state.
    Order-less messages are logged, except instrument status and
    calendar noise which is dropped.
    """
    order = message.order
    if order is None:
        if message.type not in _FILTERED:
            logger.info("Message: %s", message)
        return state

    slot = state.slot_for(order.label)
    if slot is None:
        logger.debug("Ignoring message for untracked order %s", order.label)
        return state

    if message.type is MessageType.ORDER_CLOSE_OK:
        slot.is_open = False
        _record_close(state, order)
        logger.info("Order %s closed. Profit: %s", order.label, order.profit_loss)
    elif message.type is MessageType.ORDER_SUBMIT_REJECTED:
        slot.is_open = False
        logger.error("Order %s rejected. %s", order.label, message.text)
    elif message.type is MessageType.ORDER_CHANGED_REJECTED:
        logger.error("Order %s change rejected. %s", order.label, message.text)
    elif message.type is MessageType.ORDER_CLOSE_REJECTED:
        logger.error("Order %s close rejected. %s", order.label, message.text)
    else:
        logger.debug("Message: %s", message)
    return state
