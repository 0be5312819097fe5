"""
Run performance metrics.

This module summarises the orders a run closed: realised profit,
commission, net result and the usual win/loss statistics.  Profit is
reported before commission, as the broker reports it.
"""

from __future__ import annotations

from typing import List

from ..execution.models import ClosedOrder


def compute_metrics(closed_orders: List[ClosedOrder]) -> dict:
    """Compute summary statistics for a list of closed orders.

    Parameters
    ----------
    closed_orders : list of ClosedOrder
        Orders whose close was confirmed by the host.

    Returns
    -------
    dict
        Dictionary of performance metrics.
    """
    if not closed_orders:
        return {
            'total_profit': 0.0,
            'total_commission': 0.0,
            'net_profit': 0.0,
            'win_rate': 0.0,
            'profit_factor': 0.0,
            'avg_order': 0.0,
            'num_orders': 0,
        }

    total_profit = sum(o.profit for o in closed_orders)
    total_commission = sum(o.commission for o in closed_orders)

    wins = [o.profit for o in closed_orders if o.profit > 0]
    losses = [o.profit for o in closed_orders if o.profit < 0]
    win_rate = len(wins) / len(closed_orders)
    gross_profit = sum(wins)
    gross_loss = -sum(losses) if losses else 0.0
    profit_factor = gross_profit / gross_loss if gross_loss > 0 else 0.0

    return {
        'total_profit': total_profit,
        'total_commission': total_commission,
        'net_profit': total_profit - total_commission,
        'win_rate': win_rate,
        'profit_factor': profit_factor,
        'avg_order': total_profit / len(closed_orders),
        'num_orders': len(closed_orders),
    }
