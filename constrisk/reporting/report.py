"""
Report generation utilities.

This module turns a finished run into human-readable artefacts: a CSV
file of the closed orders, a JSON summary of the totals and a PNG chart
of the cumulative net profit.
"""

from __future__ import annotations

import os
import json
import pandas as pd
import matplotlib

# Use non-interactive backend for environments without display
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from ..strategy.lifecycle import RunState
from .metrics import compute_metrics


def generate_run_report(state: RunState, out_dir: str = "results") -> dict:
    """Generate report files for a run and return its metrics.

    Creates the output directory if it does not exist and writes the
    following files:

    - `orders.csv` - closed orders with profit and commission
    - `summary.json` - run totals and statistics
    - `pnl_curve.png` - cumulative net profit after each close
    """
    os.makedirs(out_dir, exist_ok=True)

    rows = [
        {
            'label': o.label,
            'instrument': o.instrument,
            'side': o.side,
            'amount': o.amount,
            'open': o.open_price,
            'close': o.close_price,
            'time_open': o.open_time.isoformat() if o.open_time is not None else '',
            'time_close': o.close_time.isoformat() if o.close_time is not None else '',
            'profit': o.profit,
            'commission': o.commission,
        }
        for o in state.closed_orders
    ]
    df_orders = pd.DataFrame(rows, columns=[
        'label', 'instrument', 'side', 'amount', 'open', 'close',
        'time_open', 'time_close', 'profit', 'commission',
    ])
    df_orders.to_csv(os.path.join(out_dir, 'orders.csv'), index=False)

    metrics = compute_metrics(state.closed_orders)
    with open(os.path.join(out_dir, 'summary.json'), 'w', encoding='utf-8') as fh:
        json.dump(metrics, fh, indent=2, ensure_ascii=False)

    fig, ax = plt.subplots(figsize=(10, 4))
    if not df_orders.empty:
        net = (df_orders['profit'] - df_orders['commission']).cumsum()
        ax.step(range(1, len(net) + 1), net, where='post', linewidth=1.5)
        ax.set_title('Cumulative Net Profit')
        ax.set_xlabel('Closed order')
        ax.set_ylabel('Account currency')
    fig.tight_layout()
    fig.savefig(os.path.join(out_dir, 'pnl_curve.png'))
    plt.close(fig)
    return metrics
