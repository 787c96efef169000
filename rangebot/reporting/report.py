"""
Report generation utilities.

This module turns a trading session into human-readable artefacts:
a CSV file of closed positions, a JSON summary of the trade statistics
and a PNG chart of the cumulative realized PnL.
"""

from __future__ import annotations

import os
import json
from dataclasses import asdict
from typing import List
import pandas as pd
import matplotlib

# Use non-interactive backend for environments without display
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from ..execution.models import Position, TradingStats


def positions_frame(positions: List[Position]) -> pd.DataFrame:
    """Tabulate closed positions, one row per position in closing order."""
    rows = [
        {
            'id': p.id,
            'symbol': p.symbol,
            'side': p.direction.value,
            'status': p.status.value,
            'entry_time': p.entry_time.isoformat(),
            'closed_time': p.closed_time.isoformat() if p.closed_time is not None else None,
            'entry': p.entry_price,
            'exit': p.closed_price,
            'take_profit': p.take_profit_price,
            'stop_loss': p.stop_loss_price,
            'pnl_pct': p.realized_pnl,
            'confirmed': p.confirmation.overall,
            'close_reason': p.close_reason,
        }
        for p in positions
    ]
    return pd.DataFrame(rows)


def generate_session_report(
    closed: List[Position],
    stats: TradingStats,
    out_dir: str = "results",
) -> None:
    """Generate report files for a trading session.

    Creates the output directory if it does not exist and writes the
    following files:

    - `positions.csv` – closed positions
    - `summary.json` – trade statistics
    - `pnl_curve.png` – cumulative realized PnL after each close
    """
    os.makedirs(out_dir, exist_ok=True)

    df = positions_frame(closed)
    df.to_csv(os.path.join(out_dir, 'positions.csv'), index=False)

    with open(os.path.join(out_dir, 'summary.json'), 'w', encoding='utf-8') as fh:
        json.dump(asdict(stats), fh, indent=2, ensure_ascii=False)

    fig, ax = plt.subplots(figsize=(10, 4))
    if not df.empty:
        ax.plot(pd.to_datetime(df['closed_time']), df['pnl_pct'].cumsum(), linewidth=1.5)
        ax.set_title('Cumulative PnL')
        ax.set_xlabel('Time')
        ax.set_ylabel('PnL, %')
        fig.autofmt_xdate()
    fig.tight_layout()
    fig.savefig(os.path.join(out_dir, 'pnl_curve.png'))
    plt.close(fig)
