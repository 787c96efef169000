"""
Trade statistics.

`StatsAggregator` keeps the aggregate counters up to date in O(1) per
opened or closed position.  `compute_stats()` rebuilds the same
numbers from the closed history and is used to cross-check the
incremental figures and by the session report.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ..execution.models import Position, TradingStats


logger = logging.getLogger(__name__)


class StatsAggregator:
    """Incrementally maintained trade statistics.

    Invariants: ``total_trades == open_trades + closed_trades`` and
    ``win_trades + loss_trades == closed_trades``.  A close with a
    realized PnL of exactly zero counts as a loss.
    """

    def __init__(self) -> None:
        self.total_trades = 0
        self.open_trades = 0
        self.closed_trades = 0
        self.win_trades = 0
        self.loss_trades = 0
        self.total_pnl = 0.0
        self.max_win = 0.0
        self.max_loss = 0.0

    def on_open(self) -> None:
        self.total_trades += 1
        self.open_trades += 1

    def on_close(self, realized_pnl: float) -> None:
        if self.open_trades <= 0:
            raise RuntimeError("close recorded with no open trades")
        self.open_trades -= 1
        self.closed_trades += 1
        if realized_pnl > 0:
            self.win_trades += 1
            self.max_win = max(self.max_win, realized_pnl)
        else:
            self.loss_trades += 1
            self.max_loss = min(self.max_loss, realized_pnl)
        self.total_pnl += realized_pnl

    @property
    def win_rate(self) -> float:
        return self.win_trades / self.closed_trades * 100 if self.closed_trades else 0.0

    @property
    def average_pnl(self) -> float:
        return self.total_pnl / self.closed_trades if self.closed_trades else 0.0

    def snapshot(self) -> TradingStats:
        return TradingStats(
            total_trades=self.total_trades,
            open_trades=self.open_trades,
            closed_trades=self.closed_trades,
            win_trades=self.win_trades,
            loss_trades=self.loss_trades,
            win_rate=self.win_rate,
            total_pnl=self.total_pnl,
            average_pnl=self.average_pnl,
            max_win=self.max_win,
            max_loss=self.max_loss,
        )


def compute_stats(closed: Iterable[Position], open_count: int = 0) -> TradingStats:
    """Recompute statistics from a closed-position history.

    Parameters
    ----------
    closed : iterable of Position
        Closed positions; each must carry a realized PnL.
    open_count : int
        Number of positions still open, counted into `total_trades`.

    Returns
    -------
    TradingStats
        Same figures `StatsAggregator` would hold after replaying the
        history.
    """
    agg = StatsAggregator()
    for _ in range(open_count):
        agg.on_open()
    for position in closed:
        agg.on_open()
        agg.on_close(position.realized_pnl or 0.0)
    return agg.snapshot()


def log_stats(stats: TradingStats) -> None:
    """Write a human-readable statistics summary to the log."""
    logger.info(
        "Trading stats: total=%d open=%d closed=%d",
        stats.total_trades, stats.open_trades, stats.closed_trades,
    )
    if stats.closed_trades > 0:
        logger.info(
            "  wins=%d losses=%d win rate=%.1f%%",
            stats.win_trades, stats.loss_trades, stats.win_rate,
        )
        logger.info(
            "  total PnL=%.2f%% average PnL=%.2f%%",
            stats.total_pnl, stats.average_pnl,
        )
        logger.info(
            "  best trade=+%.2f%% worst trade=%.2f%%",
            stats.max_win, stats.max_loss,
        )
