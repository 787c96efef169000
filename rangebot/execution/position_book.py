"""
Position book.

This module contains the `PositionBook` class which owns every open
position, the append-only history of closed positions and the trade
statistics.  It opens positions from accepted signals, re-prices them
on every tick, closes them when the take-profit or stop-loss level is
crossed and publishes `PositionOpened` / `PositionClosed` events to
subscribed listeners.

Callers only ever receive copies: mutating a value returned by the
book never changes its internal state.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from typing import Callable, Dict, List, Optional, Tuple, Union

import pandas as pd

from ..config.schema import TradingConfig
from ..reporting.stats import StatsAggregator, log_stats
from ..utils.formatting import format_price
from ..utils.timeutils import utc_now
from .models import (
    Direction,
    Position,
    PositionClosed,
    PositionOpened,
    PositionStateError,
    PositionStatus,
    TradingSignal,
    TradingStats,
)


logger = logging.getLogger(__name__)

TAKE_PROFIT_REASON = "take profit reached"
STOP_LOSS_REASON = "stop loss triggered"

# Ticks moving less than this (in percent) are not logged.
PNL_LOG_THRESHOLD = 0.1

Event = Union[PositionOpened, PositionClosed]
Listener = Callable[[Event], None]


class PositionBook:
    """Own open positions, closed history and statistics.

    Parameters
    ----------
    config : TradingConfig
        Position limits and the statistics logging cadence.
    clock : callable, optional
        Returns the current time as a `pandas.Timestamp`; used for the
        close time.  Defaults to UTC wall-clock time.
    """

    def __init__(
        self,
        config: TradingConfig,
        clock: Optional[Callable[[], pd.Timestamp]] = None,
    ) -> None:
        self.config = config
        self.clock = clock or utc_now
        self.stats = StatsAggregator()
        self._open: Dict[str, Position] = {}
        self._closed: List[Position] = []
        self._listeners: List[Listener] = []
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Events

    def subscribe(self, listener: Listener) -> None:
        """Register a callable invoked with every opened/closed event.

        Listeners run synchronously inside the state transition and must
        only hand the event off (e.g. submit it to a worker pool).
        """
        self._listeners.append(listener)

    def _publish(self, event: Event) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener %r failed for %s", listener, type(event).__name__)

    # ------------------------------------------------------------------
    # Lifecycle

    def open_position(self, signal: TradingSignal) -> Optional[Position]:
        """Create an OPEN position from an accepted signal and return a copy of it.

        The per-symbol and total limits are checked again under the book's
        lock, together with the insert.  Returns ``None`` when either limit
        is already reached.
        """
        position = Position(
            id=str(uuid.uuid4()),
            symbol=signal.symbol,
            direction=signal.direction,
            entry_price=signal.entry_price,
            entry_time=signal.timestamp,
            current_price=signal.entry_price,
            take_profit_price=signal.take_profit_price,
            stop_loss_price=signal.stop_loss_price,
            trigger_reason=signal.reason,
            confirmation=signal.confirmation,
        )
        with self._lock:
            symbol_count = sum(1 for p in self._open.values() if p.symbol == signal.symbol)
            if symbol_count >= self.config.max_positions_per_symbol:
                logger.debug("%s: per-symbol position limit reached, not opened", signal.symbol)
                return None
            if len(self._open) >= self.config.max_total_positions:
                logger.debug("%s: total position limit reached, not opened", signal.symbol)
                return None
            self._open[position.id] = position
            self.stats.on_open()
            snapshot = copy.deepcopy(position)

        logger.info(
            "Opened %s %s at %s (TP=%s, SL=%s) confirmation=%s",
            position.direction.value,
            position.symbol,
            format_price(position.entry_price),
            format_price(position.take_profit_price),
            format_price(position.stop_loss_price),
            "full" if position.confirmation.overall else "partial",
        )
        self._publish(PositionOpened(snapshot))
        return copy.deepcopy(snapshot)

    def update(self, symbol: str, price: float) -> List[Position]:
        """Re-price the open positions of one symbol and close any that crossed a level.

        Take-profit is checked before stop-loss, so a tick that crosses
        both (a price gap) closes the position as CLOSED_TP.  Both
        comparisons are inclusive.

        Returns
        -------
        list of Position
            Copies of the positions closed by this tick.
        """
        closed: List[Position] = []
        with self._lock:
            positions = [p for p in self._open.values() if p.symbol == symbol]
            for position in positions:
                previous = position.current_price
                position.current_price = price
                position.unrealized_pnl = position.pnl_at(price)

                if position.direction is Direction.LONG:
                    hit_tp = price >= position.take_profit_price
                    hit_sl = price <= position.stop_loss_price
                else:
                    hit_tp = price <= position.take_profit_price
                    hit_sl = price >= position.stop_loss_price

                if hit_tp:
                    closed.append(self.close(position.id, price, TAKE_PROFIT_REASON, PositionStatus.CLOSED_TP))
                elif hit_sl:
                    closed.append(self.close(position.id, price, STOP_LOSS_REASON, PositionStatus.CLOSED_SL))
                elif previous and abs((price - previous) / previous) * 100 > PNL_LOG_THRESHOLD:
                    logger.debug(
                        "%s [%s] PnL %.2f%% at %s",
                        symbol, position.direction.value, position.unrealized_pnl, format_price(price),
                    )
        return closed

    def close(self, position_id: str, price: float, reason: str, status: PositionStatus) -> Position:
        """Close an open position at `price`, realising its current unrealized PnL.

        Raises
        ------
        PositionStateError
            If `position_id` is not an open position or `status` is OPEN.
        """
        if status is PositionStatus.OPEN:
            raise PositionStateError("cannot close a position into the OPEN state")
        with self._lock:
            position = self._take_open(position_id)
            position.realized_pnl = position.unrealized_pnl
            snapshot, stats = self._finish_close(position, price, reason, status)

        logger.info(
            "Closed %s %s %+.2f%% (%s): %s -> %s",
            position.direction.value,
            position.symbol,
            snapshot.realized_pnl,
            reason,
            format_price(position.entry_price),
            format_price(price),
        )
        self._after_close(snapshot, stats)
        return copy.deepcopy(snapshot)

    def close_by_reversal(self, position_id: str, price: float, reason: str) -> Position:
        """Force-close a position because an opposite-direction signal arrived.

        The realized PnL is computed from the entry and close prices
        rather than the last tick, and the status is CLOSED_SL whatever
        the sign of the PnL.
        """
        with self._lock:
            position = self._take_open(position_id)
            position.current_price = price
            position.realized_pnl = position.pnl_at(price)
            position.unrealized_pnl = position.realized_pnl
            snapshot, stats = self._finish_close(position, price, reason, PositionStatus.CLOSED_SL)

        logger.info(
            "Closed %s %s on reversal %+.2f%% (%s): %s -> %s",
            position.direction.value,
            position.symbol,
            snapshot.realized_pnl,
            reason,
            format_price(position.entry_price),
            format_price(price),
        )
        self._after_close(snapshot, stats)
        return copy.deepcopy(snapshot)

    def _take_open(self, position_id: str) -> Position:
        position = self._open.get(position_id)
        if position is None:
            if any(p.id == position_id for p in self._closed):
                raise PositionStateError(f"position {position_id} is already closed")
            raise PositionStateError(f"unknown position {position_id}")
        if not position.is_open:
            raise PositionStateError(f"position {position_id} in open set with status {position.status.value}")
        return position

    def _finish_close(
        self, position: Position, price: float, reason: str, status: PositionStatus
    ) -> Tuple[Position, TradingStats]:
        position.status = status
        position.closed_price = price
        position.closed_time = self.clock()
        position.close_reason = reason
        self.stats.on_close(position.realized_pnl)
        snapshot = copy.deepcopy(position)
        self._closed.append(snapshot)
        del self._open[position.id]
        return copy.deepcopy(snapshot), self.stats.snapshot()

    def _after_close(self, snapshot: Position, stats: TradingStats) -> None:
        # `stats` was taken with the close, so each count is seen once.
        self._publish(PositionClosed(snapshot))
        every = self.config.stats_log_every
        if every > 0 and stats.closed_trades % every == 0:
            log_stats(stats)

    # ------------------------------------------------------------------
    # Queries

    def can_open(self, symbol: str) -> bool:
        """True while the symbol holds fewer open positions than allowed."""
        with self._lock:
            count = sum(1 for p in self._open.values() if p.symbol == symbol)
        return count < self.config.max_positions_per_symbol

    def has_total_capacity(self) -> bool:
        """True while the book holds fewer open positions than `max_total_positions`."""
        with self._lock:
            return len(self._open) < self.config.max_total_positions

    def open_positions(self, symbol: Optional[str] = None) -> List[Position]:
        with self._lock:
            return [
                copy.deepcopy(p)
                for p in self._open.values()
                if symbol is None or p.symbol == symbol
            ]

    def position_for_symbol(self, symbol: str) -> Optional[Position]:
        """First open position for `symbol`, or None."""
        positions = self.open_positions(symbol)
        return positions[0] if positions else None

    def closed_history(self) -> List[Position]:
        with self._lock:
            return copy.deepcopy(self._closed)

    def stats_snapshot(self) -> TradingStats:
        with self._lock:
            return self.stats.snapshot()
