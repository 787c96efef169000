"""
Lifecycle coordinator.

This module contains the `TradingCoordinator` class which wires the
signal generator to the position book: detected patterns are turned
into signals and opened, price ticks re-price the book.  All work for
one symbol is serialised through that symbol's lock; different symbols
may be processed concurrently from different threads.

`replay()` drives the coordinator from recorded ticks and patterns, in
time order, the way a live feed would.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

import pandas as pd

from ..strategy.oracles import SnapshotOrderBookOracle
from ..strategy.sideways_signal import PatternOrientation, SidewaysPattern, SignalGenerator
from ..utils.timeutils import ReplayClock
from .models import Position
from .position_book import PositionBook


logger = logging.getLogger(__name__)


class TradingCoordinator:
    """Feed patterns and ticks into the book, one symbol at a time."""

    def __init__(self, book: PositionBook, generator: SignalGenerator) -> None:
        self.book = book
        self.generator = generator
        self._symbol_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, symbol: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._symbol_locks.get(symbol)
            if lock is None:
                lock = self._symbol_locks[symbol] = threading.Lock()
            return lock

    def on_pattern(self, pattern: SidewaysPattern, current_price: float) -> Optional[Position]:
        """Evaluate a detected pattern and open a position if a signal results.

        Returns ``None`` when no signal was produced or the book refused the
        open because a position limit was reached in the meantime.
        """
        with self._lock_for(pattern.symbol):
            signal = self.generator.evaluate(pattern, current_price)
            if signal is None:
                return None
            return self.book.open_position(signal)

    def on_tick(self, symbol: str, price: float) -> List[Position]:
        """Apply a price tick; returns the positions it closed."""
        with self._lock_for(symbol):
            return self.book.update(symbol, price)

    def replay(self, ticks: pd.DataFrame, patterns: pd.DataFrame) -> None:
        """Replay recorded ticks and patterns in timestamp order.

        Parameters
        ----------
        ticks : pandas.DataFrame
            Indexed by time with columns ``symbol`` and ``price`` and,
            optionally, ``bid_volume``/``ask_volume`` which feed a
            `SnapshotOrderBookOracle`.
        patterns : pandas.DataFrame
            Indexed by time with columns ``symbol``, ``orientation``,
            ``start_price`` and ``middle_price``.  A pattern is evaluated
            at the last price seen for its symbol; patterns arriving
            before any tick for their symbol are skipped.

        Signal, entry and close times are taken from the recorded event
        times: the book and the generator share a `ReplayClock` for the
        duration of the replay.
        """
        oracle = self.generator.order_book_oracle
        has_depth = {"bid_volume", "ask_volume"} <= set(ticks.columns)
        events = pd.concat([ticks.assign(kind=0), patterns.assign(kind=1)], sort=False)
        events.index.name = "time"
        # Ticks sort before patterns that share a timestamp.
        events = events.reset_index().sort_values(["time", "kind"])

        clock = ReplayClock()
        saved = self.book.clock, self.generator.clock
        self.book.clock = self.generator.clock = clock
        try:
            last_price: Dict[str, float] = {}
            for row in events.itertuples(index=False):
                clock.advance(row.time)
                symbol = str(row.symbol)
                if row.kind == 0:
                    price = float(row.price)
                    last_price[symbol] = price
                    if (
                        has_depth
                        and isinstance(oracle, SnapshotOrderBookOracle)
                        and pd.notna(row.bid_volume)
                        and pd.notna(row.ask_volume)
                    ):
                        oracle.record(symbol, float(row.bid_volume), float(row.ask_volume))
                    self.on_tick(symbol, price)
                    continue

                if symbol not in last_price:
                    logger.debug("%s: pattern before first tick, skipped", symbol)
                    continue
                pattern = SidewaysPattern(
                    symbol=symbol,
                    orientation=PatternOrientation(str(row.orientation)),
                    start_price=float(row.start_price),
                    middle_price=float(row.middle_price),
                )
                self.on_pattern(pattern, last_price[symbol])
        finally:
            self.book.clock, self.generator.clock = saved
