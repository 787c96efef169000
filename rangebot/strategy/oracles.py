"""
Trend and order-book collaborators.

The signal generator consults two oracles.  Their real implementations
(trend classification on a reference market, depth analysis on a live
order book) live outside this package; this module fixes the interface
they must provide and ships the simple implementations used by the
replay mode and the tests.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from ..execution.models import Direction


class TrendState(str, Enum):
    UPTREND = "UPTREND"
    DOWNTREND = "DOWNTREND"
    SIDEWAYS = "SIDEWAYS"
    UNKNOWN = "UNKNOWN"


def trend_allows(trend: TrendState, direction: Direction) -> bool:
    """Whether a market trend is compatible with a trade direction.

    An uptrend only allows longs, a downtrend only shorts; a sideways or
    unknown market allows both.
    """
    if trend is TrendState.UPTREND:
        return direction is Direction.LONG
    if trend is TrendState.DOWNTREND:
        return direction is Direction.SHORT
    return True


class TrendOracle:
    """Interface of the trend collaborator."""

    def current_trend(self) -> TrendState:
        raise NotImplementedError

    def is_direction_allowed(self, direction: Direction) -> bool:
        return trend_allows(self.current_trend(), direction)


class FixedTrendOracle(TrendOracle):
    """Reports a constant trend, settable at runtime."""

    def __init__(self, trend: TrendState = TrendState.SIDEWAYS) -> None:
        self.trend = trend

    def current_trend(self) -> TrendState:
        return self.trend


@dataclass(frozen=True)
class OrderBookAnalysis:
    """Bid/ask imbalance summary for one symbol."""
    symbol: str
    bid_ask_ratio: float
    total_bid_volume: float
    total_ask_volume: float
    strength: float
    bullish_signal: bool
    bearish_signal: bool


def analysis_from_volumes(
    symbol: str,
    bid_volume: float,
    ask_volume: float,
    ratio_threshold: float = 1.2,
) -> OrderBookAnalysis:
    """Build an `OrderBookAnalysis` from aggregated bid and ask volume.

    The book is bullish when ``bid/ask >= ratio_threshold`` and bearish
    when ``bid/ask <= 1/ratio_threshold``.  `strength` is the absolute
    imbalance ``|bid - ask| / (bid + ask)`` in the range 0..1.
    """
    if ask_volume > 0:
        ratio = bid_volume / ask_volume
    else:
        ratio = float("inf") if bid_volume > 0 else 1.0
    total = bid_volume + ask_volume
    strength = abs(bid_volume - ask_volume) / total if total > 0 else 0.0
    return OrderBookAnalysis(
        symbol=symbol,
        bid_ask_ratio=ratio,
        total_bid_volume=bid_volume,
        total_ask_volume=ask_volume,
        strength=strength,
        bullish_signal=ratio >= ratio_threshold,
        bearish_signal=ratio <= 1.0 / ratio_threshold,
    )


class OrderBookUnavailable(RuntimeError):
    """The order-book oracle has no data for the requested symbol."""


class OrderBookOracle:
    """Interface of the order-book collaborator.

    `analyze` may block, raise or hang; callers must guard it with a
    timeout.
    """

    def analyze(self, symbol: str) -> OrderBookAnalysis:
        raise NotImplementedError

    def is_direction_supported(self, direction: Direction, analysis: OrderBookAnalysis) -> bool:
        if direction is Direction.LONG:
            return analysis.bullish_signal
        return analysis.bearish_signal


class SnapshotOrderBookOracle(OrderBookOracle):
    """Serves the latest bid/ask volume snapshot recorded for each symbol."""

    def __init__(self, ratio_threshold: float = 1.2) -> None:
        self.ratio_threshold = ratio_threshold
        self._snapshots: Dict[str, OrderBookAnalysis] = {}
        self._lock = threading.Lock()

    def record(self, symbol: str, bid_volume: float, ask_volume: float) -> None:
        analysis = analysis_from_volumes(symbol, bid_volume, ask_volume, self.ratio_threshold)
        with self._lock:
            self._snapshots[symbol] = analysis

    def analyze(self, symbol: str) -> OrderBookAnalysis:
        with self._lock:
            analysis: Optional[OrderBookAnalysis] = self._snapshots.get(symbol)
        if analysis is None:
            raise OrderBookUnavailable(f"no order book snapshot for {symbol}")
        return analysis
