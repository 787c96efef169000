"""
Sideways-range reversal strategy.

A detected sideways pattern describes a price range that was left and
then re-tested.  When price comes back to the bottom of the range the
strategy goes long, expecting a bounce; when it comes back to the top
it goes short.  Before entering, an open position for the same symbol
in the opposite direction is closed, and the candidate is checked
against the trend and order-book filters.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

import pandas as pd

from ..config.schema import Config
from ..execution.models import Confirmation, Direction, TradingSignal
from ..execution.position_book import PositionBook
from ..utils.formatting import format_price
from ..utils.timeutils import utc_now
from .oracles import OrderBookAnalysis, OrderBookOracle, TrendOracle


logger = logging.getLogger(__name__)

PRICE_DECIMALS = 8


class PatternOrientation(str, Enum):
    # Range re-tested from below: start low, went up, came back down.
    LOW_HIGH_LOW = "low_to_high_to_low"
    # Range re-tested from above.
    HIGH_LOW_HIGH = "high_to_low_to_high"


@dataclass(frozen=True)
class SidewaysPattern:
    """A detected sideways range, as delivered by the pattern source."""
    symbol: str
    orientation: PatternOrientation
    start_price: float
    middle_price: float


def direction_for(orientation: PatternOrientation) -> Direction:
    """Map a pattern orientation to the trade direction (fixed policy)."""
    if orientation is PatternOrientation.LOW_HIGH_LOW:
        return Direction.LONG
    return Direction.SHORT


def compute_levels(
    direction: Direction, entry_price: float, tp_pct: float, sl_pct: float
) -> Tuple[float, float]:
    """Return ``(take_profit_price, stop_loss_price)`` rounded to 8 decimals."""
    if direction is Direction.LONG:
        tp = entry_price * (1 + tp_pct / 100)
        sl = entry_price * (1 - sl_pct / 100)
    else:
        tp = entry_price * (1 - tp_pct / 100)
        sl = entry_price * (1 + sl_pct / 100)
    return round(tp, PRICE_DECIMALS), round(sl, PRICE_DECIMALS)


class SignalGenerator:
    """Turn sideways patterns into trading signals.

    Parameters
    ----------
    config : Config
        Uses the `trading` section (switch, levels, limits, policy) and
        `oracles.order_book_timeout` and `oracles.order_book_workers`.
    book : PositionBook
        Consulted for limits and used for the reversal close.
    trend_oracle, order_book_oracle
        Confirmation collaborators.
    clock : callable, optional
        Source of signal timestamps.
    """

    def __init__(
        self,
        config: Config,
        book: PositionBook,
        trend_oracle: TrendOracle,
        order_book_oracle: OrderBookOracle,
        clock: Optional[Callable[[], pd.Timestamp]] = None,
    ) -> None:
        self.config = config
        self.book = book
        self.trend_oracle = trend_oracle
        self.order_book_oracle = order_book_oracle
        self.clock = clock or utc_now
        # A timed-out call cannot be cancelled once running and holds its
        # worker until the oracle returns.
        self.oracle_workers = config.oracles.order_book_workers
        self._oracle_pool = ThreadPoolExecutor(
            max_workers=self.oracle_workers, thread_name_prefix="orderbook"
        )

    def shutdown(self) -> None:
        self._oracle_pool.shutdown(wait=False)

    def evaluate(self, pattern: SidewaysPattern, current_price: float) -> Optional[TradingSignal]:
        """Decide whether `pattern` at `current_price` should open a position.

        Returns ``None`` (never raises) when the strategy is disabled, a
        position limit is reached, or, under the strict policy, a
        confirmation filter disagrees.
        """
        trading = self.config.trading
        if not trading.enabled:
            return None

        direction = direction_for(pattern.orientation)
        self._close_opposite(pattern.symbol, direction, current_price)

        if not self.book.can_open(pattern.symbol):
            logger.debug("%s: per-symbol position limit reached", pattern.symbol)
            return None
        if not self.book.has_total_capacity():
            logger.debug("%s: total position limit reached", pattern.symbol)
            return None

        details: List[str] = []
        trend = self.trend_oracle.current_trend()
        trend_ok = self.trend_oracle.is_direction_allowed(direction)
        details.append(f"trend {'ok' if trend_ok else 'against'} ({trend.value})")

        analysis = self._analyze_order_book(pattern.symbol)
        if analysis is None:
            order_book_ok = None
            details.append("order book unavailable")
        else:
            order_book_ok = self.order_book_oracle.is_direction_supported(direction, analysis)
            details.append(
                f"order book {'ok' if order_book_ok else 'against'} ({analysis.bid_ask_ratio:.2f})"
            )

        # The pattern itself is the volume profile confirmation.
        confirmation = Confirmation(trend=trend_ok, volume_profile=True, order_book=order_book_ok)

        if trading.strict and (not trend_ok or order_book_ok is False):
            logger.info(
                "Rejected %s %s under strict policy: %s",
                direction.value, pattern.symbol, ", ".join(details),
            )
            return None

        tp, sl = compute_levels(
            direction, current_price, trading.take_profit_percent, trading.stop_loss_percent
        )
        side = "bottom" if direction is Direction.LONG else "top"
        reason = (
            f"Range re-tested at the {side} "
            f"({format_price(pattern.start_price)} -> {format_price(pattern.middle_price)}"
            f" -> {format_price(current_price)}) | Confirmations: {', '.join(details)}"
        )
        signal = TradingSignal(
            symbol=pattern.symbol,
            direction=direction,
            entry_price=current_price,
            timestamp=self.clock(),
            take_profit_price=tp,
            stop_loss_price=sl,
            reason=reason,
            confirmation=confirmation,
        )
        logger.info(
            "Signal %s %s (%s confirmation): %s",
            direction.value,
            pattern.symbol,
            "full" if confirmation.overall else "partial",
            ", ".join(details),
        )
        return signal

    def _close_opposite(self, symbol: str, direction: Direction, price: float) -> None:
        for position in self.book.open_positions(symbol):
            if position.direction is direction.opposite:
                self.book.close_by_reversal(
                    position.id,
                    price,
                    f"reversal: {position.direction.value} -> {direction.value}",
                )

    def _analyze_order_book(self, symbol: str) -> Optional[OrderBookAnalysis]:
        future = self._oracle_pool.submit(self.order_book_oracle.analyze, symbol)
        try:
            return future.result(timeout=self.config.oracles.order_book_timeout)
        except Exception as exc:
            future.cancel()
            logger.warning("%s: order book unavailable (%s)", symbol, str(exc) or type(exc).__name__)
            return None
