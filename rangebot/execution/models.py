"""
Signal, position and statistics models.

These dataclasses represent the objects passed between the signal
generator, the position book and the persistence adapters.  Keeping
them in a separate module improves readability and makes unit testing
easier.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
import pandas as pd


class Direction(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def opposite(self) -> "Direction":
        return Direction.SHORT if self is Direction.LONG else Direction.LONG


class PositionStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED_TP = "CLOSED_TP"
    CLOSED_SL = "CLOSED_SL"


class PositionStateError(RuntimeError):
    """Open/closed bookkeeping no longer matches reality.

    Raised when closing an unknown or already closed position.  This
    always indicates a programming error and must not be swallowed.
    """


@dataclass(frozen=True)
class Confirmation:
    """Outcome of the confirmation filters for one signal.

    `order_book` is ``None`` when the order-book oracle was unavailable.
    """
    trend: bool = False
    volume_profile: bool = True
    order_book: Optional[bool] = None

    @property
    def overall(self) -> bool:
        return self.trend and self.volume_profile and self.order_book is True


@dataclass(frozen=True)
class TradingSignal:
    """An accepted entry decision, consumed once to open a position."""
    symbol: str
    direction: Direction
    entry_price: float
    timestamp: pd.Timestamp
    take_profit_price: float
    stop_loss_price: float
    reason: str
    confirmation: Confirmation = field(default_factory=Confirmation)


@dataclass
class Position:
    """A position tracked by the book.

    The closing fields (`closed_price`, `closed_time`, `close_reason`)
    and `realized_pnl` are set exactly when `status` leaves OPEN.  PnL
    values are percentages of the entry price.
    """
    id: str
    symbol: str
    direction: Direction
    entry_price: float
    entry_time: pd.Timestamp
    current_price: float
    take_profit_price: float
    stop_loss_price: float
    trigger_reason: str
    confirmation: Confirmation = field(default_factory=Confirmation)
    status: PositionStatus = PositionStatus.OPEN
    unrealized_pnl: float = 0.0
    realized_pnl: Optional[float] = None
    closed_price: Optional[float] = None
    closed_time: Optional[pd.Timestamp] = None
    close_reason: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status is PositionStatus.OPEN

    def pnl_at(self, price: float) -> float:
        """Signed percentage move from the entry price."""
        if self.direction is Direction.LONG:
            return (price - self.entry_price) / self.entry_price * 100
        return (self.entry_price - price) / self.entry_price * 100


@dataclass(frozen=True)
class TradingStats:
    """Snapshot of the aggregate trade statistics (PnL in percent)."""
    total_trades: int = 0
    open_trades: int = 0
    closed_trades: int = 0
    win_trades: int = 0
    loss_trades: int = 0
    win_rate: float = 0.0
    total_pnl: float = 0.0
    average_pnl: float = 0.0
    max_win: float = 0.0
    max_loss: float = 0.0


@dataclass(frozen=True)
class PositionOpened:
    """Published after a position enters the book."""
    position: Position


@dataclass(frozen=True)
class PositionClosed:
    """Published after a position has moved to the closed history."""
    position: Position
