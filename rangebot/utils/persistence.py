"""
Trade log persistence.

Every opened and closed position is appended as one row to an external
trade log (a spreadsheet-like table).  The close appends a second row
carrying the result rather than editing the first one, so the log is
append-only and duplicates are tolerated.

Writes never run inside a position state transition: `SinkDispatcher`
subscribes to the book's events and hands each write to a worker
thread.  A failed write is logged and dropped.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from ..execution.models import Position, PositionClosed, PositionOpened
from .timeutils import record_date


logger = logging.getLogger(__name__)

LOG_COLUMNS = ["date", "symbol", "vp", "trend", "order_book", "open", "side", "tp", "sl", "result"]


@dataclass(frozen=True)
class TradeRecord:
    """One row of the trade log.

    `order_book` carries the overall confirmation flag (all filters
    agreed).  `result` is the realized PnL in percent, ``None`` until
    the position is closed.
    """
    date: str
    symbol: str
    vp: bool
    trend: bool
    order_book: bool
    open: float
    side: str
    tp: float
    sl: float
    result: Optional[float] = None


def record_from_position(position: Position) -> TradeRecord:
    confirmation = position.confirmation
    return TradeRecord(
        date=record_date(position.entry_time),
        symbol=position.symbol,
        vp=confirmation.volume_profile,
        trend=confirmation.trend,
        order_book=confirmation.overall,
        open=position.entry_price,
        side=position.direction.value.lower(),
        tp=position.take_profit_price,
        sl=position.stop_loss_price,
        result=None if position.is_open else position.realized_pnl,
    )


class TradeSink:
    """Interface of the persistence collaborator."""

    def record_opened(self, record: TradeRecord) -> None:
        raise NotImplementedError

    def record_closed(self, record: TradeRecord) -> None:
        raise NotImplementedError


class CsvTradeLog(TradeSink):
    """Append trade rows to a CSV file, writing the header on first use.

    Parameters
    ----------
    path : str
        Target file.  Parent directories are created as needed.
    """

    def __init__(self, path: str) -> None:
        if not path:
            raise ValueError("CsvTradeLog requires a file path")
        self.path = Path(path)
        self._lock = threading.Lock()

    def _append(self, record: TradeRecord) -> None:
        row = pd.DataFrame([asdict(record)], columns=LOG_COLUMNS)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            write_header = not self.path.exists() or self.path.stat().st_size == 0
            row.to_csv(self.path, mode="a", header=write_header, index=False)

    def record_opened(self, record: TradeRecord) -> None:
        self._append(record)

    def record_closed(self, record: TradeRecord) -> None:
        self._append(record)


class SinkDispatcher:
    """Forward book events to a `TradeSink` on background workers.

    Use as a book listener: ``book.subscribe(dispatcher)``.  Calling the
    dispatcher only submits the write and returns immediately.
    """

    def __init__(self, sink: TradeSink, workers: int = 1) -> None:
        self.sink = sink
        self._pool = ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="trade-sink")

    def __call__(self, event: Union[PositionOpened, PositionClosed]) -> None:
        record = record_from_position(event.position)
        if isinstance(event, PositionOpened):
            future = self._pool.submit(self.sink.record_opened, record)
        else:
            future = self._pool.submit(self.sink.record_closed, record)
        future.add_done_callback(self._report_failure)

    @staticmethod
    def _report_failure(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Trade log write failed: %s", exc, exc_info=exc)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting events; with `wait`, block until queued writes finish."""
        self._pool.shutdown(wait=wait)
