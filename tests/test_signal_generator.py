import os
import sys
import time
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from rangebot.config.schema import Config
from rangebot.execution.models import Direction, PositionStatus
from rangebot.execution.position_book import PositionBook
from rangebot.strategy.oracles import (
    FixedTrendOracle,
    OrderBookOracle,
    SnapshotOrderBookOracle,
    TrendState,
)
from rangebot.strategy.sideways_signal import PatternOrientation, SidewaysPattern, SignalGenerator

import unittest


NOW = pd.Timestamp("2024-01-01 12:00", tz="UTC")


class SlowOrderBook(OrderBookOracle):
    def analyze(self, symbol):
        time.sleep(1.0)
        raise AssertionError("should have timed out")


class BrokenOrderBook(OrderBookOracle):
    def analyze(self, symbol):
        raise ConnectionError("exchange unreachable")


def pattern(orientation: PatternOrientation, symbol: str = "XYZ") -> SidewaysPattern:
    return SidewaysPattern(symbol=symbol, orientation=orientation, start_price=99.0, middle_price=101.0)


class TestSignalGenerator(unittest.TestCase):
    def setUp(self) -> None:
        self.cfg = Config()
        self.cfg.oracles.order_book_timeout = 0.2
        self.book = PositionBook(self.cfg.trading)
        self.trend = FixedTrendOracle(TrendState.SIDEWAYS)
        self.order_book = SnapshotOrderBookOracle(ratio_threshold=1.2)
        self.generator = SignalGenerator(
            self.cfg, self.book, self.trend, self.order_book, clock=lambda: NOW
        )

    def tearDown(self) -> None:
        self.generator.shutdown()

    def test_long_signal_with_full_confirmation(self) -> None:
        self.order_book.record("XYZ", bid_volume=300.0, ask_volume=100.0)
        signal = self.generator.evaluate(pattern(PatternOrientation.LOW_HIGH_LOW), 100.0)
        self.assertIsNotNone(signal)
        self.assertIs(signal.direction, Direction.LONG)
        self.assertEqual(signal.take_profit_price, 102.0)
        self.assertEqual(signal.stop_loss_price, 98.0)
        self.assertEqual(signal.timestamp, NOW)
        self.assertTrue(signal.confirmation.overall)
        self.assertIn("Confirmations", signal.reason)

    def test_disabled_strategy_returns_none(self) -> None:
        self.cfg.trading.enabled = False
        self.assertIsNone(self.generator.evaluate(pattern(PatternOrientation.LOW_HIGH_LOW), 100.0))

    def test_same_direction_blocked_by_symbol_limit(self) -> None:
        signal = self.generator.evaluate(pattern(PatternOrientation.LOW_HIGH_LOW), 100.0)
        self.book.open_position(signal)
        self.assertIsNone(self.generator.evaluate(pattern(PatternOrientation.LOW_HIGH_LOW), 100.5))
        self.assertEqual(len(self.book.open_positions("XYZ")), 1)

    def test_total_limit_rejects(self) -> None:
        self.cfg.trading.max_total_positions = 1
        self.book.open_position(self.generator.evaluate(pattern(PatternOrientation.LOW_HIGH_LOW, "AAA"), 10.0))
        self.assertIsNone(self.generator.evaluate(pattern(PatternOrientation.LOW_HIGH_LOW, "BBB"), 10.0))

    def test_reversal_closes_opposite_before_limit_check(self) -> None:
        signal = self.generator.evaluate(pattern(PatternOrientation.LOW_HIGH_LOW), 100.0)
        self.book.open_position(signal)
        short = self.generator.evaluate(pattern(PatternOrientation.HIGH_LOW_HIGH), 99.0)
        self.assertIsNotNone(short)
        self.assertIs(short.direction, Direction.SHORT)
        self.assertEqual(self.book.open_positions("XYZ"), [])
        closed = self.book.closed_history()[0]
        self.assertIs(closed.status, PositionStatus.CLOSED_SL)
        self.assertTrue(closed.close_reason.startswith("reversal"))
        self.assertAlmostEqual(closed.realized_pnl, -1.0)
        self.assertEqual(self.book.stats_snapshot().closed_trades, 1)

    def test_reversal_happens_even_when_new_signal_rejected(self) -> None:
        self.cfg.trading.confirmation_policy = "strict"
        self.book.open_position(self.generator.evaluate(pattern(PatternOrientation.LOW_HIGH_LOW), 100.0))
        self.trend.trend = TrendState.UPTREND
        self.assertIsNone(self.generator.evaluate(pattern(PatternOrientation.HIGH_LOW_HIGH), 101.0))
        self.assertEqual(self.book.open_positions(), [])
        self.assertAlmostEqual(self.book.closed_history()[0].realized_pnl, 1.0)

    def test_strict_rejects_trend_disagreement(self) -> None:
        self.cfg.trading.confirmation_policy = "strict"
        self.trend.trend = TrendState.DOWNTREND
        self.assertIsNone(self.generator.evaluate(pattern(PatternOrientation.LOW_HIGH_LOW), 100.0))

    def test_strict_rejects_order_book_disagreement(self) -> None:
        self.cfg.trading.confirmation_policy = "strict"
        self.order_book.record("XYZ", bid_volume=100.0, ask_volume=100.0)
        self.assertIsNone(self.generator.evaluate(pattern(PatternOrientation.LOW_HIGH_LOW), 100.0))

    def test_strict_accepts_unknown_order_book(self) -> None:
        self.cfg.trading.confirmation_policy = "strict"
        signal = self.generator.evaluate(pattern(PatternOrientation.LOW_HIGH_LOW), 100.0)
        self.assertIsNotNone(signal)
        self.assertIsNone(signal.confirmation.order_book)
        self.assertFalse(signal.confirmation.overall)

    def test_permissive_tags_disagreement(self) -> None:
        self.trend.trend = TrendState.DOWNTREND
        self.order_book.record("XYZ", bid_volume=300.0, ask_volume=100.0)
        signal = self.generator.evaluate(pattern(PatternOrientation.LOW_HIGH_LOW), 100.0)
        self.assertIsNotNone(signal)
        self.assertFalse(signal.confirmation.trend)
        self.assertTrue(signal.confirmation.volume_profile)
        self.assertTrue(signal.confirmation.order_book)
        self.assertFalse(signal.confirmation.overall)

    def test_order_book_timeout_degrades_to_unknown(self) -> None:
        generator = SignalGenerator(self.cfg, self.book, self.trend, SlowOrderBook(), clock=lambda: NOW)
        try:
            started = time.monotonic()
            signal = generator.evaluate(pattern(PatternOrientation.HIGH_LOW_HIGH), 100.0)
            self.assertLess(time.monotonic() - started, 0.9)
        finally:
            generator.shutdown()
        self.assertIsNotNone(signal)
        self.assertIsNone(signal.confirmation.order_book)
        self.assertIn("order book unavailable", signal.reason)

    def test_order_book_error_degrades_to_unknown(self) -> None:
        generator = SignalGenerator(self.cfg, self.book, self.trend, BrokenOrderBook(), clock=lambda: NOW)
        try:
            signal = generator.evaluate(pattern(PatternOrientation.HIGH_LOW_HIGH), 100.0)
        finally:
            generator.shutdown()
        self.assertIs(signal.direction, Direction.SHORT)
        self.assertEqual(signal.take_profit_price, 98.0)
        self.assertEqual(signal.stop_loss_price, 102.0)
        self.assertIsNone(signal.confirmation.order_book)

    def test_order_book_pool_sized_from_config(self) -> None:
        self.cfg.oracles.order_book_workers = 12
        generator = SignalGenerator(self.cfg, self.book, self.trend, self.order_book, clock=lambda: NOW)
        try:
            self.assertEqual(generator.oracle_workers, 12)
        finally:
            generator.shutdown()


if __name__ == '__main__':
    unittest.main()
