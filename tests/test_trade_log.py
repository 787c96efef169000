import os
import sys
import tempfile
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from rangebot.execution.models import Confirmation, Direction, Position, PositionStatus
from rangebot.utils.persistence import CsvTradeLog, LOG_COLUMNS, record_from_position

import unittest


def short_position() -> Position:
    return Position(
        id="p-1",
        symbol="XYZ",
        direction=Direction.SHORT,
        entry_price=100.0,
        entry_time=pd.Timestamp("2024-03-05 23:30", tz="UTC"),
        current_price=100.0,
        take_profit_price=98.0,
        stop_loss_price=102.0,
        trigger_reason="test",
        confirmation=Confirmation(trend=True, order_book=False),
    )


class TestTradeLog(unittest.TestCase):
    def test_record_fields(self) -> None:
        record = record_from_position(short_position())
        self.assertEqual(record.date, "2024-03-05")
        self.assertEqual(record.side, "short")
        self.assertTrue(record.vp)
        self.assertTrue(record.trend)
        self.assertFalse(record.order_book)
        self.assertIsNone(record.result)

    def test_closed_record_carries_result(self) -> None:
        position = short_position()
        position.status = PositionStatus.CLOSED_TP
        position.realized_pnl = 2.0
        self.assertEqual(record_from_position(position).result, 2.0)

    def test_csv_log_appends_rows(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "logs", "trades.csv")
            log = CsvTradeLog(path)
            position = short_position()
            log.record_opened(record_from_position(position))
            position.status = PositionStatus.CLOSED_SL
            position.realized_pnl = -2.0
            log.record_closed(record_from_position(position))

            df = pd.read_csv(path)
            self.assertEqual(list(df.columns), LOG_COLUMNS)
            self.assertEqual(len(df), 2)
            self.assertTrue(pd.isna(df.loc[0, "result"]))
            self.assertAlmostEqual(df.loc[1, "result"], -2.0)

    def test_missing_path_is_a_config_error(self) -> None:
        with self.assertRaises(ValueError):
            CsvTradeLog("")


if __name__ == '__main__':
    unittest.main()
