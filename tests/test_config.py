import os
import sys
import tempfile

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from rangebot.config.schema import load_config

import unittest


class TestLoadConfig(unittest.TestCase):
    def _write(self, tmp: str, text: str) -> str:
        path = os.path.join(tmp, "config.yaml")
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(text)
        return path

    def test_defaults_fill_missing_fields(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            cfg = load_config(self._write(tmp, "trading:\n  take_profit_percent: 1.5\n"))
        self.assertEqual(cfg.trading.take_profit_percent, 1.5)
        self.assertEqual(cfg.trading.stop_loss_percent, 2.0)
        self.assertEqual(cfg.trading.max_positions_per_symbol, 1)
        self.assertEqual(cfg.trading.max_total_positions, 10)
        self.assertFalse(cfg.trading.strict)
        self.assertEqual(cfg.oracles.trend, "SIDEWAYS")
        self.assertEqual(cfg.oracles.order_book_workers, 4)

    def test_policy_is_case_insensitive(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            cfg = load_config(self._write(tmp, "trading:\n  confirmation_policy: STRICT\n"))
        self.assertTrue(cfg.trading.strict)

    def test_unknown_policy_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = self._write(tmp, "trading:\n  confirmation_policy: lenient\n")
            with self.assertRaises(ValueError):
                load_config(path)

    def test_enabled_sink_requires_path(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = self._write(tmp, "sink:\n  enabled: true\n")
            with self.assertRaises(ValueError):
                load_config(path)

    def test_order_book_workers_override(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            cfg = load_config(self._write(tmp, "oracles:\n  order_book_workers: 16\n"))
        self.assertEqual(cfg.oracles.order_book_workers, 16)

    def test_order_book_workers_must_be_positive(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = self._write(tmp, "oracles:\n  order_book_workers: 0\n")
            with self.assertRaises(ValueError):
                load_config(path)


if __name__ == '__main__':
    unittest.main()
