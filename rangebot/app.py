"""
Application entry point.

This module defines a simple command-line interface for replaying
recorded price ticks and detected sideways patterns through the
trading core.  It loads the configuration, wires the position book,
signal generator, oracles and trade log together, runs the replay and
writes a session report.
"""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from .config.schema import Config, load_config
from .data.csv_data import CSVDataLoader
from .execution.coordinator import TradingCoordinator
from .execution.position_book import PositionBook
from .reporting.report import generate_session_report
from .reporting.stats import log_stats
from .strategy.oracles import FixedTrendOracle, SnapshotOrderBookOracle, TrendState
from .strategy.sideways_signal import SignalGenerator
from .utils.persistence import CsvTradeLog, SinkDispatcher


def _setup_logging(verbose: bool) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def run_replay(config: Config) -> PositionBook:
    """Replay the configured CSV files and return the resulting book."""
    book = PositionBook(config.trading)
    dispatcher: Optional[SinkDispatcher] = None
    if config.sink.enabled:
        dispatcher = SinkDispatcher(CsvTradeLog(config.sink.path), workers=config.sink.workers)
        book.subscribe(dispatcher)

    generator = SignalGenerator(
        config,
        book,
        FixedTrendOracle(TrendState(config.oracles.trend)),
        SnapshotOrderBookOracle(config.oracles.order_book_ratio_threshold),
    )
    loader = CSVDataLoader(config.data.timezone)
    ticks = loader.load_ticks(config.data.ticks_csv)
    patterns = loader.load_patterns(config.data.patterns_csv)
    logging.info("Replaying %d ticks and %d patterns", len(ticks), len(patterns))

    try:
        TradingCoordinator(book, generator).replay(ticks, patterns)
    finally:
        generator.shutdown()
        if dispatcher is not None:
            dispatcher.shutdown(wait=True)
    return book


def main(argv: Optional[List[str]] = None) -> None:
    """Parse command-line arguments and dispatch to the appropriate mode."""
    parser = argparse.ArgumentParser(description="Sideways range trading core")
    parser.add_argument('mode', choices=['replay'], help="Operating mode")
    parser.add_argument('--config', default='config.yaml', help="Path to configuration YAML file")
    parser.add_argument('--ticks', help="Override data.ticks_csv")
    parser.add_argument('--patterns', help="Override data.patterns_csv")
    parser.add_argument('-v', '--verbose', action='store_true', help="Enable debug logging")
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    config = load_config(args.config)
    if args.ticks:
        config.data.ticks_csv = args.ticks
    if args.patterns:
        config.data.patterns_csv = args.patterns

    logging.info("Running replay (policy=%s)...", config.trading.confirmation_policy)
    book = run_replay(config)
    stats = book.stats_snapshot()
    log_stats(stats)
    generate_session_report(book.closed_history(), stats, out_dir=config.report_dir)
    logging.info("Replay complete. Results saved to the '%s' directory.", config.report_dir)


if __name__ == '__main__':
    main()
