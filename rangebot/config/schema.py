"""
Configuration schema and loader.

This module defines dataclasses that mirror the expected structure of
the YAML configuration file (`config.yaml`).  A helper function
`load_config()` reads a YAML file from disk and returns an instance
of `Config` populated with reasonable defaults for any missing
fields.

When extending the configuration, add new fields to the appropriate
dataclass and to the defaults dictionary in `load_config()`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Any
import yaml


CONFIRMATION_POLICIES = ("strict", "permissive")
TRENDS = ("UPTREND", "DOWNTREND", "SIDEWAYS", "UNKNOWN")


@dataclass
class TradingConfig:
    """Strategy switches and position limits.

    Attributes
    ----------
    enabled : bool
        Master switch.  When disabled no signals are produced.
    take_profit_percent : float
        Take-profit distance from the entry price, in percent (2.0 = 2 %).
    stop_loss_percent : float
        Stop-loss distance from the entry price, in percent.  By
        convention equal to `take_profit_percent`.
    max_positions_per_symbol : int
        Maximum number of simultaneously open positions per symbol.
    max_total_positions : int
        Ceiling on open positions across all symbols.
    confirmation_policy : str
        ``"strict"`` rejects a signal when the trend or order-book filter
        disagrees; ``"permissive"`` always emits it and only tags the
        confirmation outcome.
    stats_log_every : int
        Log a statistics summary every N closed trades (0 disables).
    """

    enabled: bool = True
    take_profit_percent: float = 2.0
    stop_loss_percent: float = 2.0
    max_positions_per_symbol: int = 1
    max_total_positions: int = 10
    confirmation_policy: str = "permissive"
    stats_log_every: int = 5

    @property
    def strict(self) -> bool:
        return self.confirmation_policy == "strict"


@dataclass
class OracleConfig:
    """Settings for the trend and order-book collaborators.

    Attributes
    ----------
    order_book_timeout : float
        Seconds to wait for an order-book analysis before treating the
        filter as unknown.
    order_book_ratio_threshold : float
        Bid/ask volume ratio at or above which the book is bullish.  The
        reciprocal is the bearish threshold.
    trend : str
        Fixed market trend used when replaying recorded data
        (``UPTREND``, ``DOWNTREND``, ``SIDEWAYS`` or ``UNKNOWN``).
    order_book_workers : int
        Threads available for order-book calls.  A call that hangs past
        its timeout keeps its thread, so this bounds how many hung calls
        can be outstanding before new calls queue behind them.
    """

    order_book_timeout: float = 2.0
    order_book_ratio_threshold: float = 1.2
    trend: str = "SIDEWAYS"
    order_book_workers: int = 4


@dataclass
class SinkConfig:
    """Append-only trade log written for every opened and closed position."""

    enabled: bool = False
    path: str = ""
    workers: int = 1


@dataclass
class DataConfig:
    """Recorded data used by the replay mode.

    Attributes
    ----------
    ticks_csv : str
        CSV file with ``time,symbol,price`` rows and optional
        ``bid_volume,ask_volume`` columns.
    patterns_csv : str
        CSV file with detected sideways patterns
        (``time,symbol,orientation,start_price,middle_price``).
    timezone : str
        IANA timezone used to localise naive timestamps.
    """

    ticks_csv: str = "data/ticks.csv"
    patterns_csv: str = "data/patterns.csv"
    timezone: str = "UTC"


@dataclass
class Config:
    """Root configuration for the trading core."""

    trading: TradingConfig = field(default_factory=TradingConfig)
    oracles: OracleConfig = field(default_factory=OracleConfig)
    sink: SinkConfig = field(default_factory=SinkConfig)
    data: DataConfig = field(default_factory=DataConfig)
    report_dir: str = "results"


def _merge_dict(defaults: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries.

    The values in `override` take precedence over those in `defaults`.
    This helper is used when loading YAML into nested dataclasses.
    """
    result: Dict[str, Any] = defaults.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def validate_config(cfg: Config) -> None:
    """Raise `ValueError` for settings the core cannot run with."""
    policy = cfg.trading.confirmation_policy
    if policy not in CONFIRMATION_POLICIES:
        raise ValueError(
            f"Unknown confirmation_policy {policy!r}; expected one of {CONFIRMATION_POLICIES}"
        )
    if cfg.oracles.trend not in TRENDS:
        raise ValueError(f"Unknown trend {cfg.oracles.trend!r}; expected one of {TRENDS}")
    if cfg.oracles.order_book_workers < 1:
        raise ValueError("order_book_workers must be at least 1")
    if cfg.trading.max_positions_per_symbol < 1:
        raise ValueError("max_positions_per_symbol must be at least 1")
    if cfg.sink.enabled and not cfg.sink.path:
        raise ValueError("sink.enabled is set but sink.path is empty")


def load_config(path: str) -> Config:
    """Load a configuration file from the given YAML path.

    Parameters
    ----------
    path : str
        Path to the YAML file.

    Returns
    -------
    Config
        A populated configuration object.  Missing fields are filled with
        the defaults defined in the dataclasses.

    Raises
    ------
    ValueError
        If a value is out of range (see `validate_config`).
    """
    with open(path, "r", encoding="utf-8") as fh:
        raw: Dict[str, Any] = yaml.safe_load(fh) or {}

    defaults: Dict[str, Any] = {
        'trading': {
            'enabled': True,
            'take_profit_percent': 2.0,
            'stop_loss_percent': 2.0,
            'max_positions_per_symbol': 1,
            'max_total_positions': 10,
            'confirmation_policy': 'permissive',
            'stats_log_every': 5,
        },
        'oracles': {
            'order_book_timeout': 2.0,
            'order_book_ratio_threshold': 1.2,
            'trend': 'SIDEWAYS',
            'order_book_workers': 4,
        },
        'sink': {
            'enabled': False,
            'path': '',
            'workers': 1,
        },
        'data': {
            'ticks_csv': 'data/ticks.csv',
            'patterns_csv': 'data/patterns.csv',
            'timezone': 'UTC',
        },
        'report_dir': 'results',
    }

    merged = _merge_dict(defaults, raw)

    trading = merged['trading']
    trading_cfg = TradingConfig(
        enabled=bool(trading['enabled']),
        take_profit_percent=float(trading['take_profit_percent']),
        stop_loss_percent=float(trading['stop_loss_percent']),
        max_positions_per_symbol=int(trading['max_positions_per_symbol']),
        max_total_positions=int(trading['max_total_positions']),
        confirmation_policy=str(trading['confirmation_policy']).lower(),
        stats_log_every=int(trading['stats_log_every']),
    )
    oracles = merged['oracles']
    oracle_cfg = OracleConfig(
        order_book_timeout=float(oracles['order_book_timeout']),
        order_book_ratio_threshold=float(oracles['order_book_ratio_threshold']),
        trend=str(oracles['trend']).upper(),
        order_book_workers=int(oracles['order_book_workers']),
    )

    cfg = Config(
        trading=trading_cfg,
        oracles=oracle_cfg,
        sink=SinkConfig(**merged['sink']),
        data=DataConfig(**merged['data']),
        report_dir=str(merged.get('report_dir', 'results')),
    )
    validate_config(cfg)
    return cfg
