"""
CSV data loader.

This module loads the recorded inputs used by the replay mode.  Price
ticks are expected as

```
time,symbol,price[,bid_volume,ask_volume]
```

and detected sideways patterns as

```
time,symbol,orientation,start_price,middle_price
```

The `time` column may contain ISO-formatted timestamps or anything
`pandas.to_datetime` understands.  Naive timestamps are interpreted in
the configured timezone; the returned frames are indexed by UTC time.
"""

from __future__ import annotations

from pathlib import Path
from typing import List
import pandas as pd

from ..strategy.sideways_signal import PatternOrientation
from ..utils.timeutils import localize_index


TICK_COLUMNS = ["symbol", "price"]
PATTERN_COLUMNS = ["symbol", "orientation", "start_price", "middle_price"]


class CSVDataLoader:
    """Load recorded ticks and patterns for replay.

    Parameters
    ----------
    timezone : str
        IANA timezone name used to localise naive timestamps.
    """

    def __init__(self, timezone: str = "UTC") -> None:
        self.timezone = timezone

    def _read(self, path: str, required: List[str]) -> pd.DataFrame:
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"CSV file not found: {file_path}")
        df = pd.read_csv(file_path)
        df.columns = [c.strip() for c in df.columns]
        missing = [c for c in ["time"] + required if c not in df.columns]
        if missing:
            raise ValueError(
                f"Unrecognized CSV format in {file_path}. Missing columns: {missing}. "
                f"Found columns: {list(df.columns)}"
            )
        df["time"] = pd.to_datetime(df["time"], errors="raise")
        df = df.set_index("time").sort_index(kind="mergesort")
        df.index = localize_index(df.index, self.timezone)
        df["symbol"] = df["symbol"].astype(str).str.strip()
        return df

    def load_ticks(self, path: str) -> pd.DataFrame:
        df = self._read(path, TICK_COLUMNS)
        df["price"] = df["price"].astype(float)
        return df

    def load_patterns(self, path: str) -> pd.DataFrame:
        df = self._read(path, PATTERN_COLUMNS)
        valid = {o.value for o in PatternOrientation}
        df["orientation"] = df["orientation"].astype(str).str.strip()
        bad = sorted(set(df["orientation"]) - valid)
        if bad:
            raise ValueError(f"Unknown pattern orientation(s) in {path}: {bad}")
        df["start_price"] = df["start_price"].astype(float)
        df["middle_price"] = df["middle_price"].astype(float)
        return df
