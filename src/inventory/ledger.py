"""Append-only CSV sink for execution results."""

import csv
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

COLUMNS = [
    "timestamp",
    "target",
    "opportunity_id",
    "direction",
    "wallet",
    "status",
    "amount_in",
    "split_depth",
    "tx_hash",
    "gas_used",
    "expected_profit",
    "realized_profit",
    "spread_bps",
    "error",
]


@dataclass
class LedgerEntry:
    target: str
    opportunity_id: str
    direction: str
    wallet: str
    status: str
    amount_in: int
    split_depth: int = 0
    tx_hash: Optional[str] = None
    gas_used: Optional[int] = None
    expected_profit: Optional[float] = None
    realized_profit: Optional[int] = None
    spread_bps: Optional[int] = None
    error: Optional[str] = None
    timestamp: Optional[datetime] = None

    def row(self) -> list:
        stamp = self.timestamp or datetime.now(timezone.utc)
        return [
            stamp.isoformat(),
            self.target,
            self.opportunity_id,
            self.direction,
            self.wallet,
            self.status,
            self.amount_in,
            self.split_depth,
            self.tx_hash or "",
            "" if self.gas_used is None else self.gas_used,
            "" if self.expected_profit is None else f"{self.expected_profit:.0f}",
            "" if self.realized_profit is None else self.realized_profit,
            "" if self.spread_bps is None else self.spread_bps,
            (self.error or "")[:200],
        ]


class TradeLedger:
    """Every execution attempt becomes one row; the header is written once."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def record(self, entry: LedgerEntry) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            new_file = not self.path.exists() or self.path.stat().st_size == 0
            with open(self.path, "a", newline="", encoding="utf-8") as handle:
                writer = csv.writer(handle)
                if new_file:
                    writer.writerow(COLUMNS)
                writer.writerow(entry.row())

    def read(self) -> list[dict]:
        if not self.path.exists():
            return []
        with open(self.path, newline="", encoding="utf-8") as handle:
            return list(csv.DictReader(handle))
