"""Storage layer for flipstack - file-based persistence.

This package provides:
- Ledger snapshots (load/save data/ledger.yaml with atomic writes)
- Event log (append wager events to data/events/{date}.jsonl)
"""

from .events import EventLogSink, read_events
from .state import (
    LedgerSnapshot,
    get_data_dir,
    load_ledger,
    load_snapshot,
    save_ledger,
)

__all__ = [
    # Ledger snapshots
    "LedgerSnapshot",
    "get_data_dir",
    "load_ledger",
    "load_snapshot",
    "save_ledger",
    # Event log
    "EventLogSink",
    "read_events",
]
