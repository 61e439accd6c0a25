"""Append-only JSONL log of wager events in data/events/{date}.jsonl."""

import json
import logging
from datetime import datetime
from pathlib import Path

from flipstack.storage.state import get_data_dir
from flipstack.wager.models import WagerEvent

logger = logging.getLogger(__name__)


class EventLogSink:
    """EventBus handler that appends each event as one JSON line."""

    def __init__(self, data_dir: Path | None = None):
        self.events_dir = (data_dir or get_data_dir()) / "events"
        self.events_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, when: datetime) -> Path:
        return self.events_dir / f"{when.strftime('%Y-%m-%d')}.jsonl"

    def __call__(self, event: WagerEvent) -> None:
        log_path = self.path_for(event.emitted_at)
        try:
            with open(log_path, "a", encoding="utf-8") as f:
                f.write(event.model_dump_json() + "\n")
            logger.debug(f"Logged {event.name} for {event.account} to {log_path}")
        except OSError as e:
            logger.error(f"Failed to log event {event.name}: {e}")
            raise


def read_events(log_path: Path) -> list[dict]:
    """Read back one day's event log."""
    if not log_path.exists():
        return []
    with open(log_path, "r", encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]
