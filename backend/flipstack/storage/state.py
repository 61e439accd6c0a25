"""Ledger snapshot persistence with atomic writes to data/ledger.yaml."""

import logging
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from flipstack.config import get_settings
from flipstack.wager.ledger import WagerLedger
from flipstack.wager.models import LedgerEntry

logger = logging.getLogger(__name__)


# ============================================================================
# Pydantic Models
# ============================================================================


class LedgerSnapshot(BaseModel):
    """Complete ledger state - matches data/ledger.yaml schema."""

    last_updated: datetime | None = None
    entries: dict[str, LedgerEntry] = Field(default_factory=dict)


# ============================================================================
# Helper Functions
# ============================================================================


def get_data_dir() -> Path:
    """Get the data directory path from settings."""
    settings = get_settings()
    data_dir = settings.data_dir

    if not data_dir.exists():
        raise FileNotFoundError(
            f"Data directory not found: {data_dir}. "
            "Run 'python -m flipstack init' to create it."
        )

    return data_dir


def _get_ledger_path(data_dir: Path | None = None) -> Path:
    return (data_dir or get_data_dir()) / "ledger.yaml"


# ============================================================================
# Public API
# ============================================================================


def load_snapshot(data_dir: Path | None = None) -> LedgerSnapshot:
    """Load the ledger snapshot, or an empty one if none is saved yet."""
    ledger_path = _get_ledger_path(data_dir)

    if not ledger_path.exists():
        logger.info(f"Ledger file not found: {ledger_path}. Starting with an empty ledger.")
        return LedgerSnapshot()

    try:
        with open(ledger_path, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f)

        if not raw_data:
            logger.warning(f"Empty ledger file: {ledger_path}. Starting with an empty ledger.")
            return LedgerSnapshot()

        snapshot = LedgerSnapshot(**raw_data)
        logger.debug(f"Loaded ledger from {ledger_path}")
        return snapshot

    except yaml.YAMLError as e:
        logger.error(f"Corrupted YAML in ledger file: {e}")
        raise
    except Exception as e:
        logger.error(f"Failed to load ledger: {e}")
        raise


def load_ledger(data_dir: Path | None = None) -> WagerLedger:
    snapshot = load_snapshot(data_dir)
    return WagerLedger(snapshot.entries.values())


def save_ledger(ledger: WagerLedger, data_dir: Path | None = None) -> Path:
    """Atomically save the ledger to data/ledger.yaml.

    Writes to a temp file in the same directory, then renames over the
    target, so a crash mid-write leaves the previous snapshot intact.
    """
    ledger_path = _get_ledger_path(data_dir)

    snapshot = LedgerSnapshot(
        last_updated=datetime.now(timezone.utc),
        entries={entry.account: entry for entry in ledger.snapshot()},
    )
    snapshot_dict = snapshot.model_dump(mode="json")

    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=ledger_path.parent,
            delete=False,
            suffix=".yaml",
            encoding="utf-8",
        ) as temp_file:
            yaml.dump(
                snapshot_dict,
                temp_file,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
            )
            temp_path = Path(temp_file.name)

        shutil.move(str(temp_path), str(ledger_path))
        logger.debug(f"Saved ledger to {ledger_path}")
        return ledger_path

    except Exception as e:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        logger.error(f"Failed to save ledger: {e}")
        raise
