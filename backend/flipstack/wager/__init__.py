"""Commit-reveal wager core: ledger, payout policies and the settlement engine."""

from .commitment import derive_commitment_id
from .config import WagerConfig
from .engine import CommitRevealWager
from .events import EventBus
from .exceptions import (
    AlreadyPending,
    InvalidStake,
    NoPendingWager,
    NotYetResolved,
    VerificationFailed,
    WagerError,
)
from .ledger import WagerLedger
from .models import (
    Idle,
    LedgerEntry,
    Pending,
    SettlementDeferred,
    SettlementFailed,
    SettlementReport,
    Settling,
    WagerEvent,
    WagerLost,
    WagerOpened,
    WagerWon,
)
from .policy import (
    CoinFlipParams,
    Outcome,
    StackingParams,
    decide,
    random_value_from_bytes,
)

__all__ = [
    # Engine
    "CommitRevealWager",
    "WagerConfig",
    "derive_commitment_id",
    # Ledger
    "WagerLedger",
    "LedgerEntry",
    "Idle",
    "Pending",
    "Settling",
    # Policy
    "decide",
    "random_value_from_bytes",
    "Outcome",
    "CoinFlipParams",
    "StackingParams",
    # Events
    "EventBus",
    "WagerEvent",
    "WagerOpened",
    "WagerWon",
    "WagerLost",
    "SettlementFailed",
    "SettlementDeferred",
    "SettlementReport",
    # Errors
    "WagerError",
    "InvalidStake",
    "AlreadyPending",
    "NoPendingWager",
    "VerificationFailed",
    "NotYetResolved",
]
