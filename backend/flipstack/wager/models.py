"""Ledger entries, wager states and emitted events."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Literal

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Wager state (tagged union)
# ============================================================================


class Idle(BaseModel):
    """No wager outstanding."""

    kind: Literal["idle"] = "idle"


class Pending(BaseModel):
    """Stake locked against an open randomness commitment."""

    kind: Literal["pending"] = "pending"
    commitment_id: str
    committed_at: datetime


class Settling(BaseModel):
    """Pending id cleared, gateway verification in flight."""

    kind: Literal["settling"] = "settling"
    commitment_id: str


WagerState = Annotated[Idle | Pending | Settling, Field(discriminator="kind")]


class LedgerEntry(BaseModel):
    """Per-account wager record."""

    account: str
    stake: int = Field(default=0, ge=0)
    state: WagerState = Field(default_factory=Idle)
    stack_height: int = Field(default=0, ge=0)
    nonce: int = Field(default=0, ge=0)
    wins: int = 0
    losses: int = 0
    forfeits: int = 0
    deferrals: int = 0
    updated_at: datetime | None = None

    @property
    def pending_commitment_id(self) -> str | None:
        if isinstance(self.state, Pending):
            return self.state.commitment_id
        return None

    @property
    def is_settling(self) -> bool:
        return isinstance(self.state, Settling)


# ============================================================================
# Events
# ============================================================================


class WagerEvent(BaseModel):
    """Base class for fire-and-forget wager notifications."""

    name: str
    account: str
    commitment_id: str
    emitted_at: datetime = Field(default_factory=_utc_now)


class WagerOpened(WagerEvent):
    name: Literal["WagerOpened"] = "WagerOpened"
    stake: int


class WagerWon(WagerEvent):
    name: Literal["WagerWon"] = "WagerWon"
    new_balance: int
    stack_height: int
    random_value: int


class WagerLost(WagerEvent):
    name: Literal["WagerLost"] = "WagerLost"
    random_value: int


class SettlementFailed(WagerEvent):
    name: Literal["SettlementFailed"] = "SettlementFailed"
    forfeited: bool
    reason: str = ""


class SettlementDeferred(WagerEvent):
    name: Literal["SettlementDeferred"] = "SettlementDeferred"


# ============================================================================
# Settlement report
# ============================================================================


SettlementStatus = Literal["won", "lost", "forfeited", "deferred", "retry"]


class SettlementReport(BaseModel):
    """What a settle call did to one account."""

    account: str
    commitment_id: str
    status: SettlementStatus
    stake_before: int
    stake_after: int
    stack_height: int
    random_value: int | None = None

    @property
    def won(self) -> bool:
        return self.status == "won"
