"""In-memory wager ledger with per-account atomic updates."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Iterable

from .models import LedgerEntry, Pending

logger = logging.getLogger(__name__)


class WagerLedger:
    """Per-account stake and commitment records.

    Reads return copies. Writes go through `transaction`, which holds the
    account's lock for the whole read-modify-write and commits only if the
    block exits cleanly. The wager engine is the only writer.
    """

    def __init__(self, entries: Iterable[LedgerEntry] | None = None):
        self._entries: dict[str, LedgerEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        for entry in entries or []:
            self._entries[entry.account] = entry.model_copy(deep=True)

    def __contains__(self, account: str) -> bool:
        return account in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, account: str) -> LedgerEntry:
        """Return a copy of the account's entry (a fresh idle entry if unknown)."""
        entry = self._entries.get(account)
        if entry is None:
            return LedgerEntry(account=account)
        return entry.model_copy(deep=True)

    def accounts(self) -> list[str]:
        return sorted(self._entries)

    def snapshot(self) -> list[LedgerEntry]:
        return [self._entries[a].model_copy(deep=True) for a in self.accounts()]

    def _lock_for(self, account: str) -> asyncio.Lock:
        lock = self._locks.get(account)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[account] = lock
        return lock

    def _release_lock(self, account: str) -> None:
        users = self._lock_users[account] - 1
        if users:
            self._lock_users[account] = users
            return
        del self._lock_users[account]
        # accounts that never committed an entry keep no lock
        if account not in self._entries:
            self._locks.pop(account, None)

    @asynccontextmanager
    async def transaction(self, account: str) -> AsyncIterator[LedgerEntry]:
        """Yield a working copy of the entry; store it if the block succeeds."""
        lock = self._lock_for(account)
        self._lock_users[account] = self._lock_users.get(account, 0) + 1
        try:
            async with lock:
                working = self.get(account)
                yield working
                working.updated_at = datetime.now(timezone.utc)
                self._entries[account] = working
                logger.debug(
                    f"Ledger commit: {account} stake={working.stake} "
                    f"state={working.state.kind}"
                )
        finally:
            self._release_lock(account)

    def invariant_violations(self) -> list[str]:
        """Describe every entry breaking the pending-iff-locked rules."""
        problems: list[str] = []
        for account, entry in self._entries.items():
            if entry.stake < 0:
                problems.append(f"{account}: negative stake {entry.stake}")
            if isinstance(entry.state, Pending):
                if entry.pending_commitment_id is None:
                    problems.append(f"{account}: pending without commitment id")
                if entry.stake <= 0:
                    problems.append(f"{account}: pending commitment with no stake locked")
            elif entry.pending_commitment_id is not None:
                problems.append(f"{account}: commitment id set while not pending")
        return problems
