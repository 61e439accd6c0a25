"""
Unit Tests: Wager Ledger

Test cases:
- Reads return copies
- Transactions commit on clean exit and roll back on error
- Invariant reporting
"""

import asyncio
from datetime import datetime, timezone

import pytest

from flipstack.wager.ledger import WagerLedger
from flipstack.wager.models import Idle, LedgerEntry, Pending


def _pending(commitment_id: str = "0x" + "ab" * 32) -> Pending:
    return Pending(commitment_id=commitment_id, committed_at=datetime.now(timezone.utc))


def test_unknown_account_reads_as_idle() -> None:
    ledger = WagerLedger()
    entry = ledger.get("alice")

    assert entry.stake == 0
    assert isinstance(entry.state, Idle)
    assert entry.pending_commitment_id is None
    assert "alice" not in ledger


def test_get_returns_a_copy() -> None:
    ledger = WagerLedger([LedgerEntry(account="alice", stake=50)])

    entry = ledger.get("alice")
    entry.stake = 999

    assert ledger.get("alice").stake == 50


def test_transaction_commits_on_clean_exit() -> None:
    ledger = WagerLedger()

    async def run() -> None:
        async with ledger.transaction("alice") as entry:
            entry.stake = 100
            entry.state = _pending()

    asyncio.run(run())

    entry = ledger.get("alice")
    assert entry.stake == 100
    assert entry.pending_commitment_id == "0x" + "ab" * 32
    assert entry.updated_at is not None
    assert ledger.accounts() == ["alice"]


def test_transaction_discards_changes_on_error() -> None:
    ledger = WagerLedger([LedgerEntry(account="alice", stake=10)])

    async def run() -> None:
        async with ledger.transaction("alice") as entry:
            entry.stake = 500
            raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        asyncio.run(run())

    assert ledger.get("alice").stake == 10


def test_transactions_on_one_account_serialize() -> None:
    ledger = WagerLedger()

    async def bump() -> None:
        async with ledger.transaction("alice") as entry:
            current = entry.stake
            await asyncio.sleep(0)
            entry.stake = current + 1

    async def run() -> None:
        await asyncio.gather(*(bump() for _ in range(10)))

    asyncio.run(run())
    assert ledger.get("alice").stake == 10


def test_invariant_violations() -> None:
    ledger = WagerLedger(
        [
            LedgerEntry(account="ok", stake=5, state=_pending()),
            LedgerEntry(account="idle", stake=5),
            LedgerEntry(account="empty", stake=0, state=_pending()),
        ]
    )

    problems = ledger.invariant_violations()
    assert len(problems) == 1
    assert problems[0].startswith("empty:")


def test_snapshot_is_sorted_by_account() -> None:
    ledger = WagerLedger([LedgerEntry(account="bob"), LedgerEntry(account="alice")])
    assert [e.account for e in ledger.snapshot()] == ["alice", "bob"]
    assert len(ledger) == 2


def test_aborted_transaction_on_unknown_account_keeps_no_lock() -> None:
    ledger = WagerLedger()

    async def run() -> None:
        async with ledger.transaction("ghost"):
            raise KeyError("nothing to do")

    with pytest.raises(KeyError):
        asyncio.run(run())

    assert "ghost" not in ledger
    assert ledger._locks == {}
    assert ledger._lock_users == {}


def test_lock_is_kept_while_other_transactions_wait() -> None:
    ledger = WagerLedger()

    async def abort() -> None:
        async with ledger.transaction("alice"):
            await asyncio.sleep(0)
            raise KeyError("abort")

    async def commit() -> None:
        async with ledger.transaction("alice") as entry:
            entry.stake = 7

    async def run() -> None:
        results = await asyncio.gather(abort(), commit(), return_exceptions=True)
        assert isinstance(results[0], KeyError)

    asyncio.run(run())

    assert ledger.get("alice").stake == 7
    assert list(ledger._locks) == ["alice"]
    assert ledger._lock_users == {}
