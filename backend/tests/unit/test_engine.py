"""
Unit Tests: Commit-Reveal Wager Engine

Test cases:
- Stake, reveal and settle end to end (win and loss)
- Forfeiture on rejected, tampered and mismatched proofs
- Retry mode keeps the wager pending
- Deferral while randomness is unrevealed
- Re-entrant settle and concurrent stake while settling
- Rollback when the randomness request fails
- Stake validation and commitment id uniqueness
- Cancellation during settlement and during the randomness request
- Unexpected settlement errors fail closed
"""

import asyncio

import pytest

from flipstack.services.gateway import (
    GatewayConfig,
    GatewayError,
    PaperGateway,
    RandomnessProof,
    ResolvedRandomness,
)
from flipstack.wager import (
    AlreadyPending,
    CommitRevealWager,
    Idle,
    InvalidStake,
    LedgerEntry,
    NoPendingWager,
    Pending,
    StackingParams,
    WagerConfig,
    WagerLedger,
    derive_commitment_id,
)

NOW = 1_700_000_000


def make_engine(
    values=(4,),
    delay: int = 0,
    config: WagerConfig | None = None,
    clock=lambda: NOW,
    gateway_cls=PaperGateway,
):
    source = iter(values)
    gateway = gateway_cls(
        GatewayConfig(min_settlement_delay_seconds=delay),
        clock=clock,
        value_source=lambda _: next(source),
    )
    engine = CommitRevealWager(gateway, config=config, clock=clock)
    events = []
    engine.events.subscribe(events.append)
    return engine, gateway, events


def assert_invariants(engine: CommitRevealWager) -> None:
    assert engine.ledger.invariant_violations() == []


def test_stake_then_winning_settle_doubles_stake() -> None:
    engine, gateway, events = make_engine(values=[4])

    async def run() -> None:
        commitment_id = await engine.stake_and_commit("alice", 100)
        entry = engine.ledger.get("alice")
        assert entry.stake == 100
        assert entry.pending_commitment_id == commitment_id
        assert_invariants(engine)

        won = await engine.settle("alice", gateway.reveal(commitment_id))
        assert won is True

    asyncio.run(run())

    entry = engine.ledger.get("alice")
    assert entry.stake == 200
    assert isinstance(entry.state, Idle)
    assert entry.wins == 1
    assert [e.name for e in events] == ["WagerOpened", "WagerWon"]
    assert events[1].new_balance == 200
    assert events[1].random_value == 4
    assert_invariants(engine)


def test_losing_settle_burns_stake() -> None:
    engine, gateway, events = make_engine(values=[7])

    async def run() -> bool:
        commitment_id = await engine.stake_and_commit("alice", 100)
        return await engine.settle("alice", gateway.reveal(commitment_id))

    assert asyncio.run(run()) is False

    entry = engine.ledger.get("alice")
    assert entry.stake == 0
    assert entry.losses == 1
    assert entry.pending_commitment_id is None
    assert events[-1].name == "WagerLost"
    assert_invariants(engine)


def test_invalid_proof_forfeits_stake() -> None:
    engine, gateway, events = make_engine()

    async def run():
        await engine.stake_and_commit("alice", 100)
        return await engine.settle_with_report("alice", "0xdeadbeef")

    report = asyncio.run(run())

    assert report.status == "forfeited"
    assert report.won is False
    assert report.stake_before == 100
    assert report.stake_after == 0

    entry = engine.ledger.get("alice")
    assert entry.stake == 0
    assert entry.pending_commitment_id is None
    assert entry.forfeits == 1
    assert events[-1].name == "SettlementFailed"
    assert events[-1].forfeited is True
    assert_invariants(engine)


def test_tampered_signature_forfeits_stake() -> None:
    engine, gateway, events = make_engine()

    async def run() -> bool:
        commitment_id = await engine.stake_and_commit("alice", 100)
        proof = gateway.reveal(commitment_id)
        last = int(proof[-2:], 16) ^ 0x01
        return await engine.settle("alice", proof[:-2] + f"{last:02x}")

    assert asyncio.run(run()) is False
    assert engine.ledger.get("alice").stake == 0
    assert events[-1].name == "SettlementFailed"


def test_proof_for_another_commitment_forfeits() -> None:
    engine, gateway, events = make_engine(values=[4, 4])

    async def run() -> bool:
        await engine.stake_and_commit("alice", 100)
        bob_commitment = await engine.stake_and_commit("bob", 100)
        return await engine.settle("alice", gateway.reveal(bob_commitment))

    assert asyncio.run(run()) is False

    assert engine.ledger.get("alice").stake == 0
    assert engine.ledger.get("alice").forfeits == 1
    # bob's wager is untouched
    assert engine.ledger.get("bob").stake == 100
    assert engine.ledger.get("bob").pending_commitment_id is not None
    assert_invariants(engine)


def test_retry_mode_keeps_wager_pending() -> None:
    engine, gateway, events = make_engine(
        values=[4], config=WagerConfig(on_verification_failure="retry")
    )

    async def run():
        commitment_id = await engine.stake_and_commit("alice", 100)
        report = await engine.settle_with_report("alice", "0x00")
        assert report.status == "retry"

        entry = engine.ledger.get("alice")
        assert entry.stake == 100
        assert entry.pending_commitment_id == commitment_id
        assert events[-1].name == "SettlementFailed"
        assert events[-1].forfeited is False
        assert_invariants(engine)

        return await engine.settle("alice", gateway.reveal(commitment_id))

    assert asyncio.run(run()) is True
    assert engine.ledger.get("alice").stake == 200


def test_unrevealed_randomness_defers_and_keeps_stake() -> None:
    now = [NOW]
    engine, gateway, events = make_engine(values=[4], delay=10, clock=lambda: now[0])

    async def run():
        commitment_id = await engine.stake_and_commit("alice", 100)
        return await engine.settle_with_report("alice", gateway.reveal(commitment_id))

    report = asyncio.run(run())

    assert report.status == "deferred"
    assert report.won is False
    entry = engine.ledger.get("alice")
    assert entry.stake == 100
    assert isinstance(entry.state, Idle)
    assert entry.deferrals == 1
    assert events[-1].name == "SettlementDeferred"
    assert_invariants(engine)


def test_stake_while_pending_raises_and_leaves_ledger_unchanged() -> None:
    engine, gateway, events = make_engine()

    async def run() -> None:
        await engine.stake_and_commit("alice", 100)
        before = engine.ledger.get("alice")

        with pytest.raises(AlreadyPending):
            await engine.stake_and_commit("alice", 50)

        assert engine.ledger.get("alice") == before

    asyncio.run(run())
    assert len(events) == 1


def test_settle_without_pending_wager_raises() -> None:
    engine, gateway, events = make_engine()

    with pytest.raises(NoPendingWager):
        asyncio.run(engine.settle("alice", "0x00"))

    assert "alice" not in engine.ledger
    assert events == []


def test_settle_on_idle_account_leaves_entry_unchanged() -> None:
    engine, gateway, events = make_engine()
    engine.ledger = WagerLedger(
        [LedgerEntry(account="alice", stake=150, stack_height=2, nonce=3, wins=2)]
    )
    before = engine.ledger.get("alice")

    with pytest.raises(NoPendingWager):
        asyncio.run(engine.settle("alice", "0x00"))

    assert engine.ledger.get("alice") == before
    assert events == []


def test_settle_twice_raises_on_second_call() -> None:
    engine, gateway, events = make_engine(values=[4])

    async def run() -> None:
        commitment_id = await engine.stake_and_commit("alice", 100)
        proof = gateway.reveal(commitment_id)
        assert await engine.settle("alice", proof) is True

        with pytest.raises(NoPendingWager):
            await engine.settle("alice", proof)

    asyncio.run(run())
    assert engine.ledger.get("alice").stake == 200


class ReentrantGateway(PaperGateway):
    """Calls back into the engine while verifying, like a hostile callee."""

    engine = None
    reentry_errors: list

    async def verify_and_resolve(self, encoded_proof: str):
        self.reentry_errors = []
        try:
            await self.engine.settle("alice", encoded_proof)
        except NoPendingWager as e:
            self.reentry_errors.append(e)
        try:
            await self.engine.stake_and_commit("alice", 1)
        except AlreadyPending as e:
            self.reentry_errors.append(e)
        return await super().verify_and_resolve(encoded_proof)


def test_reentrant_settle_is_rejected_and_pays_once() -> None:
    engine, gateway, events = make_engine(values=[4], gateway_cls=ReentrantGateway)
    gateway.engine = engine

    async def run() -> bool:
        commitment_id = await engine.stake_and_commit("alice", 100)
        return await engine.settle("alice", gateway.reveal(commitment_id))

    assert asyncio.run(run()) is True

    assert [type(e).__name__ for e in gateway.reentry_errors] == [
        "NoPendingWager",
        "AlreadyPending",
    ]
    entry = engine.ledger.get("alice")
    assert entry.stake == 200
    assert entry.wins == 1
    assert [e.name for e in events].count("WagerWon") == 1
    assert_invariants(engine)


class FailingGateway(PaperGateway):
    async def request_randomness(self, commitment_id: str, word_count: int = 1) -> None:
        raise GatewayError("gateway unavailable", status_code=503)


def test_failed_randomness_request_rolls_back_stake() -> None:
    engine, gateway, events = make_engine(gateway_cls=FailingGateway)

    with pytest.raises(GatewayError):
        asyncio.run(engine.stake_and_commit("alice", 100))

    entry = engine.ledger.get("alice")
    assert entry.stake == 0
    assert entry.nonce == 0
    assert isinstance(entry.state, Idle)
    assert events == []
    assert_invariants(engine)


@pytest.mark.parametrize("amount", [0, -5, 1.5, True, "100"])
def test_invalid_stake_is_rejected(amount) -> None:
    engine, gateway, events = make_engine()

    with pytest.raises(InvalidStake):
        asyncio.run(engine.stake_and_commit("alice", amount))

    assert "alice" not in engine.ledger


def test_stake_bounds_from_config() -> None:
    engine, gateway, events = make_engine(config=WagerConfig(min_stake=10, max_stake=1000))

    with pytest.raises(InvalidStake):
        asyncio.run(engine.stake_and_commit("alice", 5))
    with pytest.raises(InvalidStake):
        asyncio.run(engine.stake_and_commit("alice", 1001))

    asyncio.run(engine.stake_and_commit("alice", 1000))
    assert engine.ledger.get("alice").stake == 1000


def test_commitment_ids_differ_within_one_clock_tick() -> None:
    engine, gateway, events = make_engine(values=[4, 4])

    async def run() -> list[str]:
        ids = []
        for _ in range(2):
            commitment_id = await engine.stake_and_commit("alice", 100)
            await engine.settle("alice", gateway.reveal(commitment_id))
            ids.append(commitment_id)
        return ids

    first, second = asyncio.run(run())
    assert first != second
    assert engine.ledger.get("alice").nonce == 2


def test_derive_commitment_id_is_deterministic() -> None:
    commitment_id = derive_commitment_id("alice", NOW, 0)

    assert commitment_id == derive_commitment_id("alice", NOW, 0)
    assert commitment_id.startswith("0x")
    assert len(commitment_id) == 66
    assert commitment_id != derive_commitment_id("alice", NOW, 1)
    assert commitment_id != derive_commitment_id("bob", NOW, 0)
    assert commitment_id != derive_commitment_id("alice", NOW + 1, 0)


def test_stacking_policy_grows_and_resets_stack() -> None:
    # 3 % 3 == 0 and 4 % 3 == 1 land, 5 % 3 == 2 topples
    engine, gateway, events = make_engine(
        values=[3, 4, 5], config=WagerConfig(policy=StackingParams())
    )

    async def play() -> None:
        commitment_id = await engine.stake_and_commit("alice", 100)
        await engine.settle("alice", gateway.reveal(commitment_id))

    async def run() -> list[int]:
        heights = []
        for _ in range(3):
            await play()
            heights.append(engine.ledger.get("alice").stack_height)
            assert_invariants(engine)
        return heights

    assert asyncio.run(run()) == [1, 2, 0]
    assert engine.ledger.get("alice").stake == 0


def test_forfeit_resets_stack() -> None:
    engine, gateway, events = make_engine(
        values=[3], config=WagerConfig(policy=StackingParams())
    )

    async def run() -> None:
        commitment_id = await engine.stake_and_commit("alice", 100)
        await engine.settle("alice", gateway.reveal(commitment_id))
        assert engine.ledger.get("alice").stack_height == 1

        await engine.stake_and_commit("alice", 100)
        await engine.settle("alice", "0x")

    asyncio.run(run())

    entry = engine.ledger.get("alice")
    assert entry.stack_height == 0
    assert entry.stake == 0


class StallingGateway(PaperGateway):
    entered: asyncio.Event

    async def verify_and_resolve(self, encoded_proof: str):
        self.entered.set()
        await asyncio.Event().wait()


def test_cancelled_settlement_forfeits_and_propagates() -> None:
    engine, gateway, events = make_engine(gateway_cls=StallingGateway)

    async def run() -> None:
        gateway.entered = asyncio.Event()
        commitment_id = await engine.stake_and_commit("alice", 100)

        task = asyncio.create_task(engine.settle("alice", gateway.reveal(commitment_id)))
        await gateway.entered.wait()
        assert engine.ledger.get("alice").is_settling

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run())

    entry = engine.ledger.get("alice")
    assert entry.stake == 0
    assert entry.pending_commitment_id is None
    assert events[-1].name == "SettlementFailed"
    assert_invariants(engine)


def test_failing_event_handler_does_not_block_settlement() -> None:
    engine, gateway, events = make_engine(values=[4])

    def broken(event) -> None:
        raise RuntimeError("handler down")

    engine.events.unsubscribe(events.append)
    engine.events.subscribe(broken)
    engine.events.subscribe(events.append)

    async def run() -> bool:
        commitment_id = await engine.stake_and_commit("alice", 100)
        return await engine.settle("alice", gateway.reveal(commitment_id))

    assert asyncio.run(run()) is True
    assert [e.name for e in events] == ["WagerOpened", "WagerWon"]


def test_pending_state_records_commitment() -> None:
    engine, gateway, events = make_engine()

    commitment_id = asyncio.run(engine.stake_and_commit("alice", 100))
    state = engine.ledger.get("alice").state

    assert isinstance(state, Pending)
    assert state.commitment_id == commitment_id


class OutOfRangeGateway(PaperGateway):
    """Verifies proofs but hands back a word wider than 256 bits."""

    async def verify_and_resolve(self, encoded_proof: str):
        proof = RandomnessProof.decode(encoded_proof)
        return ResolvedRandomness.model_construct(
            commitment_id=proof.commitment_id,
            value=2**256,
            oracle=proof.oracle,
            timestamp=proof.timestamp,
        )


@pytest.mark.parametrize("mode", ["forfeit", "retry"])
def test_unexpected_settlement_error_forfeits(mode) -> None:
    engine, gateway, events = make_engine(
        gateway_cls=OutOfRangeGateway,
        config=WagerConfig(on_verification_failure=mode),
    )

    async def run():
        commitment_id = await engine.stake_and_commit("alice", 100)
        return await engine.settle_with_report("alice", gateway.reveal(commitment_id))

    report = asyncio.run(run())

    assert report.status == "forfeited"
    entry = engine.ledger.get("alice")
    assert isinstance(entry.state, Idle)
    assert entry.stake == 0
    assert entry.forfeits == 1
    assert events[-1].name == "SettlementFailed"
    assert_invariants(engine)

    # the account is free to wager again
    asyncio.run(engine.stake_and_commit("alice", 10))
    assert engine.ledger.get("alice").stake == 10


class StallingRequestGateway(PaperGateway):
    entered: asyncio.Event

    async def request_randomness(self, commitment_id: str, word_count: int = 1) -> None:
        self.entered.set()
        await asyncio.Event().wait()
        await super().request_randomness(commitment_id, word_count)


def test_cancelled_randomness_request_rolls_back_stake() -> None:
    engine, gateway, events = make_engine(gateway_cls=StallingRequestGateway)
    engine.ledger = WagerLedger([LedgerEntry(account="alice", stake=40, nonce=2)])

    async def run() -> None:
        gateway.entered = asyncio.Event()
        task = asyncio.create_task(engine.stake_and_commit("alice", 100))
        await gateway.entered.wait()
        assert engine.ledger.get("alice").stake == 140

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run())

    entry = engine.ledger.get("alice")
    assert isinstance(entry.state, Idle)
    assert entry.stake == 40
    assert entry.nonce == 2
    assert gateway._commitments == {}
    assert events == []
    assert_invariants(engine)
