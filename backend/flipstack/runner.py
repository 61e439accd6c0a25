"""Off-chain settlement driver: stake -> wait -> resolve proof -> settle.

The engine never retries. Waiting for the settlement delay and polling the
resolver for a revealed proof happen here, on the caller's side.
"""

import asyncio
import logging
import time
from typing import Callable

from flipstack.config import RunnerConfig
from flipstack.services.gateway import (
    CrossbarClient,
    GatewayError,
    ProofInvalidError,
    RandomnessProof,
)
from flipstack.wager import CommitRevealWager, NoPendingWager, SettlementReport

logger = logging.getLogger("flipstack.runner")


async def _fetch_ready_proof(
    crossbar: CrossbarClient,
    engine: CommitRevealWager,
    commitment_id: str,
    config: RunnerConfig,
) -> str:
    """Poll the resolver until it returns a proof with a revealed value.

    Falls back to the last unrevealed proof once attempts run out, so the
    engine can record the wager as deferred. Raises the last resolver error
    if no proof could be fetched at all.
    """
    record = await engine.gateway.query_commitment(commitment_id)
    last_proof: str | None = None
    last_error: GatewayError | None = None

    for attempt in range(1, config.resolve_attempts + 1):
        try:
            encoded = await crossbar.resolve_randomness(record)
        except GatewayError as e:
            last_error = e
            logger.warning(
                f"Resolve failed for {commitment_id} "
                f"(attempt {attempt}/{config.resolve_attempts}): {e}"
            )
        else:
            try:
                revealed = RandomnessProof.decode(encoded).value != 0
            except ProofInvalidError as e:
                # malformed proofs still go to the engine, which forfeits on them
                logger.warning(f"Resolver returned an undecodable proof: {e}")
                return encoded

            if revealed:
                return encoded
            last_proof = encoded
            logger.info(
                f"Randomness for {commitment_id} not revealed yet "
                f"(attempt {attempt}/{config.resolve_attempts})"
            )

        if attempt < config.resolve_attempts:
            await asyncio.sleep(config.resolve_poll_seconds)

    if last_proof is not None:
        return last_proof
    raise last_error or GatewayError(f"No proof fetched for {commitment_id}")


async def settle_pending(
    engine: CommitRevealWager,
    crossbar: CrossbarClient,
    account: str,
    config: RunnerConfig | None = None,
    clock: Callable[[], float] = time.time,
) -> SettlementReport:
    """Wait out the settlement delay for the account's open wager and settle it."""
    config = config or RunnerConfig()

    commitment_id = engine.ledger.get(account).pending_commitment_id
    if commitment_id is None:
        raise NoPendingWager(f"Account {account} has no pending wager", account=account)

    record = await engine.gateway.query_commitment(commitment_id)
    wait_seconds = record.ready_at - clock() + config.settle_grace_seconds
    if wait_seconds > 0:
        logger.info(f"Waiting {wait_seconds:.1f}s for settlement delay on {commitment_id}")
        await asyncio.sleep(wait_seconds)

    proof = await _fetch_ready_proof(crossbar, engine, commitment_id, config)
    report = await engine.settle_with_report(account, proof)

    logger.info(
        f"Round settled for {account}: status={report.status} "
        f"stake {report.stake_before} -> {report.stake_after}, "
        f"stack={report.stack_height}"
    )
    return report


async def play_round(
    engine: CommitRevealWager,
    crossbar: CrossbarClient,
    account: str,
    stake: int,
    config: RunnerConfig | None = None,
    clock: Callable[[], float] = time.time,
) -> SettlementReport:
    """Run one full wager: stake_and_commit, then settle once revealed."""
    commitment_id = await engine.stake_and_commit(account, stake)
    logger.info(f"Wager opened for {account}: stake={stake} commitment={commitment_id}")
    return await settle_pending(engine, crossbar, account, config=config, clock=clock)
