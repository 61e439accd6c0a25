"""Commit-reveal wager engine.

Lifecycle of one account's wager:

    Idle --stake_and_commit--> Pending(commitment_id)
    Pending --settle--> Settling(commitment_id) --gateway--> Idle

`settle` clears the pending id before calling out to the gateway, so a
re-entrant or concurrent settle on the same account raises NoPendingWager
instead of paying out twice. The ledger lock is never held across a gateway
call.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from datetime import datetime, timezone
from typing import Callable

from flipstack.services.gateway import RandomnessGateway

from .commitment import derive_commitment_id
from .config import WagerConfig
from .events import EventBus
from .exceptions import (
    AlreadyPending,
    InvalidStake,
    NoPendingWager,
    NotYetResolved,
    VerificationFailed,
)
from .ledger import WagerLedger
from .models import (
    Idle,
    Pending,
    SettlementDeferred,
    SettlementFailed,
    SettlementReport,
    Settling,
    WagerLost,
    WagerOpened,
    WagerWon,
)
from .policy import Outcome, decide

logger = logging.getLogger(__name__)


def _system_clock() -> int:
    return int(time.time())


class CommitRevealWager:
    def __init__(
        self,
        gateway: RandomnessGateway,
        ledger: WagerLedger | None = None,
        config: WagerConfig | None = None,
        events: EventBus | None = None,
        clock: Callable[[], int] | None = None,
    ):
        self.gateway = gateway
        self.ledger = ledger or WagerLedger()
        self.config = config or WagerConfig()
        self.events = events or EventBus()
        self._clock = clock or _system_clock

        logger.info(
            f"Initialized CommitRevealWager (policy={self.config.policy.kind}, "
            f"on_verification_failure={self.config.on_verification_failure})"
        )

    # ------------------------------------------------------------------
    # Stake
    # ------------------------------------------------------------------

    def _check_stake(self, account: str, stake_amount: int) -> None:
        if isinstance(stake_amount, bool) or not isinstance(stake_amount, int):
            raise InvalidStake(
                f"Stake must be an integer amount, got {stake_amount!r}", account=account
            )
        if stake_amount <= 0:
            raise InvalidStake(f"Stake must be positive, got {stake_amount}", account=account)
        if stake_amount < self.config.min_stake:
            raise InvalidStake(
                f"Stake {stake_amount} below minimum {self.config.min_stake}",
                account=account,
            )
        if self.config.max_stake is not None and stake_amount > self.config.max_stake:
            raise InvalidStake(
                f"Stake {stake_amount} above maximum {self.config.max_stake}",
                account=account,
            )

    async def stake_and_commit(self, account: str, stake_amount: int) -> str:
        """Escrow stake_amount and open a randomness commitment for account.

        Returns the commitment id. Raises AlreadyPending if the account
        already has a wager open or settling; the ledger is left unchanged.
        """
        self._check_stake(account, stake_amount)

        async with self.ledger.transaction(account) as entry:
            if not isinstance(entry.state, Idle):
                raise AlreadyPending(
                    f"Account {account} already has an open wager", account=account
                )

            prior_stake = entry.stake
            prior_nonce = entry.nonce
            commitment_id = derive_commitment_id(account, self._clock(), entry.nonce)

            entry.nonce += 1
            entry.stake += stake_amount
            entry.state = Pending(
                commitment_id=commitment_id,
                committed_at=datetime.now(timezone.utc),
            )
            locked_stake = entry.stake

        try:
            await self.gateway.request_randomness(commitment_id, word_count=1)
        except asyncio.CancelledError:
            logger.warning(f"Randomness request cancelled for {account}")
            await self._rollback(account, commitment_id, prior_stake, prior_nonce)
            raise
        except Exception as e:
            logger.error(f"Randomness request failed for {account}: {e}")
            await self._rollback(account, commitment_id, prior_stake, prior_nonce)
            raise

        self.events.emit(
            WagerOpened(account=account, commitment_id=commitment_id, stake=locked_stake)
        )
        return commitment_id

    async def _rollback(
        self, account: str, commitment_id: str, prior_stake: int, prior_nonce: int
    ) -> None:
        async with self.ledger.transaction(account) as entry:
            if entry.pending_commitment_id == commitment_id:
                entry.stake = prior_stake
                entry.nonce = prior_nonce
                entry.state = Idle()
            else:
                logger.warning(
                    f"Ledger for {account} moved on before rollback "
                    f"(state={entry.state.kind}), leaving it as is"
                )

    # ------------------------------------------------------------------
    # Settle
    # ------------------------------------------------------------------

    async def settle(self, account: str, proof: str) -> bool:
        """Settle the account's open wager. True only on a policy win."""
        report = await self.settle_with_report(account, proof)
        return report.won

    async def settle_with_report(self, account: str, proof: str) -> SettlementReport:
        async with self.ledger.transaction(account) as entry:
            pending = entry.state
            if not isinstance(pending, Pending):
                raise NoPendingWager(f"Account {account} has no pending wager", account=account)
            entry.state = Settling(commitment_id=pending.commitment_id)
            stake_before = entry.stake

        commitment_id = pending.commitment_id

        try:
            value = await self._verify(account, commitment_id, proof)
            outcome = decide(value, self.config.policy)
        except NotYetResolved:
            return await self._defer(account, commitment_id, stake_before)
        except VerificationFailed as e:
            return await self._fail(account, pending, stake_before, str(e))
        except asyncio.CancelledError:
            await self._fail(
                account, pending, stake_before, "settlement cancelled", force_forfeit=True
            )
            raise
        except Exception as e:
            logger.error(f"Unexpected settlement error for {account}: {e}", exc_info=True)
            return await self._fail(
                account, pending, stake_before, f"settlement error: {e}", force_forfeit=True
            )

        return await self._apply(account, commitment_id, stake_before, value, outcome)

    async def _verify(self, account: str, commitment_id: str, proof: str) -> int:
        try:
            resolved = await self.gateway.verify_and_resolve(proof)
        except Exception as e:
            raise VerificationFailed(f"Gateway rejected proof: {e}", account=account) from e

        if resolved.commitment_id.lower() != commitment_id.lower():
            raise VerificationFailed(
                f"Proof is for commitment {resolved.commitment_id}, expected {commitment_id}",
                account=account,
            )
        if resolved.value == 0:
            raise NotYetResolved(
                f"Randomness for {commitment_id} not revealed yet", account=account
            )
        return resolved.value

    async def _defer(
        self, account: str, commitment_id: str, stake_before: int
    ) -> SettlementReport:
        async with self.ledger.transaction(account) as entry:
            entry.state = Idle()
            entry.deferrals += 1
            stack_height = entry.stack_height

        logger.warning(f"Settlement deferred for {account}: randomness not resolved")
        self.events.emit(SettlementDeferred(account=account, commitment_id=commitment_id))
        return SettlementReport(
            account=account,
            commitment_id=commitment_id,
            status="deferred",
            stake_before=stake_before,
            stake_after=stake_before,
            stack_height=stack_height,
        )

    async def _fail(
        self,
        account: str,
        pending: Pending,
        stake_before: int,
        reason: str,
        force_forfeit: bool = False,
    ) -> SettlementReport:
        forfeit = force_forfeit or self.config.on_verification_failure == "forfeit"

        async with self.ledger.transaction(account) as entry:
            if forfeit:
                entry.stake = 0
                entry.stack_height = 0
                entry.forfeits += 1
                entry.state = Idle()
            else:
                entry.state = pending.model_copy()
            stake_after = entry.stake
            stack_height = entry.stack_height

        logger.warning(
            f"Settlement failed for {account} "
            f"({'stake forfeited' if forfeit else 'wager kept pending'}): {reason}"
        )
        self.events.emit(
            SettlementFailed(
                account=account,
                commitment_id=pending.commitment_id,
                forfeited=forfeit,
                reason=reason,
            )
        )
        return SettlementReport(
            account=account,
            commitment_id=pending.commitment_id,
            status="forfeited" if forfeit else "retry",
            stake_before=stake_before,
            stake_after=stake_after,
            stack_height=stack_height,
        )

    async def _apply(
        self,
        account: str,
        commitment_id: str,
        stake_before: int,
        value: int,
        outcome: Outcome,
    ) -> SettlementReport:
        async with self.ledger.transaction(account) as entry:
            if outcome.won:
                entry.stake = math.floor(entry.stake * outcome.payout_multiplier)
                entry.wins += 1
            else:
                entry.stake = 0
                entry.losses += 1

            if outcome.stack_action == "increment":
                entry.stack_height += 1
            elif outcome.stack_action == "reset":
                entry.stack_height = 0

            entry.state = Idle()
            stake_after = entry.stake
            stack_height = entry.stack_height

        if outcome.won:
            self.events.emit(
                WagerWon(
                    account=account,
                    commitment_id=commitment_id,
                    new_balance=stake_after,
                    stack_height=stack_height,
                    random_value=value,
                )
            )
        else:
            self.events.emit(
                WagerLost(account=account, commitment_id=commitment_id, random_value=value)
            )

        return SettlementReport(
            account=account,
            commitment_id=commitment_id,
            status="won" if outcome.won else "lost",
            stake_before=stake_before,
            stake_after=stake_after,
            stack_height=stack_height,
            random_value=value,
        )
