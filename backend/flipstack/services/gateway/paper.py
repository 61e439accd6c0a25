"""In-process paper gateway: the gateway contract and its oracles, simulated."""

from __future__ import annotations

import itertools
import logging
import secrets
import time
from typing import Callable

from .config import GatewayConfig
from .exceptions import (
    DuplicateCommitmentError,
    GatewayNotFoundError,
    ProofInvalidError,
)
from .models import (
    MAX_RANDOM_VALUE,
    CommitmentRecord,
    RandomnessProof,
    ResolvedRandomness,
    utc_now,
)
from .signing import OracleSigner, verify_proof_signature

logger = logging.getLogger(__name__)


def _system_clock() -> int:
    return int(time.time())


def _random_word(commitment_id: str) -> int:
    # 0 is reserved for "not revealed"
    return secrets.randbelow(MAX_RANDOM_VALUE) + 1


class PaperGateway:
    """Simulates the randomness gateway and its oracle set in memory.

    The gateway side implements `RandomnessGateway`. The oracle side,
    `reveal`, is what an off-chain resolver would otherwise fetch from
    Crossbar: a signed proof for a commitment, carrying 0 until the
    commitment's settlement delay has elapsed.
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        oracles: list[OracleSigner] | None = None,
        clock: Callable[[], int] | None = None,
        value_source: Callable[[str], int] | None = None,
    ):
        self.config = config or GatewayConfig()
        signers = oracles or [
            OracleSigner() for _ in range(max(1, self.config.paper_oracle_count))
        ]
        self._oracles: dict[str, OracleSigner] = {s.oracle: s for s in signers}
        self._assignment = itertools.cycle(list(self._oracles))
        self._commitments: dict[str, CommitmentRecord] = {}
        self._clock = clock or _system_clock
        self._value_source = value_source or _random_word

        logger.info(
            f"Initialized PaperGateway (oracles={len(self._oracles)}, "
            f"min_settlement_delay={self.config.min_settlement_delay_seconds}s)"
        )

    @property
    def oracles(self) -> list[str]:
        return list(self._oracles)

    async def request_randomness(self, commitment_id: str, word_count: int = 1) -> None:
        if self._key(commitment_id) in self._commitments:
            raise DuplicateCommitmentError(
                f"Commitment already exists: {commitment_id}", status_code=409
            )

        record = CommitmentRecord(
            commitment_id=commitment_id,
            oracle=next(self._assignment),
            roll_timestamp=self._clock(),
            min_settlement_delay=self.config.min_settlement_delay_seconds,
            word_count=word_count,
        )
        self._commitments[record.commitment_id] = record
        logger.debug(
            f"Randomness requested: {record.commitment_id} -> oracle {record.oracle}"
        )

    async def query_commitment(self, commitment_id: str) -> CommitmentRecord:
        return self._get_record(commitment_id).model_copy()

    async def verify_and_resolve(self, encoded_proof: str) -> ResolvedRandomness:
        proof = RandomnessProof.decode(encoded_proof)
        record = self._get_record(proof.commitment_id)

        if proof.oracle != record.oracle:
            raise ProofInvalidError(
                f"Proof signed by {proof.oracle}, commitment assigned to {record.oracle}"
            )
        verify_proof_signature(proof)

        if proof.value == 0:
            return ResolvedRandomness(
                commitment_id=record.commitment_id,
                value=0,
                oracle=record.oracle,
                timestamp=proof.timestamp,
            )

        if proof.timestamp < record.ready_at:
            raise ProofInvalidError(
                f"Value revealed at {proof.timestamp} before settlement delay "
                f"(ready at {record.ready_at})"
            )

        if record.is_resolved:
            if record.value != proof.value:
                raise ProofInvalidError(
                    f"Commitment {record.commitment_id} already resolved to a different value"
                )
        else:
            record.value = proof.value
            record.settled_at = utc_now()
            logger.info(f"Commitment resolved: {record.commitment_id}")

        return ResolvedRandomness(
            commitment_id=record.commitment_id,
            value=record.value,
            oracle=record.oracle,
            timestamp=proof.timestamp,
        )

    def reveal(self, commitment_id: str) -> str:
        """Have the assigned oracle sign a proof for commitment_id."""
        record = self._get_record(commitment_id)
        signer = self._oracles[record.oracle]
        now = self._clock()

        if now < record.ready_at:
            value = 0
        elif record.is_resolved:
            value = record.value
        else:
            value = self._value_source(record.commitment_id)

        return signer.sign(record.commitment_id, value, now).encode()

    @staticmethod
    def _key(commitment_id: str) -> str:
        key = commitment_id.lower()
        if not key.startswith("0x"):
            key = "0x" + key
        return key

    def _get_record(self, commitment_id: str) -> CommitmentRecord:
        record = self._commitments.get(self._key(commitment_id))
        if record is None:
            raise GatewayNotFoundError(
                f"Commitment not found: {commitment_id}", status_code=404
            )
        return record
