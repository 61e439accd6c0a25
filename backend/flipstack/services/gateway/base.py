"""Protocol consumed by the wager engine for randomness requests and proofs."""

from typing import Protocol

from .models import CommitmentRecord, ResolvedRandomness


class RandomnessGateway(Protocol):
    async def request_randomness(self, commitment_id: str, word_count: int = 1) -> None:
        """Open a randomness request tagged with commitment_id."""
        ...

    async def verify_and_resolve(self, encoded_proof: str) -> ResolvedRandomness:
        """Verify an encoded proof and return the value it carries.

        A value of 0 means the oracle has not revealed yet.
        """
        ...

    async def query_commitment(self, commitment_id: str) -> CommitmentRecord:
        ...
