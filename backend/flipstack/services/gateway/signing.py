from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from .exceptions import ProofInvalidError
from .models import RandomnessProof, from_hex, to_hex

PROOF_DOMAIN = b"flipstack-randomness-v1"


class OracleSigner:
    def __init__(self, private_key: Ed25519PrivateKey | None = None):
        self.private_key = private_key or Ed25519PrivateKey.generate()
        raw_public = self.private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self.oracle = to_hex(raw_public)

    @classmethod
    def from_seed_hex(cls, seed_hex: str) -> "OracleSigner":
        seed = from_hex(seed_hex.strip())
        try:
            key = Ed25519PrivateKey.from_private_bytes(seed)
        except ValueError as e:
            raise ValueError(f"Failed to load oracle private key: {e}") from e
        return cls(key)

    def sign(self, commitment_id: str, value: int, timestamp: int) -> RandomnessProof:
        unsigned = RandomnessProof(
            commitment_id=commitment_id,
            value=value,
            timestamp=timestamp,
            oracle=self.oracle,
            signature=b"\x00" * 64,
        )
        signature = self.private_key.sign(PROOF_DOMAIN + unsigned.signed_payload())
        return unsigned.model_copy(update={"signature": signature})


def verify_proof_signature(proof: RandomnessProof) -> None:
    """Raise ProofInvalidError unless the proof is signed by its oracle key."""
    try:
        public_key = Ed25519PublicKey.from_public_bytes(from_hex(proof.oracle))
        public_key.verify(proof.signature, PROOF_DOMAIN + proof.signed_payload())
    except InvalidSignature as e:
        raise ProofInvalidError("Proof signature does not verify") from e
    except ValueError as e:
        raise ProofInvalidError(f"Invalid oracle key: {e}") from e
