"""Type-safe Pydantic models for randomness commitments and proofs."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

from .exceptions import ProofInvalidError

COMMITMENT_ID_BYTES = 32
VALUE_BYTES = 32
TIMESTAMP_BYTES = 8
ORACLE_KEY_BYTES = 32
SIGNATURE_BYTES = 64

SIGNED_PAYLOAD_BYTES = COMMITMENT_ID_BYTES + VALUE_BYTES + TIMESTAMP_BYTES
PROOF_BYTES = SIGNED_PAYLOAD_BYTES + ORACLE_KEY_BYTES + SIGNATURE_BYTES

MAX_RANDOM_VALUE = (1 << (VALUE_BYTES * 8)) - 1


def to_hex(raw: bytes) -> str:
    return "0x" + raw.hex()


def from_hex(value: str) -> bytes:
    """Decode a 0x-prefixed (or bare) hex string."""
    text = value[2:] if value.startswith(("0x", "0X")) else value
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise ProofInvalidError(f"Invalid hex encoding: {e}") from e


def _validate_hex32(value: str) -> str:
    raw = from_hex(value)
    if len(raw) != 32:
        raise ValueError(f"expected 32 bytes, got {len(raw)}")
    return to_hex(raw)


class CommitmentRecord(BaseModel):
    """Gateway-side record of a randomness request."""

    commitment_id: str
    oracle: str
    roll_timestamp: int
    min_settlement_delay: int
    word_count: int = 1
    value: int | None = None
    settled_at: datetime | None = None

    @field_validator("commitment_id", "oracle")
    @classmethod
    def normalize_hex(cls, v: str) -> str:
        return _validate_hex32(v)

    @property
    def ready_at(self) -> int:
        """Earliest timestamp at which the oracle reveals a value."""
        return self.roll_timestamp + self.min_settlement_delay

    @property
    def is_resolved(self) -> bool:
        return self.value is not None


class ResolvedRandomness(BaseModel):
    """Result of a successful proof verification."""

    commitment_id: str
    value: int = Field(ge=0, le=MAX_RANDOM_VALUE)
    oracle: str
    timestamp: int


class RandomnessProof(BaseModel):
    """Decoded form of an encoded randomness proof.

    Layout (big-endian):
        commitment_id (32) | value (32) | timestamp (8) | oracle key (32) | signature (64)
    The signature covers the first 72 bytes, prefixed by a domain tag.
    """

    commitment_id: str
    value: int = Field(ge=0, le=MAX_RANDOM_VALUE)
    timestamp: int = Field(ge=0)
    oracle: str
    signature: bytes

    def signed_payload(self) -> bytes:
        return (
            from_hex(self.commitment_id)
            + self.value.to_bytes(VALUE_BYTES, "big")
            + self.timestamp.to_bytes(TIMESTAMP_BYTES, "big")
        )

    def encode(self) -> str:
        return to_hex(self.signed_payload() + from_hex(self.oracle) + self.signature)

    @classmethod
    def decode(cls, encoded: str) -> RandomnessProof:
        raw = from_hex(encoded)
        if len(raw) != PROOF_BYTES:
            raise ProofInvalidError(
                f"Proof must be {PROOF_BYTES} bytes, got {len(raw)}"
            )

        offset = 0

        def take(size: int) -> bytes:
            nonlocal offset
            chunk = raw[offset:offset + size]
            offset += size
            return chunk

        commitment_id = take(COMMITMENT_ID_BYTES)
        value = int.from_bytes(take(VALUE_BYTES), "big")
        timestamp = int.from_bytes(take(TIMESTAMP_BYTES), "big")
        oracle = take(ORACLE_KEY_BYTES)
        signature = take(SIGNATURE_BYTES)

        return cls(
            commitment_id=to_hex(commitment_id),
            value=value,
            timestamp=timestamp,
            oracle=to_hex(oracle),
            signature=signature,
        )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
