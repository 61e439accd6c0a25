"""Commitment identifier derivation."""

import hashlib

COMMITMENT_DOMAIN = b"flipstack-commitment-v1"


def derive_commitment_id(account: str, height: int, nonce: int) -> str:
    """Derive a 32-byte commitment id from (account, clock height, nonce).

    The nonce is the account's commitment counter, so two commits in the
    same clock tick still get distinct ids.
    """
    digest = hashlib.sha256()
    digest.update(COMMITMENT_DOMAIN)
    digest.update(b"|")
    digest.update(account.encode("utf-8"))
    digest.update(b"|")
    digest.update(height.to_bytes(8, "big", signed=False))
    digest.update(nonce.to_bytes(8, "big", signed=False))
    return "0x" + digest.hexdigest()
