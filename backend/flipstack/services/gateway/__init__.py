from .base import RandomnessGateway
from .config import GatewayConfig
from .crossbar import CrossbarClient
from .exceptions import (
    DuplicateCommitmentError,
    GatewayAuthError,
    GatewayError,
    GatewayNotFoundError,
    GatewayRateLimitError,
    ProofInvalidError,
)
from .models import CommitmentRecord, RandomnessProof, ResolvedRandomness
from .paper import PaperGateway
from .signing import OracleSigner, verify_proof_signature

__all__ = [
    "RandomnessGateway",
    "GatewayConfig",
    "CrossbarClient",
    "PaperGateway",
    "OracleSigner",
    "verify_proof_signature",
    "GatewayError",
    "GatewayAuthError",
    "GatewayNotFoundError",
    "GatewayRateLimitError",
    "ProofInvalidError",
    "DuplicateCommitmentError",
    "CommitmentRecord",
    "RandomnessProof",
    "ResolvedRandomness",
]
