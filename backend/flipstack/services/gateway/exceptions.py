"""Randomness gateway exceptions."""


class GatewayError(Exception):
    """Base exception for randomness gateway errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GatewayAuthError(GatewayError):
    """Authentication failed (401)."""

    pass


class GatewayNotFoundError(GatewayError):
    """Commitment or resource not found (404)."""

    pass


class GatewayRateLimitError(GatewayError):
    """Rate limit exceeded (429)."""

    pass


class ProofInvalidError(GatewayError):
    """Encoded randomness proof is malformed or its signature does not verify."""

    pass


class DuplicateCommitmentError(GatewayError):
    """A commitment with this identifier already exists."""

    pass
