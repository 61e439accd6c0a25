"""Wager engine exceptions."""


class WagerError(Exception):
    """Base exception for wager lifecycle errors."""

    def __init__(self, message: str, account: str | None = None):
        super().__init__(message)
        self.account = account


class InvalidStake(WagerError):
    """Stake amount is not a positive integer."""

    pass


class AlreadyPending(WagerError):
    """Account already has an open wager."""

    pass


class NoPendingWager(WagerError):
    """Settle called with no wager outstanding."""

    pass


class VerificationFailed(WagerError):
    """Gateway rejected the randomness proof."""

    pass


class NotYetResolved(WagerError):
    """Proof verified but the oracle has not revealed a value yet."""

    pass
