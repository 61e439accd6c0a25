"""Payout policies: map a revealed random word to a wager outcome.

Policies are pure. Random words are unsigned integers of at most 256 bits,
so modulo arithmetic never sees a sign.
"""

from dataclasses import dataclass
from fractions import Fraction
from typing import Annotated, Literal

from pydantic import BaseModel, Field

RANDOM_WORD_BITS = 256
MAX_RANDOM_WORD = (1 << RANDOM_WORD_BITS) - 1

StackAction = Literal["increment", "reset", "keep"]


@dataclass(frozen=True)
class Outcome:
    won: bool
    payout_multiplier: Fraction
    stack_action: StackAction = "keep"


class CoinFlipParams(BaseModel):
    """Even word wins; winners receive stake * numerator / denominator."""

    kind: Literal["coin_flip"] = "coin_flip"
    payout_numerator: int = Field(default=2, ge=0)
    payout_denominator: int = Field(default=1, gt=0)

    @property
    def multiplier(self) -> Fraction:
        return Fraction(self.payout_numerator, self.payout_denominator)


class StackingParams(BaseModel):
    """Pancake stacking: two in three words land and grow the stack by one."""

    kind: Literal["stacking"] = "stacking"


PolicyParams = Annotated[CoinFlipParams | StackingParams, Field(discriminator="kind")]


def _check_word(random_value: int) -> int:
    if isinstance(random_value, bool) or not isinstance(random_value, int):
        raise TypeError(f"random value must be an int, got {type(random_value).__name__}")
    if random_value < 0 or random_value > MAX_RANDOM_WORD:
        raise ValueError(f"random value out of range for a {RANDOM_WORD_BITS}-bit word")
    return random_value


def random_value_from_bytes(word: bytes) -> int:
    """Read a big-endian unsigned word."""
    if len(word) * 8 > RANDOM_WORD_BITS:
        raise ValueError(f"random word longer than {RANDOM_WORD_BITS} bits")
    return int.from_bytes(word, "big", signed=False)


def decide_coin_flip(random_value: int, params: CoinFlipParams) -> Outcome:
    if random_value % 2 == 0:
        return Outcome(won=True, payout_multiplier=params.multiplier)
    return Outcome(won=False, payout_multiplier=Fraction(0))


def decide_stacking(random_value: int, params: StackingParams) -> Outcome:
    if random_value % 3 < 2:
        return Outcome(won=True, payout_multiplier=Fraction(1), stack_action="increment")
    return Outcome(won=False, payout_multiplier=Fraction(0), stack_action="reset")


def decide(random_value: int, params: CoinFlipParams | StackingParams | None = None) -> Outcome:
    """Map a revealed random word to an outcome. Defaults to the coin flip."""
    value = _check_word(random_value)
    params = params or CoinFlipParams()

    if isinstance(params, StackingParams):
        return decide_stacking(value, params)
    if isinstance(params, CoinFlipParams):
        return decide_coin_flip(value, params)
    raise TypeError(f"Unknown policy params: {type(params).__name__}")
