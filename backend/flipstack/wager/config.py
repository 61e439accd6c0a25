"""Configuration for the wager engine."""

from typing import Literal

from pydantic import BaseModel, Field

from .policy import CoinFlipParams, PolicyParams


class WagerConfig(BaseModel):
    """Wager engine parameters."""

    policy: PolicyParams = Field(default_factory=CoinFlipParams)
    # "forfeit" burns the stake on a rejected proof; "retry" keeps the wager pending
    on_verification_failure: Literal["forfeit", "retry"] = "forfeit"
    min_stake: int = Field(default=1, gt=0)
    max_stake: int | None = Field(default=None, gt=0)
