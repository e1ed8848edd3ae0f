"""
Game rule configuration and validation.
"""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator


ENV_PREFIX = "LOWCARD_"


class RuleConfig(BaseModel):
    """Configuration for game rules and timings.

    Durations are expressed in timer units; one unit lasts ``tick_seconds``
    of wall-clock time, so tests can shrink a whole game to milliseconds.
    """

    min_players: int = Field(
        default=2,
        ge=2,
        le=16,
        description="Minimum number of players required to start"
    )
    win_threshold: int = Field(
        default=3,
        ge=1,
        description="Points needed to win the game"
    )
    select_two_seconds: int = Field(
        default=30,
        ge=1,
        description="Deadline for picking the two shown cards"
    )
    select_final_seconds: int = Field(
        default=30,
        ge=1,
        description="Deadline for committing the final card"
    )
    reveal_seconds: int = Field(
        default=5,
        ge=1,
        description="How long the final cards are displayed before scoring"
    )
    intermission_seconds: int = Field(
        default=20,
        ge=1,
        description="Pause between round result and the next round"
    )
    replenish_every: int = Field(
        default=6,
        ge=2,
        description="Hands reset to the full pool every N rounds"
    )
    tick_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Wall-clock length of one timer unit"
    )
    ready_grace_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Delay between everybody being ready and the phase closing (0 = immediate)"
    )

    @field_validator('ready_grace_seconds')
    @classmethod
    def validate_grace(cls, v, info):
        """Reject grace windows longer than ten seconds."""
        if v > 10:
            raise ValueError(f'ready_grace_seconds ({v}) must be <= 10')
        return v


# Default configuration instance
default_rules = RuleConfig()


def create_rules(**overrides) -> RuleConfig:
    """Create a RuleConfig with optional overrides."""
    config_dict = default_rules.model_dump()
    config_dict.update(overrides)
    return RuleConfig(**config_dict)


def rules_from_env(environ: Optional[Mapping[str, str]] = None) -> RuleConfig:
    """Build a RuleConfig from ``LOWCARD_*`` environment variables.

    ``LOWCARD_WIN_THRESHOLD=5`` overrides ``win_threshold`` and so on;
    pydantic takes care of coercion and range checks.
    """
    environ = os.environ if environ is None else environ
    overrides = {}
    for name in RuleConfig.model_fields:
        key = f"{ENV_PREFIX}{name.upper()}"
        if key in environ:
            overrides[name] = environ[key]
    return create_rules(**overrides)
