"""Rollout lifecycle: fixed and staged percentage rollouts."""

from armsmith.lifecycle.rollout import (
    RolloutAllocation,
    RolloutOptions,
    RolloutStage,
    StagedRolloutOptions,
    clamp_percentage,
    select_rollout_key,
)

__all__ = [
    "RolloutAllocation",
    "RolloutOptions",
    "RolloutStage",
    "StagedRolloutOptions",
    "clamp_percentage",
    "select_rollout_key",
]
