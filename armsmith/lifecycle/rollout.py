"""Percentage and staged rollouts over consistent hashing."""

from datetime import datetime, timezone
from typing import List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from armsmith.ab.traffic import hash_bucket


def clamp_percentage(percentage: int) -> int:
    return max(0, min(100, int(percentage)))


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class RolloutStage(BaseModel):
    """Single stage in a staged rollout."""

    model_config = ConfigDict(frozen=True)

    starts_at: datetime = Field(..., description="When this stage begins")
    percentage: int = Field(..., ge=0, le=100, description="Traffic percentage (0-100)")
    description: Optional[str] = Field(None, description="Optional stage description")

    @field_validator("starts_at")
    @classmethod
    def _normalize_starts_at(cls, value: datetime) -> datetime:
        return _as_utc(value)


class RolloutOptions(BaseModel):
    """Fixed-percentage rollout."""

    percentage: int = Field(default=100, ge=0, le=100, description="Percentage of identities included")
    included_key: str = Field(default="true", description="Key served to included identities")
    excluded_key: Optional[str] = Field(
        None, description="Key served to excluded identities; falls back to the default key"
    )
    seed: Optional[str] = Field(None, description="Seed for an independent allocation")

    def current_percentage(self, now: Optional[datetime] = None) -> int:
        return clamp_percentage(self.percentage)


class StagedRolloutOptions(BaseModel):
    """
    Rollout whose percentage increases over time.

    Identities included at a lower percentage remain included as later
    stages raise it, since the hash bucket does not depend on the stage.
    """

    stages: List[RolloutStage] = Field(default_factory=list, description="Rollout stages")
    included_key: str = Field(default="true")
    excluded_key: Optional[str] = Field(None)
    seed: Optional[str] = Field(None)

    @field_validator("stages")
    @classmethod
    def _sort_stages(cls, value: List[RolloutStage]) -> List[RolloutStage]:
        return sorted(value, key=lambda stage: stage.starts_at)

    def active_stage(self, now: datetime) -> Optional[RolloutStage]:
        """Most recent stage that has started, or None before the first stage."""
        now = _as_utc(now)
        active = None
        for stage in self.stages:
            if stage.starts_at <= now:
                active = stage
            else:
                break
        return active

    def current_percentage(self, now: datetime) -> int:
        stage = self.active_stage(now)
        return clamp_percentage(stage.percentage) if stage else 0


class RolloutAllocation(NamedTuple):
    """Outcome of a rollout decision."""

    key: Optional[str]
    included: bool
    bucket: Optional[int]
    percentage: int


def select_rollout_key(
    options,
    experiment_name: str,
    identity: Optional[str],
    now: datetime,
) -> RolloutAllocation:
    """
    Decide whether an identity is in a rollout and which key it gets.

    Args:
        options: RolloutOptions or StagedRolloutOptions
        experiment_name: Experiment name used in the hash
        identity: Subject identity; None means excluded
        now: Current time (selects the staged percentage)

    Returns:
        RolloutAllocation; ``key`` is None when the excluded key should fall
        back to the caller's default
    """
    percentage = options.current_percentage(now)

    if identity is None:
        return RolloutAllocation(options.excluded_key, False, None, percentage)

    # 0% and 100% are decided without a bucket
    if percentage <= 0 or percentage >= 100:
        included = percentage >= 100
        bucket = None
    else:
        bucket = hash_bucket(identity, experiment_name, options.seed)
        included = bucket < percentage
    key = options.included_key if included else options.excluded_key
    return RolloutAllocation(key, included, bucket, percentage)
