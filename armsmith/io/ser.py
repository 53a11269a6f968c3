"""Serialization models for arm statistics, selections, rewards and stop decisions."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, Iterable, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def _sample_variance(count: int, total: float, sum_of_squares: float) -> float:
    if count <= 1:
        return 0.0
    variance = (sum_of_squares - (total * total) / count) / (count - 1)
    # Cancellation can push a constant series slightly below zero
    return max(variance, 0.0)


class ArmStatistics(BaseModel):
    """
    Immutable statistics for one arm of an experiment.

    Serializes with camelCase field names (``isControl``, ``totalReward``,
    ``sumOfSquares``, ``firstSeen``, ``lastSeen``); either spelling is
    accepted when parsing.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    key: str = Field(..., description="Arm (variant) key")
    is_control: bool = Field(default=False, description="Whether this arm is the control")
    pulls: int = Field(default=0, ge=0, description="Number of recorded outcomes")
    total_reward: float = Field(default=0.0, description="Sum of rewards")
    successes: int = Field(default=0, ge=0, description="Successful outcomes, including prior")
    failures: int = Field(default=0, ge=0, description="Failed outcomes, including prior")
    sum_of_squares: float = Field(default=0.0, ge=0.0, description="Sum of squared rewards")
    first_seen: Optional[datetime] = Field(None, description="Timestamp of the first outcome")
    last_seen: Optional[datetime] = Field(None, description="Timestamp of the latest outcome")

    @field_validator("first_seen", "last_seen")
    @classmethod
    def _normalize_seen(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def average_reward(self) -> float:
        return _ratio(self.total_reward, self.pulls)

    @property
    def conversion_rate(self) -> float:
        return _ratio(self.successes, self.successes + self.failures)

    @property
    def variance(self) -> float:
        """Sample variance of rewards with Bessel's correction."""
        return _sample_variance(self.pulls, self.total_reward, self.sum_of_squares)

    def with_reward(self, reward: float, is_success: bool, timestamp: datetime) -> "ArmStatistics":
        """Return a new value with one outcome applied."""
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        first_seen = timestamp if self.first_seen is None else min(self.first_seen, timestamp)
        return self.model_copy(
            update={
                "pulls": self.pulls + 1,
                "total_reward": self.total_reward + reward,
                "sum_of_squares": self.sum_of_squares + reward * reward,
                "successes": self.successes + (1 if is_success else 0),
                "failures": self.failures + (0 if is_success else 1),
                "first_seen": first_seen,
                "last_seen": timestamp,
            }
        )


class SelectionReason(str, Enum):
    """Why a key was chosen for a selection request."""

    HASH = "hash"
    EXPLOIT = "exploit"
    EXPLORE = "explore"
    FORCED_EXPLORATION = "forced_exploration"
    FALLBACK = "fallback"


class HashDetail(BaseModel):
    """Hash-based allocation details."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["hash"] = "hash"
    bucket: Optional[int] = None
    percentage: Optional[int] = None
    weights: Optional[Tuple[int, ...]] = None


class BanditDetail(BaseModel):
    """Bandit selection details."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["bandit"] = "bandit"
    policy: str
    pulls: Dict[str, int] = Field(default_factory=dict)
    average_rewards: Dict[str, float] = Field(default_factory=dict)


class FallbackDetail(BaseModel):
    """Why the default key was used."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["fallback"] = "fallback"
    cause: str
    error: Optional[str] = None


SelectionDetail = Annotated[
    Union[HashDetail, BanditDetail, FallbackDetail],
    Field(discriminator="kind"),
]


class SelectionRequest(BaseModel):
    """Inbound request to choose a key for an experiment."""

    experiment_name: str = Field(..., description="Experiment name")
    candidate_keys: List[str] = Field(default_factory=list, description="Keys the caller can serve")
    default_key: str = Field(..., description="Key used when selection cannot decide")
    identity: Optional[str] = Field(None, description="Subject identity for hash-based modes")


class SelectionResult(BaseModel):
    """Key chosen for a selection request."""

    model_config = ConfigDict(frozen=True)

    chosen_key: str
    reason: SelectionReason
    detail: Optional[SelectionDetail] = None


class RewardEvent(BaseModel):
    """Observed outcome for an arm."""

    experiment_name: str = Field(..., description="Experiment name")
    arm_key: str = Field(..., description="Arm that produced the outcome")
    value: float = Field(default=0.0, description="Reward value (0/1 or continuous)")
    is_success: bool = Field(default=False, description="Whether the outcome counts as a conversion")
    timestamp: Optional[datetime] = Field(None, description="Outcome time; defaults to now")


class VariantData(BaseModel):
    """Read-only statistics for one variant, used by stopping rules."""

    model_config = ConfigDict(frozen=True)

    key: str
    is_control: bool = False
    pulls: int = Field(default=0, ge=0)
    successes: int = Field(default=0, ge=0)
    failures: int = Field(default=0, ge=0)
    value_sum: float = 0.0
    value_sum_squared: float = 0.0

    @classmethod
    def from_statistics(cls, arm: ArmStatistics) -> "VariantData":
        return cls(
            key=arm.key,
            is_control=arm.is_control,
            pulls=arm.pulls,
            successes=arm.successes,
            failures=arm.failures,
            value_sum=arm.total_reward,
            value_sum_squared=arm.sum_of_squares,
        )

    @classmethod
    def binary(cls, key: str, pulls: int, successes: int, is_control: bool = False) -> "VariantData":
        """Variant whose every pull was a success or a failure."""
        return cls(
            key=key,
            is_control=is_control,
            pulls=pulls,
            successes=successes,
            failures=pulls - successes,
            value_sum=float(successes),
            value_sum_squared=float(successes),
        )

    @property
    def trials(self) -> int:
        return self.successes + self.failures

    @property
    def conversion_rate(self) -> float:
        return _ratio(self.successes, self.trials)

    @property
    def mean(self) -> float:
        return _ratio(self.value_sum, self.pulls)

    @property
    def variance(self) -> float:
        return _sample_variance(self.pulls, self.value_sum, self.value_sum_squared)


class ExperimentData(BaseModel):
    """Snapshot of an experiment for stopping-rule evaluation."""

    model_config = ConfigDict(frozen=True)

    experiment_name: str
    started_at: datetime
    variants: Tuple[VariantData, ...] = ()

    @field_validator("started_at")
    @classmethod
    def _normalize_started_at(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_statistics(
        cls,
        experiment_name: str,
        started_at: datetime,
        arms: Iterable[ArmStatistics],
    ) -> "ExperimentData":
        return cls(
            experiment_name=experiment_name,
            started_at=started_at,
            variants=tuple(VariantData.from_statistics(arm) for arm in arms),
        )

    @property
    def control(self) -> Optional[VariantData]:
        """Variant flagged as control, else the first variant."""
        for variant in self.variants:
            if variant.is_control:
                return variant
        return self.variants[0] if self.variants else None

    @property
    def treatments(self) -> List[VariantData]:
        control = self.control
        return [v for v in self.variants if v is not control]


class StoppingDecision(BaseModel):
    """Outcome of evaluating stopping rules."""

    model_config = ConfigDict(frozen=True)

    should_stop: bool
    reason: str = ""
    winning_variant: Optional[str] = None
    confidence: Optional[float] = None
    rule: Optional[str] = None
