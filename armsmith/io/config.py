"""Experiment definitions and configuration loading."""

import json
import math
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from armsmith.ab.policies import BanditSelector, NormalInverseGammaPrior, RewardModel, create_policy
from armsmith.autostop.rules import (
    AllOfRule,
    MaxDurationRule,
    MinimumSampleSizeRule,
    PracticalSignificanceRule,
    SequentialAnalysisRule,
    StatisticalSignificanceRule,
    StoppingRule,
)
from armsmith.dx.errors import InvalidConfigurationError
from armsmith.lifecycle.rollout import RolloutOptions, StagedRolloutOptions
from armsmith.runtime.clock import Clock
from armsmith.utils.logging import get_logger

logger = get_logger("config")


class SelectionMode(str, Enum):
    """How an experiment chooses keys."""

    ROLLOUT = "rollout"
    STAGED_ROLLOUT = "staged_rollout"
    WEIGHTED = "weighted"
    BANDIT = "bandit"


class ArmPrior(BaseModel):
    """Beta prior used to bias an arm before live traffic."""

    successes: int = Field(default=0, ge=0)
    failures: int = Field(default=0, ge=0)


class WeightedOptions(BaseModel):
    """Sticky weighted split across candidate keys."""

    weights: List[int] = Field(..., description="Weight per candidate key, summing to 100")
    seed: Optional[str] = Field(None, description="Seed for an independent allocation")

    @field_validator("weights")
    @classmethod
    def _check_weights(cls, value: List[int]) -> List[int]:
        if not value:
            raise ValueError("at least one weight is required")
        if any(weight < 0 for weight in value):
            raise ValueError("weights must be non-negative")
        if sum(value) <= 0:
            raise ValueError("weights must sum to a positive total")
        return value


class GaussianPriorOptions(BaseModel):
    """Normal-Inverse-Gamma prior for Thompson Sampling with continuous rewards."""

    mu0: float = 0.0
    kappa0: float = Field(default=1.0, gt=0.0)
    alpha0: float = Field(default=1.0, gt=0.0)
    beta0: float = Field(default=1.0, gt=0.0)

    def build(self) -> NormalInverseGammaPrior:
        return NormalInverseGammaPrior(self.mu0, self.kappa0, self.alpha0, self.beta0)


class BanditOptions(BaseModel):
    """Adaptive allocation settings."""

    policy: str = Field(default="thompson_sampling", description="Bandit policy name")
    epsilon: float = Field(default=0.1, ge=0.0, le=1.0)
    exploration: float = Field(default=math.sqrt(2.0), ge=0.0)
    reward_model: RewardModel = Field(default=RewardModel.BERNOULLI)
    min_pulls_before_exploitation: int = Field(default=0, ge=0)
    priors: Dict[str, ArmPrior] = Field(default_factory=dict)
    nig_prior: Optional[GaussianPriorOptions] = None

    @field_validator("policy")
    @classmethod
    def _check_policy(cls, value: str) -> str:
        create_policy(value)
        return value

    def build_selector(self) -> BanditSelector:
        policy = create_policy(
            self.policy,
            epsilon=self.epsilon,
            exploration=self.exploration,
            reward_model=self.reward_model,
            prior=self.nig_prior.build() if self.nig_prior else None,
        )
        return BanditSelector(policy, self.min_pulls_before_exploitation)


class StoppingOptions(BaseModel):
    """Stopping-rule settings."""

    minimum_sample_size: int = Field(default=1000, ge=0)
    confidence_level: float = Field(default=0.95, gt=0.0, lt=1.0)
    tails: int = Field(default=2, ge=1, le=2)
    minimum_effect_size: Optional[float] = Field(default=None, ge=0.0)
    max_duration_hours: Optional[float] = Field(default=None, gt=0.0)
    sequential_checkpoints: Optional[List[int]] = Field(default=None)
    sequential_alpha: float = Field(default=0.05, gt=0.0, lt=1.0)
    check_interval_seconds: float = Field(default=300.0, gt=0.0)

    def build_rules(self, clock: Optional[Clock] = None) -> List[StoppingRule]:
        """
        Build the rule chain.

        Order: minimum sample size gate, significance (combined with practical
        significance when a minimum effect size is set), sequential analysis,
        maximum duration.
        """
        rules: List[StoppingRule] = [MinimumSampleSizeRule(self.minimum_sample_size)]

        significance = StatisticalSignificanceRule(
            self.confidence_level, self.minimum_sample_size, self.tails
        )
        if self.minimum_effect_size is not None:
            rules.append(AllOfRule(significance, PracticalSignificanceRule(self.minimum_effect_size)))
        else:
            rules.append(significance)

        if self.sequential_checkpoints:
            rules.append(SequentialAnalysisRule(self.sequential_checkpoints, self.sequential_alpha))

        if self.max_duration_hours is not None:
            rules.append(MaxDurationRule(timedelta(hours=self.max_duration_hours), clock))

        return rules


class ExperimentDefinition(BaseModel):
    """Complete, validated definition of one experiment."""

    name: str = Field(..., min_length=1, description="Experiment name")
    candidate_keys: List[str] = Field(..., min_length=1, description="Keys the experiment can choose")
    control_key: Optional[str] = Field(None, description="Control key; defaults to the first candidate")
    mode: SelectionMode = Field(default=SelectionMode.BANDIT)
    rollout: Optional[RolloutOptions] = None
    staged_rollout: Optional[StagedRolloutOptions] = None
    weighted: Optional[WeightedOptions] = None
    bandit: BanditOptions = Field(default_factory=BanditOptions)
    stopping: StoppingOptions = Field(default_factory=StoppingOptions)

    @model_validator(mode="after")
    def _check_consistency(self) -> "ExperimentDefinition":
        keys = self.candidate_keys
        if len(set(keys)) != len(keys):
            raise ValueError("candidate_keys must be unique")
        if self.control_key is not None and self.control_key not in keys:
            raise ValueError(f"control_key '{self.control_key}' is not a candidate key")

        if self.mode is SelectionMode.ROLLOUT and self.rollout is None:
            raise ValueError("rollout options are required for rollout mode")
        if self.mode is SelectionMode.STAGED_ROLLOUT and self.staged_rollout is None:
            raise ValueError("staged_rollout options are required for staged_rollout mode")
        if self.mode is SelectionMode.WEIGHTED:
            if self.weighted is None:
                raise ValueError("weighted options are required for weighted mode")
            if len(self.weighted.weights) != len(keys):
                raise ValueError("weighted.weights must have one weight per candidate key")

        rollout = self.rollout_options
        if rollout is not None:
            if rollout.included_key not in keys:
                raise ValueError(f"included_key '{rollout.included_key}' is not a candidate key")
            if rollout.excluded_key is not None and rollout.excluded_key not in keys:
                raise ValueError(f"excluded_key '{rollout.excluded_key}' is not a candidate key")

        unknown = set(self.bandit.priors) - set(keys)
        if unknown:
            raise ValueError(f"priors given for unknown keys: {', '.join(sorted(unknown))}")

        return self

    @property
    def resolved_control_key(self) -> str:
        return self.control_key or self.candidate_keys[0]

    @property
    def rollout_options(self) -> Optional[Union[RolloutOptions, StagedRolloutOptions]]:
        if self.mode is SelectionMode.ROLLOUT:
            return self.rollout
        if self.mode is SelectionMode.STAGED_ROLLOUT:
            return self.staged_rollout
        return None


def _field_errors(error: ValidationError) -> Dict[str, List[str]]:
    field_errors: Dict[str, List[str]] = {}
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "__root__"
        field_errors.setdefault(location, []).append(item.get("msg", "invalid value"))
    return field_errors


def parse_definition(data: Union[ExperimentDefinition, Mapping[str, Any]]) -> ExperimentDefinition:
    """
    Validate an experiment definition.

    Raises:
        InvalidConfigurationError: With field-level details on any problem
    """
    if isinstance(data, ExperimentDefinition):
        return data
    try:
        return ExperimentDefinition.model_validate(data)
    except ValidationError as e:
        name = data.get("name") if isinstance(data, Mapping) else None
        raise InvalidConfigurationError(
            "Invalid experiment definition",
            field_errors=_field_errors(e),
            experiment=name,
        ) from e


def load_definitions(path: Union[str, Path]) -> List[ExperimentDefinition]:
    """
    Load experiment definitions from a YAML or JSON file.

    The file holds either a list of definitions or a mapping with an
    ``experiments`` list.
    """
    path = Path(path)
    with open(path, "r") as f:
        if path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    if isinstance(data, Mapping):
        data = data.get("experiments", [])
    if not isinstance(data, list):
        raise InvalidConfigurationError(
            f"Expected a list of experiments in {path}",
            field_errors={"experiments": ["must be a list"]},
        )

    definitions = [parse_definition(item) for item in data]
    logger.info(f"Loaded {len(definitions)} experiment definition(s) from {path}")
    return definitions
