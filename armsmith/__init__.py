"""Armsmith: deterministic allocation, adaptive bandits and automatic stopping for experiments."""

from armsmith.ab.metrics import ArmStatisticsStore
from armsmith.ab.policies import (
    BanditSelector,
    EpsilonGreedyPolicy,
    ThompsonSamplingPolicy,
    UCBPolicy,
    create_policy,
    make_rng,
)
from armsmith.ab.traffic import allocate_bucket, hash_bucket, is_included
from armsmith.autostop import (
    AllOfRule,
    BackgroundEvaluator,
    MaxDurationRule,
    MinimumSampleSizeRule,
    PracticalSignificanceRule,
    SequentialAnalysisRule,
    StatisticalSignificanceRule,
    StoppingRuleEngine,
)
from armsmith.dx.errors import InvalidConfigurationError
from armsmith.io.config import ExperimentDefinition, load_definitions
from armsmith.io.ser import (
    ArmStatistics,
    ExperimentData,
    RewardEvent,
    SelectionReason,
    SelectionRequest,
    SelectionResult,
    StoppingDecision,
    VariantData,
)
from armsmith.runtime.orchestrator import DecisionOrchestrator

__version__ = "0.1.0"

__all__ = [
    "hash_bucket",
    "is_included",
    "allocate_bucket",
    "ArmStatisticsStore",
    "BanditSelector",
    "EpsilonGreedyPolicy",
    "ThompsonSamplingPolicy",
    "UCBPolicy",
    "create_policy",
    "make_rng",
    "StoppingRuleEngine",
    "MinimumSampleSizeRule",
    "StatisticalSignificanceRule",
    "PracticalSignificanceRule",
    "MaxDurationRule",
    "SequentialAnalysisRule",
    "AllOfRule",
    "BackgroundEvaluator",
    "DecisionOrchestrator",
    "ExperimentDefinition",
    "load_definitions",
    "InvalidConfigurationError",
    "ArmStatistics",
    "ExperimentData",
    "VariantData",
    "RewardEvent",
    "SelectionReason",
    "SelectionRequest",
    "SelectionResult",
    "StoppingDecision",
]
