"""A/B allocation and bandit selection modules."""

from armsmith.ab.metrics import ArmStatisticsStore
from armsmith.ab.policies import (
    BanditChoice,
    BanditPolicy,
    BanditSelector,
    EpsilonGreedyPolicy,
    NormalInverseGammaPrior,
    RewardModel,
    ThompsonSamplingPolicy,
    UCBPolicy,
    create_policy,
    make_rng,
)
from armsmith.ab.reasoning import explain_selection
from armsmith.ab.traffic import allocate_bucket, hash_bucket, is_included, weighted_index

__all__ = [
    # Traffic management
    "hash_bucket",
    "is_included",
    "allocate_bucket",
    "weighted_index",
    # Statistics
    "ArmStatisticsStore",
    # Policies
    "BanditPolicy",
    "BanditChoice",
    "BanditSelector",
    "EpsilonGreedyPolicy",
    "ThompsonSamplingPolicy",
    "UCBPolicy",
    "RewardModel",
    "NormalInverseGammaPrior",
    "create_policy",
    "make_rng",
    # Reasoning
    "explain_selection",
]
