"""Automatic stopping: rules, rule engine and the periodic evaluator."""

from armsmith.autostop.engine import StoppingRuleEngine, default_rules
from armsmith.autostop.evaluator import BackgroundEvaluator
from armsmith.autostop.rules import (
    AllOfRule,
    MaxDurationRule,
    MinimumSampleSizeRule,
    PracticalSignificanceRule,
    SequentialAnalysisRule,
    StatisticalSignificanceRule,
    StoppingRule,
)
from armsmith.autostop.stats import minimum_detectable_effect, required_sample_size, statistical_power

__all__ = [
    "StoppingRule",
    "MinimumSampleSizeRule",
    "StatisticalSignificanceRule",
    "PracticalSignificanceRule",
    "MaxDurationRule",
    "SequentialAnalysisRule",
    "AllOfRule",
    "StoppingRuleEngine",
    "default_rules",
    "BackgroundEvaluator",
    "required_sample_size",
    "statistical_power",
    "minimum_detectable_effect",
]
