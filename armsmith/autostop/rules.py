"""Stopping rules that decide when an experiment has enough evidence."""

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import List, Optional, Sequence

from armsmith.autostop.stats import (
    best_treatment,
    highest_rate,
    lift,
    obrien_fleming_boundary,
    p_value,
    two_proportion_z,
)
from armsmith.dx.errors import InvalidConfigurationError
from armsmith.io.ser import ExperimentData, StoppingDecision
from armsmith.runtime.clock import Clock, system_clock


class StoppingRule(ABC):
    """Abstract base class for stopping rules."""

    name: str = "StoppingRule"
    # Gate rules are consulted before all others by the engine
    is_gate: bool = False

    @abstractmethod
    def evaluate(self, data: ExperimentData) -> StoppingDecision:
        """
        Evaluate whether an experiment should stop.

        Args:
            data: Experiment snapshot; never mutated

        Returns:
            StoppingDecision with a reason
        """
        pass

    def _decision(
        self,
        should_stop: bool,
        reason: str,
        winning_variant: Optional[str] = None,
        confidence: Optional[float] = None,
    ) -> StoppingDecision:
        return StoppingDecision(
            should_stop=should_stop,
            reason=reason,
            winning_variant=winning_variant,
            confidence=confidence,
            rule=self.name,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class MinimumSampleSizeRule(StoppingRule):
    """Ready only once every variant has at least ``threshold`` pulls."""

    name = "MinimumSampleSize"
    is_gate = True

    def __init__(self, threshold: int = 1000):
        if threshold < 0:
            raise InvalidConfigurationError(
                "Minimum sample size must be non-negative",
                field_errors={"threshold": ["must be non-negative"]},
            )
        self.threshold = threshold

    def evaluate(self, data: ExperimentData) -> StoppingDecision:
        if not data.variants:
            return self._decision(False, "No variants recorded")

        smallest = min(variant.pulls for variant in data.variants)
        if smallest < self.threshold:
            return self._decision(
                False,
                f"Minimum sample size not reached (current min: {smallest}, required: {self.threshold})",
            )
        return self._decision(True, "Minimum sample size reached")


class StatisticalSignificanceRule(StoppingRule):
    """Two-proportion z-test between the control and the best treatment."""

    name = "StatisticalSignificance"

    def __init__(self, confidence_level: float = 0.95, min_sample_size: int = 100, tails: int = 2):
        """
        Initialize significance rule.

        Args:
            confidence_level: Required confidence (e.g. 0.95)
            min_sample_size: Pulls every variant needs before testing
            tails: 2 for a two-tailed test, 1 to test treatment > control
        """
        if not 0.0 < confidence_level < 1.0:
            raise InvalidConfigurationError(
                f"Confidence level must be in (0, 1), got {confidence_level}",
                field_errors={"confidence_level": ["must be between 0 and 1 (exclusive)"]},
            )
        if tails not in (1, 2):
            raise InvalidConfigurationError(
                f"tails must be 1 or 2, got {tails}",
                field_errors={"tails": ["must be 1 or 2"]},
            )
        self.confidence_level = confidence_level
        self.min_sample_size = min_sample_size
        self.tails = tails

    def evaluate(self, data: ExperimentData) -> StoppingDecision:
        if len(data.variants) < 2:
            return self._decision(False, "Need at least 2 variants for comparison")

        if any(variant.pulls < self.min_sample_size for variant in data.variants):
            return self._decision(False, "Minimum sample size not reached")

        control = data.control
        treatment = best_treatment(data.variants, control)

        z = two_proportion_z(control, treatment)
        p = p_value(z, self.tails)
        alpha = 1.0 - self.confidence_level

        if p < alpha:
            winner = treatment if treatment.conversion_rate > control.conversion_rate else control
            return self._decision(
                True,
                f"Statistical significance reached (p={p:.4f})",
                winner.key,
                1.0 - p,
            )

        return self._decision(False, f"Not yet significant (p={p:.4f}, need {alpha:.4f})")


class PracticalSignificanceRule(StoppingRule):
    """
    Stop only when the relative lift is large enough to matter.

    Independent of the p-value; pair it with StatisticalSignificanceRule in an
    AllOfRule to require both.
    """

    name = "PracticalSignificance"

    def __init__(self, minimum_effect_size: float):
        if minimum_effect_size < 0:
            raise InvalidConfigurationError(
                "Minimum effect size must be non-negative",
                field_errors={"minimum_effect_size": ["must be non-negative"]},
            )
        self.minimum_effect_size = minimum_effect_size

    def evaluate(self, data: ExperimentData) -> StoppingDecision:
        if len(data.variants) < 2:
            return self._decision(False, "Need at least 2 variants for comparison")

        control = data.control
        treatment = best_treatment(data.variants, control)
        relative_lift = lift(control, treatment)

        if abs(relative_lift) >= self.minimum_effect_size:
            winner = treatment if relative_lift > 0 else control
            return self._decision(
                True,
                f"Practical significance reached (lift={relative_lift:.2%}, "
                f"minimum {self.minimum_effect_size:.2%})",
                winner.key,
            )

        return self._decision(
            False,
            f"Effect too small to matter (lift={relative_lift:.2%}, "
            f"minimum {self.minimum_effect_size:.2%})",
        )


class MaxDurationRule(StoppingRule):
    """Stop unconditionally once the experiment has run for ``max_duration``."""

    name = "MaxDuration"

    def __init__(self, max_duration: timedelta, clock: Optional[Clock] = None):
        if max_duration <= timedelta(0):
            raise InvalidConfigurationError(
                "Maximum duration must be positive",
                field_errors={"max_duration": ["must be positive"]},
            )
        self.max_duration = max_duration
        self.clock = clock or system_clock

    def evaluate(self, data: ExperimentData) -> StoppingDecision:
        elapsed = self.clock.now() - data.started_at
        if elapsed >= self.max_duration:
            leader = highest_rate(data.variants)
            return self._decision(
                True,
                f"Maximum duration reached ({elapsed} >= {self.max_duration})",
                leader.key if leader else None,
            )
        return self._decision(False, f"Running for {elapsed} of {self.max_duration}")


class SequentialAnalysisRule(StoppingRule):
    """
    Group-sequential test with O'Brien-Fleming-style boundaries.

    ``checkpoints`` are per-variant sample sizes at which the data is looked
    at. The latest checkpoint reached by the smallest variant selects the
    boundary; the boundary shrinks as the information fraction grows.
    """

    name = "SequentialAnalysis"

    def __init__(self, checkpoints: Sequence[int], alpha: float = 0.05):
        checkpoints = list(checkpoints)
        errors: List[str] = []
        if not checkpoints:
            errors.append("at least one checkpoint is required")
        elif any(c <= 0 for c in checkpoints):
            errors.append("checkpoints must be positive")
        elif any(b <= a for a, b in zip(checkpoints, checkpoints[1:])):
            errors.append("checkpoints must be strictly increasing")
        if errors:
            raise InvalidConfigurationError(
                "Invalid sequential checkpoints",
                field_errors={"checkpoints": errors},
            )
        if not 0.0 < alpha < 1.0:
            raise InvalidConfigurationError(
                f"alpha must be in (0, 1), got {alpha}",
                field_errors={"alpha": ["must be between 0 and 1 (exclusive)"]},
            )
        self.checkpoints = checkpoints
        self.alpha = alpha

    def boundary(self, look: int) -> float:
        """Critical |z| at a 1-based look index."""
        fraction = self.checkpoints[look - 1] / self.checkpoints[-1]
        return obrien_fleming_boundary(fraction, self.alpha)

    def current_look(self, data: ExperimentData) -> int:
        if not data.variants:
            return 0
        smallest = min(variant.pulls for variant in data.variants)
        return sum(1 for checkpoint in self.checkpoints if smallest >= checkpoint)

    def evaluate(self, data: ExperimentData) -> StoppingDecision:
        if len(data.variants) < 2:
            return self._decision(False, "Need at least 2 variants for comparison")

        look = self.current_look(data)
        total = len(self.checkpoints)
        if look == 0:
            return self._decision(
                False, f"First checkpoint not reached (need {self.checkpoints[0]} per variant)"
            )

        control = data.control
        treatment = best_treatment(data.variants, control)
        z = two_proportion_z(control, treatment)
        boundary = self.boundary(look)

        if abs(z) >= boundary:
            winner = treatment if z > 0 else control
            return self._decision(
                True,
                f"Sequential boundary crossed at checkpoint {look}/{total} "
                f"(|z|={abs(z):.3f} >= {boundary:.3f})",
                winner.key,
                1.0 - p_value(z),
            )

        return self._decision(
            False,
            f"Within sequential boundary at checkpoint {look}/{total} "
            f"(|z|={abs(z):.3f} < {boundary:.3f})",
        )


class AllOfRule(StoppingRule):
    """Stops only when every member rule stops."""

    def __init__(self, *rules: StoppingRule):
        if not rules:
            raise InvalidConfigurationError(
                "AllOfRule needs at least one rule",
                field_errors={"rules": ["must not be empty"]},
            )
        self.rules = list(rules)
        self.name = "AllOf(" + ", ".join(rule.name for rule in self.rules) + ")"

    def evaluate(self, data: ExperimentData) -> StoppingDecision:
        decisions = []
        for rule in self.rules:
            decision = rule.evaluate(data)
            if not decision.should_stop:
                return decision
            decisions.append(decision)

        winner = next((d.winning_variant for d in decisions if d.winning_variant), None)
        confidence = next((d.confidence for d in decisions if d.confidence is not None), None)
        return self._decision(
            True,
            "; ".join(d.reason for d in decisions),
            winner,
            confidence,
        )

    def __repr__(self) -> str:
        return f"AllOfRule({', '.join(repr(rule) for rule in self.rules)})"
