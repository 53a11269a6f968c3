"""Ordered evaluation of stopping rules."""

from typing import List, Sequence

from armsmith.autostop.rules import MinimumSampleSizeRule, StatisticalSignificanceRule, StoppingRule
from armsmith.dx.errors import InvalidConfigurationError
from armsmith.io.ser import ExperimentData, StoppingDecision
from armsmith.utils.logging import get_logger

logger = get_logger("autostop")


class StoppingRuleEngine:
    """
    Evaluates a chain of stopping rules and returns one decision.

    Gate rules (minimum sample size) run first; if any gate is not ready its
    result is returned without consulting the rest. The remaining rules run in
    registration order and the first one that stops wins. When none stops,
    the last rule's result is returned so its reason is visible. A chain of
    gates alone never stops.
    """

    def __init__(self, rules: Sequence[StoppingRule]):
        if not rules:
            raise InvalidConfigurationError(
                "At least one stopping rule is required",
                field_errors={"rules": ["must not be empty"]},
            )
        self.rules: List[StoppingRule] = list(rules)
        self._gates = [rule for rule in self.rules if rule.is_gate]
        self._others = [rule for rule in self.rules if not rule.is_gate]

    def evaluate(self, data: ExperimentData) -> StoppingDecision:
        """
        Evaluate the rule chain against a snapshot.

        Args:
            data: Experiment snapshot

        Returns:
            The deciding StoppingDecision
        """
        decision = None

        for gate in self._gates:
            decision = gate.evaluate(data)
            if not decision.should_stop:
                logger.debug(f"{data.experiment_name}: gated by {gate.name}: {decision.reason}")
                return decision

        if not self._others:
            # Gates only make an experiment eligible; they never stop it
            return StoppingDecision(
                should_stop=False,
                reason=f"{decision.reason}; no decision rules configured",
                rule=decision.rule,
            )

        for rule in self._others:
            decision = rule.evaluate(data)
            if decision.should_stop:
                logger.info(
                    f"{data.experiment_name}: {rule.name} decided to stop "
                    f"(winner={decision.winning_variant}, reason={decision.reason})"
                )
                return decision

        return decision


def default_rules(minimum_sample_size: int = 1000, confidence_level: float = 0.95) -> List[StoppingRule]:
    """Minimum sample size followed by a two-tailed significance test."""
    return [
        MinimumSampleSizeRule(minimum_sample_size),
        StatisticalSignificanceRule(confidence_level, minimum_sample_size),
    ]
