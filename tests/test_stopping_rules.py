"""Tests for stopping rules and the rule engine."""

from datetime import timedelta

import pytest

from armsmith.autostop.engine import StoppingRuleEngine, default_rules
from armsmith.autostop.rules import (
    AllOfRule,
    MaxDurationRule,
    MinimumSampleSizeRule,
    PracticalSignificanceRule,
    SequentialAnalysisRule,
    StatisticalSignificanceRule,
)
from armsmith.autostop.stats import (
    lift,
    minimum_detectable_effect,
    obrien_fleming_boundary,
    p_value,
    required_sample_size,
    statistical_power,
    two_proportion_z,
)
from armsmith.dx.errors import InvalidConfigurationError
from armsmith.io.ser import ExperimentData, VariantData
from armsmith.runtime.clock import ManualClock


def experiment(*variants, started_at=None):
    return ExperimentData(
        experiment_name="checkout",
        started_at=started_at or ManualClock().now(),
        variants=variants,
    )


def control_vs_treatment(n_control, s_control, n_treatment, s_treatment, **kwargs):
    return experiment(
        VariantData.binary("control", n_control, s_control, is_control=True),
        VariantData.binary("treatment", n_treatment, s_treatment),
        **kwargs,
    )


class TestStats:
    """Test statistical helpers."""

    def test_z_score(self):
        data = control_vs_treatment(1000, 50, 1000, 70)
        z = two_proportion_z(data.control, data.treatments[0])
        assert z == pytest.approx(1.8831, abs=1e-3)
        assert p_value(z) == pytest.approx(0.0597, abs=1e-3)
        assert p_value(z, tails=1) == pytest.approx(0.0298, abs=1e-3)

    def test_zero_variance(self):
        """Identical zero rates give z = 0 rather than an error."""
        data = control_vs_treatment(1000, 0, 1000, 0)
        assert two_proportion_z(data.control, data.treatments[0]) == 0.0

    def test_lift_with_zero_control(self):
        data = control_vs_treatment(100, 0, 100, 10)
        assert lift(data.control, data.treatments[0]) == 0.0

    def test_boundary_at_final_look(self):
        assert obrien_fleming_boundary(1.0) == pytest.approx(1.95996, abs=1e-4)
        assert obrien_fleming_boundary(0.25) == pytest.approx(3.91993, abs=1e-4)


class TestPowerAnalysis:
    """Test sample size, power and minimum detectable effect."""

    def test_continuous_sample_size(self):
        """d = 0.5 at 80% power and alpha 0.05 needs 63 per group."""
        assert required_sample_size(0.5) == 63

    def test_one_sided_needs_fewer(self):
        assert required_sample_size(0.5, one_sided=True) == 50

    def test_binary_sample_size(self):
        n = required_sample_size(0.02, baseline_rate=0.10)
        assert 3830 <= n <= 3850

    def test_power_at_required_size(self):
        """The computed sample size reaches the target power."""
        n = required_sample_size(0.02, baseline_rate=0.10)
        power = statistical_power(n, 0.02, baseline_rate=0.10)
        assert 0.80 <= power < 0.81
        assert statistical_power(63, 0.5) == pytest.approx(0.80, abs=0.01)

    def test_power_grows_with_sample_size(self):
        powers = [statistical_power(n, 0.02, baseline_rate=0.10) for n in (500, 2000, 16000)]
        assert powers == sorted(powers)
        assert powers[-1] > 0.99

    def test_minimum_detectable_effect(self):
        assert minimum_detectable_effect(63) == pytest.approx(0.5, abs=0.01)
        assert minimum_detectable_effect(252) == pytest.approx(minimum_detectable_effect(63) / 2)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"effect_size": 0.0},
            {"effect_size": 0.1, "power": 1.0},
            {"effect_size": 0.1, "alpha": 0.0},
            {"effect_size": 0.1, "allocation_ratio": 0.0},
            {"effect_size": 0.5, "baseline_rate": 0.6},
        ],
    )
    def test_invalid_inputs(self, kwargs):
        with pytest.raises(InvalidConfigurationError):
            required_sample_size(**kwargs)

    def test_power_needs_two_per_group(self):
        with pytest.raises(InvalidConfigurationError):
            statistical_power(1, 0.5)
        with pytest.raises(InvalidConfigurationError):
            minimum_detectable_effect(1)


class TestMinimumSampleSizeRule:
    """Test minimum sample size gate."""

    def test_not_reached(self):
        decision = MinimumSampleSizeRule(1000).evaluate(control_vs_treatment(10, 1, 10, 5))
        assert not decision.should_stop
        assert "current min: 10" in decision.reason
        assert "required: 1000" in decision.reason

    def test_reached(self):
        decision = MinimumSampleSizeRule(100).evaluate(control_vs_treatment(100, 1, 150, 5))
        assert decision.should_stop

    def test_no_variants(self):
        decision = MinimumSampleSizeRule(1).evaluate(experiment())
        assert not decision.should_stop
        assert decision.reason == "No variants recorded"


class TestStatisticalSignificanceRule:
    """Test the two-proportion z-test rule."""

    def test_two_tailed_not_significant_at_95(self):
        """5% vs 7% at n=1000 has two-tailed p of about 0.06."""
        rule = StatisticalSignificanceRule(confidence_level=0.95, min_sample_size=100)
        decision = rule.evaluate(control_vs_treatment(1000, 50, 1000, 70))
        assert not decision.should_stop
        assert decision.winning_variant is None

    def test_one_tailed_significant_at_95(self):
        rule = StatisticalSignificanceRule(confidence_level=0.95, min_sample_size=100, tails=1)
        decision = rule.evaluate(control_vs_treatment(1000, 50, 1000, 70))
        assert decision.should_stop
        assert decision.winning_variant == "treatment"
        assert decision.confidence == pytest.approx(0.970, abs=1e-3)
        assert decision.rule == "StatisticalSignificance"

    def test_two_tailed_significant_at_90(self):
        rule = StatisticalSignificanceRule(confidence_level=0.90, min_sample_size=100)
        decision = rule.evaluate(control_vs_treatment(1000, 50, 1000, 70))
        assert decision.should_stop
        assert decision.winning_variant == "treatment"

    def test_large_effect(self):
        rule = StatisticalSignificanceRule()
        decision = rule.evaluate(control_vs_treatment(5000, 500, 5000, 750))
        assert decision.should_stop
        assert decision.winning_variant == "treatment"
        assert decision.confidence > 0.99

    def test_control_can_win(self):
        rule = StatisticalSignificanceRule()
        decision = rule.evaluate(control_vs_treatment(10000, 2000, 10000, 1000))
        assert decision.should_stop
        assert decision.winning_variant == "control"

    def test_best_treatment_is_compared(self):
        data = experiment(
            VariantData.binary("control", 5000, 500, is_control=True),
            VariantData.binary("b", 5000, 520),
            VariantData.binary("c", 5000, 800),
        )
        decision = StatisticalSignificanceRule().evaluate(data)
        assert decision.should_stop
        assert decision.winning_variant == "c"

    def test_first_variant_is_control_when_none_flagged(self):
        data = experiment(VariantData.binary("a", 5000, 800), VariantData.binary("b", 5000, 500))
        decision = StatisticalSignificanceRule().evaluate(data)
        assert decision.should_stop
        assert decision.winning_variant == "a"

    def test_single_variant(self):
        decision = StatisticalSignificanceRule().evaluate(experiment(VariantData.binary("a", 5000, 10)))
        assert not decision.should_stop
        assert decision.reason == "Need at least 2 variants for comparison"

    def test_sample_size_not_reached(self):
        decision = StatisticalSignificanceRule(min_sample_size=100).evaluate(
            control_vs_treatment(50, 1, 50, 40)
        )
        assert not decision.should_stop
        assert decision.reason == "Minimum sample size not reached"

    def test_identical_zero_rates(self):
        decision = StatisticalSignificanceRule().evaluate(control_vs_treatment(1000, 0, 1000, 0))
        assert not decision.should_stop

    def test_invalid_confidence(self):
        with pytest.raises(InvalidConfigurationError):
            StatisticalSignificanceRule(confidence_level=1.0)

    def test_invalid_tails(self):
        with pytest.raises(InvalidConfigurationError):
            StatisticalSignificanceRule(tails=3)


class TestPracticalSignificanceRule:
    """Test the minimum effect size rule."""

    def test_large_lift(self):
        decision = PracticalSignificanceRule(0.05).evaluate(control_vs_treatment(1000, 100, 1000, 130))
        assert decision.should_stop
        assert decision.winning_variant == "treatment"

    def test_tiny_lift(self):
        decision = PracticalSignificanceRule(0.05).evaluate(
            control_vs_treatment(100_000_000, 10_000_000, 100_000_000, 10_010_000)
        )
        assert not decision.should_stop

    def test_vetoes_statistical_significance(self):
        """A highly significant but negligible lift does not stop the experiment."""
        data = control_vs_treatment(100_000_000, 10_000_000, 100_000_000, 10_010_000)
        significance = StatisticalSignificanceRule()
        assert significance.evaluate(data).should_stop

        combined = AllOfRule(significance, PracticalSignificanceRule(0.05))
        decision = combined.evaluate(data)
        assert not decision.should_stop
        assert decision.rule == "PracticalSignificance"


class TestAllOfRule:
    """Test rule composition."""

    def test_stops_when_all_stop(self):
        rule = AllOfRule(StatisticalSignificanceRule(), PracticalSignificanceRule(0.05))
        decision = rule.evaluate(control_vs_treatment(5000, 500, 5000, 750))
        assert decision.should_stop
        assert decision.winning_variant == "treatment"
        assert decision.confidence is not None
        assert decision.rule == "AllOf(StatisticalSignificance, PracticalSignificance)"

    def test_requires_rules(self):
        with pytest.raises(InvalidConfigurationError):
            AllOfRule()


class TestMaxDurationRule:
    """Test maximum duration rule."""

    def test_before_deadline(self):
        clock = ManualClock()
        data = control_vs_treatment(10, 1, 10, 5, started_at=clock.now())
        clock.advance(timedelta(hours=12))
        assert not MaxDurationRule(timedelta(days=1), clock).evaluate(data).should_stop

    def test_after_deadline_picks_leader(self):
        clock = ManualClock()
        data = control_vs_treatment(10, 1, 10, 5, started_at=clock.now())
        clock.advance(timedelta(days=2))
        decision = MaxDurationRule(timedelta(days=1), clock).evaluate(data)
        assert decision.should_stop
        assert decision.winning_variant == "treatment"
        assert decision.rule == "MaxDuration"

    def test_non_positive_duration(self):
        with pytest.raises(InvalidConfigurationError):
            MaxDurationRule(timedelta(0))


class TestSequentialAnalysisRule:
    """Test group-sequential boundaries."""

    def test_boundaries_shrink(self):
        rule = SequentialAnalysisRule([1000, 2000, 3000, 4000])
        boundaries = [rule.boundary(look) for look in range(1, 5)]
        assert boundaries == sorted(boundaries, reverse=True)
        assert boundaries[0] == pytest.approx(3.91993, abs=1e-4)
        assert boundaries[-1] == pytest.approx(1.95996, abs=1e-4)

    def test_before_first_checkpoint(self):
        rule = SequentialAnalysisRule([1000, 2000])
        decision = rule.evaluate(control_vs_treatment(500, 10, 500, 100))
        assert not decision.should_stop
        assert rule.current_look(control_vs_treatment(500, 10, 500, 100)) == 0

    def test_early_look_is_strict(self):
        """z of about 2.1 is significant at a fixed horizon but not at look 1 of 4."""
        rule = SequentialAnalysisRule([1000, 2000, 3000, 4000])
        data = control_vs_treatment(1000, 100, 1000, 130)
        assert rule.current_look(data) == 1
        assert not rule.evaluate(data).should_stop

    def test_final_look_stops(self):
        rule = SequentialAnalysisRule([1000, 2000, 3000, 4000])
        data = control_vs_treatment(4000, 400, 4000, 520)
        decision = rule.evaluate(data)
        assert rule.current_look(data) == 4
        assert decision.should_stop
        assert decision.winning_variant == "treatment"

    def test_smallest_variant_sets_the_look(self):
        rule = SequentialAnalysisRule([1000, 2000, 3000, 4000])
        assert rule.current_look(control_vs_treatment(4000, 400, 2500, 300)) == 2

    @pytest.mark.parametrize("checkpoints", [[], [0, 100], [200, 100], [100, 100]])
    def test_invalid_checkpoints(self, checkpoints):
        with pytest.raises(InvalidConfigurationError):
            SequentialAnalysisRule(checkpoints)


class TestStoppingRuleEngine:
    """Test rule ordering and precedence."""

    def test_gate_blocks_every_other_rule(self):
        """Minimum sample size wins even when the deadline has passed."""
        clock = ManualClock()
        data = control_vs_treatment(10, 1, 10, 9, started_at=clock.now())
        clock.advance(timedelta(days=30))
        engine = StoppingRuleEngine(
            [
                MaxDurationRule(timedelta(days=1), clock),
                StatisticalSignificanceRule(min_sample_size=1),
                MinimumSampleSizeRule(1000),
            ]
        )
        decision = engine.evaluate(data)
        assert not decision.should_stop
        assert decision.rule == "MinimumSampleSize"

    def test_first_stopping_rule_wins(self):
        clock = ManualClock()
        data = control_vs_treatment(5000, 500, 5000, 750, started_at=clock.now())
        clock.advance(timedelta(days=30))
        engine = StoppingRuleEngine(
            [
                MinimumSampleSizeRule(1000),
                StatisticalSignificanceRule(),
                MaxDurationRule(timedelta(days=1), clock),
            ]
        )
        assert engine.evaluate(data).rule == "StatisticalSignificance"

    def test_no_rule_stops_returns_last(self):
        engine = StoppingRuleEngine(
            [
                MinimumSampleSizeRule(100),
                StatisticalSignificanceRule(),
                PracticalSignificanceRule(0.5),
            ]
        )
        decision = engine.evaluate(control_vs_treatment(1000, 50, 1000, 52))
        assert not decision.should_stop
        assert decision.rule == "PracticalSignificance"

    def test_only_gate_never_stops(self):
        """A satisfied gate makes the experiment eligible but does not stop it."""
        engine = StoppingRuleEngine([MinimumSampleSizeRule(10)])
        decision = engine.evaluate(control_vs_treatment(10, 1, 10, 2))
        assert not decision.should_stop
        assert decision.winning_variant is None
        assert decision.rule == "MinimumSampleSize"
        assert "no decision rules configured" in decision.reason

    def test_empty_rules(self):
        with pytest.raises(InvalidConfigurationError):
            StoppingRuleEngine([])

    def test_default_rules(self):
        engine = StoppingRuleEngine(default_rules(minimum_sample_size=1000))
        assert not engine.evaluate(control_vs_treatment(10, 1, 10, 9)).should_stop
        decision = engine.evaluate(control_vs_treatment(5000, 500, 5000, 750))
        assert decision.should_stop
        assert decision.winning_variant == "treatment"
