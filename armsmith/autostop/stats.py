"""Statistical tests used by stopping rules."""

import math
from typing import Optional, Sequence

from scipy.stats import norm

from armsmith.dx.errors import InvalidConfigurationError
from armsmith.io.ser import VariantData


def two_proportion_z(control: VariantData, treatment: VariantData) -> float:
    """
    Pooled two-proportion z-score of treatment against control.

    Returns 0.0 when either side has no trials or the pooled standard error
    is zero (e.g. both rates are 0 or 1).
    """
    n_c = control.trials
    n_t = treatment.trials
    if n_c == 0 or n_t == 0:
        return 0.0

    pooled = (control.successes + treatment.successes) / (n_c + n_t)
    se = math.sqrt(pooled * (1.0 - pooled) * (1.0 / n_c + 1.0 / n_t))
    if se <= 0.0:
        return 0.0

    return (treatment.conversion_rate - control.conversion_rate) / se


def p_value(z: float, tails: int = 2) -> float:
    """
    p-value for a z-score under the standard normal.

    ``tails=2`` tests for any difference; ``tails=1`` tests whether the
    treatment beats the control (positive z).
    """
    if tails == 1:
        return float(norm.sf(z))
    return float(2.0 * norm.sf(abs(z)))


def lift(control: VariantData, treatment: VariantData) -> float:
    """Relative lift of treatment over control; 0.0 when the control rate is 0."""
    rate_c = control.conversion_rate
    if rate_c == 0.0:
        return 0.0
    return (treatment.conversion_rate - rate_c) / rate_c


def obrien_fleming_boundary(information_fraction: float, alpha: float = 0.05) -> float:
    """
    O'Brien-Fleming-style critical |z| at a given information fraction.

    ``z_{1-alpha/2} / sqrt(t)``: very strict at early looks, relaxing to the
    fixed-horizon critical value when all planned data has been collected.
    """
    if information_fraction <= 0.0:
        return math.inf
    return float(norm.isf(alpha / 2.0)) / math.sqrt(min(information_fraction, 1.0))


def best_treatment(variants: Sequence[VariantData], control: VariantData) -> Optional[VariantData]:
    """Non-control variant with the highest conversion rate; first on ties."""
    best = None
    for variant in variants:
        if variant is control:
            continue
        if best is None or variant.conversion_rate > best.conversion_rate:
            best = variant
    return best


def highest_rate(variants: Sequence[VariantData]) -> Optional[VariantData]:
    best = None
    for variant in variants:
        if best is None or variant.conversion_rate > best.conversion_rate:
            best = variant
    return best


def _check_open_unit(name: str, value: float) -> None:
    if not 0.0 < value < 1.0:
        raise InvalidConfigurationError(
            f"{name} must be in (0, 1), got {value}",
            field_errors={name: ["must be between 0 and 1 (exclusive)"]},
        )


def _check_power_inputs(
    alpha: float,
    allocation_ratio: float,
    baseline_rate: Optional[float],
    effect_size: Optional[float] = None,
) -> None:
    _check_open_unit("alpha", alpha)
    if allocation_ratio <= 0:
        raise InvalidConfigurationError(
            "allocation_ratio must be positive",
            field_errors={"allocation_ratio": ["must be positive"]},
        )
    if effect_size is not None and effect_size <= 0:
        raise InvalidConfigurationError(
            "effect_size must be positive",
            field_errors={"effect_size": ["must be positive"]},
        )
    if baseline_rate is not None:
        _check_open_unit("baseline_rate", baseline_rate)
        if effect_size is not None and not baseline_rate + effect_size < 1.0:
            raise InvalidConfigurationError(
                "baseline_rate + effect_size must stay below 1",
                field_errors={"effect_size": ["treatment rate must be below 1"]},
            )


def _critical_z(alpha: float, one_sided: bool) -> float:
    return float(norm.isf(alpha if one_sided else alpha / 2.0))


def required_sample_size(
    effect_size: float,
    power: float = 0.80,
    alpha: float = 0.05,
    baseline_rate: Optional[float] = None,
    one_sided: bool = False,
    allocation_ratio: float = 1.0,
) -> int:
    """
    Per-group sample size needed to detect an effect.

    Args:
        effect_size: Absolute lift in conversion rate when ``baseline_rate``
            is given, otherwise Cohen's d for a continuous outcome
        power: Target probability of detecting the effect
        alpha: Significance level
        baseline_rate: Control conversion rate for binary outcomes
        one_sided: Use a one-sided critical value
        allocation_ratio: Treatment size relative to control

    Returns:
        Control-group sample size, rounded up
    """
    _check_open_unit("power", power)
    _check_power_inputs(alpha, allocation_ratio, baseline_rate, effect_size)

    z_alpha = _critical_z(alpha, one_sided)
    z_beta = float(norm.ppf(power))
    k = allocation_ratio

    if baseline_rate is None:
        n = (z_alpha + z_beta) ** 2 * (1.0 + 1.0 / k) / effect_size ** 2
    else:
        p1 = baseline_rate
        p2 = p1 + effect_size
        pooled = (p1 + k * p2) / (1.0 + k)
        spread = (
            z_alpha * math.sqrt((1.0 + 1.0 / k) * pooled * (1.0 - pooled))
            + z_beta * math.sqrt(p1 * (1.0 - p1) + p2 * (1.0 - p2) / k)
        )
        n = spread ** 2 / effect_size ** 2

    return int(math.ceil(n))


def statistical_power(
    sample_size_per_group: int,
    effect_size: float,
    alpha: float = 0.05,
    baseline_rate: Optional[float] = None,
    one_sided: bool = False,
    allocation_ratio: float = 1.0,
) -> float:
    """Probability of detecting ``effect_size`` with the given per-group sample size."""
    if sample_size_per_group < 2:
        raise InvalidConfigurationError(
            "Sample size must be at least 2",
            field_errors={"sample_size_per_group": ["must be at least 2"]},
        )
    _check_power_inputs(alpha, allocation_ratio, baseline_rate, effect_size)

    z_alpha = _critical_z(alpha, one_sided)
    k = allocation_ratio
    n = sample_size_per_group

    if baseline_rate is None:
        z_beta = effect_size * math.sqrt(n / (1.0 + 1.0 / k)) - z_alpha
    else:
        p1 = baseline_rate
        p2 = p1 + effect_size
        pooled = (p1 + k * p2) / (1.0 + k)
        se_null = math.sqrt((1.0 + 1.0 / k) * pooled * (1.0 - pooled) / n)
        se_alt = math.sqrt((p1 * (1.0 - p1) + p2 * (1.0 - p2) / k) / n)
        z_beta = (effect_size - z_alpha * se_null) / se_alt

    return min(1.0, max(0.0, float(norm.cdf(z_beta))))


def minimum_detectable_effect(
    sample_size_per_group: int,
    power: float = 0.80,
    alpha: float = 0.05,
    one_sided: bool = False,
    allocation_ratio: float = 1.0,
) -> float:
    """Smallest standardized effect (Cohen's d) detectable at the given power."""
    if sample_size_per_group < 2:
        raise InvalidConfigurationError(
            "Sample size must be at least 2",
            field_errors={"sample_size_per_group": ["must be at least 2"]},
        )
    _check_open_unit("power", power)
    _check_power_inputs(alpha, allocation_ratio, None)

    z_alpha = _critical_z(alpha, one_sided)
    z_beta = float(norm.ppf(power))
    return (z_alpha + z_beta) * math.sqrt((1.0 + 1.0 / allocation_ratio) / sample_size_per_group)
