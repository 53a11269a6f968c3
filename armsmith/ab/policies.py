"""Multi-armed bandit policies over arm statistics."""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, NamedTuple, Optional, Sequence, Union

import numpy as np

from armsmith.dx.errors import InvalidConfigurationError
from armsmith.io.ser import ArmStatistics, SelectionReason


class RewardModel(str, Enum):
    """Reward distribution assumed by Thompson Sampling."""

    BERNOULLI = "bernoulli"
    GAUSSIAN = "gaussian"


class BanditChoice(NamedTuple):
    """Selected arm index and why it was chosen."""

    index: int
    reason: SelectionReason


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """Build an explicit random generator; pass a seed for reproducible runs."""
    return np.random.default_rng(seed)


def _argmax(values: Sequence[float]) -> int:
    # np.argmax returns the first maximum, so ties go to the lowest index
    return int(np.argmax(np.asarray(values, dtype=float)))


def _require_arms(arms: Sequence[ArmStatistics]) -> None:
    if not arms:
        raise InvalidConfigurationError(
            "At least one arm is required",
            field_errors={"arms": ["must not be empty"]},
        )


class BanditPolicy(ABC):
    """Abstract base class for bandit selection policies."""

    name: str = "bandit"

    @abstractmethod
    def choose(self, arms: Sequence[ArmStatistics], rng: np.random.Generator) -> BanditChoice:
        """
        Choose an arm and report whether the choice exploits or explores.

        Args:
            arms: Arm statistics in registration order
            rng: Random generator owned by the caller

        Returns:
            BanditChoice with the arm index
        """
        pass

    def select_arm(self, arms: Sequence[ArmStatistics], rng: np.random.Generator) -> int:
        """Select an arm index."""
        return self.choose(arms, rng).index

    def _classify(self, arms: Sequence[ArmStatistics], index: int) -> SelectionReason:
        best = _argmax([arm.average_reward for arm in arms])
        return SelectionReason.EXPLOIT if index == best else SelectionReason.EXPLORE


class EpsilonGreedyPolicy(BanditPolicy):
    """Epsilon-greedy multi-armed bandit policy."""

    name = "epsilon_greedy"

    def __init__(self, epsilon: float = 0.1):
        """
        Initialize epsilon-greedy policy.

        Args:
            epsilon: Exploration probability (0.0-1.0)
        """
        if not 0.0 <= epsilon <= 1.0:
            raise InvalidConfigurationError(
                f"Epsilon must be between 0 and 1, got {epsilon}",
                field_errors={"epsilon": ["must be between 0 and 1"]},
            )
        self.epsilon = epsilon

    def choose(self, arms: Sequence[ArmStatistics], rng: np.random.Generator) -> BanditChoice:
        """
        Select arm using epsilon-greedy strategy.

        With probability epsilon, explore (uniform random arm).
        Otherwise exploit the arm with the highest average reward. With
        epsilon == 0 no random number is drawn.
        """
        _require_arms(arms)

        if self.epsilon > 0.0 and rng.random() < self.epsilon:
            return BanditChoice(int(rng.integers(len(arms))), SelectionReason.EXPLORE)

        best = _argmax([arm.average_reward for arm in arms])
        return BanditChoice(best, SelectionReason.EXPLOIT)


@dataclass(frozen=True)
class NormalInverseGammaPrior:
    """Conjugate prior for Gaussian rewards with unknown mean and variance."""

    mu0: float = 0.0
    kappa0: float = 1.0
    alpha0: float = 1.0
    beta0: float = 1.0

    def __post_init__(self):
        for field_name in ("kappa0", "alpha0", "beta0"):
            if getattr(self, field_name) <= 0:
                raise InvalidConfigurationError(
                    f"{field_name} must be positive",
                    field_errors={field_name: ["must be positive"]},
                )


class ThompsonSamplingPolicy(BanditPolicy):
    """Thompson Sampling multi-armed bandit policy."""

    name = "thompson_sampling"

    def __init__(
        self,
        reward_model: Union[RewardModel, str] = RewardModel.BERNOULLI,
        prior: Optional[NormalInverseGammaPrior] = None,
    ):
        """
        Initialize Thompson Sampling policy.

        Args:
            reward_model: "bernoulli" for binary rewards (Beta posterior over
                successes/failures) or "gaussian" for continuous rewards
                (Normal-Inverse-Gamma posterior over mean/variance)
            prior: Prior for the Gaussian model
        """
        try:
            self.reward_model = RewardModel(reward_model)
        except ValueError:
            raise InvalidConfigurationError(
                f"Unknown reward model: {reward_model}",
                field_errors={"reward_model": ["must be 'bernoulli' or 'gaussian'"]},
            ) from None
        self.prior = prior or NormalInverseGammaPrior()

    def choose(self, arms: Sequence[ArmStatistics], rng: np.random.Generator) -> BanditChoice:
        """Sample each arm's posterior and select the highest draw."""
        _require_arms(arms)

        if self.reward_model is RewardModel.BERNOULLI:
            samples = [self._sample_beta(arm, rng) for arm in arms]
        else:
            samples = [self._sample_gaussian(arm, rng) for arm in arms]

        index = _argmax(samples)
        return BanditChoice(index, self._classify(arms, index))

    @staticmethod
    def _sample_beta(arm: ArmStatistics, rng: np.random.Generator) -> float:
        # Beta(1, 1) uniform prior; seeded priors already live in the counts
        return float(rng.beta(arm.successes + 1, arm.failures + 1))

    def _sample_gaussian(self, arm: ArmStatistics, rng: np.random.Generator) -> float:
        prior = self.prior
        n = arm.pulls
        mean = arm.average_reward
        squared_deviations = max(arm.sum_of_squares - n * mean * mean, 0.0)

        kappa_n = prior.kappa0 + n
        mu_n = (prior.kappa0 * prior.mu0 + n * mean) / kappa_n
        alpha_n = prior.alpha0 + n / 2.0
        beta_n = (
            prior.beta0
            + 0.5 * squared_deviations
            + prior.kappa0 * n * (mean - prior.mu0) ** 2 / (2.0 * kappa_n)
        )

        # Precision ~ Gamma(shape=alpha_n, rate=beta_n)
        precision = rng.gamma(alpha_n, 1.0 / beta_n)
        variance = 1.0 / max(precision, 1e-300)
        return float(rng.normal(mu_n, math.sqrt(variance / kappa_n)))


class UCBPolicy(BanditPolicy):
    """Upper Confidence Bound (UCB1) multi-armed bandit policy."""

    name = "ucb1"

    def __init__(self, exploration: float = math.sqrt(2.0)):
        """
        Initialize UCB1 policy.

        Args:
            exploration: Exploration constant c in
                ``mean_reward + c * sqrt(ln(total_pulls) / arm_pulls)``
        """
        if exploration < 0:
            raise InvalidConfigurationError(
                f"Exploration constant must be non-negative, got {exploration}",
                field_errors={"exploration": ["must be non-negative"]},
            )
        self.exploration = exploration

    def scores(self, arms: Sequence[ArmStatistics]) -> List[float]:
        """UCB score per arm; unpulled arms score +inf."""
        total_pulls = sum(arm.pulls for arm in arms)
        log_total = math.log(total_pulls) if total_pulls > 0 else 0.0
        result = []
        for arm in arms:
            if arm.pulls == 0:
                result.append(math.inf)
            else:
                result.append(arm.average_reward + self.exploration * math.sqrt(log_total / arm.pulls))
        return result

    def choose(self, arms: Sequence[ArmStatistics], rng: np.random.Generator) -> BanditChoice:
        """
        Select arm using UCB1. Deterministic; the generator is not used.

        Every arm is pulled once, in registration order, before the formula applies.
        """
        _require_arms(arms)

        for index, arm in enumerate(arms):
            if arm.pulls == 0:
                return BanditChoice(index, SelectionReason.EXPLORE)

        index = _argmax(self.scores(arms))
        return BanditChoice(index, self._classify(arms, index))


class BanditSelector:
    """
    Applies the forced-exploration gate, then delegates to a policy.

    While any arm has fewer than ``min_pulls_before_exploitation`` pulls, the
    least-pulled arm (lowest index on ties) is selected regardless of policy.
    """

    def __init__(self, policy: BanditPolicy, min_pulls_before_exploitation: int = 0):
        if min_pulls_before_exploitation < 0:
            raise InvalidConfigurationError(
                "min_pulls_before_exploitation must be non-negative",
                field_errors={"min_pulls_before_exploitation": ["must be non-negative"]},
            )
        self.policy = policy
        self.min_pulls_before_exploitation = min_pulls_before_exploitation

    def select(self, arms: Sequence[ArmStatistics], rng: np.random.Generator) -> BanditChoice:
        _require_arms(arms)

        if self.min_pulls_before_exploitation > 0:
            pulls = [arm.pulls for arm in arms]
            least = int(np.argmin(pulls))
            if pulls[least] < self.min_pulls_before_exploitation:
                return BanditChoice(least, SelectionReason.FORCED_EXPLORATION)

        return self.policy.choose(arms, rng)

    def select_arm(self, arms: Sequence[ArmStatistics], rng: np.random.Generator) -> int:
        return self.select(arms, rng).index


def create_policy(
    policy: str,
    epsilon: float = 0.1,
    exploration: float = math.sqrt(2.0),
    reward_model: Union[RewardModel, str] = RewardModel.BERNOULLI,
    prior: Optional[NormalInverseGammaPrior] = None,
) -> BanditPolicy:
    """
    Create a bandit policy from its name.

    Args:
        policy: Policy name ("epsilon_greedy", "thompson_sampling", "ucb1" or an alias)
        epsilon: Exploration probability for epsilon-greedy
        exploration: Exploration constant for UCB1
        reward_model: Reward model for Thompson Sampling
        prior: Gaussian prior for Thompson Sampling

    Returns:
        BanditPolicy instance
    """
    # Support both technical names and simpler aliases
    policy_lower = policy.lower()

    if policy_lower in ("epsilon", "epsilon_greedy", "epsilongreedy"):
        return EpsilonGreedyPolicy(epsilon=epsilon)
    if policy_lower in ("thompson", "thompson_sampling", "thompsonsampling"):
        return ThompsonSamplingPolicy(reward_model=reward_model, prior=prior)
    if policy_lower in ("ucb", "ucb1"):
        return UCBPolicy(exploration=exploration)

    raise InvalidConfigurationError(
        f"Unknown policy: {policy}. "
        "Supported: 'epsilon' (or 'epsilon_greedy'), 'thompson' (or 'thompson_sampling'), "
        "'ucb' (or 'ucb1')",
        field_errors={"policy": [f"unknown policy '{policy}'"]},
    )
