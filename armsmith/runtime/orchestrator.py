"""Composes allocation, bandit selection and stopping rules behind two calls."""

from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional, Union

import numpy as np

from armsmith.ab.metrics import ArmStatisticsStore
from armsmith.ab.policies import BanditSelector, make_rng
from armsmith.ab.traffic import hash_bucket, weighted_index
from armsmith.autostop.engine import StoppingRuleEngine, default_rules
from armsmith.dx.errors import UnknownExperimentError
from armsmith.io.config import ExperimentDefinition, SelectionMode, parse_definition
from armsmith.io.ser import (
    ArmStatistics,
    BanditDetail,
    ExperimentData,
    FallbackDetail,
    HashDetail,
    RewardEvent,
    SelectionReason,
    SelectionRequest,
    SelectionResult,
    StoppingDecision,
)
from armsmith.lifecycle.rollout import select_rollout_key
from armsmith.runtime.clock import Clock, system_clock
from armsmith.utils.logging import get_logger, log_warning

logger = get_logger("selection")


class _SelectionFallback(Exception):
    """Internal signal that the default key should be served."""

    def __init__(self, cause: str):
        super().__init__(cause)
        self.cause = cause


class _RegisteredExperiment:
    __slots__ = ("definition", "selector", "engine", "started_at", "keys")

    def __init__(
        self,
        definition: ExperimentDefinition,
        selector: Optional[BanditSelector],
        engine: StoppingRuleEngine,
        started_at: datetime,
    ):
        self.definition = definition
        self.selector = selector
        self.engine = engine
        self.started_at = started_at
        self.keys = frozenset(definition.candidate_keys)


class DecisionOrchestrator:
    """
    Entry point used by the surrounding system.

    ``select_arm`` runs on the request path and never raises: anything that
    goes wrong degrades to the request's default key. ``evaluate`` runs on the
    background path and returns a single stopping decision.
    """

    def __init__(
        self,
        store: Optional[ArmStatisticsStore] = None,
        clock: Optional[Clock] = None,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            store: Statistics store (a new one is created if omitted)
            clock: Time source for rollouts, timestamps and durations
            rng: Shared random generator for bandit selection
            seed: Seed for the shared generator when ``rng`` is omitted
        """
        self.clock = clock or system_clock
        self.store = store or ArmStatisticsStore(self.clock)
        self._rng = rng if rng is not None else make_rng(seed)
        self._rng_lock = Lock()
        self._experiments: Dict[str, _RegisteredExperiment] = {}
        self._lock = Lock()

    def register(self, definition: Union[ExperimentDefinition, Mapping[str, Any]]) -> ExperimentDefinition:
        """
        Validate and register an experiment.

        Raises:
            InvalidConfigurationError: If the definition is invalid
        """
        definition = parse_definition(definition)
        selector = definition.bandit.build_selector() if definition.mode is SelectionMode.BANDIT else None
        engine = StoppingRuleEngine(definition.stopping.build_rules(self.clock))

        control = definition.resolved_control_key
        for key in definition.candidate_keys:
            prior = definition.bandit.priors.get(key)
            self.store.register_arm(
                definition.name,
                key,
                is_control=key == control,
                prior_successes=prior.successes if prior else 0,
                prior_failures=prior.failures if prior else 0,
            )

        with self._lock:
            self._experiments[definition.name] = _RegisteredExperiment(
                definition, selector, engine, self.clock.now()
            )

        logger.info(
            f"Registered experiment '{definition.name}' "
            f"(mode={definition.mode.value}, arms={definition.candidate_keys})"
        )
        return definition

    def experiment_names(self) -> List[str]:
        return list(self._experiments.keys())

    def definition(self, name: str) -> ExperimentDefinition:
        return self._get(name).definition

    def select_arm(
        self,
        request: SelectionRequest,
        rng: Optional[np.random.Generator] = None,
    ) -> SelectionResult:
        """
        Choose a key for a request.

        Args:
            request: Selection request
            rng: Optional generator for this call; the shared one is used otherwise

        Returns:
            SelectionResult; reason FALLBACK when the default key was served
        """
        try:
            result = self._select(request, rng)
        except _SelectionFallback as fallback:
            return self._fallback(request, fallback.cause)
        except Exception as e:
            log_warning(
                logger,
                f"Selection failed for '{request.experiment_name}', serving default key",
                {"error": f"{type(e).__name__}: {e}", "default_key": request.default_key},
            )
            return self._fallback(request, "selection error", f"{type(e).__name__}: {e}")

        if request.candidate_keys and result.chosen_key not in request.candidate_keys:
            return self._fallback(request, f"key '{result.chosen_key}' is not a candidate")

        logger.debug(
            f"{request.experiment_name}: selected '{result.chosen_key}' ({result.reason.value})"
        )
        return result

    def record_reward(self, event: RewardEvent) -> ArmStatistics:
        return self.store.record_reward(
            event.experiment_name,
            event.arm_key,
            event.value,
            event.is_success,
            event.timestamp,
        )

    def experiment_data(self, name: str) -> ExperimentData:
        """Snapshot of an experiment's registered arms for rule evaluation."""
        experiment = self._get(name)
        arms = [arm for arm in self.store.snapshot(name) if arm.key in experiment.keys]
        return ExperimentData.from_statistics(name, experiment.started_at, arms)

    def evaluate(self, experiment: Union[str, ExperimentData]) -> StoppingDecision:
        """
        Evaluate stopping rules for an experiment.

        Args:
            experiment: Registered experiment name, or a prepared snapshot.
                Snapshots of unregistered experiments use the default rules.
        """
        if isinstance(experiment, ExperimentData):
            data = experiment
            registered = self._experiments.get(data.experiment_name)
            engine = registered.engine if registered else StoppingRuleEngine(default_rules())
        else:
            registered = self._get(experiment)
            data = self.experiment_data(experiment)
            engine = registered.engine

        return engine.evaluate(data)

    def reset(self, name: str) -> None:
        """Clear statistics and restart the experiment's clock."""
        experiment = self._get(name)
        self.store.reset(name)
        experiment.started_at = self.clock.now()

    def _get(self, name: str) -> _RegisteredExperiment:
        experiment = self._experiments.get(name)
        if experiment is None:
            raise UnknownExperimentError(name)
        return experiment

    def _select(self, request: SelectionRequest, rng: Optional[np.random.Generator]) -> SelectionResult:
        experiment = self._experiments.get(request.experiment_name)
        if experiment is None:
            raise _SelectionFallback("unknown experiment")

        definition = experiment.definition
        mode = definition.mode

        if mode in (SelectionMode.ROLLOUT, SelectionMode.STAGED_ROLLOUT):
            if request.identity is None:
                raise _SelectionFallback("missing identity")
            allocation = select_rollout_key(
                definition.rollout_options,
                definition.name,
                request.identity,
                self.clock.now(),
            )
            return SelectionResult(
                chosen_key=allocation.key if allocation.key is not None else request.default_key,
                reason=SelectionReason.HASH,
                detail=HashDetail(bucket=allocation.bucket, percentage=allocation.percentage),
            )

        if mode is SelectionMode.WEIGHTED:
            if request.identity is None:
                raise _SelectionFallback("missing identity")
            weights = definition.weighted.weights
            seed = definition.weighted.seed
            bucket = hash_bucket(request.identity, definition.name, seed)
            index = weighted_index(bucket, weights, definition.name)
            return SelectionResult(
                chosen_key=definition.candidate_keys[index],
                reason=SelectionReason.HASH,
                detail=HashDetail(bucket=bucket, weights=tuple(weights)),
            )

        return self._select_bandit(experiment, request, rng)

    def _select_bandit(
        self,
        experiment: _RegisteredExperiment,
        request: SelectionRequest,
        rng: Optional[np.random.Generator],
    ) -> SelectionResult:
        allowed = experiment.keys
        if request.candidate_keys:
            allowed = allowed.intersection(request.candidate_keys)

        arms = [arm for arm in self.store.snapshot(request.experiment_name) if arm.key in allowed]
        if not arms:
            raise _SelectionFallback("no candidate arms")

        if rng is not None:
            choice = experiment.selector.select(arms, rng)
        else:
            with self._rng_lock:
                choice = experiment.selector.select(arms, self._rng)

        return SelectionResult(
            chosen_key=arms[choice.index].key,
            reason=choice.reason,
            detail=BanditDetail(
                policy=experiment.selector.policy.name,
                pulls={arm.key: arm.pulls for arm in arms},
                average_rewards={arm.key: arm.average_reward for arm in arms},
            ),
        )

    def _fallback(self, request: SelectionRequest, cause: str, error: Optional[str] = None) -> SelectionResult:
        if error is None:
            log_warning(logger, f"{request.experiment_name}: serving default key '{request.default_key}' ({cause})")
        return SelectionResult(
            chosen_key=request.default_key,
            reason=SelectionReason.FALLBACK,
            detail=FallbackDetail(cause=cause, error=error),
        )
