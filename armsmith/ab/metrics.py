"""Concurrent per-arm statistics."""

from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, Iterable, List, Mapping, Optional

from armsmith.io.ser import ArmStatistics
from armsmith.runtime.clock import Clock, system_clock
from armsmith.utils.logging import get_logger

logger = get_logger("statistics")


class _ArmSlot:
    """Holds the current immutable value for one arm plus its update lock."""

    __slots__ = ("lock", "value")

    def __init__(self, value: ArmStatistics):
        self.lock = Lock()
        self.value = value


class ArmStatisticsStore:
    """
    Owns the mutable counters for every (experiment, arm) pair.

    Each arm is an immutable ``ArmStatistics`` value held in its own slot.
    ``record_reward`` replaces the value under that slot's lock, so updates to
    one arm never wait on another arm. The per-experiment arm map is copied on
    write when an arm is added, which lets ``snapshot`` read without locking.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or system_clock
        self._experiments: Dict[str, Dict[str, _ArmSlot]] = {}
        self._registered: Dict[str, Dict[str, ArmStatistics]] = {}
        self._create_lock = Lock()

    def register_arm(
        self,
        experiment: str,
        key: str,
        is_control: bool = False,
        prior_successes: int = 0,
        prior_failures: int = 0,
    ) -> ArmStatistics:
        """
        Pre-create an arm, optionally seeded with a Beta prior.

        The prior is folded into successes/failures and does not count as pulls.
        Registering an existing arm returns its current value unchanged.

        Args:
            experiment: Experiment name
            key: Arm key
            is_control: Whether the arm is the control
            prior_successes: Prior successes for cold-start bias
            prior_failures: Prior failures for cold-start bias

        Returns:
            Current statistics for the arm
        """
        initial = ArmStatistics(
            key=key,
            is_control=is_control,
            successes=prior_successes,
            failures=prior_failures,
        )
        slot = self._get_or_create_slot(experiment, key, initial)
        with self._create_lock:
            self._registered.setdefault(experiment, {}).setdefault(key, initial)
        return slot.value

    def record_reward(
        self,
        experiment: str,
        arm_key: str,
        reward: float,
        is_success: bool,
        timestamp: Optional[datetime] = None,
    ) -> ArmStatistics:
        """
        Apply one outcome to an arm atomically.

        Args:
            experiment: Experiment name
            arm_key: Arm key; created on first use
            reward: Reward value
            is_success: Whether the outcome counts as a success
            timestamp: Outcome time (defaults to the store's clock)

        Returns:
            The arm's statistics after the update
        """
        moment = timestamp or self._clock.now()
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        slot = self._get_or_create_slot(experiment, arm_key, ArmStatistics(key=arm_key))
        with slot.lock:
            slot.value = slot.value.with_reward(reward, is_success, moment)
            return slot.value

    def snapshot(self, experiment: str) -> List[ArmStatistics]:
        """Return the arms of an experiment in registration order."""
        arms = self._experiments.get(experiment)
        if not arms:
            return []
        return [slot.value for slot in arms.values()]

    def get(self, experiment: str, key: str) -> Optional[ArmStatistics]:
        slot = self._experiments.get(experiment, {}).get(key)
        return slot.value if slot else None

    def experiments(self) -> List[str]:
        return list(self._experiments.keys())

    def reset(self, experiment: str) -> None:
        """
        Clear recorded outcomes for an experiment.

        Registered arms return to their registration state (priors included);
        arms that were only created by rewards are dropped.
        """
        with self._create_lock:
            registered = self._registered.get(experiment, {})
            if registered:
                self._experiments[experiment] = {
                    key: _ArmSlot(value) for key, value in registered.items()
                }
            else:
                self._experiments.pop(experiment, None)
        logger.info(f"Reset statistics for experiment '{experiment}'")

    def to_records(self, experiment: str) -> List[Dict[str, Any]]:
        """Serialize an experiment's arms using the camelCase wire shape."""
        return [
            arm.model_dump(mode="json", by_alias=True)
            for arm in self.snapshot(experiment)
        ]

    def load_records(self, experiment: str, records: Iterable[Mapping[str, Any]]) -> None:
        """Replace an experiment's arms with previously serialized statistics."""
        arms = [ArmStatistics.model_validate(record) for record in records]
        with self._create_lock:
            self._experiments[experiment] = {arm.key: _ArmSlot(arm) for arm in arms}
            self._registered.setdefault(experiment, {})
            for arm in arms:
                self._registered[experiment].setdefault(
                    arm.key, ArmStatistics(key=arm.key, is_control=arm.is_control)
                )

    def _get_or_create_slot(
        self,
        experiment: str,
        key: str,
        initial: ArmStatistics,
    ) -> _ArmSlot:
        slot = self._experiments.get(experiment, {}).get(key)
        if slot is not None:
            return slot

        with self._create_lock:
            arms = self._experiments.get(experiment, {})
            slot = arms.get(key)
            if slot is None:
                slot = _ArmSlot(initial)
                updated = dict(arms)
                updated[key] = slot
                self._experiments[experiment] = updated
                logger.debug(f"Created arm '{key}' for experiment '{experiment}'")
            return slot
