"""Background loop that periodically evaluates stopping rules."""

import threading
from typing import Callable, Dict, Iterable, Optional

from armsmith.io.ser import StoppingDecision
from armsmith.utils.logging import get_logger, log_error

logger = get_logger("autostop")

DecisionCallback = Callable[[str, StoppingDecision], None]


class BackgroundEvaluator:
    """
    Runs stopping-rule evaluation on a daemon thread.

    Each pass evaluates every experiment and completes before the stop
    signal is checked, so a stop never leaves a half-finished pass.
    """

    def __init__(
        self,
        orchestrator,
        experiments: Optional[Iterable[str]] = None,
        interval_seconds: float = 300.0,
        on_decision: Optional[DecisionCallback] = None,
    ):
        """
        Initialize evaluator.

        Args:
            orchestrator: DecisionOrchestrator providing snapshots and rules
            experiments: Experiment names to evaluate (defaults to all registered)
            interval_seconds: Seconds between passes
            on_decision: Optional callback invoked with every decision
        """
        self.orchestrator = orchestrator
        self.experiments = list(experiments) if experiments is not None else None
        self.interval_seconds = interval_seconds
        self.on_decision = on_decision
        self.last_decisions: Dict[str, StoppingDecision] = {}
        self.passes = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def evaluate_once(self) -> Dict[str, StoppingDecision]:
        """
        Evaluate every experiment once and return the decisions.

        An experiment whose evaluation raises is logged and left out of the
        result; the rest of the pass still runs.
        """
        names = self.experiments if self.experiments is not None else self.orchestrator.experiment_names()
        decisions = {}
        for name in names:
            try:
                decision = self.orchestrator.evaluate(name)
            except Exception as e:
                log_error(logger, "Stopping-rule evaluation failed", e, {"experiment": name})
                continue
            decisions[name] = decision
            if self.on_decision is not None:
                try:
                    self.on_decision(name, decision)
                except Exception as e:
                    log_error(logger, "Stopping decision callback failed", e, {"experiment": name})
        self.last_decisions = decisions
        self.passes += 1
        return decisions

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="armsmith-autostop", daemon=True)
        self._thread.start()
        logger.info(f"Started stopping-rule evaluator (interval={self.interval_seconds}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop to stop and wait for the current pass to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        logger.info("Stopped stopping-rule evaluator")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.evaluate_once()
            except Exception as e:
                log_error(logger, "Stopping-rule evaluation pass failed", e)
            self._stop_event.wait(self.interval_seconds)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
